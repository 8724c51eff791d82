from typing import Dict, List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import StudentProfile, User
from app.api.v1.departments.service import resolve_department_id
from app.core.exceptions import CapacityExceededError, ClassNotFoundError, ServiceError
from app.core.locks import ClassLockRegistry
from app.core.models import SchoolClass
from app.db.roster_store import RosterStore

from .roster import roster_view
from .schemas import BatchLabelsUpdate, ClassCreate, ClassResponse, ClassUpdate, RosterView


def _class_to_response(c: SchoolClass, student_count: int = 0) -> ClassResponse:
    return ClassResponse(
        id=c.id,
        name=c.name,
        year=c.year,
        department_id=c.department_id,
        coordinator_id=c.coordinator_id,
        max_capacity=c.max_capacity,
        batch_names=list(c.batch_names or []),
        student_count=student_count,
        created_at=c.created_at,
        updated_at=c.updated_at,
    )


async def _student_counts(db: AsyncSession) -> Dict[UUID, int]:
    result = await db.execute(
        select(StudentProfile.class_id, func.count(StudentProfile.id))
        .join(User, StudentProfile.user_id == User.id)
        .where(StudentProfile.class_id.is_not(None), User.is_active.is_(True))
        .group_by(StudentProfile.class_id)
    )
    return {class_id: count for class_id, count in result.all()}


async def create_class(db: AsyncSession, payload: ClassCreate) -> ClassResponse:
    await resolve_department_id(db, department_id=payload.department_id)
    try:
        obj = SchoolClass(
            name=payload.name.strip(),
            year=payload.year,
            department_id=payload.department_id,
            coordinator_id=payload.coordinator_id,
            max_capacity=payload.max_capacity,
            batch_names=[],
            roster_version=0,
        )
        db.add(obj)
        await db.commit()
        await db.refresh(obj)
        return _class_to_response(obj)
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Class could not be created (invalid coordinator or duplicate)", status.HTTP_409_CONFLICT)


async def list_classes(db: AsyncSession, department_id: Optional[UUID] = None) -> List[ClassResponse]:
    stmt = select(SchoolClass)
    if department_id is not None:
        stmt = stmt.where(SchoolClass.department_id == department_id)
    stmt = stmt.order_by(SchoolClass.year, SchoolClass.name)
    result = await db.execute(stmt)
    counts = await _student_counts(db)
    return [_class_to_response(c, counts.get(c.id, 0)) for c in result.scalars().all()]


async def get_class(db: AsyncSession, class_id: UUID) -> Optional[ClassResponse]:
    store = RosterStore(db)
    obj = await store.load_class(class_id)
    if not obj:
        return None
    count = await store.count_active_students(class_id)
    return _class_to_response(obj, count)


async def update_class(
    db: AsyncSession,
    locks: ClassLockRegistry,
    class_id: UUID,
    payload: ClassUpdate,
) -> Optional[ClassResponse]:
    """Capacity changes are made under the class lock and may not drop below the enrolled count."""
    store = RosterStore(db)
    async with locks.hold(class_id):
        try:
            obj = await store.load_class(class_id)
            if not obj:
                return None
            count = await store.count_active_students(class_id)
            if payload.max_capacity is not None and payload.max_capacity < count:
                raise CapacityExceededError(
                    f"Class has {count} students; max capacity cannot be set to {payload.max_capacity}"
                )
            if payload.department_id is not None:
                await resolve_department_id(db, department_id=payload.department_id)
                obj.department_id = payload.department_id
            if payload.name is not None:
                obj.name = payload.name.strip()
            if payload.year is not None:
                obj.year = payload.year
            if payload.coordinator_id is not None:
                obj.coordinator_id = payload.coordinator_id
            if payload.max_capacity is not None:
                obj.max_capacity = payload.max_capacity
            await store.commit()
            await store.refresh(obj)
            return _class_to_response(obj, count)
        except IntegrityError:
            await store.rollback()
            raise ServiceError("Invalid coordinator or department", status.HTTP_409_CONFLICT)
        except Exception:
            await store.rollback()
            raise


async def delete_class(db: AsyncSession, locks: ClassLockRegistry, class_id: UUID) -> bool:
    store = RosterStore(db)
    async with locks.hold(class_id):
        try:
            obj = await store.load_class(class_id)
            if not obj:
                return False
            if await store.count_active_students(class_id) > 0:
                raise ServiceError("Cannot delete class: it has enrolled students", status.HTTP_400_BAD_REQUEST)
            await store.delete(obj)
            await store.commit()
            return True
        except Exception:
            await store.rollback()
            raise


async def set_batch_names(
    db: AsyncSession,
    locks: ClassLockRegistry,
    class_id: UUID,
    payload: BatchLabelsUpdate,
) -> RosterView:
    """Store display labels by batch position; membership stays computed."""
    store = RosterStore(db)
    async with locks.hold(class_id):
        try:
            obj = await store.load_class(class_id)
            if not obj:
                raise ClassNotFoundError(class_id)
            obj.batch_names = [name.strip() for name in payload.batch_names]
            await store.commit()
        except Exception:
            await store.rollback()
            raise
    return await roster_view(store, class_id)
