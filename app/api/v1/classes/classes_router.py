from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_class_locks
from app.auth.rbac import require_roles
from app.core.enums import STAFF_ROLES, PersonRole
from app.core.exceptions import ServiceError
from app.core.locks import ClassLockRegistry
from app.db.roster_store import RosterStore
from app.db.session import get_db

from .schemas import BatchLabelsUpdate, ClassCreate, ClassResponse, ClassUpdate, RosterView
from . import roster, service

router = APIRouter(prefix="/api/v1/classes", tags=["classes"])


@router.post(
    "",
    response_model=ClassResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(PersonRole.ADMIN))],
)
async def create_class(
    payload: ClassCreate,
    db: AsyncSession = Depends(get_db),
) -> ClassResponse:
    try:
        return await service.create_class(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "",
    response_model=List[ClassResponse],
    dependencies=[Depends(require_roles(*STAFF_ROLES))],
)
async def list_classes(
    department_id: Optional[UUID] = Query(None, description="Only classes of this department"),
    db: AsyncSession = Depends(get_db),
) -> List[ClassResponse]:
    return await service.list_classes(db, department_id=department_id)


@router.get(
    "/{class_id}",
    response_model=ClassResponse,
    dependencies=[Depends(require_roles(*STAFF_ROLES))],
)
async def get_class(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> ClassResponse:
    obj = await service.get_class(db, class_id)
    if not obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Class not found")
    return obj


@router.put(
    "/{class_id}",
    response_model=ClassResponse,
    dependencies=[Depends(require_roles(PersonRole.ADMIN))],
)
async def update_class(
    class_id: UUID,
    payload: ClassUpdate,
    db: AsyncSession = Depends(get_db),
    locks: ClassLockRegistry = Depends(get_class_locks),
) -> ClassResponse:
    try:
        obj = await service.update_class(db, locks, class_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Class not found")
    return obj


@router.delete(
    "/{class_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_roles(PersonRole.ADMIN))],
)
async def delete_class(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
    locks: ClassLockRegistry = Depends(get_class_locks),
) -> None:
    try:
        deleted = await service.delete_class(db, locks, class_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Class not found")


@router.get(
    "/{class_id}/students",
    response_model=RosterView,
    dependencies=[Depends(require_roles(*STAFF_ROLES))],
)
async def get_class_students(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> RosterView:
    """Current roster and batches from stored roll numbers. Does not renumber."""
    try:
        return await roster.roster_view(RosterStore(db), class_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{class_id}/reorganize",
    response_model=RosterView,
    dependencies=[Depends(require_roles(PersonRole.ADMIN, PersonRole.HOD))],
)
async def reorganize_class(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
    locks: ClassLockRegistry = Depends(get_class_locks),
) -> RosterView:
    """Sort students by last name, first name; assign roll numbers 1..n; recompute batches."""
    try:
        return await roster.reorganize(RosterStore(db), locks, class_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put(
    "/{class_id}/batches",
    response_model=RosterView,
    dependencies=[Depends(require_roles(PersonRole.ADMIN, PersonRole.HOD))],
)
async def update_batch_names(
    class_id: UUID,
    payload: BatchLabelsUpdate,
    db: AsyncSession = Depends(get_db),
    locks: ClassLockRegistry = Depends(get_class_locks),
) -> RosterView:
    try:
        return await service.set_batch_names(db, locks, class_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
