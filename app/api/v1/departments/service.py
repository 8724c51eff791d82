from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ServiceError, ValidationError
from app.core.models import Department
from app.db.roster_store import RosterStore

from .schemas import DepartmentCreate, DepartmentResponse


async def create_department(db: AsyncSession, payload: DepartmentCreate) -> DepartmentResponse:
    code = payload.code.strip().upper()[:20]
    name = payload.name.strip()
    try:
        dept = Department(code=code, name=name, is_active=True)
        db.add(dept)
        await db.commit()
        await db.refresh(dept)
        return DepartmentResponse.model_validate(dept)
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Department code or name already exists", status.HTTP_409_CONFLICT)


async def list_departments(db: AsyncSession, active_only: bool = True) -> List[DepartmentResponse]:
    stmt = select(Department)
    if active_only:
        stmt = stmt.where(Department.is_active.is_(True))
    result = await db.execute(stmt.order_by(Department.name))
    return [DepartmentResponse.model_validate(d) for d in result.scalars().all()]


async def resolve_department_id(
    db: AsyncSession,
    department_id: Optional[UUID] = None,
    department_code: Optional[str] = None,
) -> Optional[UUID]:
    """Department given by id (API) or code (spreadsheet rows). Raises ValidationError if unknown."""
    store = RosterStore(db)
    if department_id is not None:
        dept = await store.load_department(department_id)
        if not dept or not dept.is_active:
            raise ValidationError("Invalid department")
        return dept.id
    if department_code:
        dept = await store.load_department_by_code(department_code)
        if not dept:
            raise ValidationError(f"Department not found: {department_code}")
        return dept.id
    return None
