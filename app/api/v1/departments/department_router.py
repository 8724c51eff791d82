from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_roles
from app.core.enums import STAFF_ROLES, PersonRole
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import DepartmentCreate, DepartmentResponse
from . import service

router = APIRouter(prefix="/api/v1/departments", tags=["departments"])


@router.post(
    "",
    response_model=DepartmentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(PersonRole.ADMIN))],
)
async def create_department(
    payload: DepartmentCreate,
    db: AsyncSession = Depends(get_db),
) -> DepartmentResponse:
    try:
        return await service.create_department(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "",
    response_model=List[DepartmentResponse],
    dependencies=[Depends(require_roles(*STAFF_ROLES))],
)
async def list_departments(
    active_only: bool = Query(True, description="Return only is_active=true by default"),
    db: AsyncSession = Depends(get_db),
) -> List[DepartmentResponse]:
    return await service.list_departments(db, active_only=active_only)
