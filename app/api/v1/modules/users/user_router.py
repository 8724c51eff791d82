from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.auth.rbac import require_roles
from app.core.enums import PersonRole, ResetMode
from app.core.exceptions import ServiceError
from app.core.spreadsheet import read_rows
from app.db.session import get_db, get_session_factory

from .schemas import BulkImportResponse, CreatePersonResponse, ResetPasswordResponse, UserCreate
from . import service

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.post(
    "",
    response_model=CreatePersonResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(PersonRole.ADMIN))],
)
async def create_user(
    payload: UserCreate,
    db: AsyncSession = Depends(get_db),
) -> CreatePersonResponse:
    """Any provisionable role. Students created here have no class and no parent account."""
    try:
        return await service.create_user(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/bulk-upload",
    response_model=BulkImportResponse,
    dependencies=[Depends(require_roles(PersonRole.ADMIN))],
)
async def bulk_upload_users(
    file: UploadFile = File(
        ...,
        description="Excel with columns: firstName, fatherName, lastName, dob, role, email, phone",
    ),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> BulkImportResponse:
    try:
        rows = await read_rows(file)
        return await service.bulk_upload_users(session_factory, rows)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{user_id}/reset-password",
    response_model=ResetPasswordResponse,
    dependencies=[Depends(require_roles(PersonRole.ADMIN))],
)
async def reset_user_password(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> ResetPasswordResponse:
    try:
        return await service.reset_password(db, user_id, ResetMode.DETERMINISTIC)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
