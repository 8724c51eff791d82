from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.auth.rbac import require_roles
from app.core.enums import PersonRole, ResetMode
from app.core.exceptions import ServiceError
from app.core.spreadsheet import read_rows
from app.db.session import get_db, get_session_factory

from .schemas import BulkImportResponse, CreatePersonResponse, ResetPasswordResponse, TeacherCreate
from . import service

router = APIRouter(prefix="/api/v1/teachers", tags=["teachers"])


@router.post(
    "",
    response_model=CreatePersonResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(PersonRole.ADMIN))],
)
async def create_teacher(
    payload: TeacherCreate,
    db: AsyncSession = Depends(get_db),
) -> CreatePersonResponse:
    try:
        return await service.create_teacher(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/bulk-upload",
    response_model=BulkImportResponse,
    dependencies=[Depends(require_roles(PersonRole.ADMIN))],
)
async def bulk_upload_teachers(
    file: UploadFile = File(
        ...,
        description="Excel with columns: firstName, fatherName, lastName, dob, email, phone, role, departmentCode",
    ),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> BulkImportResponse:
    try:
        rows = await read_rows(file)
        return await service.bulk_upload_teachers(session_factory, rows)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{teacher_id}/reset-password",
    response_model=ResetPasswordResponse,
    dependencies=[Depends(require_roles(PersonRole.ADMIN))],
)
async def reset_teacher_password(
    teacher_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> ResetPasswordResponse:
    try:
        return await service.reset_password(
            db,
            teacher_id,
            ResetMode.DETERMINISTIC,
            roles=service.TEACHER_ROLES,
            not_found="Teacher not found",
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
