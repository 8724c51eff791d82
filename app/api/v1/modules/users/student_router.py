from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.auth.dependencies import get_class_locks
from app.auth.rbac import require_roles
from app.core.enums import STAFF_ROLES, PersonRole, ResetMode
from app.core.exceptions import ServiceError
from app.core.locks import ClassLockRegistry
from app.core.spreadsheet import read_rows
from app.db.session import get_db, get_session_factory

from .schemas import (
    BulkImportResponse,
    CreatePersonResponse,
    PersonResponse,
    ResetPasswordResponse,
    StudentCreate,
    StudentUpdate,
)
from . import service

router = APIRouter(prefix="/api/v1/students", tags=["students"])


@router.post(
    "",
    response_model=CreatePersonResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(PersonRole.ADMIN))],
)
async def create_student(
    payload: StudentCreate,
    db: AsyncSession = Depends(get_db),
    locks: ClassLockRegistry = Depends(get_class_locks),
) -> CreatePersonResponse:
    """Returns the student and the one-time credentials (student first, then parent if created)."""
    try:
        return await service.create_student(db, locks, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/bulk-upload",
    response_model=BulkImportResponse,
    dependencies=[Depends(require_roles(PersonRole.ADMIN))],
)
async def bulk_upload_students(
    file: UploadFile = File(
        ...,
        description="Excel with columns: firstName, fatherName, lastName, motherName, dob, email, phone, departmentCode, className",
    ),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    locks: ClassLockRegistry = Depends(get_class_locks),
) -> BulkImportResponse:
    """Valid rows are created; failed rows come back in `errors` with a reason."""
    try:
        rows = await read_rows(file)
        return await service.bulk_upload_students(session_factory, locks, rows)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/bulk-assign",
    response_model=BulkImportResponse,
    dependencies=[Depends(require_roles(PersonRole.ADMIN, PersonRole.HOD))],
)
async def bulk_assign_students(
    file: UploadFile = File(..., description="Excel with columns: username, className (or Current Class)"),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    locks: ClassLockRegistry = Depends(get_class_locks),
) -> BulkImportResponse:
    try:
        rows = await read_rows(file)
        return await service.bulk_assign_students(session_factory, locks, rows)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/{student_id}",
    response_model=PersonResponse,
    dependencies=[Depends(require_roles(*STAFF_ROLES))],
)
async def get_student(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> PersonResponse:
    try:
        return await service.get_student(db, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put(
    "/{student_id}",
    response_model=PersonResponse,
    dependencies=[Depends(require_roles(PersonRole.ADMIN))],
)
async def update_student(
    student_id: UUID,
    payload: StudentUpdate,
    db: AsyncSession = Depends(get_db),
    locks: ClassLockRegistry = Depends(get_class_locks),
) -> PersonResponse:
    try:
        return await service.update_student(db, locks, student_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/{student_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_roles(PersonRole.ADMIN))],
)
async def retire_student(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    locks: ClassLockRegistry = Depends(get_class_locks),
) -> None:
    """Deactivates the student and its parent account and renumbers the class."""
    try:
        await service.retire_student(db, locks, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{student_id}/reset-password",
    response_model=ResetPasswordResponse,
    dependencies=[Depends(require_roles(PersonRole.ADMIN))],
)
async def reset_student_password(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> ResetPasswordResponse:
    """Regenerates firstname + ddmmyy for the student and its parent."""
    try:
        return await service.reset_password(
            db,
            student_id,
            ResetMode.DETERMINISTIC,
            roles=service.STUDENT_ROLES,
            not_found="Student not found",
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
