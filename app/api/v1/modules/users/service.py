import logging
from typing import Iterable, List, Optional, Sequence, Set, Tuple
from uuid import UUID

from fastapi import status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.v1.classes import roster
from app.api.v1.departments.service import resolve_department_id
from app.auth import credentials
from app.auth.credentials import CredentialRecord
from app.auth.models import StudentProfile, User
from app.auth.security import hash_password
from app.core.bulk_import import BulkImportResult, RawRow, import_rows
from app.core.config import settings
from app.core.enums import PersonRole, ResetMode
from app.core.exceptions import (
    CapacityExceededError,
    ClassNotFoundError,
    ConcurrencyConflictError,
    NotFoundError,
    ServiceError,
    ValidationError,
)
from app.core.locks import ClassLockRegistry
from app.core.models import SchoolClass
from app.db.roster_store import RosterStore

from .schemas import (
    BulkImportResponse,
    BulkRowError,
    ClassAssignmentRow,
    CreatePersonResponse,
    CredentialResponse,
    PersonResponse,
    ResetPasswordResponse,
    StudentCreate,
    StudentRow,
    StudentUpdate,
    TeacherCreate,
    TeacherRow,
    UserCreate,
    UserRow,
)

logger = logging.getLogger(__name__)

STUDENT_ROLES = (PersonRole.STUDENT,)
TEACHER_ROLES = (PersonRole.TEACHER, PersonRole.HOD, PersonRole.CLASS_COORDINATOR)
ALL_ROLES = tuple(PersonRole)

# Editable on PUT /students/{id}; username and dob are not
_STUDENT_USER_FIELDS = ("first_name", "father_name", "last_name", "mother_name", "email", "phone", "gender")
_STUDENT_PROFILE_FIELDS = ("year", "parent_phone", "parent_email")


def _person_to_response(user: User, profile: Optional[StudentProfile] = None) -> PersonResponse:
    return PersonResponse(
        id=user.id,
        username=user.username,
        role=user.role,
        first_name=user.first_name,
        father_name=user.father_name,
        last_name=user.last_name,
        mother_name=user.mother_name,
        full_name=user.full_name,
        dob=user.dob,
        email=user.email,
        phone=user.phone,
        gender=user.gender,
        department_id=user.department_id,
        must_change_password=user.must_change_password,
        is_active=user.is_active,
        created_at=user.created_at,
        class_id=profile.class_id if profile else None,
        roll_no=profile.roll_no if profile else None,
        parent_id=profile.parent_id if profile else None,
        year=profile.year if profile else None,
    )


def _credentials_to_response(records: Iterable[CredentialRecord]) -> List[CredentialResponse]:
    return [CredentialResponse.model_validate(r) for r in records]


def _bulk_to_response(result: BulkImportResult) -> BulkImportResponse:
    return BulkImportResponse(
        success_count=result.success_count,
        failed_count=result.failed_count,
        credentials=_credentials_to_response(result.credentials),
        errors=[BulkRowError.model_validate(e) for e in result.errors],
    )


def _integrity_conflict(e: IntegrityError) -> ServiceError:
    """Only a username clash is a lost race; other constraints point at bad references."""
    if "username" in str(e.orig).lower():
        return ServiceError(
            "Username was taken by a concurrent request. Please retry.",
            status.HTTP_409_CONFLICT,
        )
    return ServiceError(
        "Record conflicts with existing data (linked parent or department/class reference)",
        status.HTTP_409_CONFLICT,
    )


def _new_user(record: CredentialRecord, person, department_id: Optional[UUID]) -> User:
    gender = getattr(person, "gender", None)
    return User(
        first_name=person.first_name.strip(),
        father_name=(getattr(person, "father_name", None) or None),
        last_name=person.last_name.strip(),
        mother_name=(getattr(person, "mother_name", None) or None),
        full_name=record.full_name,
        username=record.username,
        password_hash=hash_password(record.password),
        role=record.role,
        dob=getattr(person, "dob", None),
        email=getattr(person, "email", None),
        phone=getattr(person, "phone", None),
        gender=gender.value if gender else None,
        department_id=department_id,
        must_change_password=record.must_change_password,
        is_active=True,
    )


async def _load_person(store: RosterStore, user_id: UUID, roles: Sequence[PersonRole], not_found: str) -> User:
    user = await store.load_person(user_id)
    if not user or not user.is_active or PersonRole(user.role) not in roles:
        raise NotFoundError(not_found)
    return user


async def _class_for_enrolment(
    store: RosterStore,
    class_id: UUID,
    exclude_user_id: Optional[UUID] = None,
) -> SchoolClass:
    """Load a class and make sure one more student fits. Call under the class lock."""
    school_class = await store.load_class(class_id)
    if not school_class:
        raise ClassNotFoundError(class_id)
    enrolled = await store.count_active_students(class_id, exclude_user_id=exclude_user_id)
    if enrolled >= school_class.max_capacity:
        raise CapacityExceededError(
            f"Class {school_class.name} is full ({enrolled}/{school_class.max_capacity})"
        )
    return school_class


async def _provision_student(
    store: RosterStore,
    payload: StudentCreate,
    department_id: Optional[UUID],
    class_id: Optional[UUID],
) -> Tuple[User, StudentProfile, List[CredentialRecord]]:
    """Issue and add the student (and its parent when father_name is given). Does not commit."""
    student_rec, parent_rec, parent = await credentials.issue_student_with_parent(
        payload, store.exists_username, max_attempts=settings.credential_max_attempts
    )

    parent_user = None
    if parent_rec is not None:
        parent_user = User(
            first_name=parent.first_name.strip(),
            last_name=parent.last_name.strip(),
            mother_name=parent.mother_name or None,
            full_name=parent_rec.full_name,
            username=parent_rec.username,
            password_hash=hash_password(parent_rec.password),
            role=parent_rec.role,
            email=payload.parent_email,
            phone=payload.parent_phone,
            department_id=department_id,
            must_change_password=parent_rec.must_change_password,
            is_active=True,
        )
        await store.create_person(parent_user)

    profile = StudentProfile(
        class_id=class_id,
        parent_id=parent_user.id if parent_user else None,
        year=payload.year,
        parent_phone=payload.parent_phone,
        parent_email=payload.parent_email,
    )
    student = _new_user(student_rec, payload, department_id)
    await store.create_person(student, profile)
    return student, profile, [r for r in (student_rec, parent_rec) if r is not None]


async def _enrol_student(
    store: RosterStore,
    locks: ClassLockRegistry,
    payload: StudentCreate,
    department_id: Optional[UUID],
    class_id: Optional[UUID],
    renumber: bool,
) -> Tuple[User, StudentProfile, List[CredentialRecord]]:
    """
    Provision a student and commit. With a class, the capacity check, the insert and
    (when renumber is set) the new roll numbers all happen under the class lock.
    """
    try:
        if class_id is None:
            created = await _provision_student(store, payload, department_id, None)
        else:
            async with locks.hold(class_id):
                school_class = await _class_for_enrolment(store, class_id)
                created = await _provision_student(
                    store, payload, department_id or school_class.department_id, class_id
                )
                if renumber:
                    await roster.renumber(store, class_id)
                await store.commit()
            return created
        await store.commit()
        return created
    except IntegrityError as e:
        await store.rollback()
        raise _integrity_conflict(e)
    except Exception:
        await store.rollback()
        raise


async def _provision_person(
    store: RosterStore,
    payload,
    role: PersonRole,
    department_id: Optional[UUID],
) -> Tuple[User, Optional[StudentProfile], List[CredentialRecord]]:
    """Single account without a linked parent. Does not commit."""
    record = await credentials.issue(
        payload, role, store.exists_username, max_attempts=settings.credential_max_attempts
    )
    user = _new_user(record, payload, department_id)
    profile = StudentProfile(year=1) if role == PersonRole.STUDENT else None
    await store.create_person(user, profile)
    return user, profile, [record]


async def _create_person(store: RosterStore, payload, role: PersonRole, department_id: Optional[UUID]):
    try:
        created = await _provision_person(store, payload, role, department_id)
        await store.commit()
        return created
    except IntegrityError as e:
        await store.rollback()
        raise _integrity_conflict(e)
    except Exception:
        await store.rollback()
        raise


# ----- Students -----
async def create_student(
    db: AsyncSession,
    locks: ClassLockRegistry,
    payload: StudentCreate,
) -> CreatePersonResponse:
    """Create a student (+ parent when father_name is set). Joining a class renumbers it."""
    store = RosterStore(db)
    department_id = await resolve_department_id(db, department_id=payload.department_id)
    user, profile, records = await _enrol_student(
        store, locks, payload, department_id, payload.class_id, renumber=True
    )
    logger.info(
        "Student created",
        extra={
            "user_id": str(user.id),
            "class_id": str(payload.class_id) if payload.class_id else None,
            "with_parent": len(records) > 1,
        },
    )
    return CreatePersonResponse(
        person=_person_to_response(user, profile),
        credentials=_credentials_to_response(records),
    )


async def get_student(db: AsyncSession, student_id: UUID) -> PersonResponse:
    user = await _load_person(RosterStore(db), student_id, STUDENT_ROLES, "Student not found")
    return _person_to_response(user, user.student_profile)


async def update_student(
    db: AsyncSession,
    locks: ClassLockRegistry,
    student_id: UUID,
    payload: StudentUpdate,
) -> PersonResponse:
    """
    Update profile fields. A class change moves the student under both class locks and
    renumbers the new and the old class in the same transaction.
    """
    store = RosterStore(db)
    user = await _load_person(store, student_id, STUDENT_ROLES, "Student not found")
    profile = user.student_profile
    if profile is None:
        raise ValidationError("Student has no profile")
    old_class_id = profile.class_id
    new_class_id = payload.class_id
    moving = new_class_id is not None and new_class_id != old_class_id

    department_id = None
    if payload.department_id is not None:
        department_id = await resolve_department_id(db, department_id=payload.department_id)

    changes = payload.model_dump(exclude_unset=True, mode="json")
    try:
        for field in _STUDENT_USER_FIELDS:
            if field in changes and changes[field] is not None:
                setattr(user, field, changes[field])
        for field in _STUDENT_PROFILE_FIELDS:
            if field in changes and changes[field] is not None:
                setattr(profile, field, changes[field])
        if department_id is not None:
            user.department_id = department_id
        user.full_name = credentials.build_full_name(user.first_name, user.father_name, user.last_name)

        if moving:
            async with locks.hold_many([old_class_id, new_class_id]):
                user = await _load_person(store, student_id, STUDENT_ROLES, "Student not found")
                profile = user.student_profile
                if profile.class_id != old_class_id:
                    raise ConcurrencyConflictError("Student was moved by another request. Please retry.")
                school_class = await _class_for_enrolment(store, new_class_id, exclude_user_id=user.id)
                profile.class_id = school_class.id
                profile.roll_no = None
                await roster.renumber(store, school_class.id)
                if old_class_id is not None:
                    await roster.renumber(store, old_class_id)
                await store.commit()
        else:
            await store.commit()
    except Exception:
        await store.rollback()
        raise

    if moving:
        logger.info(
            "Student moved",
            extra={
                "user_id": str(user.id),
                "from_class_id": str(old_class_id) if old_class_id else None,
                "to_class_id": str(new_class_id),
            },
        )
    return _person_to_response(user, profile)


async def retire_student(db: AsyncSession, locks: ClassLockRegistry, student_id: UUID) -> None:
    """
    Deactivate the student and its linked parent, take the student out of its class
    and renumber that class. Usernames stay reserved.
    """
    store = RosterStore(db)
    user = await _load_person(store, student_id, STUDENT_ROLES, "Student not found")
    class_id = user.student_profile.class_id if user.student_profile else None

    try:
        async with locks.hold_many([class_id]):
            user = await _load_person(store, student_id, STUDENT_ROLES, "Student not found")
            profile = user.student_profile
            if profile is not None and profile.class_id != class_id:
                raise ConcurrencyConflictError("Student was moved by another request. Please retry.")

            user.is_active = False
            if profile is not None:
                if profile.parent_id is not None:
                    parent = await store.load_person(profile.parent_id)
                    if parent is not None:
                        parent.is_active = False
                profile.class_id = None
                profile.roll_no = None
            if class_id is not None:
                await roster.renumber(store, class_id)
            await store.commit()
    except Exception:
        await store.rollback()
        raise

    logger.info(
        "Student retired",
        extra={"user_id": str(student_id), "class_id": str(class_id) if class_id else None},
    )


# ----- Teachers / generic users -----
async def create_teacher(db: AsyncSession, payload: TeacherCreate) -> CreatePersonResponse:
    store = RosterStore(db)
    department_id = await resolve_department_id(db, department_id=payload.department_id)
    user, profile, records = await _create_person(store, payload, payload.role, department_id)
    logger.info("Staff member created", extra={"user_id": str(user.id), "role": user.role})
    return CreatePersonResponse(
        person=_person_to_response(user, profile),
        credentials=_credentials_to_response(records),
    )


async def create_user(db: AsyncSession, payload: UserCreate) -> CreatePersonResponse:
    store = RosterStore(db)
    department_id = await resolve_department_id(db, department_id=payload.department_id)
    user, profile, records = await _create_person(store, payload, payload.role, department_id)
    logger.info("User created", extra={"user_id": str(user.id), "role": user.role})
    return CreatePersonResponse(
        person=_person_to_response(user, profile),
        credentials=_credentials_to_response(records),
    )


# ----- Password reset -----
async def reset_password(
    db: AsyncSession,
    user_id: UUID,
    mode: ResetMode,
    roles: Sequence[PersonRole] = ALL_ROLES,
    not_found: str = "User not found",
) -> ResetPasswordResponse:
    """
    Reset to a new initial password and force a change at next login.
    A student's linked parent is reset to the same password; a linked parent's
    password is derived from its student.
    """
    store = RosterStore(db)
    user = await _load_person(store, user_id, roles, not_found)

    accounts: List[User] = [user]
    source = user
    profile = user.student_profile
    if user.role == PersonRole.STUDENT.value and profile is not None and profile.parent_id is not None:
        parent = await store.load_person(profile.parent_id)
        if parent is not None and parent.is_active:
            accounts.append(parent)
    elif user.role == PersonRole.PARENT.value:
        linked = await store.load_linked_student(user.id)
        if linked is not None:
            source = linked

    password = credentials.reset_password(source, mode)
    password_hash = hash_password(password)
    try:
        for account in accounts:
            account.password_hash = password_hash
            account.must_change_password = True
        await store.commit()
    except Exception:
        await store.rollback()
        raise

    logger.info(
        "Password reset",
        extra={"user_id": str(user.id), "mode": ResetMode(mode).value, "accounts": len(accounts)},
    )
    return ResetPasswordResponse(
        credentials=[
            CredentialResponse(
                full_name=a.full_name,
                username=a.username,
                password=password,
                role=a.role,
                must_change_password=True,
            )
            for a in accounts
        ]
    )


# ----- Bulk upload -----
async def _reorganize_touched(
    session_factory: async_sessionmaker,
    locks: ClassLockRegistry,
    class_ids: Set[UUID],
) -> None:
    """Renumber each class an import touched, once. Imported rows stay committed either way."""
    if not class_ids:
        return
    async with session_factory() as db:
        store = RosterStore(db)
        for class_id in sorted(class_ids, key=str):
            try:
                await roster.reorganize(store, locks, class_id)
            except ServiceError:
                logger.warning(
                    "Reorganize after bulk import failed; class keeps unnumbered students until the next reorganize",
                    exc_info=True,
                    extra={"class_id": str(class_id)},
                )


async def bulk_upload_students(
    session_factory: async_sessionmaker,
    locks: ClassLockRegistry,
    rows: List[RawRow],
) -> BulkImportResponse:
    """
    Columns: first_name, father_name, last_name, mother_name, dob, email, phone, gender,
    parent_phone, parent_email, year, department_code, class_name.
    """
    touched: Set[UUID] = set()

    async def process(item: StudentRow) -> List[CredentialRecord]:
        async with session_factory() as db:
            store = RosterStore(db)
            department_id = await resolve_department_id(
                db, department_id=item.department_id, department_code=item.department_code
            )
            class_id = item.class_id
            if item.class_name:
                school_class = await store.load_class_by_name(item.class_name, department_id)
                if not school_class:
                    raise NotFoundError(f"Class not found: {item.class_name}")
                class_id = school_class.id
            _, _, records = await _enrol_student(
                store, locks, item, department_id, class_id, renumber=False
            )
        if class_id is not None:
            touched.add(class_id)
        return records

    result = await import_rows(rows, StudentRow.model_validate, process, max_workers=settings.bulk_import_workers)
    await _reorganize_touched(session_factory, locks, touched)
    return _bulk_to_response(result)


async def _bulk_upload_people(
    session_factory: async_sessionmaker,
    rows: List[RawRow],
    row_model,
) -> BulkImportResponse:
    async def process(item) -> List[CredentialRecord]:
        async with session_factory() as db:
            store = RosterStore(db)
            department_id = await resolve_department_id(
                db, department_id=item.department_id, department_code=item.department_code
            )
            _, _, records = await _create_person(store, item, item.role, department_id)
        return records

    result = await import_rows(rows, row_model.model_validate, process, max_workers=settings.bulk_import_workers)
    return _bulk_to_response(result)


async def bulk_upload_teachers(session_factory: async_sessionmaker, rows: List[RawRow]) -> BulkImportResponse:
    """Columns: first_name, father_name, last_name, dob, email, phone, gender, role, department_code."""
    return await _bulk_upload_people(session_factory, rows, TeacherRow)


async def bulk_upload_users(session_factory: async_sessionmaker, rows: List[RawRow]) -> BulkImportResponse:
    """Columns: first_name, father_name, last_name, mother_name, dob, role, email, phone, department_code."""
    return await _bulk_upload_people(session_factory, rows, UserRow)


async def bulk_assign_students(
    session_factory: async_sessionmaker,
    locks: ClassLockRegistry,
    rows: List[RawRow],
) -> BulkImportResponse:
    """
    Move existing students into classes by name. Columns: username (or student_id),
    class_name (or current_class), department_code. Every class that gained or lost a
    student is reorganized afterwards.
    """
    touched: Set[UUID] = set()

    def validate(row: RawRow) -> ClassAssignmentRow:
        data = dict(row)
        if not data.get("class_name"):
            data["class_name"] = data.get("current_class")
        item = ClassAssignmentRow.model_validate(data)
        if not item.username and not item.student_id:
            raise ValidationError("Missing username or student_id")
        return item

    async def process(item: ClassAssignmentRow) -> List[CredentialRecord]:
        async with session_factory() as db:
            store = RosterStore(db)
            if item.student_id is not None:
                user = await store.load_person(item.student_id)
            else:
                user = await store.load_person_by_username(item.username)
            if (
                user is None
                or not user.is_active
                or user.role != PersonRole.STUDENT.value
                or user.student_profile is None
            ):
                raise NotFoundError("Student not found")

            department_id = await resolve_department_id(db, department_code=item.department_code)
            school_class = await store.load_class_by_name(item.class_name, department_id)
            if not school_class:
                raise NotFoundError(f"Class not found: {item.class_name}")
            old_class_id = user.student_profile.class_id
            if old_class_id == school_class.id:
                return []

            try:
                async with locks.hold_many([old_class_id, school_class.id]):
                    user = await store.load_person(user.id)
                    profile = user.student_profile
                    if profile.class_id != old_class_id:
                        raise ConcurrencyConflictError("Student was moved by another request. Please retry.")
                    await _class_for_enrolment(store, school_class.id, exclude_user_id=user.id)
                    profile.class_id = school_class.id
                    profile.roll_no = None
                    user.department_id = school_class.department_id
                    await store.commit()
            except Exception:
                await store.rollback()
                raise

        touched.update(c for c in (old_class_id, school_class.id) if c is not None)
        return []

    result = await import_rows(rows, validate, process, max_workers=settings.bulk_import_workers)
    await _reorganize_touched(session_factory, locks, touched)
    return _bulk_to_response(result)
