"""
Persistence port for the roster and credential engine.

Every call is bounded by a timeout. A timeout or driver failure surfaces as
PersistenceError; "not found" is a None return. IntegrityError is left to callers,
which know which uniqueness rule was hit.
"""

import asyncio
import logging
from typing import Awaitable, List, Optional, Sequence, Tuple, TypeVar
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.auth.models import StudentProfile, User
from app.core.config import settings
from app.core.exceptions import ConcurrencyConflictError, PersistenceError, ValidationError
from app.core.models import Department, SchoolClass

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RosterStore:
    def __init__(self, db: AsyncSession, timeout: Optional[float] = None) -> None:
        self.db = db
        self.timeout = settings.persistence_timeout_seconds if timeout is None else timeout

    async def _guard(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error("Persistence call timed out", extra={"operation": operation, "timeout": self.timeout})
            raise PersistenceError(f"Storage timed out during {operation}")
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            logger.error("Persistence call failed", exc_info=True, extra={"operation": operation})
            raise PersistenceError(f"Storage failure during {operation}") from e

    async def load_class(self, class_id: UUID) -> Optional[SchoolClass]:
        result = await self._guard(
            "load_class",
            self.db.execute(
                select(SchoolClass)
                .where(SchoolClass.id == class_id)
                .execution_options(populate_existing=True)
            ),
        )
        return result.scalar_one_or_none()

    async def load_class_by_name(self, name: str, department_id: Optional[UUID] = None) -> Optional[SchoolClass]:
        """Case-insensitive; a name shared by several classes must be narrowed by department."""
        stmt = select(SchoolClass).where(func.lower(SchoolClass.name) == name.strip().lower())
        if department_id is not None:
            stmt = stmt.where(SchoolClass.department_id == department_id)
        result = await self._guard("load_class_by_name", self.db.execute(stmt.limit(2)))
        matches = result.scalars().all()
        if len(matches) > 1:
            raise ValidationError(f"Class name is ambiguous: {name.strip()}; add departmentCode")
        return matches[0] if matches else None

    async def load_department(self, department_id: UUID) -> Optional[Department]:
        return await self._guard("load_department", self.db.get(Department, department_id))

    async def load_department_by_code(self, code: str) -> Optional[Department]:
        """Case-insensitive lookup of an active department."""
        result = await self._guard(
            "load_department_by_code",
            self.db.execute(
                select(Department).where(
                    func.upper(Department.code) == code.strip().upper(),
                    Department.is_active.is_(True),
                )
            ),
        )
        return result.scalar_one_or_none()

    async def load_students_by_class(self, class_id: UUID) -> List[StudentProfile]:
        """Active students of a class in their current roll order (unnumbered last, then enrolment order)."""
        stmt = (
            select(StudentProfile)
            .join(User, StudentProfile.user_id == User.id)
            .where(StudentProfile.class_id == class_id, User.is_active.is_(True))
            .options(selectinload(StudentProfile.user))
            .execution_options(populate_existing=True)
            .order_by(
                StudentProfile.roll_no.is_(None),
                StudentProfile.roll_no,
                User.created_at,
                User.id,
            )
        )
        result = await self._guard("load_students_by_class", self.db.execute(stmt))
        return list(result.scalars().all())

    async def count_active_students(self, class_id: UUID, exclude_user_id: Optional[UUID] = None) -> int:
        stmt = (
            select(func.count(StudentProfile.id))
            .join(User, StudentProfile.user_id == User.id)
            .where(StudentProfile.class_id == class_id, User.is_active.is_(True))
        )
        if exclude_user_id is not None:
            stmt = stmt.where(User.id != exclude_user_id)
        result = await self._guard("count_active_students", self.db.execute(stmt))
        return result.scalar() or 0

    async def save_roll_assignments(
        self,
        class_id: UUID,
        assignments: Sequence[Tuple[StudentProfile, int]],
        expected_version: int,
    ) -> None:
        """
        Write new roll numbers and bump the class roster_version, conditional on the
        version read before sorting. Does not commit.
        """
        bumped = await self._guard(
            "save_roll_assignments",
            self.db.execute(
                update(SchoolClass)
                .where(SchoolClass.id == class_id, SchoolClass.roster_version == expected_version)
                .values(roster_version=SchoolClass.roster_version + 1)
            ),
        )
        if bumped.rowcount != 1:
            raise ConcurrencyConflictError("Class roster changed concurrently. Please retry.")
        for profile, roll_no in assignments:
            profile.roll_no = roll_no
        await self._guard("save_roll_assignments", self.db.flush())

    async def exists_username(self, candidate: str) -> bool:
        result = await self._guard(
            "exists_username",
            self.db.execute(select(User.id).where(User.username == candidate).limit(1)),
        )
        return result.scalar_one_or_none() is not None

    async def load_person(self, user_id: UUID) -> Optional[User]:
        """User with its student profile (if any), freshly read."""
        result = await self._guard(
            "load_person",
            self.db.execute(
                select(User)
                .where(User.id == user_id)
                .options(selectinload(User.student_profile))
                .execution_options(populate_existing=True)
            ),
        )
        return result.scalar_one_or_none()

    async def load_person_by_username(self, username: str) -> Optional[User]:
        result = await self._guard(
            "load_person_by_username",
            self.db.execute(
                select(User)
                .where(User.username == username.strip().lower())
                .options(selectinload(User.student_profile))
                .execution_options(populate_existing=True)
            ),
        )
        return result.scalar_one_or_none()

    async def load_linked_student(self, parent_id: UUID) -> Optional[User]:
        """The student whose profile owns the link to this parent."""
        result = await self._guard(
            "load_linked_student",
            self.db.execute(
                select(User)
                .join(StudentProfile, StudentProfile.user_id == User.id)
                .where(StudentProfile.parent_id == parent_id)
            ),
        )
        return result.scalars().first()

    async def create_person(self, user: User, profile: Optional[StudentProfile] = None) -> User:
        """Add a user (and its student profile) and flush so ids exist. Does not commit."""
        if profile is not None:
            # Set while the user is still transient so no lazy load is attempted
            user.student_profile = profile
        self.db.add(user)
        await self._guard("create_person", self.db.flush())
        return user

    async def delete(self, obj) -> None:
        await self._guard("delete", self.db.delete(obj))

    async def refresh(self, obj) -> None:
        await self._guard("refresh", self.db.refresh(obj))

    async def commit(self) -> None:
        await self._guard("commit", self.db.commit())

    async def rollback(self) -> None:
        await self.db.rollback()
