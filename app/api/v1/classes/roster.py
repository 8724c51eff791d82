"""
Roster reorganization for a single class.

reorganize: sort active students by (last name, first name) case-insensitively,
renumber 1..n, persist, and return the batch view. The whole run happens under the
class lock and commits all roll numbers or none of them.

renumber is the same step without the lock or the commit, for callers that change
class membership and renumber in one transaction.
"""

import logging
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from app.auth.models import StudentProfile
from app.core.config import settings
from app.core.exceptions import ClassNotFoundError
from app.core.locks import ClassLockRegistry
from app.core.models import SchoolClass
from app.db.roster_store import RosterStore

from .batching import Batch, plan
from .schemas import BatchResponse, ClassSummary, RosterStudent, RosterView

logger = logging.getLogger(__name__)


def sort_roster(profiles: Sequence[StudentProfile]) -> List[StudentProfile]:
    """Stable: students with equal names keep their incoming (current roll) order."""
    return sorted(
        profiles,
        key=lambda p: (p.user.last_name.casefold(), p.user.first_name.casefold()),
    )


def _student_to_roster(profile: StudentProfile) -> RosterStudent:
    user = profile.user
    return RosterStudent(
        id=user.id,
        username=user.username,
        first_name=user.first_name,
        father_name=user.father_name,
        last_name=user.last_name,
        full_name=user.full_name,
        roll_no=profile.roll_no,
        email=user.email,
        phone=user.phone,
    )


def build_roster_view(
    school_class: SchoolClass,
    ordered: Sequence[StudentProfile],
    batches: Iterable[Batch],
) -> RosterView:
    return RosterView(
        school_class=ClassSummary(
            id=school_class.id,
            name=school_class.name,
            year=school_class.year,
            department_id=school_class.department_id,
            coordinator_id=school_class.coordinator_id,
            max_capacity=school_class.max_capacity,
            total_students=len(ordered),
        ),
        batches=[
            BatchResponse(name=b.name, student_ids=b.student_ids, student_count=b.student_count)
            for b in batches
        ],
        all_students=[_student_to_roster(p) for p in ordered],
    )


async def renumber(
    store: RosterStore,
    class_id: UUID,
    target_batch_size: Optional[int] = None,
) -> RosterView:
    """
    Sort and renumber within the current transaction without committing. The caller
    holds the class lock and commits (or rolls back) together with any membership
    change it made in the same session.
    """
    school_class = await store.load_class(class_id)
    if not school_class:
        raise ClassNotFoundError(class_id)
    expected_version = school_class.roster_version

    ordered = sort_roster(await store.load_students_by_class(class_id))
    # Capacity is checked before anything is written
    batches = plan(
        [p.user for p in ordered],
        school_class.max_capacity,
        target_batch_size=target_batch_size or settings.batch_target_size,
        batch_names=school_class.batch_names,
    )

    changes = [(p, roll_no) for roll_no, p in enumerate(ordered, start=1) if p.roll_no != roll_no]
    if changes:
        await store.save_roll_assignments(class_id, changes, expected_version)
    logger.debug(
        "Class roster renumbered",
        extra={"class_id": str(class_id), "students": len(ordered), "renumbered": len(changes)},
    )
    return build_roster_view(school_class, ordered, batches)


async def reorganize(
    store: RosterStore,
    locks: ClassLockRegistry,
    class_id: UUID,
    target_batch_size: Optional[int] = None,
) -> RosterView:
    """Renumber a class's roster and return its batch view. Raises ClassNotFoundError,
    CapacityExceededError, ConcurrencyConflictError or PersistenceError; on any of them
    the previous roll numbers are left intact."""
    async with locks.hold(class_id):
        try:
            view = await renumber(store, class_id, target_batch_size)
            await store.commit()
        except Exception:
            await store.rollback()
            raise

    logger.info(
        "Class reorganized",
        extra={"class_id": str(class_id), "students": view.school_class.total_students},
    )
    return view


async def roster_view(
    store: RosterStore,
    class_id: UUID,
    target_batch_size: Optional[int] = None,
) -> RosterView:
    """Batch view from persisted roll numbers, without writing."""
    school_class = await store.load_class(class_id)
    if not school_class:
        raise ClassNotFoundError(class_id)
    ordered = await store.load_students_by_class(class_id)
    batches = plan(
        [p.user for p in ordered],
        school_class.max_capacity,
        target_batch_size=target_batch_size or settings.batch_target_size,
        batch_names=school_class.batch_names,
    )
    return build_roster_view(school_class, ordered, batches)
