"""
Batch planning: split a roll-ordered roster into contiguous, capacity-bounded batches.

batch_count = ceil(n / target_batch_size). Sizes differ by at most one and earlier
batches take the remainder, so sizes never increase from one batch to the next.
    n=26 -> [13, 13]    n=51 -> [17, 17, 17]    n=70 -> [24, 23, 23]
"""

import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence
from uuid import UUID

from app.core.exceptions import CapacityExceededError, ValidationError

DEFAULT_TARGET_BATCH_SIZE = 25


@dataclass(frozen=True)
class Batch:
    name: str
    student_ids: List[UUID] = field(default_factory=list)

    @property
    def student_count(self) -> int:
        return len(self.student_ids)


def default_batch_name(index: int) -> str:
    return f"Batch {index + 1}"


def batch_sizes(n: int, target_batch_size: int = DEFAULT_TARGET_BATCH_SIZE) -> List[int]:
    if n <= 0:
        return []
    count = math.ceil(n / target_batch_size)
    base, remainder = divmod(n, count)
    return [base + 1 if i < remainder else base for i in range(count)]


def plan(
    students_ordered_by_roll_no: Sequence,
    max_capacity: int,
    target_batch_size: int = DEFAULT_TARGET_BATCH_SIZE,
    batch_names: Optional[Sequence[Optional[str]]] = None,
) -> List[Batch]:
    """
    Partition students (anything with an `id`) already sorted by roll number.
    Raises CapacityExceededError when there are more students than max_capacity.
    """
    if target_batch_size < 1:
        raise ValidationError("target_batch_size must be at least 1")
    n = len(students_ordered_by_roll_no)
    if n > max_capacity:
        raise CapacityExceededError(
            f"Class has {n} students but max capacity is {max_capacity}"
        )

    labels = list(batch_names or [])
    batches: List[Batch] = []
    start = 0
    for index, size in enumerate(batch_sizes(n, target_batch_size)):
        label = labels[index].strip() if index < len(labels) and labels[index] else ""
        chunk = students_ordered_by_roll_no[start:start + size]
        batches.append(Batch(name=label or default_batch_name(index), student_ids=[s.id for s in chunk]))
        start += size
    return batches
