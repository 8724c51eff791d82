"""
Bulk import: provision rows from an uploaded sheet with partial-failure tolerance.

Each row is validated, then processed, on its own. A failing row is reported in
`errors` with its original payload and a readable reason; it never aborts the
other rows. Credentials come back in input row order, a student's parent right
after the student.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from app.auth.credentials import CredentialRecord
from app.core.exceptions import ServiceError

logger = logging.getLogger(__name__)

RawRow = Dict[str, Any]
RowValidator = Callable[[RawRow], Union[Any, Awaitable[Any]]]
RowProcessor = Callable[[Any], Awaitable[Optional[Sequence[CredentialRecord]]]]


@dataclass
class RowError:
    row_number: int  # 1-based position among the data rows
    row: RawRow
    error: str


@dataclass
class BulkImportResult:
    success_count: int = 0
    failed_count: int = 0
    credentials: List[CredentialRecord] = field(default_factory=list)
    errors: List[RowError] = field(default_factory=list)


def describe_error(exc: Exception) -> str:
    """Human-readable reason for a failed row."""
    if isinstance(exc, ServiceError):
        return exc.message
    if isinstance(exc, PydanticValidationError):
        parts = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()))
            parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        return "; ".join(parts)
    if isinstance(exc, (ValueError, TypeError, KeyError)):
        return str(exc) or exc.__class__.__name__
    return "Unexpected error while processing row"


async def _run_row(
    index: int,
    row: RawRow,
    row_validator: RowValidator,
    row_processor: RowProcessor,
) -> Union[List[CredentialRecord], RowError]:
    try:
        validated = row_validator(row)
        if inspect.isawaitable(validated):
            validated = await validated
        issued = await row_processor(validated)
        return list(issued or [])
    except Exception as e:
        if not isinstance(e, (ServiceError, PydanticValidationError, ValueError, TypeError, KeyError)):
            logger.error("Bulk import row failed unexpectedly", exc_info=True, extra={"row_number": index + 1})
        return RowError(row_number=index + 1, row=row, error=describe_error(e))


async def import_rows(
    rows: Sequence[RawRow],
    row_validator: RowValidator,
    row_processor: RowProcessor,
    max_workers: int = 1,
) -> BulkImportResult:
    """
    Run every row through validator then processor.

    max_workers > 1 processes rows concurrently behind a semaphore; processors must
    then not share a database session. Output order always follows input order.
    """
    if max_workers <= 1:
        outcomes = [await _run_row(i, row, row_validator, row_processor) for i, row in enumerate(rows)]
    else:
        semaphore = asyncio.Semaphore(max_workers)

        async def run_with_limit(i: int, row: RawRow):
            async with semaphore:
                return await _run_row(i, row, row_validator, row_processor)

        outcomes = await asyncio.gather(*(run_with_limit(i, row) for i, row in enumerate(rows)))

    result = BulkImportResult()
    for outcome in outcomes:
        if isinstance(outcome, RowError):
            result.failed_count += 1
            result.errors.append(outcome)
        else:
            result.success_count += 1
            result.credentials.extend(outcome)

    logger.info(
        "Bulk import finished",
        extra={"rows": len(rows), "succeeded": result.success_count, "failed": result.failed_count},
    )
    return result
