"""Per-class single-writer locks for roster mutations."""

import asyncio
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, Optional
from uuid import UUID

from app.core.exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)


class ClassLockRegistry:
    """
    One asyncio.Lock per class id. Reorganization, student class reassignment and
    bulk rows that place students into a class all go through `hold`, so roll-number
    reassignment never interleaves with a membership change of the same class.
    Locks for different classes are independent.
    """

    def __init__(self, timeout: float = 30.0) -> None:
        self.timeout = timeout
        self._locks: Dict[UUID, asyncio.Lock] = {}

    def _lock_for(self, class_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(class_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[class_id] = lock
        return lock

    def is_locked(self, class_id: UUID) -> bool:
        lock = self._locks.get(class_id)
        return bool(lock and lock.locked())

    @staticmethod
    def _release_if_acquired(lock: asyncio.Lock):
        def callback(acquire: "asyncio.Future[bool]") -> None:
            if not acquire.cancelled() and acquire.exception() is None:
                lock.release()

        return callback

    @asynccontextmanager
    async def hold(self, class_id: UUID, timeout: Optional[float] = None) -> AsyncIterator[None]:
        lock = self._lock_for(class_id)
        wait = self.timeout if timeout is None else timeout
        # An acquisition that lands after the deadline is released by the callback
        acquire = asyncio.ensure_future(lock.acquire())
        try:
            done, _ = await asyncio.wait({acquire}, timeout=wait)
        except asyncio.CancelledError:
            acquire.cancel()
            acquire.add_done_callback(self._release_if_acquired(lock))
            raise
        if not done:
            acquire.cancel()
            acquire.add_done_callback(self._release_if_acquired(lock))
            logger.warning("Class lock wait timed out", extra={"class_id": str(class_id), "timeout": wait})
            raise ConcurrencyConflictError(
                "Class roster is being modified by another request. Please retry."
            )
        try:
            yield
        finally:
            lock.release()

    @asynccontextmanager
    async def hold_many(
        self, class_ids: Iterable[Optional[UUID]], timeout: Optional[float] = None
    ) -> AsyncIterator[None]:
        """Hold several class locks, always acquired in the same order. None ids are skipped."""
        ordered = sorted({c for c in class_ids if c is not None}, key=str)
        async with AsyncExitStack() as stack:
            for class_id in ordered:
                await stack.enter_async_context(self.hold(class_id, timeout=timeout))
            yield
