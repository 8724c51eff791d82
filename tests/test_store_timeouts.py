"""Every storage call made by department and class services is bounded by the persistence timeout."""

import asyncio
from uuid import uuid4

import pytest

from app.api.v1.classes import service as class_service
from app.api.v1.classes.schemas import BatchLabelsUpdate, ClassUpdate
from app.api.v1.departments.service import resolve_department_id
from app.core.config import settings
from app.core.exceptions import PersistenceError
from app.core.locks import ClassLockRegistry


class StalledSession:
    """A database that never answers."""

    def __init__(self) -> None:
        self.rolled_back = False

    async def _stall(self, *args, **kwargs):
        await asyncio.sleep(10)

    get = execute = flush = commit = refresh = delete = _stall

    async def rollback(self) -> None:
        self.rolled_back = True


@pytest.fixture(autouse=True)
def short_timeout(monkeypatch) -> None:
    monkeypatch.setattr(settings, "persistence_timeout_seconds", 0.05)


@pytest.mark.asyncio
async def test_department_lookup_by_code_times_out() -> None:
    with pytest.raises(PersistenceError) as exc_info:
        await resolve_department_id(StalledSession(), department_code="COMP")
    assert exc_info.value.status_code == 503
    assert "load_department_by_code" in exc_info.value.message


@pytest.mark.asyncio
async def test_department_lookup_by_id_times_out() -> None:
    with pytest.raises(PersistenceError):
        await resolve_department_id(StalledSession(), department_id=uuid4())


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "call",
    [
        lambda db, locks, class_id: class_service.update_class(db, locks, class_id, ClassUpdate(max_capacity=30)),
        lambda db, locks, class_id: class_service.delete_class(db, locks, class_id),
        lambda db, locks, class_id: class_service.set_batch_names(
            db, locks, class_id, BatchLabelsUpdate(batch_names=["A1"])
        ),
    ],
    ids=["update_class", "delete_class", "set_batch_names"],
)
async def test_stalled_class_write_fails_and_frees_the_lock(call) -> None:
    locks = ClassLockRegistry(timeout=1.0)
    class_id = uuid4()
    db = StalledSession()

    with pytest.raises(PersistenceError):
        await call(db, locks, class_id)

    assert db.rolled_back
    assert not locks.is_locked(class_id)
