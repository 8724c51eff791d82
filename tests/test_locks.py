"""Unit tests for per-class locks."""

import asyncio
from uuid import uuid4

import pytest

from app.core.exceptions import ConcurrencyConflictError
from app.core.locks import ClassLockRegistry


@pytest.mark.asyncio
async def test_second_writer_times_out_with_conflict() -> None:
    locks = ClassLockRegistry(timeout=0.05)
    class_id = uuid4()
    async with locks.hold(class_id):
        assert locks.is_locked(class_id)
        with pytest.raises(ConcurrencyConflictError):
            async with locks.hold(class_id):
                pass
    assert not locks.is_locked(class_id)


@pytest.mark.asyncio
async def test_different_classes_are_independent() -> None:
    locks = ClassLockRegistry(timeout=0.05)
    first, second = uuid4(), uuid4()
    async with locks.hold(first):
        async with locks.hold(second):
            assert locks.is_locked(first) and locks.is_locked(second)


@pytest.mark.asyncio
async def test_writers_are_serialized() -> None:
    locks = ClassLockRegistry(timeout=1.0)
    class_id = uuid4()
    events = []

    async def writer(name: str) -> None:
        async with locks.hold(class_id):
            events.append(f"{name}:start")
            await asyncio.sleep(0.01)
            events.append(f"{name}:end")

    await asyncio.gather(writer("a"), writer("b"))
    assert events in (
        ["a:start", "a:end", "b:start", "b:end"],
        ["b:start", "b:end", "a:start", "a:end"],
    )


@pytest.mark.asyncio
async def test_lock_is_released_on_error() -> None:
    locks = ClassLockRegistry(timeout=0.05)
    class_id = uuid4()
    with pytest.raises(RuntimeError):
        async with locks.hold(class_id):
            raise RuntimeError("boom")
    async with locks.hold(class_id):
        pass


@pytest.mark.asyncio
async def test_hold_many_skips_none_and_duplicates() -> None:
    locks = ClassLockRegistry(timeout=0.05)
    first, second = uuid4(), uuid4()
    async with locks.hold_many([second, None, first, second]):
        assert locks.is_locked(first) and locks.is_locked(second)
    assert not locks.is_locked(first) and not locks.is_locked(second)


@pytest.mark.asyncio
async def test_hold_many_in_opposite_orders_does_not_deadlock() -> None:
    locks = ClassLockRegistry(timeout=1.0)
    first, second = uuid4(), uuid4()

    async def move(ids) -> None:
        async with locks.hold_many(ids):
            await asyncio.sleep(0.01)

    await asyncio.gather(move([first, second]), move([second, first]))


@pytest.mark.asyncio
async def test_release_at_the_deadline_never_leaves_the_lock_held() -> None:
    locks = ClassLockRegistry(timeout=0.01)
    class_id = uuid4()
    for _ in range(25):
        holding = asyncio.Event()

        async def holder() -> None:
            async with locks.hold(class_id, timeout=1.0):
                holding.set()
                await asyncio.sleep(0.01)

        task = asyncio.create_task(holder())
        await holding.wait()
        try:
            async with locks.hold(class_id):
                pass
        except ConcurrencyConflictError:
            pass
        await task
        await asyncio.sleep(0.005)
        assert not locks.is_locked(class_id)


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_keep_the_lock() -> None:
    locks = ClassLockRegistry(timeout=1.0)
    class_id = uuid4()

    async def waiter() -> None:
        async with locks.hold(class_id):
            pass

    async with locks.hold(class_id):
        task = asyncio.create_task(waiter())
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
    await asyncio.sleep(0.005)
    assert not locks.is_locked(class_id)
    async with locks.hold(class_id, timeout=0.05):
        pass
