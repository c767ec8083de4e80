from __future__ import annotations

import asyncio
from datetime import date
from uuid import uuid4

import pytest

from moveup.core.locks import InMemoryKeyedLock, LockTimeoutError, hold_many, instructor_day_key


def test_instructor_day_key_is_stable() -> None:
    instructor_id = uuid4()
    key = instructor_day_key(instructor_id, date(2026, 3, 2))

    assert key == f"booking:{instructor_id}:2026-03-02"


@pytest.mark.asyncio
async def test_same_key_is_serialized() -> None:
    lock = InMemoryKeyedLock(timeout_seconds=1.0)
    order: list[str] = []

    async def worker(name: str) -> None:
        async with lock.hold("booking:a"):
            order.append(f"{name}:enter")
            await asyncio.sleep(0.01)
            order.append(f"{name}:exit")

    await asyncio.gather(worker("first"), worker("second"))

    assert order in (
        ["first:enter", "first:exit", "second:enter", "second:exit"],
        ["second:enter", "second:exit", "first:enter", "first:exit"],
    )


@pytest.mark.asyncio
async def test_different_keys_do_not_block_each_other() -> None:
    lock = InMemoryKeyedLock(timeout_seconds=0.5)

    async with lock.hold("booking:a"):
        async with lock.hold("booking:b"):
            pass


@pytest.mark.asyncio
async def test_waiting_past_timeout_raises() -> None:
    lock = InMemoryKeyedLock(timeout_seconds=0.05)

    async with lock.hold("booking:a"):
        with pytest.raises(LockTimeoutError):
            async with lock.hold("booking:a"):
                pass


@pytest.mark.asyncio
async def test_idle_locks_are_dropped() -> None:
    lock = InMemoryKeyedLock(timeout_seconds=0.5)

    async with lock.hold("booking:a"):
        assert "booking:a" in lock._locks
    assert "booking:a" not in lock._locks


@pytest.mark.asyncio
async def test_hold_many_acquires_in_sorted_order() -> None:
    lock = InMemoryKeyedLock(timeout_seconds=0.5)
    acquired: list[str] = []
    original_hold = lock.hold

    def recording_hold(key: str):
        acquired.append(key)
        return original_hold(key)

    lock.hold = recording_hold  # type: ignore[method-assign]

    async with hold_many(lock, ["booking:b", "booking:a", "booking:b"]):
        pass

    assert acquired == ["booking:a", "booking:b"]
