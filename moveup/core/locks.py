"""Keyed mutual-exclusion backends (in-memory and Redis) for booking creation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import AbstractAsyncContextManager, AsyncExitStack, asynccontextmanager
from datetime import date
from typing import Any, Protocol
from uuid import UUID

from moveup.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class LockTimeoutError(Exception):
    """Raised when a keyed lock cannot be acquired in time."""


class KeyedLock(Protocol):
    """Common contract for lock backends."""

    def hold(self, key: str) -> AbstractAsyncContextManager[None]:
        """Hold the lock for ``key`` for the duration of the context."""

    async def clear(self) -> None:
        """Drop tracked locks (used in tests)."""


def instructor_day_key(instructor_id: UUID, day: date) -> str:
    """Lock key for one instructor's calendar day."""
    return f"booking:{instructor_id}:{day.isoformat()}"


class InMemoryKeyedLock:
    """Per-key asyncio locks, valid for a single process."""

    def __init__(self, timeout_seconds: float = 10.0) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}
        self._guard = asyncio.Lock()
        self._timeout_seconds = timeout_seconds

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        async with self._guard:
            lock = self._locks.setdefault(key, asyncio.Lock())
            self._waiters[key] = self._waiters.get(key, 0) + 1

        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self._timeout_seconds)
            except TimeoutError as exc:
                raise LockTimeoutError(f"Timed out waiting for lock {key}") from exc
            try:
                yield
            finally:
                lock.release()
        finally:
            async with self._guard:
                self._waiters[key] -= 1
                if self._waiters[key] == 0:
                    del self._waiters[key]
                    self._locks.pop(key, None)

    async def clear(self) -> None:
        """Drop idle locks (for tests)."""
        async with self._guard:
            for key in [key for key, lock in self._locks.items() if not lock.locked()]:
                self._locks.pop(key, None)
                self._waiters.pop(key, None)


class RedisKeyedLock:
    """Redis-backed lock shared across app instances."""

    def __init__(
        self,
        *,
        redis_url: str,
        namespace: str,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._redis_url = redis_url
        self._namespace = namespace
        self._timeout_seconds = timeout_seconds
        self._init_lock = asyncio.Lock()
        self._client: Any | None = None

    def _build_storage_key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def _ensure_initialized(self) -> None:
        if self._client is not None:
            return

        async with self._init_lock:
            if self._client is None:
                from redis.asyncio import from_url

                self._client = from_url(
                    self._redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                )

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        from redis.exceptions import LockError

        await self._ensure_initialized()
        lock = self._client.lock(
            self._build_storage_key(key),
            timeout=self._timeout_seconds * 3,
            blocking_timeout=self._timeout_seconds,
        )
        acquired = await lock.acquire()
        if not acquired:
            raise LockTimeoutError(f"Timed out waiting for lock {key}")
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                logger.warning("Booking lock %s expired before release", key)

    async def clear(self) -> None:
        """Delete lock keys for this namespace."""
        await self._ensure_initialized()
        pattern = f"{self._namespace}:*"
        cursor: int = 0
        while True:
            cursor, keys = await self._client.scan(cursor=cursor, match=pattern, count=100)
            if keys:
                await self._client.delete(*keys)
            if int(cursor) == 0:
                break


@asynccontextmanager
async def hold_many(lock: KeyedLock, keys: Sequence[str]) -> AsyncIterator[None]:
    """Hold several keys, always acquired in sorted order to avoid deadlocks."""
    async with AsyncExitStack() as stack:
        for key in sorted(set(keys)):
            await stack.enter_async_context(lock.hold(key))
        yield


_booking_lock: KeyedLock | None = None
_booking_lock_signature: tuple[str, str | None, str] | None = None


def _build_booking_lock(settings: Settings) -> KeyedLock:
    if settings.booking_lock_backend == "redis":
        return RedisKeyedLock(
            redis_url=settings.redis_url or "",
            namespace=settings.booking_lock_redis_namespace,
            timeout_seconds=settings.booking_lock_timeout_seconds,
        )
    return InMemoryKeyedLock(timeout_seconds=settings.booking_lock_timeout_seconds)


def get_booking_lock() -> KeyedLock:
    """Return shared lock instance for configured backend."""
    global _booking_lock, _booking_lock_signature
    settings = get_settings()
    signature = (
        settings.booking_lock_backend,
        settings.redis_url,
        settings.booking_lock_redis_namespace,
    )
    if _booking_lock is None or _booking_lock_signature != signature:
        _booking_lock = _build_booking_lock(settings)
        _booking_lock_signature = signature
    return _booking_lock
