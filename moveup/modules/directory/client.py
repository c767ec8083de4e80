"""Read-only client for the user/instructor/lesson directory service."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from typing import Any, Protocol
from uuid import UUID

import httpx

from moveup.core.config import get_settings
from moveup.shared.exceptions import ExternalFailureException

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UserInfo:
    id: UUID
    display_name: str


@dataclass(frozen=True, slots=True)
class InstructorInfo:
    id: UUID
    display_name: str


@dataclass(frozen=True, slots=True)
class LessonInfo:
    id: UUID
    instructor_id: UUID
    title: str
    price: Decimal
    currency: str
    duration_minutes: int
    latitude: float | None
    longitude: float | None


class DirectoryClient(Protocol):
    """Lookups the booking core needs from the directory."""

    async def get_user(self, user_id: UUID) -> UserInfo | None: ...

    async def get_instructor(self, instructor_id: UUID) -> InstructorInfo | None: ...

    async def get_lesson(self, lesson_id: UUID) -> LessonInfo | None: ...


def _display_name(payload: dict[str, Any]) -> str:
    first_name = str(payload.get("first_name") or "").strip()
    last_name = str(payload.get("last_name") or "").strip()
    full_name = f"{first_name} {last_name}".strip()
    return full_name or str(payload.get("display_name") or "")


class HttpDirectoryClient:
    """Directory lookups over the directory service JSON API."""

    def __init__(self, base_url: str, timeout_seconds: float) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout_seconds)

    async def _get(self, path: str) -> dict[str, Any] | None:
        try:
            async with httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout) as client:
                response = await client.get(path)
        except httpx.HTTPError as exc:
            logger.warning("Directory request %s failed: %s", path, exc)
            raise ExternalFailureException(f"Directory request failed: {path}") from exc

        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if response.is_error:
            raise ExternalFailureException(
                f"Directory returned {response.status_code} for {path}",
            )
        return response.json()

    async def get_user(self, user_id: UUID) -> UserInfo | None:
        payload = await self._get(f"/users/{user_id}")
        if payload is None:
            return None
        return UserInfo(id=user_id, display_name=_display_name(payload))

    async def get_instructor(self, instructor_id: UUID) -> InstructorInfo | None:
        payload = await self._get(f"/instructors/{instructor_id}")
        if payload is None:
            return None
        return InstructorInfo(id=instructor_id, display_name=_display_name(payload))

    async def get_lesson(self, lesson_id: UUID) -> LessonInfo | None:
        payload = await self._get(f"/lessons/{lesson_id}")
        if payload is None:
            return None
        location = payload.get("location") or {}
        return LessonInfo(
            id=lesson_id,
            instructor_id=UUID(str(payload["instructor_id"])),
            title=str(payload.get("title") or ""),
            price=Decimal(str(payload["price"])),
            currency=str(payload.get("currency") or get_settings().payment_default_currency).upper(),
            duration_minutes=int(payload.get("duration_minutes") or 60),
            latitude=location.get("latitude"),
            longitude=location.get("longitude"),
        )


@lru_cache
def get_directory_client() -> DirectoryClient:
    """Return shared directory client."""
    settings = get_settings()
    return HttpDirectoryClient(settings.directory_base_url, settings.directory_timeout_seconds)
