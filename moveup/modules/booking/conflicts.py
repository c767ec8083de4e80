"""Scheduling conflict detection for new bookings."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Protocol
from uuid import UUID

from moveup.modules.booking.models import Booking
from moveup.shared.utils import days_spanned, lesson_window, windows_overlap


@dataclass(frozen=True, slots=True)
class Bookable:
    starts_at: datetime
    ends_at: datetime


@dataclass(frozen=True, slots=True)
class Conflict:
    starts_at: datetime
    ends_at: datetime
    existing_booking_ids: list[UUID] = field(default_factory=list)


class ActiveBookingSource(Protocol):
    async def list_active_for_instructor(self, instructor_id: UUID, days: list[date]) -> list[Booking]: ...


class ConflictResolver:
    """Decide whether an instructor window is free of pending/confirmed bookings.

    Must run inside the instructor-day critical section together with the
    insert that follows it, otherwise two requests can both see a free window.
    """

    def __init__(self, bookings: ActiveBookingSource) -> None:
        self.bookings = bookings

    async def resolve(
        self,
        instructor_id: UUID,
        day: date,
        at: time,
        duration_minutes: int,
    ) -> Bookable | Conflict:
        starts_at, ends_at = lesson_window(day, at, duration_minutes)
        # A booking from the previous day may run past midnight into this one.
        days = set(days_spanned(starts_at, ends_at))
        if day > date.min:
            days.add(day - timedelta(days=1))
        existing = await self.bookings.list_active_for_instructor(instructor_id, sorted(days))

        conflicting = [
            booking.id
            for booking in existing
            if windows_overlap(booking.starts_at, booking.ends_at, starts_at, ends_at)
        ]
        if conflicting:
            return Conflict(starts_at=starts_at, ends_at=ends_at, existing_booking_ids=conflicting)
        return Bookable(starts_at=starts_at, ends_at=ends_at)
