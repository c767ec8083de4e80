"""Shared utility functions."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from moveup.shared.exceptions import ValidationException


def utc_now() -> datetime:
    """Return aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalize datetime to UTC timezone."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def combine_utc(day: date, at: time) -> datetime:
    """Build an aware UTC instant from a calendar date and wall-clock time."""
    return ensure_utc(datetime.combine(day, at))


def lesson_window(day: date, at: time, duration_minutes: int) -> tuple[datetime, datetime]:
    """Return the half-open ``[start, end)`` window of a lesson."""
    starts_at = combine_utc(day, at)
    try:
        return starts_at, starts_at + timedelta(minutes=duration_minutes)
    except OverflowError as exc:
        raise ValidationException("Lesson window falls outside the supported calendar") from exc


def windows_overlap(
    first_start: datetime,
    first_end: datetime,
    second_start: datetime,
    second_end: datetime,
) -> bool:
    """Half-open interval intersection; touching boundaries do not overlap."""
    return first_start < second_end and second_start < first_end


def days_spanned(starts_at: datetime, ends_at: datetime) -> list[date]:
    """Calendar dates touched by ``[starts_at, ends_at)``."""
    last_instant = ends_at - timedelta(microseconds=1) if ends_at > starts_at else starts_at
    last_day = last_instant.date()
    days = [starts_at.date()]
    while days[-1] < last_day:
        days.append(days[-1] + timedelta(days=1))
    return days
