"""Translate booking lifecycle events into notification drafts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from moveup.core.enums import NotificationChannelEnum, NotificationPriorityEnum, NotificationTypeEnum
from moveup.modules.booking.models import Booking

PUSH_AND_EMAIL = (NotificationChannelEnum.PUSH, NotificationChannelEnum.EMAIL)
PUSH_ONLY = (NotificationChannelEnum.PUSH,)


@dataclass(slots=True)
class NotificationDraft:
    recipient_id: UUID
    type: NotificationTypeEnum
    title: str
    body: str
    scheduled_for: datetime
    priority: NotificationPriorityEnum = NotificationPriorityEnum.MEDIUM
    channels: tuple[NotificationChannelEnum, ...] = PUSH_AND_EMAIL
    payload: dict[str, Any] = field(default_factory=dict)
    related_booking_id: UUID | None = None


def _unique_recipients(*recipients: UUID | None) -> list[UUID]:
    unique: list[UUID] = []
    seen: set[UUID] = set()
    for recipient in recipients:
        if recipient is not None and recipient not in seen:
            unique.append(recipient)
            seen.add(recipient)
    return unique


def _lesson_label(booking: Booking) -> str:
    title = booking.lesson_title or "lesson"
    return f"{title} on {booking.scheduled_date.isoformat()} at {booking.scheduled_time.strftime('%H:%M')}"


def build_booking_notifications(
    notification_type: NotificationTypeEnum,
    booking: Booking,
    now: datetime,
    *,
    reminder_lead_minutes: int = 60,
    details: dict[str, Any] | None = None,
) -> list[NotificationDraft]:
    """Drafts to enqueue when ``notification_type`` happens to ``booking``."""
    details = details or {}
    label = _lesson_label(booking)
    payload = {"booking_id": str(booking.id), **details}

    def draft(
        recipient_id: UUID,
        title: str,
        body: str,
        priority: NotificationPriorityEnum = NotificationPriorityEnum.MEDIUM,
        channels: tuple[NotificationChannelEnum, ...] = PUSH_AND_EMAIL,
        scheduled_for: datetime | None = None,
    ) -> NotificationDraft:
        return NotificationDraft(
            recipient_id=recipient_id,
            type=notification_type,
            title=title,
            body=body,
            scheduled_for=scheduled_for or now,
            priority=priority,
            channels=channels,
            payload=payload,
            related_booking_id=booking.id,
        )

    if notification_type == NotificationTypeEnum.BOOKING_REQUESTED:
        return [
            draft(
                booking.instructor_id,
                "New booking request",
                f"You have a new request for {label}.",
                NotificationPriorityEnum.HIGH,
            ),
        ]

    if notification_type == NotificationTypeEnum.BOOKING_CONFIRMATION:
        return [
            draft(
                booking.user_id,
                "Booking confirmed",
                f"Your {label} is confirmed.",
                NotificationPriorityEnum.HIGH,
            ),
        ]

    if notification_type == NotificationTypeEnum.BOOKING_REMINDER:
        remind_at = max(now, booking.starts_at - timedelta(minutes=reminder_lead_minutes))
        return [
            draft(
                booking.user_id,
                "Lesson reminder",
                f"Your {label} starts soon.",
                channels=PUSH_ONLY,
                scheduled_for=remind_at,
            ),
        ]

    if notification_type == NotificationTypeEnum.BOOKING_CANCELLED:
        reason = details.get("reason")
        body = f"The {label} was cancelled." + (f" Reason: {reason}" if reason else "")
        return [
            draft(recipient_id, "Booking cancelled", body, NotificationPriorityEnum.HIGH)
            for recipient_id in _unique_recipients(booking.user_id, booking.instructor_id)
        ]

    if notification_type == NotificationTypeEnum.BOOKING_NO_SHOW:
        return [
            draft(recipient_id, "Missed lesson", f"No check-in was recorded for the {label}.")
            for recipient_id in _unique_recipients(booking.user_id, booking.instructor_id)
        ]

    if notification_type == NotificationTypeEnum.PAYMENT_SUCCESS:
        return [
            draft(
                booking.user_id,
                "Payment authorized",
                f"{booking.total_amount} {booking.currency} is reserved for your {label}.",
            ),
        ]

    if notification_type == NotificationTypeEnum.PAYMENT_FAILED:
        return [
            draft(
                booking.user_id,
                "Payment failed",
                f"We could not authorize the payment for your {label}.",
                NotificationPriorityEnum.HIGH,
            ),
        ]

    if notification_type == NotificationTypeEnum.INSTRUCTOR_CHECK_IN:
        return [
            draft(
                booking.instructor_id,
                "Student checked in",
                f"Your student has checked in for the {label}.",
                NotificationPriorityEnum.HIGH,
                PUSH_ONLY,
            ),
        ]

    if notification_type == NotificationTypeEnum.LIVE_ACTIVITY_UPDATE:
        if not booking.live_activity_id:
            return []
        payload["live_activity_id"] = booking.live_activity_id
        return [
            draft(
                booking.user_id,
                "Lesson in progress",
                f"Your {label} has started.",
                NotificationPriorityEnum.URGENT,
                PUSH_ONLY,
            ),
        ]

    if notification_type == NotificationTypeEnum.LESSON_COMPLETED:
        return [
            draft(recipient_id, "Lesson completed", f"The {label} is complete.")
            for recipient_id in _unique_recipients(booking.user_id, booking.instructor_id)
        ]

    return []
