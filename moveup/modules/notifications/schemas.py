"""Notifications schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from moveup.core.enums import NotificationPriorityEnum, NotificationStatusEnum, NotificationTypeEnum


class NotificationTaskRead(BaseModel):
    """Notification task response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    recipient_id: UUID
    type: NotificationTypeEnum
    priority: NotificationPriorityEnum
    title: str
    body: str
    channels: list[str]
    sent_channels: list[str]
    status: NotificationStatusEnum
    scheduled_for: datetime
    retry_count: int
    sent_at: datetime | None
    failed_at: datetime | None
    last_error: str | None
    related_booking_id: UUID | None
    created_at: datetime


class DispatchStatsRead(BaseModel):
    """One dispatch cycle summary."""

    released: int
    claimed: int
    sent: int
    retried: int
    failed: int
