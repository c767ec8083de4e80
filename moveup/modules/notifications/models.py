"""Notifications ORM models."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, Enum as SAEnum, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from moveup.core.database import Base, BaseModelMixin
from moveup.core.enums import NotificationPriorityEnum, NotificationStatusEnum, NotificationTypeEnum


class NotificationTask(BaseModelMixin, Base):
    """Queued notification with per-channel delivery bookkeeping."""

    __tablename__ = "notification_tasks"
    __table_args__ = (Index("ix_notification_tasks_status_scheduled_for", "status", "scheduled_for"),)

    recipient_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, index=True)
    type: Mapped[NotificationTypeEnum] = mapped_column(
        SAEnum(NotificationTypeEnum, name="notification_type_enum", native_enum=False),
        nullable=False,
    )
    priority: Mapped[NotificationPriorityEnum] = mapped_column(
        SAEnum(NotificationPriorityEnum, name="notification_priority_enum", native_enum=False),
        default=NotificationPriorityEnum.MEDIUM,
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict] = mapped_column(JSONB, default=dict, nullable=False)
    channels: Mapped[list[str]] = mapped_column(JSONB, default=list, nullable=False)
    sent_channels: Mapped[list[str]] = mapped_column(JSONB, default=list, nullable=False)

    status: Mapped[NotificationStatusEnum] = mapped_column(
        SAEnum(NotificationStatusEnum, name="notification_status_enum", native_enum=False),
        default=NotificationStatusEnum.PENDING,
        nullable=False,
    )
    scheduled_for: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    related_booking_id: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True, index=True)
