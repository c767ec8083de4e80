"""Booking schemas."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from moveup.core.config import MAX_BOOKING_DURATION_MINUTES
from moveup.core.enums import BookingStatusEnum, PaymentStatusEnum


class BookingCreate(BaseModel):
    """Create booking request."""

    instructor_id: UUID
    lesson_id: UUID
    scheduled_date: date
    scheduled_time: time
    duration_minutes: int | None = Field(default=None, gt=0, le=MAX_BOOKING_DURATION_MINUTES)
    notes: str | None = Field(default=None, max_length=1024)
    live_activity_id: str | None = Field(default=None, max_length=255)
    wallet_pass_serial: str | None = Field(default=None, max_length=255)


class BookingAuthorizeRequest(BaseModel):
    """Authorize booking payment request."""

    payer_token: str = Field(min_length=1, max_length=255)


class BookingCancelRequest(BaseModel):
    """Cancel booking request."""

    reason: str | None = Field(default=None, max_length=512)


class BookingRescheduleRequest(BaseModel):
    """Reschedule booking request (cancel + new booking)."""

    scheduled_date: date
    scheduled_time: time
    duration_minutes: int | None = Field(default=None, gt=0, le=MAX_BOOKING_DURATION_MINUTES)


class ConflictCheckRequest(BaseModel):
    """Conflict check request."""

    instructor_id: UUID
    scheduled_date: date
    scheduled_time: time
    duration_minutes: int = Field(gt=0, le=MAX_BOOKING_DURATION_MINUTES)


class ConflictCheckRead(BaseModel):
    """Conflict check response."""

    bookable: bool
    starts_at: datetime
    ends_at: datetime
    conflicting_booking_ids: list[UUID] = Field(default_factory=list)


class LifecycleSweepRead(BaseModel):
    """Lifecycle sweep outcome counts."""

    cancelled: int
    no_show: int
    completed: int
    skipped: int


class BookingRead(BaseModel):
    """Booking response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    instructor_id: UUID
    lesson_id: UUID
    lesson_title: str
    scheduled_date: date
    scheduled_time: time
    duration_minutes: int
    starts_at: datetime
    ends_at: datetime
    status: BookingStatusEnum
    payment_status: PaymentStatusEnum
    total_amount: Decimal
    currency: str
    lesson_latitude: float
    lesson_longitude: float
    live_activity_id: str | None
    wallet_pass_serial: str | None
    notes: str | None
    confirmed_at: datetime | None
    checked_in_at: datetime | None
    check_in_distance_m: float | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    no_show_at: datetime | None
    rescheduled_from_booking_id: UUID | None
    created_at: datetime
    updated_at: datetime


class BookingStatisticsRead(BaseModel):
    """Booking counts and lesson revenue visible to the caller."""

    model_config = ConfigDict(from_attributes=True)

    total_bookings: int
    completed_bookings: int
    cancelled_bookings: int
    total_revenue: Decimal
    average_booking_value: Decimal
    revenue_since: datetime
