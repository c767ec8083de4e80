"""Scheduling ORM models."""

from __future__ import annotations

from datetime import date, datetime, time
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, Float, Index, Time
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from moveup.core.database import Base, BaseModelMixin


class AvailabilitySlot(BaseModelMixin, Base):
    """Bookable window published by the instructor availability manager."""

    __tablename__ = "availability_slots"
    __table_args__ = (Index("ix_availability_slots_instructor_date", "instructor_id", "date"),)

    instructor_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, index=True)
    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)


class AvailabilityReservation(BaseModelMixin, Base):
    """Advisory reservation of part of an instructor's day by a booking."""

    __tablename__ = "availability_reservations"
    __table_args__ = (Index("ix_availability_reservations_instructor_date", "instructor_id", "date"),)

    instructor_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    booking_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, unique=True)
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
