"""Scheduling repository layer."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from moveup.modules.scheduling.models import AvailabilityReservation, AvailabilitySlot
from moveup.shared.geo import BoundingBox


class SchedulingRepository:
    """DB access for availability slots and reservations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_slots(self, instructor_id: UUID, day: date) -> list[AvailabilitySlot]:
        stmt = (
            select(AvailabilitySlot)
            .where(
                AvailabilitySlot.instructor_id == instructor_id,
                AvailabilitySlot.date == day,
            )
            .order_by(AvailabilitySlot.start_time.asc())
        )
        return list((await self.session.scalars(stmt)).all())

    async def list_located_slots(self, day: date, box: BoundingBox) -> list[AvailabilitySlot]:
        stmt = select(AvailabilitySlot).where(
            AvailabilitySlot.date == day,
            AvailabilitySlot.is_available.is_(True),
            AvailabilitySlot.latitude.is_not(None),
            AvailabilitySlot.longitude.is_not(None),
            AvailabilitySlot.latitude.between(box.min_latitude, box.max_latitude),
        )
        # Boxes crossing the antimeridian are filtered by latitude only.
        if box.min_longitude >= -180.0 and box.max_longitude <= 180.0:
            stmt = stmt.where(AvailabilitySlot.longitude.between(box.min_longitude, box.max_longitude))
        return list((await self.session.scalars(stmt)).all())

    async def list_active_reservations(
        self,
        instructor_id: UUID,
        days: list[date],
    ) -> list[AvailabilityReservation]:
        stmt = (
            select(AvailabilityReservation)
            .where(
                AvailabilityReservation.instructor_id == instructor_id,
                AvailabilityReservation.date.in_(days),
                AvailabilityReservation.released_at.is_(None),
            )
            .order_by(AvailabilityReservation.start_at.asc())
        )
        return list((await self.session.scalars(stmt)).all())

    async def create_reservation(
        self,
        instructor_id: UUID,
        day: date,
        start_at: datetime,
        end_at: datetime,
        booking_id: UUID,
    ) -> AvailabilityReservation:
        reservation = AvailabilityReservation(
            instructor_id=instructor_id,
            date=day,
            start_at=start_at,
            end_at=end_at,
            booking_id=booking_id,
        )
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def get_reservation_by_booking_id(self, booking_id: UUID) -> AvailabilityReservation | None:
        stmt = select(AvailabilityReservation).where(AvailabilityReservation.booking_id == booking_id)
        return await self.session.scalar(stmt)

    async def mark_reservation_released(
        self,
        reservation: AvailabilityReservation,
        released_at: datetime,
    ) -> AvailabilityReservation:
        reservation.released_at = released_at
        await self.session.flush()
        return reservation
