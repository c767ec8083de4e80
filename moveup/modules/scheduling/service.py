"""Availability index over instructor slots and advisory reservations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from moveup.core.database import get_db_session
from moveup.modules.scheduling.models import AvailabilitySlot
from moveup.modules.scheduling.repository import SchedulingRepository
from moveup.shared.exceptions import ValidationException
from moveup.shared.geo import GeoPoint, bounding_box, distance_between
from moveup.shared.utils import combine_utc, days_spanned, ensure_utc, utc_now, windows_overlap

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NearbySlot:
    slot: AvailabilitySlot
    distance_m: float


def slot_window(slot: AvailabilitySlot) -> tuple[datetime, datetime]:
    """UTC window of a slot; an end time at or before the start rolls into the next day."""
    starts_at = combine_utc(slot.date, slot.start_time)
    ends_at = combine_utc(slot.date, slot.end_time)
    if ends_at <= starts_at:
        ends_at += timedelta(days=1)
    return starts_at, ends_at


class AvailabilityIndex:
    """Read side of instructor availability plus reservation bookkeeping.

    Reservations are advisory. The authoritative double-booking check is
    re-derived from bookings by the conflict resolver.
    """

    def __init__(self, repository: SchedulingRepository) -> None:
        self.repository = repository

    async def query_availability(self, instructor_id: UUID, day: date) -> list[AvailabilitySlot]:
        """Slots of one instructor day, ordered by start time."""
        return await self.repository.list_slots(instructor_id, day)

    async def covers(
        self,
        instructor_id: UUID,
        day: date,
        start_at: datetime,
        end_at: datetime,
    ) -> bool:
        """Whether an available slot fully contains ``[start_at, end_at)``."""
        start_at = ensure_utc(start_at)
        end_at = ensure_utc(end_at)
        for slot in await self.repository.list_slots(instructor_id, day):
            if not slot.is_available:
                continue
            slot_start, slot_end = slot_window(slot)
            if slot_start <= start_at and end_at <= slot_end:
                return True
        return False

    async def reserve(
        self,
        instructor_id: UUID,
        day: date,
        start_at: datetime,
        end_at: datetime,
        booking_id: UUID,
    ) -> bool:
        """Record a reservation; ``False`` when an unreleased one overlaps."""
        start_at = ensure_utc(start_at)
        end_at = ensure_utc(end_at)
        days = sorted({day, *days_spanned(start_at, end_at)})
        reservations = await self.repository.list_active_reservations(instructor_id, days)
        for reservation in reservations:
            if reservation.booking_id == booking_id:
                return True
            if windows_overlap(reservation.start_at, reservation.end_at, start_at, end_at):
                logger.info(
                    "Reservation for booking %s overlaps reservation of booking %s",
                    booking_id,
                    reservation.booking_id,
                )
                return False

        await self.repository.create_reservation(instructor_id, day, start_at, end_at, booking_id)
        return True

    async def release(self, booking_id: UUID) -> None:
        """Release the reservation held by a booking, if any."""
        reservation = await self.repository.get_reservation_by_booking_id(booking_id)
        if reservation is None or reservation.released_at is not None:
            return
        await self.repository.mark_reservation_released(reservation, utc_now())

    async def find_available_near(
        self,
        day: date,
        latitude: float,
        longitude: float,
        radius_m: float,
    ) -> list[NearbySlot]:
        """Available slots with a meeting point within ``radius_m``, nearest first."""
        if radius_m <= 0:
            raise ValidationException("Search radius must be positive")

        center = GeoPoint(latitude=latitude, longitude=longitude)
        candidates = await self.repository.list_located_slots(day, bounding_box(center, radius_m))

        matches: list[NearbySlot] = []
        for slot in candidates:
            distance = distance_between(center, GeoPoint(latitude=slot.latitude, longitude=slot.longitude))
            if distance <= radius_m:
                matches.append(NearbySlot(slot=slot, distance_m=distance))
        matches.sort(key=lambda item: (item.distance_m, item.slot.start_time))
        return matches


async def get_availability_index(session: AsyncSession = Depends(get_db_session)) -> AvailabilityIndex:
    """Dependency provider for availability index."""
    return AvailabilityIndex(SchedulingRepository(session))
