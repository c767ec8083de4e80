"""QR check-in validation.

Checks run in a fixed order and stop at the first failure:

1. payload shape (type, instructor id, issue timestamp)
2. payload age
3. a booking of the presenter with that instructor whose check-in window
   contains the scan time
4. that booking was not checked in already
5. presenter within the geofence of the lesson location

Rejections are returned, not raised, so the audit row of the attempt is
committed with the request.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from moveup.core.config import get_settings
from moveup.core.database import get_db_session
from moveup.core.enums import BookingStatusEnum, CheckInRejectionEnum
from moveup.core.metrics import CHECKIN_ATTEMPTS_TOTAL
from moveup.core.security import Actor
from moveup.modules.audit.models import AuditLog
from moveup.modules.audit.repository import AuditRepository
from moveup.modules.booking.models import Booking
from moveup.modules.booking.repository import BookingRepository
from moveup.modules.booking.service import BookingService, build_booking_service
from moveup.modules.directory.client import DirectoryClient, get_directory_client
from moveup.shared.exceptions import ExternalFailureException, UnauthorizedException
from moveup.shared.geo import GeoPoint, distance_between
from moveup.shared.utils import utc_now

logger = logging.getLogger(__name__)

AUDIT_ENTITY_TYPE = "checkin_attempt"
# Timestamps above this are epoch milliseconds.
MILLISECONDS_THRESHOLD = 10**11


@dataclass(frozen=True, slots=True)
class QRPayload:
    instructor_id: UUID
    issued_at: datetime


@dataclass(frozen=True, slots=True)
class CheckInAccepted:
    booking_id: UUID
    lesson_title: str
    instructor_name: str
    checked_in_at: datetime
    distance_m: float
    amount: Decimal
    currency: str


@dataclass(frozen=True, slots=True)
class CheckInRejected:
    reason: CheckInRejectionEnum
    message: str
    booking_id: UUID | None = None
    distance_m: float | None = None


class MalformedPayload(ValueError):
    """QR payload is missing or has invalid fields."""


def parse_qr_payload(raw: dict[str, Any] | str, expected_type: str) -> QRPayload:
    """Parse a scanned QR payload, raising ``MalformedPayload`` on any shape problem."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MalformedPayload("QR payload is not valid JSON") from exc
    if not isinstance(raw, dict):
        raise MalformedPayload("QR payload must be an object")

    if raw.get("type") != expected_type:
        raise MalformedPayload("QR payload type is not a check-in code")

    instructor_value = raw.get("instructor_id", raw.get("instructorId"))
    try:
        instructor_id = UUID(str(instructor_value))
    except ValueError as exc:
        raise MalformedPayload("QR payload instructor id is invalid") from exc

    timestamp = raw.get("timestamp")
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float, str)):
        raise MalformedPayload("QR payload timestamp is missing")
    try:
        seconds = float(timestamp)
    except ValueError as exc:
        raise MalformedPayload("QR payload timestamp is not numeric") from exc
    if seconds > MILLISECONDS_THRESHOLD:
        seconds /= 1000
    try:
        issued_at = datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise MalformedPayload("QR payload timestamp is out of range") from exc

    return QRPayload(instructor_id=instructor_id, issued_at=issued_at)


class CheckInValidator:
    """Validate a presented instructor QR code against the presenter's bookings."""

    def __init__(
        self,
        booking_repository: BookingRepository,
        bookings: BookingService,
        audit_repository: AuditRepository,
        directory: DirectoryClient,
        *,
        qr_type: str = "instructor_checkin",
        max_age_seconds: int = 300,
        clock_skew_seconds: int = 60,
        open_before_minutes: int = 15,
        close_after_minutes: int = 0,
        geofence_radius_m: float = 150.0,
    ) -> None:
        self.booking_repository = booking_repository
        self.bookings = bookings
        self.audit_repository = audit_repository
        self.directory = directory
        self.qr_type = qr_type
        self.max_age = timedelta(seconds=max_age_seconds)
        self.clock_skew = timedelta(seconds=clock_skew_seconds)
        self.open_before = timedelta(minutes=open_before_minutes)
        self.close_after = timedelta(minutes=close_after_minutes)
        self.geofence_radius_m = geofence_radius_m

    async def validate(
        self,
        qr_payload: dict[str, Any] | str,
        presenter_user_id: UUID,
        presenter_location: GeoPoint,
        now: datetime | None = None,
    ) -> CheckInAccepted | CheckInRejected:
        now = now or utc_now()
        outcome = await self._evaluate(qr_payload, presenter_user_id, presenter_location, now)

        label = "accepted" if isinstance(outcome, CheckInAccepted) else str(outcome.reason)
        CHECKIN_ATTEMPTS_TOTAL.labels(outcome=label).inc()
        if isinstance(outcome, CheckInAccepted):
            logger.info("Check-in accepted for booking %s at %.1fm", outcome.booking_id, outcome.distance_m)
        else:
            logger.info("Check-in by %s rejected: %s (%s)", presenter_user_id, outcome.reason, outcome.message)

        await self._audit(outcome, presenter_user_id, presenter_location, now)
        return outcome

    async def _evaluate(
        self,
        qr_payload: dict[str, Any] | str,
        presenter_user_id: UUID,
        presenter_location: GeoPoint,
        now: datetime,
    ) -> CheckInAccepted | CheckInRejected:
        try:
            payload = parse_qr_payload(qr_payload, self.qr_type)
        except MalformedPayload as exc:
            return CheckInRejected(CheckInRejectionEnum.MALFORMED_PAYLOAD, str(exc))

        if payload.issued_at > now + self.clock_skew:
            return CheckInRejected(CheckInRejectionEnum.MALFORMED_PAYLOAD, "QR payload is issued in the future")
        if now - payload.issued_at > self.max_age:
            return CheckInRejected(CheckInRejectionEnum.EXPIRED, "QR code has expired, ask for a fresh one")

        candidates = await self.booking_repository.list_checkin_candidates(
            presenter_user_id,
            payload.instructor_id,
            opens_before=now + self.open_before,
            closes_after=now - self.close_after,
        )
        booking = self._pick_booking(candidates)
        if booking is None:
            return CheckInRejected(
                CheckInRejectionEnum.NO_MATCHING_BOOKING,
                "No confirmed booking with this instructor right now",
            )

        if booking.checked_in_at is not None or booking.status != BookingStatusEnum.CONFIRMED:
            return CheckInRejected(
                CheckInRejectionEnum.ALREADY_CHECKED_IN,
                "Booking is already checked in",
                booking_id=booking.id,
            )

        distance = distance_between(
            presenter_location,
            GeoPoint(latitude=booking.lesson_latitude, longitude=booking.lesson_longitude),
        )
        if distance > self.geofence_radius_m:
            return CheckInRejected(
                CheckInRejectionEnum.OUT_OF_RANGE,
                f"You are {distance:.0f}m from the lesson location, the limit is {self.geofence_radius_m:.0f}m",
                booking_id=booking.id,
                distance_m=distance,
            )

        moved = await self.bookings.record_check_in(booking, now, distance, payload.issued_at)
        if moved is None:
            return CheckInRejected(
                CheckInRejectionEnum.ALREADY_CHECKED_IN,
                "Booking is already checked in",
                booking_id=booking.id,
            )

        return CheckInAccepted(
            booking_id=moved.id,
            lesson_title=await self._lesson_title(moved),
            instructor_name=await self._instructor_name(moved),
            checked_in_at=now,
            distance_m=distance,
            amount=moved.total_amount,
            currency=moved.currency,
        )

    @staticmethod
    def _pick_booking(candidates: list[Booking]) -> Booking | None:
        """Prefer a booking still waiting for check-in over one already checked in."""
        for booking in candidates:
            if booking.status == BookingStatusEnum.CONFIRMED and booking.checked_in_at is None:
                return booking
        return candidates[0] if candidates else None

    async def _lesson_title(self, booking: Booking) -> str:
        try:
            lesson = await self.directory.get_lesson(booking.lesson_id)
        except ExternalFailureException as exc:
            logger.warning("Directory lesson lookup failed for booking %s: %s", booking.id, exc.message)
            lesson = None
        if lesson is not None and lesson.title:
            return lesson.title
        return booking.lesson_title or "Lesson"

    async def _instructor_name(self, booking: Booking) -> str:
        try:
            instructor = await self.directory.get_instructor(booking.instructor_id)
        except ExternalFailureException as exc:
            logger.warning("Directory instructor lookup failed for booking %s: %s", booking.id, exc.message)
            instructor = None
        if instructor is not None and instructor.display_name:
            return instructor.display_name
        return "Instructor"

    async def _audit(
        self,
        outcome: CheckInAccepted | CheckInRejected,
        presenter_user_id: UUID,
        presenter_location: GeoPoint,
        now: datetime,
    ) -> None:
        payload: dict[str, Any] = {
            "presented_at": now.isoformat(),
            "latitude": presenter_location.latitude,
            "longitude": presenter_location.longitude,
        }
        if isinstance(outcome, CheckInAccepted):
            action = "checkin.accepted"
            booking_id = outcome.booking_id
            payload["distance_m"] = round(outcome.distance_m, 1)
        else:
            action = "checkin.rejected"
            booking_id = outcome.booking_id
            payload["reason"] = str(outcome.reason)
            if outcome.distance_m is not None:
                payload["distance_m"] = round(outcome.distance_m, 1)

        await self.audit_repository.create_audit_log(
            actor_id=presenter_user_id,
            action=action,
            entity_type=AUDIT_ENTITY_TYPE,
            entity_id=str(booking_id) if booking_id is not None else None,
            payload=payload,
        )

    async def list_attempts(
        self,
        booking_id: UUID,
        actor: Actor,
        limit: int,
        offset: int,
    ) -> tuple[list[AuditLog], int]:
        """Audited attempts for one booking (admin only)."""
        if not actor.is_admin:
            raise UnauthorizedException("Only admin can view check-in attempts")
        return await self.audit_repository.list_audit_logs_for_entity(
            AUDIT_ENTITY_TYPE,
            str(booking_id),
            limit,
            offset,
        )


def build_checkin_validator(session: AsyncSession) -> CheckInValidator:
    settings = get_settings()
    return CheckInValidator(
        BookingRepository(session),
        build_booking_service(session),
        AuditRepository(session),
        get_directory_client(),
        qr_type=settings.checkin_qr_type,
        max_age_seconds=settings.checkin_qr_max_age_seconds,
        clock_skew_seconds=settings.checkin_clock_skew_seconds,
        open_before_minutes=settings.checkin_open_before_minutes,
        close_after_minutes=settings.checkin_close_after_minutes,
        geofence_radius_m=settings.checkin_geofence_radius_m,
    )


async def get_checkin_validator(session: AsyncSession = Depends(get_db_session)) -> CheckInValidator:
    """Dependency provider for check-in validator."""
    return build_checkin_validator(session)
