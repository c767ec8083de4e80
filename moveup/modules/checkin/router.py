"""Check-in API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from moveup.core.security import Actor, get_current_actor
from moveup.modules.checkin.schemas import CheckInAttemptRead, CheckInRead, CheckInRequest
from moveup.modules.checkin.service import CheckInAccepted, CheckInValidator, get_checkin_validator
from moveup.shared.geo import GeoPoint
from moveup.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/checkin", tags=["checkin"])


@router.post("/validate", response_model=CheckInRead)
async def validate_checkin(
    payload: CheckInRequest,
    validator: CheckInValidator = Depends(get_checkin_validator),
    current_actor: Actor = Depends(get_current_actor),
) -> CheckInRead:
    """Validate a scanned instructor QR code and start the lesson."""
    outcome = await validator.validate(
        payload.qr_data,
        current_actor.id,
        GeoPoint(latitude=payload.location.latitude, longitude=payload.location.longitude),
    )
    if isinstance(outcome, CheckInAccepted):
        return CheckInRead(
            accepted=True,
            message="Check-in successful",
            booking_id=outcome.booking_id,
            lesson_title=outcome.lesson_title,
            instructor_name=outcome.instructor_name,
            checked_in_at=outcome.checked_in_at,
            distance_m=round(outcome.distance_m, 1),
            amount=outcome.amount,
            currency=outcome.currency,
        )
    return CheckInRead(
        accepted=False,
        reason=outcome.reason,
        message=outcome.message,
        booking_id=outcome.booking_id,
        distance_m=round(outcome.distance_m, 1) if outcome.distance_m is not None else None,
    )


@router.get("/bookings/{booking_id}/attempts", response_model=Page[CheckInAttemptRead])
async def list_checkin_attempts(
    booking_id: UUID,
    pagination=Depends(get_pagination_params),
    validator: CheckInValidator = Depends(get_checkin_validator),
    current_actor: Actor = Depends(get_current_actor),
) -> Page[CheckInAttemptRead]:
    """Audited check-in attempts for a booking."""
    items, total = await validator.list_attempts(booking_id, current_actor, pagination.limit, pagination.offset)
    serialized = [CheckInAttemptRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)
