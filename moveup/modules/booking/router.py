"""Booking API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from moveup.core.enums import BookingStatusEnum, BookingTimeframeEnum
from moveup.core.security import Actor, get_current_actor
from moveup.modules.booking.conflicts import Conflict
from moveup.modules.booking.schemas import (
    BookingAuthorizeRequest,
    BookingCancelRequest,
    BookingCreate,
    BookingRead,
    BookingRescheduleRequest,
    BookingStatisticsRead,
    ConflictCheckRead,
    ConflictCheckRequest,
    LifecycleSweepRead,
)
from moveup.modules.booking.service import BookingService, get_booking_service
from moveup.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> BookingRead:
    """Request a lesson; the booking stays PENDING until payment is authorized."""
    booking = await service.create_booking(payload, current_actor)
    return BookingRead.model_validate(booking)


@router.get("/my", response_model=Page[BookingRead])
async def list_my_bookings(
    booking_status: BookingStatusEnum | None = Query(default=None, alias="status"),
    timeframe: BookingTimeframeEnum | None = Query(default=None, alias="when"),
    pagination=Depends(get_pagination_params),
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> Page[BookingRead]:
    """List bookings for current user; ``when=upcoming`` or ``when=past`` narrows by start time."""
    items, total = await service.list_bookings(
        current_actor,
        booking_status,
        pagination.limit,
        pagination.offset,
        timeframe=timeframe,
    )
    serialized = [BookingRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/my/stats", response_model=BookingStatisticsRead)
async def get_my_booking_statistics(
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> BookingStatisticsRead:
    """Booking totals and recent lesson revenue for current user."""
    return BookingStatisticsRead.model_validate(await service.get_statistics(current_actor))


@router.post("/conflicts/check", response_model=ConflictCheckRead)
async def check_conflicts(
    payload: ConflictCheckRequest,
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> ConflictCheckRead:
    """Report whether a window is currently free for the instructor."""
    outcome = await service.check_conflicts(payload, current_actor)
    if isinstance(outcome, Conflict):
        return ConflictCheckRead(
            bookable=False,
            starts_at=outcome.starts_at,
            ends_at=outcome.ends_at,
            conflicting_booking_ids=outcome.existing_booking_ids,
        )
    return ConflictCheckRead(bookable=True, starts_at=outcome.starts_at, ends_at=outcome.ends_at)


@router.post("/lifecycle/sweep", response_model=LifecycleSweepRead)
async def sweep_booking_lifecycle(
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> LifecycleSweepRead:
    """Expire, no-show and auto-complete due bookings (admin task endpoint)."""
    return LifecycleSweepRead(**(await service.sweep_lifecycle(current_actor)))


@router.get("/{booking_id}", response_model=BookingRead)
async def get_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> BookingRead:
    """Return one booking visible to the caller."""
    booking = await service.get_booking(booking_id, current_actor)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/authorize", response_model=BookingRead)
async def authorize_booking_payment(
    booking_id: UUID,
    payload: BookingAuthorizeRequest,
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> BookingRead:
    """Authorize payment; confirms on success, cancels on decline."""
    booking = await service.authorize_payment(booking_id, payload.payer_token, current_actor)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingRead)
async def cancel_booking(
    booking_id: UUID,
    payload: BookingCancelRequest,
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> BookingRead:
    """Cancel booking and refund any uncaptured authorization."""
    booking = await service.cancel_booking(booking_id, payload.reason, current_actor)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/complete", response_model=BookingRead)
async def complete_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> BookingRead:
    """Mark an in-progress lesson completed."""
    booking = await service.complete_booking(booking_id, current_actor)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/reschedule", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
async def reschedule_booking(
    booking_id: UUID,
    payload: BookingRescheduleRequest,
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> BookingRead:
    """Reschedule using cancel + new booking flow."""
    booking = await service.reschedule_booking(booking_id, payload, current_actor)
    return BookingRead.model_validate(booking)
