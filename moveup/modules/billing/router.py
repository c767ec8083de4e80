"""Billing API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from moveup.core.security import Actor, get_current_actor
from moveup.modules.billing.schemas import ReconcileRead, TransactionRead, WalletRead
from moveup.modules.billing.service import PaymentCoordinator, get_payment_coordinator
from moveup.modules.booking.service import BookingService, get_booking_service
from moveup.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/billing", tags=["billing"])


@router.get("/wallets/me", response_model=WalletRead)
async def get_my_wallet(
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
    current_actor: Actor = Depends(get_current_actor),
) -> WalletRead:
    """Return the caller's wallet and ledger-derived balance."""
    wallet = await coordinator.get_wallet_balance(current_actor.id, current_actor)
    return WalletRead.model_validate(wallet)


@router.get("/wallets/me/transactions", response_model=Page[TransactionRead])
async def list_my_wallet_transactions(
    pagination=Depends(get_pagination_params),
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
    current_actor: Actor = Depends(get_current_actor),
) -> Page[TransactionRead]:
    """List ledger entries of the caller's wallet."""
    items, total = await coordinator.list_wallet_transactions(
        current_actor.id,
        current_actor,
        pagination.limit,
        pagination.offset,
    )
    serialized = [TransactionRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/transactions/failed", response_model=Page[TransactionRead])
async def list_failed_transactions(
    pagination=Depends(get_pagination_params),
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
    current_actor: Actor = Depends(get_current_actor),
) -> Page[TransactionRead]:
    """List failed ledger entries for remediation."""
    items, total = await coordinator.list_failed_transactions(current_actor, pagination.limit, pagination.offset)
    serialized = [TransactionRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.post("/bookings/{booking_id}/reconcile", response_model=ReconcileRead)
async def reconcile_booking_payment(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> ReconcileRead:
    """Recompute a booking's payment status from the ledger."""
    payment_status = await service.reconcile_payment(booking_id, current_actor)
    return ReconcileRead(booking_id=booking_id, payment_status=payment_status)
