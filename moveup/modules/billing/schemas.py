"""Billing schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from moveup.core.enums import PaymentFailureEnum, PaymentStatusEnum, TransactionStatusEnum, TransactionTypeEnum


class WalletRead(BaseModel):
    """Wallet response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_id: UUID
    balance: Decimal
    currency: str
    payout_account_id: str | None
    total_lessons: int
    updated_at: datetime


class TransactionRead(BaseModel):
    """Ledger entry response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    wallet_id: UUID | None
    booking_id: UUID | None
    type: TransactionTypeEnum
    status: TransactionStatusEnum
    amount: Decimal
    currency: str
    gross_amount: Decimal | None
    platform_fee: Decimal | None
    external_reference: str | None
    idempotency_key: str
    failure_code: PaymentFailureEnum | None
    failure_reason: str | None
    completed_at: datetime | None
    failed_at: datetime | None
    created_at: datetime


class ReconcileRead(BaseModel):
    """Payment projection after reconciliation."""

    booking_id: UUID
    payment_status: PaymentStatusEnum
