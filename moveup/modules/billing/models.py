"""Billing ORM models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from moveup.core.database import Base, BaseModelMixin
from moveup.core.enums import PaymentFailureEnum, TransactionStatusEnum, TransactionTypeEnum


class Wallet(BaseModelMixin, Base):
    """Payee wallet; ``balance`` is a projection of the completed ledger rows."""

    __tablename__ = "wallets"

    owner_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, unique=True)
    balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)
    payout_account_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    total_lessons: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class Transaction(BaseModelMixin, Base):
    """Append-only ledger entry."""

    __tablename__ = "transactions"
    __table_args__ = (Index("ix_transactions_booking_type", "booking_id", "type"),)

    wallet_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("wallets.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    booking_id: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True)
    type: Mapped[TransactionTypeEnum] = mapped_column(
        SAEnum(TransactionTypeEnum, name="transaction_type_enum", native_enum=False),
        nullable=False,
    )
    status: Mapped[TransactionStatusEnum] = mapped_column(
        SAEnum(TransactionStatusEnum, name="transaction_status_enum", native_enum=False),
        default=TransactionStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    gross_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    platform_fee: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    external_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
    idempotency_key: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    failure_code: Mapped[PaymentFailureEnum | None] = mapped_column(
        SAEnum(PaymentFailureEnum, name="payment_failure_enum", native_enum=False),
        nullable=True,
    )
    failure_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
