"""Pure ledger computations."""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from moveup.core.enums import PaymentStatusEnum, TransactionStatusEnum, TransactionTypeEnum
from moveup.modules.billing.models import Transaction

CENT = Decimal("0.01")


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def split_platform_fee(gross: Decimal, fee_percent: Decimal) -> tuple[Decimal, Decimal]:
    """Return ``(platform_fee, net)`` for a gross amount."""
    fee = quantize_money(gross * fee_percent)
    return fee, quantize_money(gross - fee)


def has_completed(transactions: Iterable[Transaction], transaction_type: TransactionTypeEnum) -> bool:
    return any(
        item.type == transaction_type and item.status == TransactionStatusEnum.COMPLETED
        for item in transactions
    )


def derive_payment_status(transactions: Iterable[Transaction]) -> PaymentStatusEnum:
    """Booking payment projection recomputed from its ledger rows."""
    rows = list(transactions)
    if has_completed(rows, TransactionTypeEnum.REFUND):
        return PaymentStatusEnum.REFUNDED
    if has_completed(rows, TransactionTypeEnum.CAPTURE):
        return PaymentStatusEnum.CAPTURED
    if has_completed(rows, TransactionTypeEnum.AUTHORIZATION):
        return PaymentStatusEnum.AUTHORIZED
    if any(
        item.type == TransactionTypeEnum.AUTHORIZATION and item.status == TransactionStatusEnum.FAILED
        for item in rows
    ):
        return PaymentStatusEnum.FAILED
    return PaymentStatusEnum.PENDING
