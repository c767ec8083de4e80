"""Payment coordinator: ledger-first authorization, capture, payout and refund."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from decimal import Decimal
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from moveup.core.config import get_settings
from moveup.core.database import get_db_session
from moveup.core.enums import PaymentFailureEnum, PaymentStatusEnum, TransactionStatusEnum, TransactionTypeEnum
from moveup.core.metrics import LEDGER_TRANSACTIONS_TOTAL
from moveup.core.security import Actor
from moveup.modules.billing.ledger import derive_payment_status, has_completed, quantize_money, split_platform_fee
from moveup.modules.billing.models import Transaction, Wallet
from moveup.modules.billing.processor import PaymentDeclined, PaymentProcessor, get_payment_processor
from moveup.modules.billing.repository import BillingRepository
from moveup.modules.booking.models import Booking
from moveup.shared.exceptions import (
    ConflictException,
    ExternalFailureException,
    NotFoundException,
    UnauthorizedException,
    ValidationException,
)
from moveup.shared.utils import utc_now

logger = logging.getLogger(__name__)


class PaymentCoordinator:
    """Append-only ledger driver.

    Every operation appends exactly one transaction, flushed as PENDING
    before the processor is called and then settled COMPLETED or FAILED.
    Failures are recorded on the row and returned, never raised, so the
    ledger entry survives the request.
    """

    def __init__(
        self,
        repository: BillingRepository,
        processor: PaymentProcessor,
        *,
        timeout_seconds: float = 10.0,
        platform_fee_percent: Decimal = Decimal("0.05"),
        now_provider=utc_now,
    ) -> None:
        self.repository = repository
        self.processor = processor
        self.timeout_seconds = timeout_seconds
        self.platform_fee_percent = platform_fee_percent
        self.now_provider = now_provider

    async def _begin(
        self,
        booking: Booking,
        transaction_type: TransactionTypeEnum,
        amount: Decimal,
        *,
        wallet: Wallet | None = None,
        gross_amount: Decimal | None = None,
        platform_fee: Decimal | None = None,
    ) -> Transaction:
        rows = await self.repository.list_booking_transactions(booking.id)
        blocking = [
            row.id for row in rows if row.type == transaction_type and row.status != TransactionStatusEnum.FAILED
        ]
        if blocking:
            raise ConflictException(
                f"Booking {booking.id} already has a {transaction_type} transaction",
                conflicting_ids=blocking,
            )

        attempt = sum(1 for row in rows if row.type == transaction_type) + 1
        return await self.repository.create_transaction(
            wallet_id=wallet.id if wallet is not None else None,
            booking_id=booking.id,
            type=transaction_type,
            amount=quantize_money(amount),
            currency=booking.currency,
            gross_amount=gross_amount,
            platform_fee=platform_fee,
            idempotency_key=f"{booking.id}:{transaction_type}:{attempt}",
        )

    async def _settle(self, transaction: Transaction, call: Callable[[], Awaitable[str]]) -> Transaction:
        try:
            reference = await asyncio.wait_for(call(), timeout=self.timeout_seconds)
        except PaymentDeclined as exc:
            return await self._fail(transaction, PaymentFailureEnum.DECLINED, exc.reason)
        except TimeoutError:
            return await self._fail(
                transaction,
                PaymentFailureEnum.TIMEOUT,
                f"Processor did not answer within {self.timeout_seconds}s",
            )
        except ExternalFailureException as exc:
            return await self._fail(transaction, PaymentFailureEnum.PROCESSOR_ERROR, exc.message)

        await self.repository.mark_transaction_completed(transaction, reference, self.now_provider())
        LEDGER_TRANSACTIONS_TOTAL.labels(type=str(transaction.type), status="completed").inc()
        logger.info(
            "Ledger %s %s for booking %s completed (%s)",
            transaction.type,
            transaction.id,
            transaction.booking_id,
            reference,
        )
        return transaction

    async def _fail(self, transaction: Transaction, code: PaymentFailureEnum, reason: str) -> Transaction:
        await self.repository.mark_transaction_failed(transaction, code, reason, self.now_provider())
        LEDGER_TRANSACTIONS_TOTAL.labels(type=str(transaction.type), status="failed").inc()
        logger.warning(
            "Ledger %s %s for booking %s failed: %s (%s)",
            transaction.type,
            transaction.id,
            transaction.booking_id,
            code,
            reason,
        )
        return transaction

    async def _completed_authorization(self, booking: Booking) -> Transaction:
        rows = await self.repository.list_booking_transactions(booking.id)
        for row in rows:
            if row.type == TransactionTypeEnum.AUTHORIZATION and row.status == TransactionStatusEnum.COMPLETED:
                return row
        raise ConflictException(f"Booking {booking.id} has no completed authorization")

    async def authorize(self, booking: Booking, payer_token: str) -> Transaction:
        """Reserve the lesson price on the payer's instrument."""
        if not payer_token or not payer_token.strip():
            raise ValidationException("Payer token is required")

        transaction = await self._begin(booking, TransactionTypeEnum.AUTHORIZATION, booking.total_amount)
        transaction = await self._settle(
            transaction,
            lambda: self.processor.authorize(
                transaction.amount,
                transaction.currency,
                payer_token.strip(),
                transaction.idempotency_key,
            ),
        )
        await self.reconcile_booking(booking)
        return transaction

    async def capture(self, booking: Booking) -> Transaction:
        authorization = await self._completed_authorization(booking)
        transaction = await self._begin(booking, TransactionTypeEnum.CAPTURE, booking.total_amount)
        transaction = await self._settle(
            transaction,
            lambda: self.processor.capture(authorization.external_reference, transaction.idempotency_key),
        )
        await self.reconcile_booking(booking)
        return transaction

    async def payout(self, wallet: Wallet, amount: Decimal, booking: Booking) -> Transaction:
        """Credit the payee wallet with its share of a captured booking."""
        rows = await self.repository.list_booking_transactions(booking.id)
        if not has_completed(rows, TransactionTypeEnum.CAPTURE):
            raise ConflictException(f"Booking {booking.id} has no completed capture to pay out")
        if amount <= 0:
            raise ValidationException("Payout amount must be positive")

        gross = quantize_money(booking.total_amount)
        transaction = await self._begin(
            booking,
            TransactionTypeEnum.PAYOUT,
            amount,
            wallet=wallet,
            gross_amount=gross,
            platform_fee=quantize_money(gross - amount),
        )
        if not wallet.payout_account_id:
            transaction = await self._fail(
                transaction,
                PaymentFailureEnum.MISSING_PAYOUT_ACCOUNT,
                f"Wallet {wallet.id} has no payout account",
            )
        else:
            transaction = await self._settle(
                transaction,
                lambda: self.processor.transfer(
                    wallet.payout_account_id,
                    transaction.amount,
                    transaction.currency,
                    transaction.idempotency_key,
                ),
            )

        if transaction.status == TransactionStatusEnum.COMPLETED:
            balance = await self.repository.sum_completed_wallet_amounts(wallet.id)
            await self.repository.update_wallet(
                wallet,
                balance=balance,
                total_lessons=wallet.total_lessons + 1,
            )
        return transaction

    async def refund(self, booking: Booking) -> Transaction:
        """Release an authorization that was never captured."""
        rows = await self.repository.list_booking_transactions(booking.id)
        if has_completed(rows, TransactionTypeEnum.CAPTURE):
            raise ConflictException(f"Booking {booking.id} was captured and cannot be refunded")
        authorization = await self._completed_authorization(booking)

        transaction = await self._begin(booking, TransactionTypeEnum.REFUND, booking.total_amount)
        transaction = await self._settle(
            transaction,
            lambda: self.processor.refund(authorization.external_reference, transaction.idempotency_key),
        )
        await self.reconcile_booking(booking)
        return transaction

    async def settle_booking(self, booking: Booking) -> list[Transaction]:
        """Capture then pay out, skipping steps already completed in the ledger."""
        rows = await self.repository.list_booking_transactions(booking.id)
        appended: list[Transaction] = []

        if not has_completed(rows, TransactionTypeEnum.CAPTURE):
            capture = await self.capture(booking)
            appended.append(capture)
            if capture.status != TransactionStatusEnum.COMPLETED:
                return appended

        if not has_completed(rows, TransactionTypeEnum.PAYOUT):
            wallet = await self.get_or_create_wallet(booking.instructor_id, booking.currency)
            _, net = split_platform_fee(quantize_money(booking.total_amount), self.platform_fee_percent)
            appended.append(await self.payout(wallet, net, booking))
        return appended

    async def reconcile_booking(self, booking: Booking) -> PaymentStatusEnum:
        """Recompute the booking payment projection from the ledger."""
        rows = await self.repository.list_booking_transactions(booking.id)
        payment_status = derive_payment_status(rows)
        if booking.payment_status != payment_status:
            logger.info(
                "Booking %s payment status %s -> %s",
                booking.id,
                booking.payment_status,
                payment_status,
            )
            await self.repository.set_booking_payment_status(booking, payment_status)
        return payment_status

    async def get_or_create_wallet(self, owner_id: UUID, currency: str) -> Wallet:
        wallet = await self.repository.get_wallet_by_owner(owner_id)
        if wallet is None:
            wallet = await self.repository.create_wallet(owner_id, currency)
        return wallet

    async def get_wallet_balance(self, owner_id: UUID, actor: Actor) -> Wallet:
        if not actor.is_admin and actor.id != owner_id:
            raise UnauthorizedException("Access denied")
        wallet = await self.repository.get_wallet_by_owner(owner_id)
        if wallet is None:
            raise NotFoundException("Wallet not found")
        return wallet

    async def list_wallet_transactions(
        self,
        owner_id: UUID,
        actor: Actor,
        limit: int,
        offset: int,
    ) -> tuple[list[Transaction], int]:
        wallet = await self.get_wallet_balance(owner_id, actor)
        return await self.repository.list_wallet_transactions(wallet.id, limit, offset)

    async def list_failed_transactions(
        self,
        actor: Actor,
        limit: int,
        offset: int,
    ) -> tuple[list[Transaction], int]:
        """Failed ledger rows awaiting operator remediation (admin only)."""
        if not actor.is_admin:
            raise UnauthorizedException("Only admin can view failed transactions")
        return await self.repository.list_failed_transactions(limit, offset)


def build_payment_coordinator(session: AsyncSession) -> PaymentCoordinator:
    """Coordinator wired from settings."""
    settings = get_settings()
    return PaymentCoordinator(
        BillingRepository(session),
        get_payment_processor(),
        timeout_seconds=settings.payment_processor_timeout_seconds,
        platform_fee_percent=settings.payment_platform_fee_percent,
    )


async def get_payment_coordinator(session: AsyncSession = Depends(get_db_session)) -> PaymentCoordinator:
    """Dependency provider for payment coordinator."""
    return build_payment_coordinator(session)
