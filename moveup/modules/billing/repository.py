"""Billing repository layer."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from moveup.core.enums import PaymentFailureEnum, PaymentStatusEnum, TransactionStatusEnum
from moveup.modules.billing.models import Transaction, Wallet
from moveup.shared.exceptions import ConflictException


class BillingRepository:
    """DB operations for wallets and the transaction ledger."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_wallet_by_owner(self, owner_id: UUID) -> Wallet | None:
        stmt = select(Wallet).where(Wallet.owner_id == owner_id)
        return await self.session.scalar(stmt)

    async def create_wallet(self, owner_id: UUID, currency: str) -> Wallet:
        wallet = Wallet(owner_id=owner_id, currency=currency, balance=Decimal("0.00"), total_lessons=0)
        self.session.add(wallet)
        await self.session.flush()
        return wallet

    async def list_booking_transactions(self, booking_id: UUID) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.booking_id == booking_id)
            .order_by(Transaction.created_at.asc())
        )
        return list((await self.session.scalars(stmt)).all())

    async def create_transaction(self, **values: Any) -> Transaction:
        """Insert a PENDING ledger row; a duplicate idempotency key means another writer got there first."""
        transaction = Transaction(status=TransactionStatusEnum.PENDING, **values)
        savepoint = await self.session.begin_nested() if self.session.in_transaction() else None
        self.session.add(transaction)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            if savepoint is not None:
                await savepoint.rollback()
            else:
                await self.session.rollback()
            raise ConflictException(
                f"Ledger entry {values.get('idempotency_key')} was written by a concurrent request",
            ) from exc
        if savepoint is not None:
            await savepoint.commit()
        return transaction

    async def mark_transaction_completed(
        self,
        transaction: Transaction,
        external_reference: str | None,
        completed_at: datetime,
    ) -> Transaction:
        transaction.status = TransactionStatusEnum.COMPLETED
        transaction.external_reference = external_reference
        transaction.completed_at = completed_at
        await self.session.flush()
        return transaction

    async def mark_transaction_failed(
        self,
        transaction: Transaction,
        failure_code: PaymentFailureEnum,
        failure_reason: str,
        failed_at: datetime,
    ) -> Transaction:
        transaction.status = TransactionStatusEnum.FAILED
        transaction.failure_code = failure_code
        transaction.failure_reason = failure_reason[:512]
        transaction.failed_at = failed_at
        await self.session.flush()
        return transaction

    async def sum_completed_wallet_amounts(self, wallet_id: UUID) -> Decimal:
        stmt = select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.wallet_id == wallet_id,
            Transaction.status == TransactionStatusEnum.COMPLETED,
        )
        return Decimal(str((await self.session.scalar(stmt)) or 0))

    async def update_wallet(self, wallet: Wallet, **changes: Any) -> Wallet:
        for name, value in changes.items():
            setattr(wallet, name, value)
        await self.session.flush()
        return wallet

    async def set_booking_payment_status(self, booking: Any, payment_status: PaymentStatusEnum) -> None:
        booking.payment_status = payment_status
        await self.session.flush()

    async def list_wallet_transactions(
        self,
        wallet_id: UUID,
        limit: int,
        offset: int,
    ) -> tuple[list[Transaction], int]:
        base_stmt: Select[tuple[Transaction]] = select(Transaction).where(Transaction.wallet_id == wallet_id)
        return await self._paginate(base_stmt, limit, offset)

    async def list_failed_transactions(self, limit: int, offset: int) -> tuple[list[Transaction], int]:
        base_stmt: Select[tuple[Transaction]] = select(Transaction).where(
            Transaction.status == TransactionStatusEnum.FAILED,
        )
        return await self._paginate(base_stmt, limit, offset)

    async def _paginate(
        self,
        base_stmt: Select[tuple[Transaction]],
        limit: int,
        offset: int,
    ) -> tuple[list[Transaction], int]:
        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(Transaction.created_at.desc()).limit(limit).offset(offset)
        items = list((await self.session.scalars(stmt)).all())
        return items, total
