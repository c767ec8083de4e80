"""Booking repository layer."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Select, and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from moveup.core.database import acquire_advisory_xact_lock
from moveup.core.enums import (
    BookingStatusEnum,
    BookingTimeframeEnum,
    PaymentStatusEnum,
    RoleEnum,
    TransactionStatusEnum,
    TransactionTypeEnum,
)
from moveup.modules.billing.models import Transaction
from moveup.modules.booking.models import Booking
from moveup.modules.booking.state_machine import ACTIVE_STATUSES


class BookingRepository:
    """DB operations for booking domain."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def lock_instructor_day(self, key: str) -> None:
        await acquire_advisory_xact_lock(self.session, key)

    async def create_booking(self, **values: Any) -> Booking:
        booking = Booking(
            status=BookingStatusEnum.PENDING,
            **values,
        )
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_booking_by_id(self, booking_id: UUID) -> Booking | None:
        return await self.session.get(Booking, booking_id, populate_existing=True)

    async def list_active_for_instructor(self, instructor_id: UUID, days: list[date]) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(
                Booking.instructor_id == instructor_id,
                Booking.scheduled_date.in_(days),
                Booking.status.in_(ACTIVE_STATUSES),
            )
            .order_by(Booking.starts_at.asc())
        )
        return list((await self.session.scalars(stmt)).all())

    async def transition_status(
        self,
        booking_id: UUID,
        expected: BookingStatusEnum,
        target: BookingStatusEnum,
        **changes: Any,
    ) -> bool:
        """Compare-and-set the status; ``False`` when the row moved on meanwhile."""
        stmt = (
            update(Booking)
            .where(Booking.id == booking_id, Booking.status == expected)
            .values(status=target, **changes)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def list_checkin_candidates(
        self,
        user_id: UUID,
        instructor_id: UUID,
        opens_before: datetime,
        closes_after: datetime,
    ) -> list[Booking]:
        """Bookings whose check-in window contains the scan time.

        ``opens_before`` is ``now + open_before`` and ``closes_after`` is
        ``now - close_after``, so ``starts_at <= opens_before`` and
        ``ends_at >= closes_after`` place ``now`` inside the window.
        """
        stmt = (
            select(Booking)
            .where(
                Booking.user_id == user_id,
                Booking.instructor_id == instructor_id,
                Booking.starts_at <= opens_before,
                Booking.ends_at >= closes_after,
                Booking.status.in_(
                    (
                        BookingStatusEnum.CONFIRMED,
                        BookingStatusEnum.IN_PROGRESS,
                        BookingStatusEnum.COMPLETED,
                    ),
                ),
            )
            .order_by(Booking.starts_at.asc())
        )
        return list((await self.session.scalars(stmt)).all())

    async def find_stale_pending(self, created_before: datetime, limit: int) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.status == BookingStatusEnum.PENDING, Booking.created_at <= created_before)
            .order_by(Booking.created_at.asc())
            .limit(limit)
        )
        return list((await self.session.scalars(stmt)).all())

    async def find_unattended(self, ended_before: datetime, limit: int) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(
                Booking.status == BookingStatusEnum.CONFIRMED,
                Booking.checked_in_at.is_(None),
                Booking.ends_at <= ended_before,
            )
            .order_by(Booking.ends_at.asc())
            .limit(limit)
        )
        return list((await self.session.scalars(stmt)).all())

    async def find_overrunning(self, ended_before: datetime, limit: int) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.status == BookingStatusEnum.IN_PROGRESS, Booking.ends_at <= ended_before)
            .order_by(Booking.ends_at.asc())
            .limit(limit)
        )
        return list((await self.session.scalars(stmt)).all())

    async def find_updated_since(self, since: datetime, limit: int) -> list[Booking]:
        stmt = select(Booking).where(Booking.updated_at >= since).order_by(Booking.updated_at.asc()).limit(limit)
        return list((await self.session.scalars(stmt)).all())

    async def find_payment_followups(self, max_failed_legs: int, limit: int) -> list[Booking]:
        """Closed bookings whose capture, payout or refund never completed.

        Bookings with ``max_failed_legs`` or more failed follow-up rows are
        left to operators.
        """
        payout_completed = (
            select(Transaction.id)
            .where(
                Transaction.booking_id == Booking.id,
                Transaction.type == TransactionTypeEnum.PAYOUT,
                Transaction.status == TransactionStatusEnum.COMPLETED,
            )
            .exists()
        )
        failed_legs = (
            select(func.count(Transaction.id))
            .where(
                Transaction.booking_id == Booking.id,
                Transaction.type.in_(
                    (TransactionTypeEnum.CAPTURE, TransactionTypeEnum.PAYOUT, TransactionTypeEnum.REFUND),
                ),
                Transaction.status == TransactionStatusEnum.FAILED,
            )
            .scalar_subquery()
        )
        stmt = (
            select(Booking)
            .where(
                or_(
                    and_(
                        Booking.status.in_((BookingStatusEnum.COMPLETED, BookingStatusEnum.NO_SHOW)),
                        Booking.payment_status.in_((PaymentStatusEnum.AUTHORIZED, PaymentStatusEnum.CAPTURED)),
                        ~payout_completed,
                    ),
                    and_(
                        Booking.status == BookingStatusEnum.CANCELLED,
                        Booking.payment_status == PaymentStatusEnum.AUTHORIZED,
                    ),
                ),
                failed_legs < max_failed_legs,
            )
            .order_by(Booking.updated_at.asc())
            .limit(limit)
        )
        return list((await self.session.scalars(stmt)).all())

    @staticmethod
    def _visible_to(stmt: Select, user_id: UUID, role: RoleEnum) -> Select:
        if role == RoleEnum.USER:
            return stmt.where(Booking.user_id == user_id)
        if role == RoleEnum.INSTRUCTOR:
            return stmt.where(or_(Booking.instructor_id == user_id, Booking.user_id == user_id))
        return stmt

    async def list_bookings(
        self,
        user_id: UUID,
        role: RoleEnum,
        status: BookingStatusEnum | None,
        limit: int,
        offset: int,
        timeframe: BookingTimeframeEnum | None = None,
        now: datetime | None = None,
    ) -> tuple[list[Booking], int]:
        base_stmt: Select[tuple[Booking]] = self._visible_to(select(Booking), user_id, role)
        if status is not None:
            base_stmt = base_stmt.where(Booking.status == status)

        order_by = Booking.starts_at.desc()
        if timeframe == BookingTimeframeEnum.UPCOMING:
            base_stmt = base_stmt.where(Booking.starts_at >= now, Booking.status.in_(ACTIVE_STATUSES))
            order_by = Booking.starts_at.asc()
        elif timeframe == BookingTimeframeEnum.PAST:
            base_stmt = base_stmt.where(Booking.starts_at < now)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(order_by).limit(limit).offset(offset)
        items = list((await self.session.scalars(stmt)).all())
        return items, total

    async def booking_statistics(self, user_id: UUID, role: RoleEnum, revenue_since: datetime) -> dict[str, Any]:
        """Counts over every visible booking; revenue over completed lessons since ``revenue_since``."""
        in_revenue_window = and_(
            Booking.status == BookingStatusEnum.COMPLETED,
            Booking.starts_at >= revenue_since,
        )
        stmt = self._visible_to(
            select(
                func.count(Booking.id).label("total"),
                func.count(Booking.id).filter(Booking.status == BookingStatusEnum.COMPLETED).label("completed"),
                func.count(Booking.id).filter(Booking.status == BookingStatusEnum.CANCELLED).label("cancelled"),
                func.coalesce(func.sum(Booking.total_amount).filter(in_revenue_window), 0).label("revenue"),
                func.count(Booking.id).filter(in_revenue_window).label("revenue_bookings"),
            ),
            user_id,
            role,
        )
        row = (await self.session.execute(stmt)).one()
        return dict(row._mapping)
