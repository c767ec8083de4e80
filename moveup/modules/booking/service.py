"""Booking lifecycle service: creation, transitions and their side effects."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from moveup.core.config import get_settings
from moveup.core.database import get_db_session
from moveup.core.enums import (
    BookingEventEnum,
    BookingStatusEnum,
    BookingTimeframeEnum,
    NotificationTypeEnum,
    PaymentFailureEnum,
    PaymentStatusEnum,
    TransactionStatusEnum,
)
from moveup.core.locks import KeyedLock, LockTimeoutError, get_booking_lock, hold_many, instructor_day_key
from moveup.core.metrics import BOOKING_CONFLICTS_TOTAL, BOOKING_TRANSITIONS_TOTAL
from moveup.core.security import Actor
from moveup.modules.audit.repository import AuditRepository
from moveup.modules.billing.ledger import quantize_money
from moveup.modules.billing.service import PaymentCoordinator, build_payment_coordinator
from moveup.modules.booking.conflicts import Bookable, Conflict, ConflictResolver
from moveup.modules.booking.models import Booking
from moveup.modules.booking.repository import BookingRepository
from moveup.modules.booking.schemas import (
    BookingCreate,
    BookingRescheduleRequest,
    ConflictCheckRequest,
)
from moveup.modules.booking.state_machine import is_payment_consistent, next_status
from moveup.modules.directory.client import DirectoryClient, get_directory_client
from moveup.modules.notifications.events import build_booking_notifications
from moveup.modules.notifications.service import NotificationDispatchQueue, build_notification_queue
from moveup.modules.scheduling.repository import SchedulingRepository
from moveup.modules.scheduling.service import AvailabilityIndex
from moveup.shared.exceptions import (
    ConflictException,
    InvalidTransitionException,
    NotFoundException,
    UnauthorizedException,
    ValidationException,
)
from moveup.shared.utils import days_spanned, lesson_window, utc_now

logger = logging.getLogger(__name__)

settings = get_settings()

SWEEP_BATCH_SIZE = 200

# Queued ahead of the lesson; stale once the booking leaves CONFIRMED.
UPCOMING_LESSON_NOTIFICATIONS = [NotificationTypeEnum.BOOKING_REMINDER]

# Revenue figures cover the trailing year of completed lessons.
STATISTICS_REVENUE_WINDOW = timedelta(days=365)


@dataclass(frozen=True, slots=True)
class BookingStatistics:
    total_bookings: int
    completed_bookings: int
    cancelled_bookings: int
    total_revenue: Decimal
    average_booking_value: Decimal
    revenue_since: datetime


def validate_duration(duration_minutes: int) -> None:
    if duration_minutes <= 0 or duration_minutes > settings.booking_max_duration_minutes:
        raise ValidationException(
            f"Duration must be between 1 and {settings.booking_max_duration_minutes} minutes",
        )


class BookingService:
    """Owns every booking transition and fans out its payment and notification effects."""

    def __init__(
        self,
        booking_repository: BookingRepository,
        availability: AvailabilityIndex,
        payments: PaymentCoordinator,
        notifications: NotificationDispatchQueue,
        audit_repository: AuditRepository,
        directory: DirectoryClient,
        lock: KeyedLock,
    ) -> None:
        self.booking_repository = booking_repository
        self.availability = availability
        self.payments = payments
        self.notifications = notifications
        self.audit_repository = audit_repository
        self.directory = directory
        self.lock = lock
        self.conflicts = ConflictResolver(booking_repository)

    def _validate_actor_access(self, booking: Booking, actor: Actor) -> None:
        if actor.is_admin:
            return
        if booking.user_id == actor.id or booking.instructor_id == actor.id:
            return
        raise UnauthorizedException("You cannot manage this booking")

    async def _get_booking(self, booking_id: UUID) -> Booking:
        booking = await self.booking_repository.get_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found")
        return booking

    async def _apply(self, booking: Booking, event: BookingEventEnum, **changes: Any) -> Booking | None:
        """Compare-and-set transition; ``None`` when another writer moved the booking first."""
        source = booking.status
        target = next_status(source, event)
        if not await self.booking_repository.transition_status(booking.id, source, target, **changes):
            logger.info("Booking %s left %s before %s could be applied", booking.id, source, event)
            return None

        BOOKING_TRANSITIONS_TOTAL.labels(from_status=str(source), to_status=str(target)).inc()
        logger.info("Booking %s %s -> %s on %s", booking.id, source, target, event)
        return await self._get_booking(booking.id)

    async def _transition(self, booking: Booking, event: BookingEventEnum, **changes: Any) -> Booking:
        moved = await self._apply(booking, event, **changes)
        if moved is None:
            raise InvalidTransitionException(f"Booking {booking.id} changed concurrently, {event} was not applied")
        return moved

    async def _notify(
        self,
        notification_type: NotificationTypeEnum,
        booking: Booking,
        now: datetime,
        details: dict[str, Any] | None = None,
    ) -> None:
        drafts = build_booking_notifications(
            notification_type,
            booking,
            now,
            reminder_lead_minutes=settings.notification_reminder_lead_minutes,
            details=details,
        )
        await self.notifications.enqueue_many(drafts)

    async def _audit(self, actor_id: UUID | None, action: str, booking: Booking, payload: dict[str, Any]) -> None:
        await self.audit_repository.create_audit_log(
            actor_id=actor_id,
            action=action,
            entity_type="booking",
            entity_id=str(booking.id),
            payload={"status": str(booking.status), "payment_status": str(booking.payment_status), **payload},
        )

    async def _release_payment_hold(self, booking: Booking) -> None:
        """Refund an authorization that will never be captured."""
        if booking.payment_status == PaymentStatusEnum.AUTHORIZED:
            await self.payments.refund(booking)

    async def _after_cancel(self, booking: Booking, reason: str | None, now: datetime) -> None:
        await self.availability.release(booking.id)
        await self.notifications.withdraw_for_booking(booking.id, UPCOMING_LESSON_NOTIFICATIONS, now)
        await self._release_payment_hold(booking)
        await self._notify(NotificationTypeEnum.BOOKING_CANCELLED, booking, now, {"reason": reason})

    async def _after_no_show(self, booking: Booking, now: datetime) -> None:
        await self.availability.release(booking.id)
        await self.notifications.withdraw_for_booking(booking.id, UPCOMING_LESSON_NOTIFICATIONS, now)
        if settings.booking_no_show_forfeits_payment:
            await self.payments.settle_booking(booking)
        else:
            await self._release_payment_hold(booking)
        await self._notify(NotificationTypeEnum.BOOKING_NO_SHOW, booking, now)

    async def _after_complete(self, booking: Booking, now: datetime) -> None:
        await self.payments.settle_booking(booking)
        await self._notify(NotificationTypeEnum.LESSON_COMPLETED, booking, now)

    async def _create_booking(
        self,
        *,
        user_id: UUID,
        instructor_id: UUID,
        lesson_id: UUID,
        scheduled_date: date,
        scheduled_time: time,
        duration_minutes: int | None,
        notes: str | None,
        live_activity_id: str | None,
        wallet_pass_serial: str | None,
        rescheduled_from_booking_id: UUID | None = None,
    ) -> Booking:
        if instructor_id == user_id:
            raise ValidationException("Instructors cannot book their own lessons")

        lesson = await self.directory.get_lesson(lesson_id)
        if lesson is None:
            raise NotFoundException("Lesson not found")
        if lesson.instructor_id != instructor_id:
            raise ValidationException("Lesson is not taught by the requested instructor")
        if lesson.latitude is None or lesson.longitude is None:
            raise ValidationException("Lesson has no meeting location")
        if await self.directory.get_instructor(instructor_id) is None:
            raise NotFoundException("Instructor not found")
        if await self.directory.get_user(user_id) is None:
            raise NotFoundException("User not found")

        duration = duration_minutes or lesson.duration_minutes
        validate_duration(duration)

        now = utc_now()
        starts_at, ends_at = lesson_window(scheduled_date, scheduled_time, duration)
        if starts_at <= now:
            raise ValidationException("Cannot book a lesson in the past")
        if settings.booking_require_availability_slot and not await self.availability.covers(
            instructor_id,
            scheduled_date,
            starts_at,
            ends_at,
        ):
            raise ConflictException("Instructor is not available at the requested time")

        keys = [instructor_day_key(instructor_id, day) for day in days_spanned(starts_at, ends_at)]
        try:
            async with hold_many(self.lock, keys):
                for key in sorted(set(keys)):
                    await self.booking_repository.lock_instructor_day(key)

                outcome = await self.conflicts.resolve(instructor_id, scheduled_date, scheduled_time, duration)
                if isinstance(outcome, Conflict):
                    BOOKING_CONFLICTS_TOTAL.inc()
                    logger.info(
                        "Booking request for instructor %s at %s conflicts with %s",
                        instructor_id,
                        starts_at,
                        outcome.existing_booking_ids,
                    )
                    raise ConflictException(
                        "Instructor already has a booking in this time window",
                        conflicting_ids=outcome.existing_booking_ids,
                    )

                booking = await self.booking_repository.create_booking(
                    user_id=user_id,
                    instructor_id=instructor_id,
                    lesson_id=lesson_id,
                    scheduled_date=scheduled_date,
                    scheduled_time=scheduled_time,
                    duration_minutes=duration,
                    starts_at=outcome.starts_at,
                    ends_at=outcome.ends_at,
                    payment_status=PaymentStatusEnum.PENDING,
                    total_amount=lesson.price,
                    currency=lesson.currency,
                    lesson_title=lesson.title,
                    lesson_latitude=lesson.latitude,
                    lesson_longitude=lesson.longitude,
                    live_activity_id=live_activity_id,
                    wallet_pass_serial=wallet_pass_serial,
                    notes=notes,
                    rescheduled_from_booking_id=rescheduled_from_booking_id,
                )
                if not await self.availability.reserve(
                    instructor_id,
                    scheduled_date,
                    booking.starts_at,
                    booking.ends_at,
                    booking.id,
                ):
                    logger.warning("Availability reservation for booking %s overlaps a stale reservation", booking.id)
        except LockTimeoutError as exc:
            raise ConflictException("Instructor calendar is busy, please retry") from exc

        BOOKING_TRANSITIONS_TOTAL.labels(from_status="none", to_status=str(BookingStatusEnum.PENDING)).inc()
        logger.info("Booking %s created for instructor %s at %s", booking.id, instructor_id, booking.starts_at)
        await self._notify(NotificationTypeEnum.BOOKING_REQUESTED, booking, now)
        return booking

    async def create_booking(self, payload: BookingCreate, actor: Actor) -> Booking:
        """Create a PENDING booking after resolving conflicts under the instructor-day lock."""
        booking = await self._create_booking(
            user_id=actor.id,
            instructor_id=payload.instructor_id,
            lesson_id=payload.lesson_id,
            scheduled_date=payload.scheduled_date,
            scheduled_time=payload.scheduled_time,
            duration_minutes=payload.duration_minutes,
            notes=payload.notes,
            live_activity_id=payload.live_activity_id,
            wallet_pass_serial=payload.wallet_pass_serial,
        )
        await self._audit(actor.id, "booking.create", booking, {"starts_at": booking.starts_at.isoformat()})
        return booking

    async def check_conflicts(self, payload: ConflictCheckRequest, actor: Actor) -> Bookable | Conflict:
        """Advisory conflict answer; creation re-checks under the lock."""
        validate_duration(payload.duration_minutes)
        return await self.conflicts.resolve(
            payload.instructor_id,
            payload.scheduled_date,
            payload.scheduled_time,
            payload.duration_minutes,
        )

    async def authorize_payment(self, booking_id: UUID, payer_token: str, actor: Actor) -> Booking:
        """Authorize payment and confirm, or cancel on decline."""
        booking = await self._get_booking(booking_id)
        if not actor.is_admin and booking.user_id != actor.id:
            raise UnauthorizedException("Only the booking user can pay for it")
        next_status(booking.status, BookingEventEnum.PAYMENT_AUTHORIZED)

        transaction = await self.payments.authorize(booking, payer_token)
        now = utc_now()

        if transaction.status == TransactionStatusEnum.COMPLETED:
            confirmed = await self._apply(
                booking,
                BookingEventEnum.PAYMENT_AUTHORIZED,
                confirmed_at=now,
                payment_status=PaymentStatusEnum.AUTHORIZED,
            )
            if confirmed is None:
                # Cancelled or expired while the processor was answering.
                booking = await self._get_booking(booking_id)
                await self.payments.refund(booking)
                await self._audit(actor.id, "booking.payment.orphaned", booking, {"transaction_id": str(transaction.id)})
                return booking

            await self._notify(NotificationTypeEnum.PAYMENT_SUCCESS, confirmed, now)
            await self._notify(NotificationTypeEnum.BOOKING_CONFIRMATION, confirmed, now)
            await self._notify(NotificationTypeEnum.BOOKING_REMINDER, confirmed, now)
            await self._audit(actor.id, "booking.confirm", confirmed, {"transaction_id": str(transaction.id)})
            return confirmed

        await self._notify(
            NotificationTypeEnum.PAYMENT_FAILED,
            booking,
            now,
            {"failure_code": str(transaction.failure_code)},
        )
        if transaction.failure_code != PaymentFailureEnum.DECLINED:
            # Timeouts and outages leave the booking pending so the payer can retry.
            await self._audit(actor.id, "booking.payment.failed", booking, {"transaction_id": str(transaction.id)})
            return booking

        reason = f"Payment declined: {transaction.failure_reason}"
        cancelled = await self._transition(
            booking,
            BookingEventEnum.PAYMENT_DECLINED,
            cancelled_at=now,
            cancellation_reason=reason,
            payment_status=PaymentStatusEnum.FAILED,
        )
        await self.availability.release(cancelled.id)
        await self._notify(NotificationTypeEnum.BOOKING_CANCELLED, cancelled, now, {"reason": reason})
        await self._audit(actor.id, "booking.payment.declined", cancelled, {"transaction_id": str(transaction.id)})
        return cancelled

    async def _cancel(self, booking: Booking, reason: str | None, actor: Actor, now: datetime) -> Booking:
        self._validate_actor_access(booking, actor)
        return await self._transition(
            booking,
            BookingEventEnum.CANCEL,
            cancelled_at=now,
            cancelled_by=actor.id,
            cancellation_reason=reason,
        )

    async def cancel_booking(self, booking_id: UUID, reason: str | None, actor: Actor) -> Booking:
        """Cancel a pending or confirmed booking and refund any uncaptured authorization."""
        now = utc_now()
        booking = await self._cancel(await self._get_booking(booking_id), reason, actor, now)
        await self._after_cancel(booking, reason, now)
        await self._audit(actor.id, "booking.cancel", booking, {"reason": reason})
        return booking

    async def complete_booking(self, booking_id: UUID, actor: Actor) -> Booking:
        """Instructor marks an in-progress lesson done; triggers capture and payout."""
        booking = await self._get_booking(booking_id)
        if not actor.is_admin and booking.instructor_id != actor.id:
            raise UnauthorizedException("Only the instructor can complete this booking")

        now = utc_now()
        booking = await self._transition(booking, BookingEventEnum.COMPLETE, completed_at=now)
        await self._after_complete(booking, now)
        await self._audit(actor.id, "booking.complete", booking, {})
        return booking

    async def reschedule_booking(
        self,
        booking_id: UUID,
        payload: BookingRescheduleRequest,
        actor: Actor,
    ) -> Booking:
        """Reschedule as cancel + new PENDING booking that needs its own authorization."""
        old_booking = await self._get_booking(booking_id)
        if not actor.is_admin and old_booking.user_id != actor.id:
            raise UnauthorizedException("Only the booking user can reschedule it")

        now = utc_now()
        reason = "Rescheduled by user"
        old_booking = await self._cancel(old_booking, reason, actor, now)
        # The old reservation must be gone before the new window is reserved.
        await self.availability.release(old_booking.id)

        new_booking = await self._create_booking(
            user_id=old_booking.user_id,
            instructor_id=old_booking.instructor_id,
            lesson_id=old_booking.lesson_id,
            scheduled_date=payload.scheduled_date,
            scheduled_time=payload.scheduled_time,
            duration_minutes=payload.duration_minutes or old_booking.duration_minutes,
            notes=old_booking.notes,
            live_activity_id=old_booking.live_activity_id,
            wallet_pass_serial=old_booking.wallet_pass_serial,
            rescheduled_from_booking_id=old_booking.id,
        )
        await self._after_cancel(old_booking, reason, now)
        await self._audit(
            actor.id,
            "booking.reschedule",
            new_booking,
            {"old_booking_id": str(old_booking.id)},
        )
        return new_booking

    async def record_check_in(
        self,
        booking: Booking,
        checked_in_at: datetime,
        distance_m: float,
        qr_issued_at: datetime,
    ) -> Booking | None:
        """CONFIRMED -> IN_PROGRESS for an accepted scan; ``None`` if another scan won."""
        moved = await self._apply(
            booking,
            BookingEventEnum.CHECK_IN,
            checked_in_at=checked_in_at,
            check_in_distance_m=distance_m,
            check_in_qr_issued_at=qr_issued_at,
        )
        if moved is None:
            return None
        await self._notify(
            NotificationTypeEnum.INSTRUCTOR_CHECK_IN,
            moved,
            checked_in_at,
            {"distance_m": round(distance_m, 1)},
        )
        await self._notify(NotificationTypeEnum.LIVE_ACTIVITY_UPDATE, moved, checked_in_at)
        return moved

    async def run_lifecycle_sweep(self, now: datetime | None = None) -> dict[str, int]:
        """Expire unpaid requests, mark no-shows and close overrunning lessons."""
        now = now or utc_now()
        stats = {"cancelled": 0, "no_show": 0, "completed": 0, "skipped": 0}

        stale = await self.booking_repository.find_stale_pending(
            now - timedelta(minutes=settings.booking_pending_timeout_minutes),
            SWEEP_BATCH_SIZE,
        )
        for booking in stale:
            reason = "Payment was not authorized in time"
            moved = await self._apply(
                booking,
                BookingEventEnum.CANCEL,
                cancelled_at=now,
                cancellation_reason=reason,
            )
            if moved is None:
                stats["skipped"] += 1
                continue
            await self._after_cancel(moved, reason, now)
            await self._audit(None, "booking.expire", moved, {})
            stats["cancelled"] += 1

        unattended = await self.booking_repository.find_unattended(
            now - timedelta(minutes=settings.booking_no_show_grace_minutes),
            SWEEP_BATCH_SIZE,
        )
        for booking in unattended:
            moved = await self._apply(booking, BookingEventEnum.NO_SHOW_TIMEOUT, no_show_at=now)
            if moved is None:
                stats["skipped"] += 1
                continue
            await self._after_no_show(moved, now)
            await self._audit(None, "booking.no_show", moved, {})
            stats["no_show"] += 1

        overrunning = await self.booking_repository.find_overrunning(
            now - timedelta(minutes=settings.booking_completion_grace_minutes),
            SWEEP_BATCH_SIZE,
        )
        for booking in overrunning:
            moved = await self._apply(booking, BookingEventEnum.COMPLETE, completed_at=now)
            if moved is None:
                stats["skipped"] += 1
                continue
            await self._after_complete(moved, now)
            await self._audit(None, "booking.auto_complete", moved, {})
            stats["completed"] += 1

        logger.info("Booking lifecycle sweep at %s: %s", now.isoformat(), stats)
        return stats

    async def sweep_lifecycle(self, actor: Actor) -> dict[str, int]:
        """Run the lifecycle sweep on demand (admin only)."""
        if not actor.is_admin:
            raise UnauthorizedException("Only admin can run the lifecycle sweep")
        return await self.run_lifecycle_sweep()

    async def reconcile_payment(self, booking_id: UUID, actor: Actor) -> PaymentStatusEnum:
        """Recompute the payment projection from the ledger (admin only)."""
        if not actor.is_admin:
            raise UnauthorizedException("Only admin can reconcile payments")
        booking = await self._get_booking(booking_id)
        return await self.payments.reconcile_booking(booking)

    async def reconcile_recent(self, since: datetime) -> int:
        """Reconcile payment projections of bookings touched since ``since``."""
        bookings = await self.booking_repository.find_updated_since(since, SWEEP_BATCH_SIZE)
        changed = 0
        for booking in bookings:
            previous = booking.payment_status
            payment_status = await self.payments.reconcile_booking(booking)
            if payment_status != previous:
                changed += 1
            if not is_payment_consistent(booking.status, payment_status):
                logger.warning(
                    "Booking %s is %s but its ledger says %s",
                    booking.id,
                    booking.status,
                    payment_status,
                )
        return changed

    async def retry_payment_legs(self) -> dict[str, int]:
        """Re-run capture, payout or refund for closed bookings whose leg failed earlier."""
        stats = {"settled": 0, "refunded": 0, "failed": 0, "skipped": 0}
        bookings = await self.booking_repository.find_payment_followups(
            settings.payment_retry_max_failed_legs,
            SWEEP_BATCH_SIZE,
        )
        for booking in bookings:
            refund = booking.payment_status == PaymentStatusEnum.AUTHORIZED and (
                booking.status == BookingStatusEnum.CANCELLED
                or (booking.status == BookingStatusEnum.NO_SHOW and not settings.booking_no_show_forfeits_payment)
            )
            try:
                if refund:
                    transactions = [await self.payments.refund(booking)]
                else:
                    transactions = await self.payments.settle_booking(booking)
            except ConflictException as exc:
                logger.warning("Payment retry for booking %s skipped: %s", booking.id, exc.message)
                stats["skipped"] += 1
                continue

            if all(transaction.status == TransactionStatusEnum.COMPLETED for transaction in transactions):
                stats["refunded" if refund else "settled"] += 1
            else:
                stats["failed"] += 1
        if bookings:
            logger.info("Payment leg retry: %s", stats)
        return stats

    async def get_booking(self, booking_id: UUID, actor: Actor) -> Booking:
        booking = await self._get_booking(booking_id)
        self._validate_actor_access(booking, actor)
        return booking

    async def list_bookings(
        self,
        actor: Actor,
        status: BookingStatusEnum | None,
        limit: int,
        offset: int,
        timeframe: BookingTimeframeEnum | None = None,
    ) -> tuple[list[Booking], int]:
        """List bookings for actor according to role, optionally only upcoming or past ones."""
        return await self.booking_repository.list_bookings(
            actor.id,
            actor.role,
            status,
            limit,
            offset,
            timeframe=timeframe,
            now=utc_now(),
        )

    async def get_statistics(self, actor: Actor) -> BookingStatistics:
        """Totals over the caller's bookings and revenue of their recent completed lessons."""
        revenue_since = utc_now() - STATISTICS_REVENUE_WINDOW
        row = await self.booking_repository.booking_statistics(actor.id, actor.role, revenue_since)
        revenue = quantize_money(Decimal(row["revenue"]))
        average = quantize_money(revenue / row["revenue_bookings"]) if row["revenue_bookings"] else Decimal("0.00")
        return BookingStatistics(
            total_bookings=row["total"],
            completed_bookings=row["completed"],
            cancelled_bookings=row["cancelled"],
            total_revenue=revenue,
            average_booking_value=average,
            revenue_since=revenue_since,
        )


def build_booking_service(session: AsyncSession) -> BookingService:
    """Service wired for one session."""
    return BookingService(
        booking_repository=BookingRepository(session),
        availability=AvailabilityIndex(SchedulingRepository(session)),
        payments=build_payment_coordinator(session),
        notifications=build_notification_queue(session),
        audit_repository=AuditRepository(session),
        directory=get_directory_client(),
        lock=get_booking_lock(),
    )


async def get_booking_service(session: AsyncSession = Depends(get_db_session)) -> BookingService:
    """Dependency provider for booking service."""
    return build_booking_service(session)
