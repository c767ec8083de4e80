from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError as PydanticValidationError

import moveup.modules.booking.router as booking_router_module
import moveup.modules.booking.service as booking_service_module
from fakes import FIXED_NOW, LESSON_DAY, BookingEnv, build_booking_env
from moveup.core.enums import (
    BookingStatusEnum,
    BookingTimeframeEnum,
    NotificationStatusEnum,
    NotificationTypeEnum,
    PaymentFailureEnum,
    PaymentStatusEnum,
    RoleEnum,
    TransactionStatusEnum,
    TransactionTypeEnum,
)
from moveup.core.locks import instructor_day_key
from moveup.core.security import Actor
from moveup.modules.billing.processor import SandboxPaymentProcessor
from moveup.modules.booking.conflicts import Bookable, Conflict
from moveup.modules.booking.schemas import BookingCreate, BookingRescheduleRequest, ConflictCheckRequest
from moveup.shared.exceptions import (
    ConflictException,
    InvalidTransitionException,
    NotFoundException,
    UnauthorizedException,
    ValidationException,
)


def user_actor(env: BookingEnv) -> Actor:
    return Actor(id=env.user_id, role=RoleEnum.USER)


def instructor_actor(env: BookingEnv) -> Actor:
    return Actor(id=env.instructor_id, role=RoleEnum.INSTRUCTOR)


def booking_request(env: BookingEnv, at: time = time(10, 0), **overrides) -> BookingCreate:
    values = {
        "instructor_id": env.instructor_id,
        "lesson_id": env.lesson_id,
        "scheduled_date": LESSON_DAY,
        "scheduled_time": at,
    }
    values.update(overrides)
    return BookingCreate(**values)


async def create_confirmed(env: BookingEnv, at: time = time(10, 0)):
    booking = await env.service.create_booking(booking_request(env, at), user_actor(env))
    return await env.service.authorize_payment(booking.id, "tok_visa", user_actor(env))


@pytest.mark.asyncio
async def test_create_booking_is_pending_and_reserves_window(booking_env: BookingEnv) -> None:
    booking = await booking_env.service.create_booking(booking_request(booking_env), user_actor(booking_env))

    assert booking.status == BookingStatusEnum.PENDING
    assert booking.payment_status == PaymentStatusEnum.PENDING
    assert booking.starts_at == datetime(2026, 3, 3, 10, 0, tzinfo=UTC)
    assert booking.ends_at == datetime(2026, 3, 3, 11, 0, tzinfo=UTC)
    assert booking.total_amount == Decimal("40.00")
    assert booking.lesson_title == "Morning run technique"
    assert booking_env.bookings.locked_keys == [instructor_day_key(booking_env.instructor_id, LESSON_DAY)]

    reservation = booking_env.scheduling.reservation_for(booking.id)
    assert reservation is not None
    assert reservation.released_at is None
    assert booking_env.notifications.types_for(booking.id) == [NotificationTypeEnum.BOOKING_REQUESTED]
    assert booking_env.notifications.tasks[0].recipient_id == booking_env.instructor_id
    assert "booking.create" in booking_env.audit.actions()


@pytest.mark.asyncio
async def test_overlapping_request_reports_conflicting_booking(booking_env: BookingEnv) -> None:
    first = await booking_env.service.create_booking(booking_request(booking_env), user_actor(booking_env))

    with pytest.raises(ConflictException) as exc_info:
        await booking_env.service.create_booking(
            booking_request(booking_env, time(10, 30)),
            user_actor(booking_env),
        )

    assert exc_info.value.conflicting_ids == [first.id]
    assert exc_info.value.details() == {"conflicting_ids": [str(first.id)]}


@pytest.mark.asyncio
async def test_back_to_back_lessons_do_not_conflict(booking_env: BookingEnv) -> None:
    await booking_env.service.create_booking(booking_request(booking_env, time(10, 0)), user_actor(booking_env))
    second = await booking_env.service.create_booking(
        booking_request(booking_env, time(11, 0)),
        user_actor(booking_env),
    )

    assert second.status == BookingStatusEnum.PENDING


@pytest.mark.asyncio
async def test_cancelled_booking_frees_its_window(booking_env: BookingEnv) -> None:
    first = await booking_env.service.create_booking(booking_request(booking_env), user_actor(booking_env))
    await booking_env.service.cancel_booking(first.id, "changed plans", user_actor(booking_env))

    again = await booking_env.service.create_booking(booking_request(booking_env), user_actor(booking_env))

    assert again.status == BookingStatusEnum.PENDING


@pytest.mark.asyncio
async def test_concurrent_requests_for_same_window_create_one_booking(booking_env: BookingEnv) -> None:
    results = await asyncio.gather(
        *(
            booking_env.service.create_booking(booking_request(booking_env), user_actor(booking_env))
            for _ in range(5)
        ),
        return_exceptions=True,
    )

    created = [item for item in results if not isinstance(item, BaseException)]
    conflicts = [item for item in results if isinstance(item, ConflictException)]
    assert len(created) == 1
    assert len(conflicts) == 4
    assert all(item.conflicting_ids == [created[0].id] for item in conflicts)


@pytest.mark.asyncio
async def test_check_conflicts_is_advisory(booking_env: BookingEnv) -> None:
    booked = await booking_env.service.create_booking(booking_request(booking_env), user_actor(booking_env))

    busy = await booking_env.service.check_conflicts(
        ConflictCheckRequest(
            instructor_id=booking_env.instructor_id,
            scheduled_date=LESSON_DAY,
            scheduled_time=time(10, 45),
            duration_minutes=30,
        ),
        user_actor(booking_env),
    )
    free = await booking_env.service.check_conflicts(
        ConflictCheckRequest(
            instructor_id=booking_env.instructor_id,
            scheduled_date=LESSON_DAY,
            scheduled_time=time(11, 0),
            duration_minutes=30,
        ),
        user_actor(booking_env),
    )

    assert isinstance(busy, Conflict)
    assert busy.existing_booking_ids == [booked.id]
    assert isinstance(free, Bookable)


def test_conflict_check_request_caps_duration_at_one_day() -> None:
    with pytest.raises(PydanticValidationError):
        ConflictCheckRequest(
            instructor_id=uuid4(),
            scheduled_date=LESSON_DAY,
            scheduled_time=time(10, 0),
            duration_minutes=10**10,
        )


@pytest.mark.asyncio
async def test_check_conflicts_applies_duration_limit(booking_env: BookingEnv) -> None:
    payload = ConflictCheckRequest.model_construct(
        instructor_id=booking_env.instructor_id,
        scheduled_date=LESSON_DAY,
        scheduled_time=time(10, 0),
        duration_minutes=10**10,
    )

    with pytest.raises(ValidationException):
        await booking_env.service.check_conflicts(payload, user_actor(booking_env))


@pytest.mark.asyncio
async def test_window_past_the_calendar_end_is_validation_error(booking_env: BookingEnv) -> None:
    last_day = date(9999, 12, 31)

    with pytest.raises(ValidationException):
        await booking_env.service.check_conflicts(
            ConflictCheckRequest(
                instructor_id=booking_env.instructor_id,
                scheduled_date=last_day,
                scheduled_time=time(23, 30),
                duration_minutes=60,
            ),
            user_actor(booking_env),
        )
    with pytest.raises(ValidationException):
        await booking_env.service.create_booking(
            booking_request(booking_env, time(23, 30), scheduled_date=last_day),
            user_actor(booking_env),
        )


@pytest.mark.asyncio
async def test_window_ending_on_the_last_calendar_day_is_checked(booking_env: BookingEnv) -> None:
    outcome = await booking_env.service.check_conflicts(
        ConflictCheckRequest(
            instructor_id=booking_env.instructor_id,
            scheduled_date=date(9999, 12, 31),
            scheduled_time=time(22, 0),
            duration_minutes=60,
        ),
        user_actor(booking_env),
    )

    assert isinstance(outcome, Bookable)
    assert outcome.ends_at == datetime(9999, 12, 31, 23, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_instructor_cannot_book_own_lesson(booking_env: BookingEnv) -> None:
    with pytest.raises(ValidationException):
        await booking_env.service.create_booking(booking_request(booking_env), instructor_actor(booking_env))


@pytest.mark.asyncio
async def test_booking_in_the_past_is_rejected(booking_env: BookingEnv) -> None:
    with pytest.raises(ValidationException):
        await booking_env.service.create_booking(
            booking_request(booking_env, scheduled_date=date(2026, 3, 1)),
            user_actor(booking_env),
        )


@pytest.mark.asyncio
async def test_booking_outside_availability_is_rejected(booking_env: BookingEnv) -> None:
    with pytest.raises(ConflictException):
        await booking_env.service.create_booking(
            booking_request(booking_env, time(17, 30)),
            user_actor(booking_env),
        )
    assert booking_env.bookings.bookings == {}


@pytest.mark.asyncio
async def test_lesson_of_other_instructor_is_rejected(booking_env: BookingEnv) -> None:
    with pytest.raises(ValidationException):
        await booking_env.service.create_booking(
            booking_request(booking_env, instructor_id=uuid4()),
            user_actor(booking_env),
        )


@pytest.mark.asyncio
async def test_unknown_lesson_is_not_found(booking_env: BookingEnv) -> None:
    with pytest.raises(NotFoundException):
        await booking_env.service.create_booking(
            booking_request(booking_env, lesson_id=uuid4()),
            user_actor(booking_env),
        )


@pytest.mark.asyncio
async def test_duration_above_limit_is_rejected(booking_env: BookingEnv) -> None:
    with pytest.raises(ValidationException):
        await booking_env.service.create_booking(
            booking_request(booking_env, duration_minutes=24 * 60),
            user_actor(booking_env),
        )


@pytest.mark.asyncio
async def test_authorized_payment_confirms_booking(booking_env: BookingEnv) -> None:
    booking = await create_confirmed(booking_env)

    assert booking.status == BookingStatusEnum.CONFIRMED
    assert booking.payment_status == PaymentStatusEnum.AUTHORIZED
    assert booking.confirmed_at == FIXED_NOW

    rows = booking_env.billing.rows_for(booking.id)
    assert [(row.type, row.status) for row in rows] == [
        (TransactionTypeEnum.AUTHORIZATION, TransactionStatusEnum.COMPLETED),
    ]
    assert rows[0].idempotency_key == f"{booking.id}:authorization:1"
    assert booking_env.notifications.types_for(booking.id) == [
        NotificationTypeEnum.BOOKING_REQUESTED,
        NotificationTypeEnum.PAYMENT_SUCCESS,
        NotificationTypeEnum.BOOKING_CONFIRMATION,
        NotificationTypeEnum.BOOKING_REMINDER,
    ]
    reminder = booking_env.notifications.tasks[-1]
    assert reminder.scheduled_for == booking.starts_at - timedelta(minutes=60)


@pytest.mark.asyncio
async def test_declined_payment_cancels_booking(booking_env: BookingEnv) -> None:
    booking = await booking_env.service.create_booking(booking_request(booking_env), user_actor(booking_env))

    cancelled = await booking_env.service.authorize_payment(
        booking.id,
        "decline_insufficient_funds",
        user_actor(booking_env),
    )

    assert cancelled.status == BookingStatusEnum.CANCELLED
    assert cancelled.payment_status == PaymentStatusEnum.FAILED
    assert "insufficient_funds" in cancelled.cancellation_reason
    assert booking_env.scheduling.reservation_for(booking.id).released_at is not None
    rows = booking_env.billing.rows_for(booking.id)
    assert rows[0].status == TransactionStatusEnum.FAILED
    assert rows[0].failure_code == PaymentFailureEnum.DECLINED
    assert NotificationTypeEnum.PAYMENT_FAILED in booking_env.notifications.types_for(booking.id)
    assert NotificationTypeEnum.BOOKING_CANCELLED in booking_env.notifications.types_for(booking.id)


@pytest.mark.asyncio
async def test_processor_outage_keeps_booking_pending_for_retry(booking_env: BookingEnv) -> None:
    booking = await booking_env.service.create_booking(booking_request(booking_env), user_actor(booking_env))

    failed = await booking_env.service.authorize_payment(booking.id, "error_gateway", user_actor(booking_env))

    assert failed.status == BookingStatusEnum.PENDING
    assert failed.payment_status == PaymentStatusEnum.FAILED

    confirmed = await booking_env.service.authorize_payment(booking.id, "tok_visa", user_actor(booking_env))

    assert confirmed.status == BookingStatusEnum.CONFIRMED
    assert confirmed.payment_status == PaymentStatusEnum.AUTHORIZED
    keys = [row.idempotency_key for row in booking_env.billing.rows_for(booking.id)]
    assert keys == [f"{booking.id}:authorization:1", f"{booking.id}:authorization:2"]


class SlowProcessor(SandboxPaymentProcessor):
    async def authorize(self, amount, currency, payer_token, idempotency_key):
        await asyncio.sleep(1)
        return await super().authorize(amount, currency, payer_token, idempotency_key)


@pytest.mark.asyncio
async def test_processor_timeout_is_recorded_as_failure(fixed_now: datetime) -> None:
    env = build_booking_env(processor=SlowProcessor(), processor_timeout_seconds=0.01)
    booking = await env.service.create_booking(booking_request(env), user_actor(env))

    result = await env.service.authorize_payment(booking.id, "tok_visa", user_actor(env))

    assert result.status == BookingStatusEnum.PENDING
    row = env.billing.rows_for(booking.id)[0]
    assert row.status == TransactionStatusEnum.FAILED
    assert row.failure_code == PaymentFailureEnum.TIMEOUT


class CancellingProcessor(SandboxPaymentProcessor):
    """Cancels the booking while the authorization is in flight."""

    def __init__(self) -> None:
        super().__init__()
        self.env: BookingEnv | None = None

    async def authorize(self, amount, currency, payer_token, idempotency_key):
        stored = self.env.bookings.bookings
        for booking_id, booking in list(stored.items()):
            stored[booking_id] = replace(booking, status=BookingStatusEnum.CANCELLED)
        return await super().authorize(amount, currency, payer_token, idempotency_key)


@pytest.mark.asyncio
async def test_authorization_after_cancellation_is_refunded(fixed_now: datetime) -> None:
    processor = CancellingProcessor()
    env = build_booking_env(processor=processor)
    processor.env = env
    booking = await env.service.create_booking(booking_request(env), user_actor(env))

    result = await env.service.authorize_payment(booking.id, "tok_visa", user_actor(env))

    assert result.status == BookingStatusEnum.CANCELLED
    assert result.payment_status == PaymentStatusEnum.REFUNDED
    assert [row.type for row in env.billing.rows_for(booking.id)] == [
        TransactionTypeEnum.AUTHORIZATION,
        TransactionTypeEnum.REFUND,
    ]
    assert "booking.payment.orphaned" in env.audit.actions()


@pytest.mark.asyncio
async def test_only_booking_user_can_pay(booking_env: BookingEnv) -> None:
    booking = await booking_env.service.create_booking(booking_request(booking_env), user_actor(booking_env))

    with pytest.raises(UnauthorizedException):
        await booking_env.service.authorize_payment(booking.id, "tok_visa", Actor(id=uuid4(), role=RoleEnum.USER))


@pytest.mark.asyncio
async def test_paying_cancelled_booking_is_invalid_transition(booking_env: BookingEnv) -> None:
    booking = await booking_env.service.create_booking(booking_request(booking_env), user_actor(booking_env))
    await booking_env.service.cancel_booking(booking.id, None, user_actor(booking_env))

    with pytest.raises(InvalidTransitionException):
        await booking_env.service.authorize_payment(booking.id, "tok_visa", user_actor(booking_env))
    assert booking_env.billing.rows_for(booking.id) == []


@pytest.mark.asyncio
async def test_cancel_confirmed_booking_refunds_authorization(booking_env: BookingEnv) -> None:
    booking = await create_confirmed(booking_env)

    cancelled = await booking_env.service.cancel_booking(booking.id, "sick", user_actor(booking_env))

    assert cancelled.status == BookingStatusEnum.CANCELLED
    assert cancelled.cancelled_by == booking_env.user_id
    assert cancelled.payment_status == PaymentStatusEnum.REFUNDED
    assert booking_env.scheduling.reservation_for(booking.id).released_at is not None
    cancelled_tasks = [
        task for task in booking_env.notifications.tasks if task.type == NotificationTypeEnum.BOOKING_CANCELLED
    ]
    assert {task.recipient_id for task in cancelled_tasks} == {booking_env.user_id, booking_env.instructor_id}


def reminder_tasks(env: BookingEnv, booking_id) -> list:
    return [
        task
        for task in env.notifications.tasks
        if task.related_booking_id == booking_id and task.type == NotificationTypeEnum.BOOKING_REMINDER
    ]


@pytest.mark.asyncio
async def test_cancelled_booking_does_not_send_its_reminder(booking_env: BookingEnv) -> None:
    booking = await create_confirmed(booking_env)
    assert [task.status for task in reminder_tasks(booking_env, booking.id)] == [NotificationStatusEnum.PENDING]

    await booking_env.service.cancel_booking(booking.id, "sick", user_actor(booking_env))
    await booking_env.service.notifications.run_once(booking.starts_at - timedelta(minutes=30))

    assert [task.status for task in reminder_tasks(booking_env, booking.id)] == [NotificationStatusEnum.WITHDRAWN]
    delivered_types = {payload["type"] for _, _, payload in booking_env.service.notifications.sender.deliveries}
    assert NotificationTypeEnum.BOOKING_REMINDER.value not in delivered_types
    assert NotificationTypeEnum.BOOKING_CANCELLED.value in delivered_types


@pytest.mark.asyncio
async def test_rescheduled_booking_withdraws_old_reminder(booking_env: BookingEnv) -> None:
    old_booking = await create_confirmed(booking_env)

    await booking_env.service.reschedule_booking(
        old_booking.id,
        BookingRescheduleRequest(scheduled_date=LESSON_DAY, scheduled_time=time(15, 0)),
        user_actor(booking_env),
    )

    assert [task.status for task in reminder_tasks(booking_env, old_booking.id)] == [
        NotificationStatusEnum.WITHDRAWN,
    ]


@pytest.mark.asyncio
async def test_stranger_cannot_cancel(booking_env: BookingEnv) -> None:
    booking = await create_confirmed(booking_env)

    with pytest.raises(UnauthorizedException):
        await booking_env.service.cancel_booking(booking.id, None, Actor(id=uuid4(), role=RoleEnum.USER))


@pytest.mark.asyncio
async def test_cancel_twice_is_invalid_transition(booking_env: BookingEnv) -> None:
    booking = await create_confirmed(booking_env)
    await booking_env.service.cancel_booking(booking.id, None, user_actor(booking_env))

    with pytest.raises(InvalidTransitionException):
        await booking_env.service.cancel_booking(booking.id, None, user_actor(booking_env))


@pytest.mark.asyncio
async def test_check_in_then_complete_captures_and_pays_out(booking_env: BookingEnv) -> None:
    wallet = await booking_env.billing.create_wallet(booking_env.instructor_id, "EUR")
    wallet.payout_account_id = "acct_coach"
    booking = await create_confirmed(booking_env)

    started = await booking_env.service.record_check_in(
        booking,
        booking.starts_at,
        12.5,
        booking.starts_at - timedelta(minutes=1),
    )
    assert started.status == BookingStatusEnum.IN_PROGRESS
    assert started.check_in_distance_m == 12.5

    completed = await booking_env.service.complete_booking(booking.id, instructor_actor(booking_env))

    assert completed.status == BookingStatusEnum.COMPLETED
    assert completed.payment_status == PaymentStatusEnum.CAPTURED
    rows = booking_env.billing.rows_for(booking.id)
    assert [(row.type, row.status) for row in rows] == [
        (TransactionTypeEnum.AUTHORIZATION, TransactionStatusEnum.COMPLETED),
        (TransactionTypeEnum.CAPTURE, TransactionStatusEnum.COMPLETED),
        (TransactionTypeEnum.PAYOUT, TransactionStatusEnum.COMPLETED),
    ]
    payout = rows[-1]
    assert payout.amount == Decimal("38.00")
    assert payout.platform_fee == Decimal("2.00")
    assert wallet.balance == Decimal("38.00")
    assert wallet.total_lessons == 1
    assert NotificationTypeEnum.LESSON_COMPLETED in booking_env.notifications.types_for(booking.id)


@pytest.mark.asyncio
async def test_second_check_in_loses_the_race(booking_env: BookingEnv) -> None:
    booking = await create_confirmed(booking_env)

    stale = replace(booking)

    first = await booking_env.service.record_check_in(booking, booking.starts_at, 3.0, booking.starts_at)
    second = await booking_env.service.record_check_in(stale, booking.starts_at, 3.0, booking.starts_at)

    assert first is not None
    assert second is None


@pytest.mark.asyncio
async def test_only_instructor_can_complete(booking_env: BookingEnv) -> None:
    booking = await create_confirmed(booking_env)
    await booking_env.service.record_check_in(booking, booking.starts_at, 3.0, booking.starts_at)

    with pytest.raises(UnauthorizedException):
        await booking_env.service.complete_booking(booking.id, user_actor(booking_env))


@pytest.mark.asyncio
async def test_complete_requires_check_in(booking_env: BookingEnv) -> None:
    booking = await create_confirmed(booking_env)

    with pytest.raises(InvalidTransitionException):
        await booking_env.service.complete_booking(booking.id, instructor_actor(booking_env))


@pytest.mark.asyncio
async def test_reschedule_is_cancel_plus_new_pending_booking(booking_env: BookingEnv) -> None:
    old_booking = await create_confirmed(booking_env)

    new_booking = await booking_env.service.reschedule_booking(
        old_booking.id,
        BookingRescheduleRequest(scheduled_date=LESSON_DAY, scheduled_time=time(10, 30)),
        user_actor(booking_env),
    )

    assert old_booking.status == BookingStatusEnum.CANCELLED
    assert old_booking.payment_status == PaymentStatusEnum.REFUNDED
    assert new_booking.status == BookingStatusEnum.PENDING
    assert new_booking.rescheduled_from_booking_id == old_booking.id
    assert new_booking.starts_at == datetime(2026, 3, 3, 10, 30, tzinfo=UTC)
    assert booking_env.scheduling.reservation_for(old_booking.id).released_at is not None
    assert booking_env.scheduling.reservation_for(new_booking.id).released_at is None
    assert "booking.reschedule" in booking_env.audit.actions()


@pytest.mark.asyncio
async def test_reschedule_into_taken_window_conflicts(booking_env: BookingEnv) -> None:
    old_booking = await create_confirmed(booking_env, time(10, 0))
    taken = await booking_env.service.create_booking(booking_request(booking_env, time(14, 0)), user_actor(booking_env))

    with pytest.raises(ConflictException) as exc_info:
        await booking_env.service.reschedule_booking(
            old_booking.id,
            BookingRescheduleRequest(scheduled_date=LESSON_DAY, scheduled_time=time(14, 30)),
            user_actor(booking_env),
        )

    assert exc_info.value.conflicting_ids == [taken.id]
    # Nothing was refunded because the new booking was never created.
    assert [row.type for row in booking_env.billing.rows_for(old_booking.id)] == [
        TransactionTypeEnum.AUTHORIZATION,
    ]


@pytest.mark.asyncio
async def test_get_booking_checks_participants(booking_env: BookingEnv) -> None:
    booking = await booking_env.service.create_booking(booking_request(booking_env), user_actor(booking_env))

    assert await booking_env.service.get_booking(booking.id, instructor_actor(booking_env)) is booking
    assert await booking_env.service.get_booking(booking.id, Actor(id=uuid4(), role=RoleEnum.ADMIN)) is booking
    with pytest.raises(UnauthorizedException):
        await booking_env.service.get_booking(booking.id, Actor(id=uuid4(), role=RoleEnum.USER))


@pytest.mark.asyncio
async def test_my_bookings_can_be_split_into_upcoming_and_past(
    booking_env: BookingEnv,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    finished = await create_confirmed(booking_env, time(10, 0))
    waiting = await booking_env.service.create_booking(booking_request(booking_env, time(12, 0)), user_actor(booking_env))
    later = await create_confirmed(booking_env, time(14, 0))
    dropped = await create_confirmed(booking_env, time(16, 0))
    await booking_env.service.cancel_booking(dropped.id, None, user_actor(booking_env))
    monkeypatch.setattr(booking_service_module, "utc_now", lambda: datetime(2026, 3, 3, 11, 0, tzinfo=UTC))

    upcoming, upcoming_total = await booking_env.service.list_bookings(
        user_actor(booking_env),
        None,
        10,
        0,
        timeframe=BookingTimeframeEnum.UPCOMING,
    )
    past, past_total = await booking_env.service.list_bookings(
        instructor_actor(booking_env),
        None,
        10,
        0,
        timeframe=BookingTimeframeEnum.PAST,
    )
    everything, total = await booking_env.service.list_bookings(user_actor(booking_env), None, 10, 0)

    assert [booking.id for booking in upcoming] == [waiting.id, later.id]
    assert upcoming_total == 2
    assert [booking.id for booking in past] == [finished.id]
    assert past_total == 1
    assert [booking.id for booking in everything] == [dropped.id, later.id, waiting.id, finished.id]
    assert total == 4


@pytest.mark.asyncio
async def test_statistics_count_outcomes_and_recent_revenue(booking_env: BookingEnv) -> None:
    first = await create_confirmed(booking_env, time(10, 0))
    await booking_env.service.record_check_in(first, first.starts_at, 2.0, first.starts_at)
    await booking_env.service.complete_booking(first.id, instructor_actor(booking_env))
    second = await create_confirmed(booking_env, time(12, 0))
    await booking_env.service.record_check_in(second, second.starts_at, 2.0, second.starts_at)
    await booking_env.service.complete_booking(second.id, instructor_actor(booking_env))
    cancelled = await create_confirmed(booking_env, time(14, 0))
    await booking_env.service.cancel_booking(cancelled.id, None, user_actor(booking_env))
    await booking_env.service.create_booking(booking_request(booking_env, time(16, 0)), user_actor(booking_env))

    instructor_stats = await booking_env.service.get_statistics(instructor_actor(booking_env))
    stranger_stats = await booking_env.service.get_statistics(Actor(id=uuid4(), role=RoleEnum.USER))

    assert instructor_stats.total_bookings == 4
    assert instructor_stats.completed_bookings == 2
    assert instructor_stats.cancelled_bookings == 1
    assert instructor_stats.total_revenue == Decimal("80.00")
    assert instructor_stats.average_booking_value == Decimal("40.00")
    assert instructor_stats.revenue_since == FIXED_NOW - timedelta(days=365)
    assert await booking_env.service.get_statistics(user_actor(booking_env)) == instructor_stats
    assert stranger_stats.total_bookings == 0
    assert stranger_stats.total_revenue == Decimal("0.00")
    assert stranger_stats.average_booking_value == Decimal("0.00")


@pytest.mark.asyncio
async def test_statistics_route_is_matched_before_booking_lookup(booking_env: BookingEnv) -> None:
    paths = [route.path for route in booking_router_module.router.routes]

    payload = await booking_router_module.get_my_booking_statistics(
        service=booking_env.service,
        current_actor=user_actor(booking_env),
    )

    assert paths.index("/bookings/my/stats") < paths.index("/bookings/{booking_id}")
    assert payload.total_bookings == 0
    assert payload.average_booking_value == Decimal("0.00")
