from __future__ import annotations

import pytest

from moveup.core.enums import BookingEventEnum, BookingStatusEnum, PaymentStatusEnum
from moveup.modules.booking.state_machine import (
    TERMINAL_STATUSES,
    TRANSITIONS,
    is_payment_consistent,
    next_status,
)
from moveup.shared.exceptions import InvalidTransitionException


@pytest.mark.parametrize(
    ("current", "event", "expected"),
    [
        (BookingStatusEnum.PENDING, BookingEventEnum.PAYMENT_AUTHORIZED, BookingStatusEnum.CONFIRMED),
        (BookingStatusEnum.PENDING, BookingEventEnum.PAYMENT_DECLINED, BookingStatusEnum.CANCELLED),
        (BookingStatusEnum.PENDING, BookingEventEnum.CANCEL, BookingStatusEnum.CANCELLED),
        (BookingStatusEnum.CONFIRMED, BookingEventEnum.CANCEL, BookingStatusEnum.CANCELLED),
        (BookingStatusEnum.CONFIRMED, BookingEventEnum.CHECK_IN, BookingStatusEnum.IN_PROGRESS),
        (BookingStatusEnum.CONFIRMED, BookingEventEnum.NO_SHOW_TIMEOUT, BookingStatusEnum.NO_SHOW),
        (BookingStatusEnum.IN_PROGRESS, BookingEventEnum.COMPLETE, BookingStatusEnum.COMPLETED),
    ],
)
def test_allowed_transitions(
    current: BookingStatusEnum,
    event: BookingEventEnum,
    expected: BookingStatusEnum,
) -> None:
    assert next_status(current, event) == expected


def test_every_other_pair_is_rejected() -> None:
    for current in BookingStatusEnum:
        for event in BookingEventEnum:
            if (current, event) in TRANSITIONS:
                continue
            with pytest.raises(InvalidTransitionException):
                next_status(current, event)


def test_terminal_statuses_accept_no_events() -> None:
    for current in TERMINAL_STATUSES:
        for event in BookingEventEnum:
            with pytest.raises(InvalidTransitionException, match="no further events"):
                next_status(current, event)


def test_check_in_requires_confirmed_booking() -> None:
    with pytest.raises(InvalidTransitionException):
        next_status(BookingStatusEnum.PENDING, BookingEventEnum.CHECK_IN)


def test_cancel_not_allowed_once_lesson_started() -> None:
    with pytest.raises(InvalidTransitionException):
        next_status(BookingStatusEnum.IN_PROGRESS, BookingEventEnum.CANCEL)


def test_payment_consistency_table() -> None:
    assert is_payment_consistent(BookingStatusEnum.CONFIRMED, PaymentStatusEnum.AUTHORIZED)
    assert is_payment_consistent(BookingStatusEnum.COMPLETED, PaymentStatusEnum.CAPTURED)
    assert is_payment_consistent(BookingStatusEnum.CANCELLED, PaymentStatusEnum.REFUNDED)
    assert not is_payment_consistent(BookingStatusEnum.CONFIRMED, PaymentStatusEnum.PENDING)
    assert not is_payment_consistent(BookingStatusEnum.PENDING, PaymentStatusEnum.CAPTURED)
