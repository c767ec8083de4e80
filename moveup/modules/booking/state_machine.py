"""Booking lifecycle graph.

    PENDING --payment_authorized--> CONFIRMED --check_in--> IN_PROGRESS --complete--> COMPLETED
    PENDING --payment_declined|cancel--> CANCELLED
    CONFIRMED --cancel--> CANCELLED
    CONFIRMED --no_show_timeout--> NO_SHOW

Every other (status, event) pair is an invalid transition.
"""

from __future__ import annotations

from moveup.core.enums import BookingEventEnum, BookingStatusEnum, PaymentStatusEnum
from moveup.shared.exceptions import InvalidTransitionException

TRANSITIONS: dict[tuple[BookingStatusEnum, BookingEventEnum], BookingStatusEnum] = {
    (BookingStatusEnum.PENDING, BookingEventEnum.PAYMENT_AUTHORIZED): BookingStatusEnum.CONFIRMED,
    (BookingStatusEnum.PENDING, BookingEventEnum.PAYMENT_DECLINED): BookingStatusEnum.CANCELLED,
    (BookingStatusEnum.PENDING, BookingEventEnum.CANCEL): BookingStatusEnum.CANCELLED,
    (BookingStatusEnum.CONFIRMED, BookingEventEnum.CANCEL): BookingStatusEnum.CANCELLED,
    (BookingStatusEnum.CONFIRMED, BookingEventEnum.CHECK_IN): BookingStatusEnum.IN_PROGRESS,
    (BookingStatusEnum.CONFIRMED, BookingEventEnum.NO_SHOW_TIMEOUT): BookingStatusEnum.NO_SHOW,
    (BookingStatusEnum.IN_PROGRESS, BookingEventEnum.COMPLETE): BookingStatusEnum.COMPLETED,
}

TERMINAL_STATUSES = frozenset(
    {BookingStatusEnum.COMPLETED, BookingStatusEnum.CANCELLED, BookingStatusEnum.NO_SHOW},
)

# Bookings that hold their instructor's time.
ACTIVE_STATUSES = (BookingStatusEnum.PENDING, BookingStatusEnum.CONFIRMED)

ALLOWED_PAYMENT_STATUSES: dict[BookingStatusEnum, frozenset[PaymentStatusEnum]] = {
    BookingStatusEnum.PENDING: frozenset({PaymentStatusEnum.PENDING, PaymentStatusEnum.FAILED}),
    BookingStatusEnum.CONFIRMED: frozenset({PaymentStatusEnum.AUTHORIZED}),
    BookingStatusEnum.IN_PROGRESS: frozenset({PaymentStatusEnum.AUTHORIZED}),
    BookingStatusEnum.COMPLETED: frozenset({PaymentStatusEnum.AUTHORIZED, PaymentStatusEnum.CAPTURED}),
    BookingStatusEnum.CANCELLED: frozenset(
        {
            PaymentStatusEnum.PENDING,
            PaymentStatusEnum.FAILED,
            PaymentStatusEnum.AUTHORIZED,
            PaymentStatusEnum.REFUNDED,
        },
    ),
    BookingStatusEnum.NO_SHOW: frozenset(
        {PaymentStatusEnum.AUTHORIZED, PaymentStatusEnum.REFUNDED, PaymentStatusEnum.CAPTURED},
    ),
}


def next_status(current: BookingStatusEnum, event: BookingEventEnum) -> BookingStatusEnum:
    """Return the status reached from ``current`` on ``event``."""
    target = TRANSITIONS.get((current, event))
    if target is None:
        if current in TERMINAL_STATUSES:
            raise InvalidTransitionException(f"Booking is {current} and accepts no further events")
        raise InvalidTransitionException(f"Event {event} is not allowed for {current} booking")
    return target


def is_payment_consistent(status: BookingStatusEnum, payment_status: PaymentStatusEnum) -> bool:
    return payment_status in ALLOWED_PAYMENT_STATUSES[status]
