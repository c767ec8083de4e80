"""Core enums used across modules."""

from enum import StrEnum


class RoleEnum(StrEnum):
    """Actor roles carried in access tokens."""

    USER = "user"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"


class BookingStatusEnum(StrEnum):
    """Booking lifecycle status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class BookingTimeframeEnum(StrEnum):
    """Listing filter relative to the current time."""

    UPCOMING = "upcoming"
    PAST = "past"


class BookingEventEnum(StrEnum):
    """Events that drive booking transitions."""

    PAYMENT_AUTHORIZED = "payment_authorized"
    PAYMENT_DECLINED = "payment_declined"
    CANCEL = "cancel"
    CHECK_IN = "check_in"
    NO_SHOW_TIMEOUT = "no_show_timeout"
    COMPLETE = "complete"


class PaymentStatusEnum(StrEnum):
    """Booking payment projection derived from the ledger."""

    PENDING = "pending"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    REFUNDED = "refunded"
    FAILED = "failed"


class TransactionTypeEnum(StrEnum):
    """Ledger entry type."""

    AUTHORIZATION = "authorization"
    CAPTURE = "capture"
    PAYOUT = "payout"
    REFUND = "refund"


class TransactionStatusEnum(StrEnum):
    """Ledger entry status."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class CheckInRejectionEnum(StrEnum):
    """Reasons a check-in is rejected."""

    MALFORMED_PAYLOAD = "malformed_payload"
    EXPIRED = "expired"
    NO_MATCHING_BOOKING = "no_matching_booking"
    ALREADY_CHECKED_IN = "already_checked_in"
    OUT_OF_RANGE = "out_of_range"


class NotificationTypeEnum(StrEnum):
    """Notification kinds emitted by booking lifecycle events."""

    BOOKING_REQUESTED = "booking_requested"
    BOOKING_CONFIRMATION = "booking_confirmation"
    BOOKING_REMINDER = "booking_reminder"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_NO_SHOW = "booking_no_show"
    PAYMENT_SUCCESS = "payment_success"
    PAYMENT_FAILED = "payment_failed"
    INSTRUCTOR_CHECK_IN = "instructor_check_in"
    LIVE_ACTIVITY_UPDATE = "live_activity_update"
    LESSON_COMPLETED = "lesson_completed"


class NotificationPriorityEnum(StrEnum):
    """Notification priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class NotificationChannelEnum(StrEnum):
    """Delivery channels."""

    PUSH = "push"
    EMAIL = "email"
    SMS = "sms"


class NotificationStatusEnum(StrEnum):
    """Notification delivery status."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SENT = "sent"
    FAILED = "failed"
    WITHDRAWN = "withdrawn"


class PaymentFailureEnum(StrEnum):
    """Why a ledger transaction failed."""

    DECLINED = "declined"
    TIMEOUT = "timeout"
    PROCESSOR_ERROR = "processor_error"
    MISSING_PAYOUT_ACCOUNT = "missing_payout_account"
