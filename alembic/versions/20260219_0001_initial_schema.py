"""Initial schema

Revision ID: 20260219_0001
Revises:
Create Date: 2026-02-19 22:10:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20260219_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


booking_status_enum = sa.Enum(
    "pending",
    "confirmed",
    "in_progress",
    "completed",
    "cancelled",
    "no_show",
    name="booking_status_enum",
    native_enum=False,
)
payment_status_enum = sa.Enum(
    "pending", "authorized", "captured", "refunded", "failed", name="payment_status_enum", native_enum=False
)
transaction_type_enum = sa.Enum(
    "authorization", "capture", "payout", "refund", name="transaction_type_enum", native_enum=False
)
transaction_status_enum = sa.Enum(
    "pending", "completed", "failed", name="transaction_status_enum", native_enum=False
)
payment_failure_enum = sa.Enum(
    "declined", "timeout", "processor_error", "missing_payout_account", name="payment_failure_enum", native_enum=False
)
notification_type_enum = sa.Enum(
    "booking_requested",
    "booking_confirmation",
    "booking_reminder",
    "booking_cancelled",
    "booking_no_show",
    "payment_success",
    "payment_failed",
    "instructor_check_in",
    "live_activity_update",
    "lesson_completed",
    name="notification_type_enum",
    native_enum=False,
)
notification_priority_enum = sa.Enum(
    "low", "medium", "high", "urgent", name="notification_priority_enum", native_enum=False
)
notification_status_enum = sa.Enum(
    "pending", "in_flight", "sent", "failed", "withdrawn", name="notification_status_enum", native_enum=False
)


def _id_col() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _created_col() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def _updated_col() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False)


def _uuid_col(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), nullable=nullable)


def _ts_col(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "availability_slots",
        _id_col(),
        _created_col(),
        _updated_col(),
        _uuid_col("instructor_id"),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
    )
    op.create_index("ix_availability_slots_instructor_id", "availability_slots", ["instructor_id"], unique=False)
    op.create_index("ix_availability_slots_date", "availability_slots", ["date"], unique=False)
    op.create_index(
        "ix_availability_slots_instructor_date",
        "availability_slots",
        ["instructor_id", "date"],
        unique=False,
    )

    op.create_table(
        "availability_reservations",
        _id_col(),
        _created_col(),
        _updated_col(),
        _uuid_col("instructor_id"),
        sa.Column("date", sa.Date(), nullable=False),
        _ts_col("start_at", nullable=False),
        _ts_col("end_at", nullable=False),
        _uuid_col("booking_id"),
        _ts_col("released_at"),
        sa.UniqueConstraint("booking_id", name="uq_availability_reservations_booking_id"),
    )
    op.create_index(
        "ix_availability_reservations_instructor_date",
        "availability_reservations",
        ["instructor_id", "date"],
        unique=False,
    )

    op.create_table(
        "bookings",
        _id_col(),
        _created_col(),
        _updated_col(),
        _uuid_col("user_id"),
        _uuid_col("instructor_id"),
        _uuid_col("lesson_id"),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("scheduled_time", sa.Time(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        _ts_col("starts_at", nullable=False),
        _ts_col("ends_at", nullable=False),
        sa.Column("status", booking_status_enum, nullable=False),
        sa.Column("payment_status", payment_status_enum, nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("lesson_title", sa.String(length=255), nullable=False),
        sa.Column("lesson_latitude", sa.Float(), nullable=False),
        sa.Column("lesson_longitude", sa.Float(), nullable=False),
        sa.Column("live_activity_id", sa.String(length=255), nullable=True),
        sa.Column("wallet_pass_serial", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.String(length=1024), nullable=True),
        _ts_col("confirmed_at"),
        _ts_col("checked_in_at"),
        sa.Column("check_in_distance_m", sa.Float(), nullable=True),
        _ts_col("check_in_qr_issued_at"),
        _ts_col("completed_at"),
        _ts_col("cancelled_at"),
        _uuid_col("cancelled_by", nullable=True),
        sa.Column("cancellation_reason", sa.String(length=512), nullable=True),
        _ts_col("no_show_at"),
        _uuid_col("rescheduled_from_booking_id", nullable=True),
        sa.ForeignKeyConstraint(
            ["rescheduled_from_booking_id"],
            ["bookings.id"],
            name="fk_bookings_rescheduled_from_booking_id_bookings",
            ondelete="SET NULL",
        ),
    )
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"], unique=False)
    op.create_index("ix_bookings_instructor_id", "bookings", ["instructor_id"], unique=False)
    op.create_index("ix_bookings_status", "bookings", ["status"], unique=False)
    op.create_index(
        "ix_bookings_instructor_date_status",
        "bookings",
        ["instructor_id", "scheduled_date", "status"],
        unique=False,
    )
    op.create_index(
        "ix_bookings_user_instructor_status",
        "bookings",
        ["user_id", "instructor_id", "status"],
        unique=False,
    )

    op.create_table(
        "wallets",
        _id_col(),
        _created_col(),
        _updated_col(),
        _uuid_col("owner_id"),
        sa.Column("balance", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("payout_account_id", sa.String(length=128), nullable=True),
        sa.Column("total_lessons", sa.Integer(), nullable=False),
        sa.UniqueConstraint("owner_id", name="uq_wallets_owner_id"),
    )

    op.create_table(
        "transactions",
        _id_col(),
        _created_col(),
        _updated_col(),
        _uuid_col("wallet_id", nullable=True),
        _uuid_col("booking_id", nullable=True),
        sa.Column("type", transaction_type_enum, nullable=False),
        sa.Column("status", transaction_status_enum, nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("gross_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("platform_fee", sa.Numeric(12, 2), nullable=True),
        sa.Column("external_reference", sa.String(length=128), nullable=True),
        sa.Column("idempotency_key", sa.String(length=128), nullable=False),
        sa.Column("failure_code", payment_failure_enum, nullable=True),
        sa.Column("failure_reason", sa.String(length=512), nullable=True),
        _ts_col("completed_at"),
        _ts_col("failed_at"),
        sa.ForeignKeyConstraint(["wallet_id"], ["wallets.id"], name="fk_transactions_wallet_id_wallets", ondelete="RESTRICT"),
        sa.UniqueConstraint("idempotency_key", name="uq_transactions_idempotency_key"),
    )
    op.create_index("ix_transactions_wallet_id", "transactions", ["wallet_id"], unique=False)
    op.create_index("ix_transactions_status", "transactions", ["status"], unique=False)
    op.create_index("ix_transactions_booking_type", "transactions", ["booking_id", "type"], unique=False)

    op.create_table(
        "notification_tasks",
        _id_col(),
        _created_col(),
        _updated_col(),
        _uuid_col("recipient_id"),
        sa.Column("type", notification_type_enum, nullable=False),
        sa.Column("priority", notification_priority_enum, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("channels", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("sent_channels", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("status", notification_status_enum, nullable=False),
        _ts_col("scheduled_for", nullable=False),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        _ts_col("claimed_at"),
        _ts_col("sent_at"),
        _ts_col("failed_at"),
        sa.Column("last_error", sa.String(length=1024), nullable=True),
        _uuid_col("related_booking_id", nullable=True),
    )
    op.create_index("ix_notification_tasks_recipient_id", "notification_tasks", ["recipient_id"], unique=False)
    op.create_index(
        "ix_notification_tasks_related_booking_id",
        "notification_tasks",
        ["related_booking_id"],
        unique=False,
    )
    op.create_index(
        "ix_notification_tasks_status_scheduled_for",
        "notification_tasks",
        ["status", "scheduled_for"],
        unique=False,
    )

    op.create_table(
        "audit_logs",
        _id_col(),
        _created_col(),
        _updated_col(),
        _uuid_col("actor_id", nullable=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=128), nullable=False),
        sa.Column("entity_id", sa.String(length=128), nullable=True),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    )
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"], unique=False)
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"], unique=False)
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_logs_entity_id", table_name="audit_logs")
    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_index("ix_audit_logs_actor_id", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_notification_tasks_status_scheduled_for", table_name="notification_tasks")
    op.drop_index("ix_notification_tasks_related_booking_id", table_name="notification_tasks")
    op.drop_index("ix_notification_tasks_recipient_id", table_name="notification_tasks")
    op.drop_table("notification_tasks")

    op.drop_index("ix_transactions_booking_type", table_name="transactions")
    op.drop_index("ix_transactions_status", table_name="transactions")
    op.drop_index("ix_transactions_wallet_id", table_name="transactions")
    op.drop_table("transactions")

    op.drop_table("wallets")

    op.drop_index("ix_bookings_user_instructor_status", table_name="bookings")
    op.drop_index("ix_bookings_instructor_date_status", table_name="bookings")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_instructor_id", table_name="bookings")
    op.drop_index("ix_bookings_user_id", table_name="bookings")
    op.drop_table("bookings")

    op.drop_index("ix_availability_reservations_instructor_date", table_name="availability_reservations")
    op.drop_table("availability_reservations")

    op.drop_index("ix_availability_slots_instructor_date", table_name="availability_slots")
    op.drop_index("ix_availability_slots_date", table_name="availability_slots")
    op.drop_index("ix_availability_slots_instructor_id", table_name="availability_slots")
    op.drop_table("availability_slots")
