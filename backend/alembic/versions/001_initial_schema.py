"""Initial schema: tour catalog, capacity ledger, bookings, payment intents.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

BOOKING_STATUSES = ("PENDING", "CONFIRMED", "REJECTED", "CANCEL_REQUEST", "CANCELLED", "COMPLETED", "DELETED")


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "tours",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price", sa.BigInteger(), nullable=False),
        sa.Column("max_participants", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("price >= 0", name="check_tour_price_non_negative"),
        sa.CheckConstraint("max_participants > 0", name="check_tour_max_participants_positive"),
    )
    op.create_index("ix_tours_id", "tours", ["id"])

    op.create_table(
        "tour_start_dates",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tour_id", sa.Integer(), sa.ForeignKey("tours.id", ondelete="CASCADE"), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.UniqueConstraint("tour_id", "start_date", name="uq_tour_start_date"),
    )
    op.create_index("ix_tour_start_dates_tour_id", "tour_start_dates", ["tour_id"])

    op.create_table(
        "tour_transports",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tour_id", sa.Integer(), sa.ForeignKey("tours.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("price", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.UniqueConstraint("tour_id", "name", name="uq_tour_transport_name"),
        sa.CheckConstraint("price >= 0", name="check_transport_price_non_negative"),
    )
    op.create_index("ix_tour_transports_tour_id", "tour_transports", ["tour_id"])

    # One row per departure. The unique key lets concurrent first reservations
    # race on INSERT ... ON CONFLICT DO NOTHING instead of creating duplicates.
    op.create_table(
        "capacity_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tour_id", sa.Integer(), sa.ForeignKey("tours.id"), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("max_participants", sa.Integer(), nullable=False),
        sa.Column("consumed_seats", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.UniqueConstraint("tour_id", "start_date", name="uq_capacity_tour_date"),
        sa.CheckConstraint("consumed_seats >= 0", name="check_consumed_seats_non_negative"),
        sa.CheckConstraint("consumed_seats <= max_participants", name="check_consumed_lte_max"),
        sa.CheckConstraint("max_participants > 0", name="check_capacity_max_positive"),
    )
    op.create_index("ix_capacity_records_tour_id", "capacity_records", ["tour_id"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tour_id", sa.Integer(), sa.ForeignKey("tours.id"), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("headcount", sa.Integer(), nullable=False),
        sa.Column("transport_name", sa.String(100), nullable=True),
        sa.Column("transport_price", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_price", sa.BigInteger(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("contact_name", sa.String(255), nullable=True),
        sa.Column("contact_email", sa.String(255), nullable=True),
        sa.Column("contact_phone", sa.String(32), nullable=True),
        sa.Column("guest_token", sa.String(64), nullable=True, unique=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("status_before_cancel", sa.String(20), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("seats_released", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("payment_method", sa.String(16), nullable=True),
        sa.Column("payment_status", sa.String(16), nullable=True),
        sa.Column("payment_intent_token", sa.String(64), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ({})".format(", ".join(f"'{s}'" for s in BOOKING_STATUSES)),
            name="booking_status",
        ),
        sa.CheckConstraint(
            "status_before_cancel IS NULL OR status_before_cancel IN ({})".format(
                ", ".join(f"'{s}'" for s in BOOKING_STATUSES)
            ),
            name="booking_prior_status",
        ),
        sa.CheckConstraint("payment_method IN ('DIRECT', 'GATEWAY')", name="payment_method"),
        sa.CheckConstraint(
            "payment_status IN ('PENDING', 'PAID', 'FAILED', 'CANCELLED')", name="payment_status"
        ),
        sa.CheckConstraint("headcount > 0", name="check_booking_headcount_positive"),
        sa.CheckConstraint("total_price >= 0", name="check_booking_total_non_negative"),
        sa.CheckConstraint(
            "(user_id IS NOT NULL AND contact_name IS NULL AND contact_email IS NULL"
            " AND contact_phone IS NULL)"
            " OR (user_id IS NULL AND contact_name IS NOT NULL AND contact_email IS NOT NULL"
            " AND contact_phone IS NOT NULL)",
            name="check_booking_contact_exclusive",
        ),
        sa.CheckConstraint(
            "(payment_method IS NULL AND payment_status IS NULL)"
            " OR (payment_method IS NOT NULL AND payment_status IS NOT NULL)",
            name="check_booking_payment_coupled",
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_tour_id", "bookings", ["tour_id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    # Capacity reporting and admin listings by departure
    op.create_index("ix_bookings_tour_date", "bookings", ["tour_id", "start_date"])
    # Admin listing: WHERE status IN (...) ORDER BY created_at DESC
    op.create_index("ix_bookings_status_created", "bookings", ["status", "created_at"])

    op.create_table(
        "payment_intents",
        sa.Column("token", sa.String(64), primary_key=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("provider_order_id", sa.String(64), nullable=False, unique=True),
        sa.Column("pay_url", sa.Text(), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="ISSUED"),
        sa.Column("provider_transaction_id", sa.String(64), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('ISSUED', 'SUPERSEDED', 'PAID', 'FAILED')", name="intent_status"
        ),
    )
    op.create_index("ix_payment_intents_booking_id", "payment_intents", ["booking_id"])


def downgrade() -> None:
    op.drop_table("payment_intents")
    op.drop_table("bookings")
    op.drop_table("capacity_records")
    op.drop_table("tour_transports")
    op.drop_table("tour_start_dates")
    op.drop_table("tours")
