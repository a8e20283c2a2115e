"""
Booking model: one reservation request for a tour departure.

Key design decisions:
- `status` and the payment sub-state are enum columns, CHECK-constrained
- `total_price` is written once at creation and never recomputed
- `seats_released` flips at most once, so a booking's seats are released once
- `version` column enables optimistic locking for transitions and payments
- Contact is either an identity subject or a guest bundle, never both
"""

import enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)

from booking_engine.db.base import Base, TimestampMixin


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    CANCEL_REQUEST = "CANCEL_REQUEST"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    DELETED = "DELETED"


class PaymentMethod(str, enum.Enum):
    DIRECT = "DIRECT"
    GATEWAY = "GATEWAY"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    tour_id = Column(Integer, ForeignKey("tours.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    headcount = Column(Integer, nullable=False)
    transport_name = Column(String(100), nullable=True)
    transport_price = Column(BigInteger, nullable=False, default=0)
    total_price = Column(BigInteger, nullable=False)
    note = Column(Text, nullable=True)

    # Contact: identity subject XOR guest bundle
    user_id = Column(String(64), nullable=True, index=True)
    contact_name = Column(String(255), nullable=True)
    contact_email = Column(String(255), nullable=True)
    contact_phone = Column(String(32), nullable=True)
    guest_token = Column(String(64), nullable=True, unique=True)

    status = Column(
        Enum(BookingStatus, name="booking_status", native_enum=False, create_constraint=True, length=20),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    status_before_cancel = Column(
        Enum(BookingStatus, name="booking_prior_status", native_enum=False, create_constraint=True, length=20),
        nullable=True,
    )
    reason = Column(Text, nullable=True)
    seats_released = Column(Boolean, nullable=False, default=False)

    payment_method = Column(
        Enum(PaymentMethod, name="payment_method", native_enum=False, create_constraint=True, length=16),
        nullable=True,
    )
    payment_status = Column(
        Enum(PaymentStatus, name="payment_status", native_enum=False, create_constraint=True, length=16),
        nullable=True,
    )
    payment_intent_token = Column(String(64), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("headcount > 0", name="check_booking_headcount_positive"),
        CheckConstraint("total_price >= 0", name="check_booking_total_non_negative"),
        CheckConstraint(
            "(user_id IS NOT NULL AND contact_name IS NULL AND contact_email IS NULL"
            " AND contact_phone IS NULL)"
            " OR (user_id IS NULL AND contact_name IS NOT NULL AND contact_email IS NOT NULL"
            " AND contact_phone IS NOT NULL)",
            name="check_booking_contact_exclusive",
        ),
        CheckConstraint(
            "(payment_method IS NULL AND payment_status IS NULL)"
            " OR (payment_method IS NOT NULL AND payment_status IS NOT NULL)",
            name="check_booking_payment_coupled",
        ),
        # Capacity reporting and admin listings by departure
        Index("ix_bookings_tour_date", "tour_id", "start_date"),
        Index("ix_bookings_status_created", "status", "created_at"),
    )

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, tour={self.tour_id}, date={self.start_date}, status={self.status})>"
