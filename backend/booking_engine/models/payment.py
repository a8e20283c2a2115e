"""
Payment intent: one redirect-payment attempt issued to the provider.

The booking row points at its current intent through `payment_intent_token`;
every new attempt supersedes the previous one. Callbacks are matched to an
intent by the `provider_order_id` we sent to the provider.
"""

import enum

from sqlalchemy import BigInteger, Column, Enum, ForeignKey, Integer, String, Text

from booking_engine.db.base import Base, TimestampMixin


class IntentStatus(str, enum.Enum):
    ISSUED = "ISSUED"
    SUPERSEDED = "SUPERSEDED"
    PAID = "PAID"
    FAILED = "FAILED"


class PaymentIntent(Base, TimestampMixin):
    __tablename__ = "payment_intents"

    token = Column(String(64), primary_key=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    provider_order_id = Column(String(64), nullable=False, unique=True)
    pay_url = Column(Text, nullable=False)
    amount = Column(BigInteger, nullable=False)
    status = Column(
        Enum(IntentStatus, name="intent_status", native_enum=False, create_constraint=True, length=16),
        nullable=False,
        default=IntentStatus.ISSUED,
    )
    provider_transaction_id = Column(String(64), nullable=True)

    def __repr__(self) -> str:
        return f"<PaymentIntent(booking={self.booking_id}, order={self.provider_order_id}, status={self.status})>"
