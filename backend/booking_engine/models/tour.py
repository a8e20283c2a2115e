"""
Tour catalog read model.

The catalog itself is managed elsewhere; the engine only needs what it reads
at booking time: base price, seat limit per departure, the departure dates
and the optional transport surcharges.
"""

from sqlalchemy import BigInteger, CheckConstraint, Column, Date, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from booking_engine.db.base import Base, TimestampMixin


class Tour(Base, TimestampMixin):
    __tablename__ = "tours"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    price = Column(BigInteger, nullable=False)
    max_participants = Column(Integer, nullable=False)

    start_dates = relationship(
        "TourStartDate",
        back_populates="tour",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="TourStartDate.start_date",
    )
    transports = relationship(
        "TourTransport",
        back_populates="tour",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="check_tour_price_non_negative"),
        CheckConstraint("max_participants > 0", name="check_tour_max_participants_positive"),
    )

    def __repr__(self) -> str:
        return f"<Tour(id={self.id}, name={self.name}, max={self.max_participants})>"


class TourStartDate(Base):
    __tablename__ = "tour_start_dates"

    id = Column(Integer, primary_key=True)
    tour_id = Column(Integer, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)

    tour = relationship("Tour", back_populates="start_dates")

    __table_args__ = (
        UniqueConstraint("tour_id", "start_date", name="uq_tour_start_date"),
    )


class TourTransport(Base):
    __tablename__ = "tour_transports"

    id = Column(Integer, primary_key=True)
    tour_id = Column(Integer, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    # Per-person surcharge
    price = Column(BigInteger, nullable=False, default=0)

    tour = relationship("Tour", back_populates="transports")

    __table_args__ = (
        UniqueConstraint("tour_id", "name", name="uq_tour_transport_name"),
        CheckConstraint("price >= 0", name="check_transport_price_non_negative"),
    )
