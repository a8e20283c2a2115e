"""
Capacity record: seats consumed per (tour, start date).

Key design decisions:
- One row per departure, created lazily on the first reservation
- `max_participants` is copied from the catalog when the row is created
- `version` column enables optimistic locking for concurrent reservations
- CHECK constraints are the final safety net against overbooking
"""

from sqlalchemy import CheckConstraint, Column, Date, ForeignKey, Integer, UniqueConstraint

from booking_engine.db.base import Base, TimestampMixin


class CapacityRecord(Base, TimestampMixin):
    __tablename__ = "capacity_records"

    id = Column(Integer, primary_key=True)
    tour_id = Column(Integer, ForeignKey("tours.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    max_participants = Column(Integer, nullable=False)
    consumed_seats = Column(Integer, nullable=False, default=0)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("tour_id", "start_date", name="uq_capacity_tour_date"),
        CheckConstraint("consumed_seats >= 0", name="check_consumed_seats_non_negative"),
        CheckConstraint("consumed_seats <= max_participants", name="check_consumed_lte_max"),
        CheckConstraint("max_participants > 0", name="check_capacity_max_positive"),
    )

    @property
    def remaining(self) -> int:
        return max(self.max_participants - self.consumed_seats, 0)

    def __repr__(self) -> str:
        return (
            f"<CapacityRecord(tour={self.tour_id}, date={self.start_date}, "
            f"consumed={self.consumed_seats}/{self.max_participants})>"
        )
