"""
Capacity ledger: seats consumed per (tour, start date).

CONCURRENCY STRATEGY: Guarded Increment
=======================================

Problem:
  Two guests try to book the last seats of a departure simultaneously.
  Both read consumed_seats=8 of 10, both add 2, both succeed.
  Result: Overbooking.

Solution:
  The capacity check and the increment are one statement:

  UPDATE capacity_records
     SET consumed_seats = consumed_seats + N, version = version + 1
   WHERE id = :id AND consumed_seats + N <= max_participants

  A writer that waits on the row lock re-evaluates the WHERE clause against
  the committed row, so it either still fits or updates 0 rows. 0 rows means
  the seats are gone: re-read and fail with CapacityExceeded carrying the
  fresh remaining count. `version` is only bumped for auditing and is not
  part of the guard, so losing a lock race never turns into a spurious
  conflict. The CHECK constraint (consumed_seats <= max_participants) is the
  final safety net.

Rows are created lazily with INSERT .. ON CONFLICT DO NOTHING so two first
bookings for the same departure cannot create two rows.

Release is a single guarded decrement floored at 0. The ledger does not know
which booking a release belongs to; the state machine guarantees each
booking releases at most once.
"""

from datetime import date
from typing import Optional

from sqlalchemy import case, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.errors import CapacityExceeded, InvalidHeadcount
from booking_engine.core.logging import get_logger
from booking_engine.core.metrics import capacity_seats
from booking_engine.models.capacity import CapacityRecord

logger = get_logger(__name__)


_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


async def _ensure_record(db: AsyncSession, tour_id: int, start_date: date, max_participants: int) -> None:
    dialect = db.get_bind().dialect.name
    insert = _DIALECT_INSERTS.get(dialect)
    if insert is None:
        raise NotImplementedError(f"Capacity ledger does not support the {dialect} dialect")

    await db.execute(
        insert(CapacityRecord)
        .values(
            tour_id=tour_id,
            start_date=start_date,
            max_participants=max_participants,
            consumed_seats=0,
            version=1,
        )
        .on_conflict_do_nothing(index_elements=["tour_id", "start_date"])
    )


async def _get_record(db: AsyncSession, tour_id: int, start_date: date) -> Optional[CapacityRecord]:
    result = await db.execute(
        select(CapacityRecord)
        .where(CapacityRecord.tour_id == tour_id, CapacityRecord.start_date == start_date)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def reserve(
    db: AsyncSession,
    tour_id: int,
    start_date: date,
    count: int,
    max_participants: int,
) -> CapacityRecord:
    """
    Atomically consume `count` seats of a departure.
    Raises CapacityExceeded when they do not fit.
    """
    if count < 1:
        raise InvalidHeadcount(count)

    await _ensure_record(db, tour_id, start_date, max_participants)

    result = await db.execute(
        update(CapacityRecord)
        .where(
            CapacityRecord.tour_id == tour_id,
            CapacityRecord.start_date == start_date,
            CapacityRecord.consumed_seats + count <= CapacityRecord.max_participants,
        )
        .values(
            consumed_seats=CapacityRecord.consumed_seats + count,
            version=CapacityRecord.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    record = await _get_record(db, tour_id, start_date)

    if result.rowcount != 1:
        logger.warning(
            "capacity_exceeded",
            tour_id=tour_id,
            start_date=str(start_date),
            requested=count,
            remaining=record.remaining,
        )
        raise CapacityExceeded(requested=count, remaining=record.remaining)

    capacity_seats.labels(direction="reserve").inc(count)
    logger.info(
        "seats_reserved",
        tour_id=tour_id,
        start_date=str(start_date),
        seats=count,
        consumed=record.consumed_seats,
    )
    return record


async def release(db: AsyncSession, tour_id: int, start_date: date, count: int) -> Optional[CapacityRecord]:
    """Give `count` seats back to a departure, never dropping below zero."""
    remaining_consumed = CapacityRecord.consumed_seats - count
    result = await db.execute(
        update(CapacityRecord)
        .where(CapacityRecord.tour_id == tour_id, CapacityRecord.start_date == start_date)
        .values(
            consumed_seats=case((remaining_consumed < 0, 0), else_=remaining_consumed),
            version=CapacityRecord.version + 1,
        )
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        logger.warning("capacity_release_missing_record", tour_id=tour_id, start_date=str(start_date))
        return None

    record = await _get_record(db, tour_id, start_date)
    capacity_seats.labels(direction="release").inc(count)
    logger.info(
        "seats_released",
        tour_id=tour_id,
        start_date=str(start_date),
        seats=count,
        consumed=record.consumed_seats,
    )
    return record


async def remaining(db: AsyncSession, tour_id: int, start_date: date, max_participants: int) -> int:
    """
    Seats still free on a departure. Advisory only: `reserve` is the authority.
    `max_participants` applies when nothing has been booked on the date yet.
    """
    record = await _get_record(db, tour_id, start_date)
    if record is None:
        return max_participants
    return record.remaining


async def records_for_tour(db: AsyncSession, tour_id: int) -> dict[date, CapacityRecord]:
    result = await db.execute(select(CapacityRecord).where(CapacityRecord.tour_id == tour_id))
    return {record.start_date: record for record in result.scalars().all()}
