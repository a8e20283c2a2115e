"""
Tour catalog read access: what the booking engine needs from a tour.

getCapacity / getPrice / getTransportSurcharge from the catalog boundary map
to `Tour.max_participants`, `Tour.price` and `transport_surcharge()`.
"""

from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.errors import InvalidStartDate, InvalidTransport, TourNotFound
from booking_engine.core.logging import get_logger
from booking_engine.models.tour import Tour, TourStartDate, TourTransport
from booking_engine.schemas.tour import TourCreate
from booking_engine.services import capacity_ledger

logger = get_logger(__name__)


async def create_tour(db: AsyncSession, tour_data: TourCreate) -> Tour:
    """Register a tour with its departures and transport options."""
    tour = Tour(
        name=tour_data.name,
        price=tour_data.price,
        max_participants=tour_data.max_participants,
        start_dates=[TourStartDate(start_date=d) for d in sorted(set(tour_data.start_dates))],
        transports=[TourTransport(name=t.name, price=t.price) for t in tour_data.transports],
    )
    db.add(tour)
    await db.flush()
    tour = await get_tour(db, tour.id)

    logger.info("tour_created", tour_id=tour.id, name=tour.name, max_participants=tour.max_participants)
    return tour


async def get_tour(db: AsyncSession, tour_id: int) -> Tour:
    result = await db.execute(select(Tour).where(Tour.id == tour_id))
    tour = result.scalar_one_or_none()
    if not tour:
        raise TourNotFound(tour_id)
    return tour


def check_start_date(tour: Tour, start_date: date, today: Optional[date] = None) -> None:
    today = today or date.today()
    if start_date < today:
        raise InvalidStartDate(f"Start date {start_date} is in the past")
    if start_date not in {d.start_date for d in tour.start_dates}:
        raise InvalidStartDate(f"Tour {tour.id} does not depart on {start_date}")


def transport_surcharge(tour: Tour, transport_name: Optional[str]) -> int:
    """Per-person surcharge of the chosen transport; 0 when none is chosen."""
    if not transport_name:
        return 0
    for transport in tour.transports:
        if transport.name == transport_name:
            return transport.price
    raise InvalidTransport(f"Tour {tour.id} has no transport option named {transport_name!r}")


async def start_date_availability(db: AsyncSession, tour: Tour, today: Optional[date] = None) -> list[dict]:
    """
    Remaining seats per upcoming departure, soonest first.
    Advisory: the ledger's reserve() is the authority at booking time.
    """
    today = today or date.today()
    records = await capacity_ledger.records_for_tour(db, tour.id)

    availability = []
    for entry in tour.start_dates:
        if entry.start_date < today:
            continue
        record = records.get(entry.start_date)
        remaining = record.remaining if record else tour.max_participants
        availability.append({
            "date": entry.start_date,
            "remaining_seats": remaining,
            "available": remaining > 0,
        })
    return availability
