"""
Tour catalog endpoints. Departure availability is cached in Redis.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.db.session import get_db
from booking_engine.schemas.tour import StartDateAvailability, TourCreate, TourResponse
from booking_engine.services.catalog_service import create_tour, get_tour, start_date_availability
from booking_engine.services.cache_service import (
    get_cached_availability,
    invalidate_availability,
    set_cached_availability,
)
from booking_engine.core.security import Identity, get_admin_identity
from booking_engine.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/tours", tags=["Tours"])


def _tour_response(tour) -> TourResponse:
    return TourResponse(
        id=tour.id,
        name=tour.name,
        price=tour.price,
        max_participants=tour.max_participants,
        start_dates=[d.start_date for d in tour.start_dates],
        transports=[{"name": t.name, "price": t.price} for t in tour.transports],
    )


@router.post("", response_model=TourResponse, status_code=status.HTTP_201_CREATED)
async def create_tour_endpoint(
    tour_data: TourCreate,
    admin: Identity = Depends(get_admin_identity),
    db: AsyncSession = Depends(get_db),
):
    """Register a tour with its departures. Administrators only."""
    tour = await create_tour(db, tour_data)
    await invalidate_availability(tour.id)
    return _tour_response(tour)


@router.get("/{tour_id}", response_model=TourResponse)
async def get_tour_endpoint(tour_id: int, db: AsyncSession = Depends(get_db)):
    tour = await get_tour(db, tour_id)
    return _tour_response(tour)


@router.get("/{tour_id}/start-dates", response_model=list[StartDateAvailability])
async def list_start_dates(tour_id: int, db: AsyncSession = Depends(get_db)):
    """
    Upcoming departures with remaining seats.
    Served from cache when possible; a booking re-checks seats anyway.
    """
    cached = await get_cached_availability(tour_id)
    if cached is not None:
        logger.info("availability_cache_hit", tour_id=tour_id)
        return [StartDateAvailability(**entry, cached=True) for entry in cached]

    tour = await get_tour(db, tour_id)
    availability = await start_date_availability(db, tour)
    await set_cached_availability(tour_id, availability)

    return [StartDateAvailability(**entry, cached=False) for entry in availability]
