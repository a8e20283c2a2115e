"""
Booking endpoints: creation, lookup and the lifecycle transitions.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.db.session import get_db
from booking_engine.core.errors import GatewayError
from booking_engine.core.security import (
    Identity,
    get_admin_identity,
    get_authenticated_identity,
    get_identity,
)
from booking_engine.core.logging import get_logger
from booking_engine.models.booking import Booking, BookingStatus, PaymentMethod
from booking_engine.schemas.booking import (
    BookingCreate,
    BookingCreatedResponse,
    BookingPage,
    BookingResponse,
    BookingStats,
    PurgeResponse,
    ReasonRequest,
)
from booking_engine.services import booking_service, payment_service
from booking_engine.services.cache_service import invalidate_availability
from booking_engine.services.interfaces.gateway import PaymentGateway
from booking_engine.services.state_machine import BookingEvent
from booking_engine.services.strategy_factory import get_payment_gateway

logger = get_logger(__name__)
router = APIRouter(prefix="/bookings", tags=["Bookings"])


def parse_status_filter(
    status_filter: Optional[list[str]] = Query(None, alias="status"),
) -> Optional[list[BookingStatus]]:
    """
    Statuses to list, given as repeated parameters (`status=PENDING&status=CONFIRMED`)
    or comma-joined (`status=PENDING,CONFIRMED`).
    """
    if not status_filter:
        return None

    statuses = []
    for raw in status_filter:
        for value in filter(None, (part.strip() for part in raw.split(","))):
            try:
                statuses.append(BookingStatus(value))
            except ValueError:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail=f"Unknown booking status: {value}",
                )
    return statuses or None


@router.post("", response_model=BookingCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_booking_endpoint(
    booking_data: BookingCreate,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Book seats on a tour departure.

    Guests (no bearer token) must send a contact bundle and receive a
    guest_token to act on the booking later. Choosing GATEWAY starts a
    redirect payment right away; if the provider is down the booking is
    still created and the payment can be retried.

    The booking and its seats are committed before the provider is called, so
    a slow provider never holds the departure's capacity row.
    """
    booking = await booking_service.create_booking(db, booking_data, identity)
    await db.commit()
    await invalidate_availability(booking.tour_id)

    payment_url = None
    if booking_data.payment_method is PaymentMethod.GATEWAY:
        holder = identity if identity.is_authenticated else Identity(guest_token=booking.guest_token)
        try:
            intent = await payment_service.initiate_gateway(db, booking.id, holder, gateway)
        except GatewayError as e:
            logger.warning("booking_payment_deferred", booking_id=booking.id, error=e.message)
        else:
            payment_url = intent.pay_url
            booking = await booking_service.get_booking(db, booking.id)

    response = BookingCreatedResponse.model_validate(booking)
    response.guest_token = booking.guest_token
    response.payment_url = payment_url
    return response


@router.get("/my", response_model=BookingPage)
async def list_my_bookings(
    statuses: Optional[list[BookingStatus]] = Depends(parse_status_filter),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(get_authenticated_identity),
    db: AsyncSession = Depends(get_db),
):
    """Bookings held by the authenticated caller."""
    items, total = await booking_service.list_bookings(
        db, statuses=statuses, user_id=identity.subject, page=page, page_size=page_size
    )
    return BookingPage(
        items=[BookingResponse.model_validate(b) for b in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("", response_model=BookingPage)
async def list_all_bookings(
    statuses: Optional[list[BookingStatus]] = Depends(parse_status_filter),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    admin: Identity = Depends(get_admin_identity),
    db: AsyncSession = Depends(get_db),
):
    items, total = await booking_service.list_bookings(
        db, statuses=statuses, page=page, page_size=page_size
    )
    return BookingPage(
        items=[BookingResponse.model_validate(b) for b in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/stats", response_model=BookingStats)
async def booking_stats_endpoint(
    admin: Identity = Depends(get_admin_identity),
    db: AsyncSession = Depends(get_db),
):
    counts = await booking_service.booking_stats(db)
    return BookingStats(
        pending=counts[BookingStatus.PENDING],
        confirmed=counts[BookingStatus.CONFIRMED],
        rejected=counts[BookingStatus.REJECTED],
        cancel_requested=counts[BookingStatus.CANCEL_REQUEST],
        cancelled=counts[BookingStatus.CANCELLED],
        completed=counts[BookingStatus.COMPLETED],
        deleted=counts[BookingStatus.DELETED],
    )


@router.post("/purge", response_model=PurgeResponse)
async def purge_bookings_endpoint(
    older_than_days: int = Query(30, ge=0),
    admin: Identity = Depends(get_admin_identity),
    db: AsyncSession = Depends(get_db),
):
    """Permanently remove bookings that have been DELETED for a while."""
    purged = await booking_service.purge_deleted_bookings(db, older_than_days=older_than_days)
    return PurgeResponse(purged=purged)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking_endpoint(
    booking_id: int,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.get_booking_for(db, booking_id, identity)


async def _transition(
    db: AsyncSession,
    booking_id: int,
    event: BookingEvent,
    identity: Identity,
    body: Optional[ReasonRequest] = None,
) -> Booking:
    booking = await booking_service.apply_transition(
        db, booking_id, event, identity, reason=body.reason if body else None
    )
    await db.commit()
    if booking.seats_released:
        await invalidate_availability(booking.tour_id)
    return booking


@router.patch("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking(
    booking_id: int,
    admin: Identity = Depends(get_admin_identity),
    db: AsyncSession = Depends(get_db),
):
    return await _transition(db, booking_id, BookingEvent.CONFIRM, admin)


@router.patch("/{booking_id}/reject", response_model=BookingResponse)
async def reject_booking(
    booking_id: int,
    body: Optional[ReasonRequest] = None,
    admin: Identity = Depends(get_admin_identity),
    db: AsyncSession = Depends(get_db),
):
    """Reject a pending booking. A reason is required; seats are released."""
    return await _transition(db, booking_id, BookingEvent.REJECT, admin, body)


@router.patch("/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(
    booking_id: int,
    admin: Identity = Depends(get_admin_identity),
    db: AsyncSession = Depends(get_db),
):
    return await _transition(db, booking_id, BookingEvent.COMPLETE, admin)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def request_cancellation(
    booking_id: int,
    body: Optional[ReasonRequest] = None,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """
    Ask for a booking to be cancelled. Holder only: guests authenticate
    with the X-Guest-Token header.
    """
    return await _transition(db, booking_id, BookingEvent.REQUEST_CANCEL, identity, body)


@router.patch("/{booking_id}/cancel/approve", response_model=BookingResponse)
async def approve_cancellation(
    booking_id: int,
    admin: Identity = Depends(get_admin_identity),
    db: AsyncSession = Depends(get_db),
):
    return await _transition(db, booking_id, BookingEvent.APPROVE_CANCEL, admin)


@router.patch("/{booking_id}/cancel/reject", response_model=BookingResponse)
async def reject_cancellation(
    booking_id: int,
    body: Optional[ReasonRequest] = None,
    admin: Identity = Depends(get_admin_identity),
    db: AsyncSession = Depends(get_db),
):
    return await _transition(db, booking_id, BookingEvent.REJECT_CANCEL, admin, body)


@router.delete("/{booking_id}", response_model=BookingResponse)
async def delete_booking(
    booking_id: int,
    admin: Identity = Depends(get_admin_identity),
    db: AsyncSession = Depends(get_db),
):
    """Soft delete a rejected or cancelled booking."""
    return await _transition(db, booking_id, BookingEvent.PURGE, admin)
