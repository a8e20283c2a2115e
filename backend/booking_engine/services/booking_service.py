"""
Booking service: creation and the guarded application of state transitions.

CREATION
========
  1. Validate the departure and transport against the catalog
  2. Compute the total price (never recomputed afterwards)
  3. Reserve seats in the capacity ledger; on CapacityExceeded nothing is written
  4. Insert the booking in PENDING

All four happen in the request transaction.

TRANSITIONS
===========
  Optimistic locking on `bookings.version`:

  1. Read the booking, look up (status, event) in the transition table
  2. Check guards (admin / holder / reason)
  3. UPDATE bookings SET status = :target, version = version + 1, ...
      WHERE id = :id AND version = :current_version
  4. rows_affected == 1 -> run side effects (seat release) in the same
     transaction; rows_affected == 0 -> re-read and retry while the status
     is unchanged (a concurrent payment update only bumps the version)

  If another transition changed the status in the meantime, or retries run
  out, the caller gets ConcurrentModification and should retry the whole
  operation.

  Seats are released at most once per booking: the flag `seats_released` is
  flipped inside the same guarded UPDATE.
"""

import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.config import get_settings
from booking_engine.core.errors import (
    CapacityExceeded,
    ConcurrentModification,
    BookingNotFound,
    DomainError,
    InvalidContact,
)
from booking_engine.core.logging import get_logger
from booking_engine.core.metrics import booking_latency, record_booking_attempt, record_transition
from booking_engine.core.retry import backoff
from booking_engine.core.security import Identity
from booking_engine.models.booking import Booking, BookingStatus, PaymentMethod, PaymentStatus
from booking_engine.models.payment import PaymentIntent
from booking_engine.schemas.booking import BookingCreate
from booking_engine.services import capacity_ledger, catalog_service, intent_store, state_machine
from booking_engine.services.pricing import compute_total
from booking_engine.services.state_machine import BookingEvent

logger = get_logger(__name__)
settings = get_settings()


async def create_booking(db: AsyncSession, booking_data: BookingCreate, identity: Identity) -> Booking:
    """Reserve seats and create a PENDING booking."""
    start = time.perf_counter()
    try:
        booking = await _create_booking(db, booking_data, identity)
    except CapacityExceeded:
        record_booking_attempt("capacity_exceeded")
        raise
    except DomainError:
        record_booking_attempt("error")
        raise
    finally:
        booking_latency.observe(time.perf_counter() - start)

    record_booking_attempt("success")
    return booking


async def _create_booking(db: AsyncSession, booking_data: BookingCreate, identity: Identity) -> Booking:
    if identity.is_authenticated:
        if booking_data.has_contact:
            raise InvalidContact("Authenticated bookings use the caller's identity, not a guest contact")
        contact = {"user_id": identity.subject}
    else:
        if not (booking_data.contact_name and booking_data.contact_email and booking_data.contact_phone):
            raise InvalidContact("Guest bookings require contact name, email and phone")
        contact = {
            "contact_name": booking_data.contact_name,
            "contact_email": str(booking_data.contact_email),
            "contact_phone": booking_data.contact_phone,
            "guest_token": secrets.token_urlsafe(24),
        }

    tour = await catalog_service.get_tour(db, booking_data.tour_id)
    catalog_service.check_start_date(tour, booking_data.start_date)
    surcharge = catalog_service.transport_surcharge(tour, booking_data.transport_name)
    total_price = compute_total(tour.price, booking_data.headcount, surcharge)

    await capacity_ledger.reserve(
        db,
        tour_id=tour.id,
        start_date=booking_data.start_date,
        count=booking_data.headcount,
        max_participants=tour.max_participants,
    )

    booking = Booking(
        tour_id=tour.id,
        start_date=booking_data.start_date,
        headcount=booking_data.headcount,
        transport_name=booking_data.transport_name or None,
        transport_price=surcharge,
        total_price=total_price,
        note=booking_data.note,
        status=BookingStatus.PENDING,
        seats_released=False,
        version=1,
        **contact,
    )
    if booking_data.payment_method is PaymentMethod.DIRECT:
        booking.payment_method = PaymentMethod.DIRECT
        booking.payment_status = PaymentStatus.PENDING

    db.add(booking)
    await db.flush()
    await db.refresh(booking)

    logger.info(
        "booking_created",
        booking_id=booking.id,
        tour_id=tour.id,
        start_date=str(booking.start_date),
        headcount=booking.headcount,
        total_price=booking.total_price,
        guest=booking.is_guest,
    )
    return booking


async def get_booking(db: AsyncSession, booking_id: int) -> Booking:
    """Load a booking, always reflecting the latest committed row."""
    result = await db.execute(
        select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise BookingNotFound(booking_id)
    return booking


async def get_booking_for(db: AsyncSession, booking_id: int, identity: Identity) -> Booking:
    """A booking as seen by its holder or an administrator."""
    booking = await get_booking(db, booking_id)
    if not (identity.is_admin or state_machine.is_holder(booking, identity)):
        # Same answer as a missing booking: ids are not an oracle
        raise BookingNotFound(booking_id)
    return booking


async def apply_transition(
    db: AsyncSession,
    booking_id: int,
    event: BookingEvent,
    identity: Identity,
    reason: Optional[str] = None,
) -> Booking:
    """
    Apply one event of the booking state machine.
    Retries up to TRANSITION_MAX_RETRIES on version conflicts.
    """
    observed_status: Optional[BookingStatus] = None

    for attempt in range(1, settings.TRANSITION_MAX_RETRIES + 1):
        booking = await get_booking(db, booking_id)

        if observed_status is None:
            observed_status = booking.status
        elif booking.status != observed_status:
            record_transition(event.value, "conflict")
            logger.warning(
                "transition_lost_race",
                booking_id=booking_id,
                booking_event=event.value,
                expected=observed_status.value,
                found=booking.status.value,
            )
            raise ConcurrentModification(f"Booking {booking_id}")

        try:
            transition = state_machine.lookup(booking.status, event)
        except DomainError:
            record_transition(event.value, "illegal")
            logger.warning(
                "transition_illegal",
                booking_id=booking_id,
                status=booking.status.value,
                booking_event=event.value,
            )
            raise
        state_machine.check_guards(transition, booking, identity, reason)

        target = state_machine.resolve_target(
            transition, booking, settings.CANCEL_REJECT_RESTORES_PRIOR_STATUS
        )
        values = {"status": target, "version": Booking.version + 1}

        if event is BookingEvent.REQUEST_CANCEL:
            values["status_before_cancel"] = booking.status
        elif event is BookingEvent.REJECT_CANCEL:
            values["status_before_cancel"] = None
        if reason and reason.strip():
            values["reason"] = reason.strip()

        release_seats = transition.releases_seats and not booking.seats_released
        if release_seats:
            values["seats_released"] = True

        void_payment = transition.releases_seats and booking.payment_status is PaymentStatus.PENDING
        if void_payment:
            values["payment_status"] = PaymentStatus.CANCELLED
            values["payment_intent_token"] = None

        current_version = booking.version
        result = await db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.version == current_version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 1:
            if release_seats:
                await capacity_ledger.release(db, booking.tour_id, booking.start_date, booking.headcount)
            if void_payment:
                await intent_store.supersede_open_intents(db, booking_id)

            booking = await get_booking(db, booking_id)
            record_transition(event.value, "applied")
            logger.info(
                "booking_transitioned",
                booking_id=booking_id,
                booking_event=event.value,
                source=observed_status.value,
                target=booking.status.value,
                seats_released=release_seats,
                actor=identity.subject or "guest",
                attempt=attempt,
            )
            return booking

        logger.info(
            "transition_retry",
            booking_id=booking_id,
            booking_event=event.value,
            attempt=attempt,
            reason="version_conflict",
        )
        if attempt < settings.TRANSITION_MAX_RETRIES:
            await backoff(attempt)

    record_transition(event.value, "conflict")
    raise ConcurrentModification(f"Booking {booking_id}")


async def list_bookings(
    db: AsyncSession,
    statuses: Optional[Iterable[BookingStatus]] = None,
    user_id: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[Booking], int]:
    """Bookings newest first, optionally filtered by status and holder."""
    query = select(Booking)

    statuses = list(statuses or [])
    if statuses:
        query = query.where(Booking.status.in_(statuses))
    if user_id is not None:
        query = query.where(Booking.user_id == user_id)

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    result = await db.execute(
        query
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def booking_stats(db: AsyncSession) -> dict[BookingStatus, int]:
    """Number of bookings per status (every status present, zero if none)."""
    result = await db.execute(select(Booking.status, func.count()).group_by(Booking.status))
    counts = {status: 0 for status in BookingStatus}
    for status, count in result.all():
        counts[BookingStatus(status)] = count
    return counts


async def purge_deleted_bookings(db: AsyncSession, older_than_days: int = 30) -> int:
    """
    Hard delete bookings that reached DELETED more than `older_than_days` ago.
    Only DELETED bookings are eligible; their seats were released on the way.
    """
    cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
    doomed = (
        select(Booking.id)
        .where(Booking.status == BookingStatus.DELETED, Booking.updated_at <= cutoff)
        .scalar_subquery()
    )

    await db.execute(
        delete(PaymentIntent)
        .where(PaymentIntent.booking_id.in_(doomed))
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(
        delete(Booking)
        .where(Booking.status == BookingStatus.DELETED, Booking.updated_at <= cutoff)
        .execution_options(synchronize_session=False)
    )

    logger.info("bookings_purged", count=result.rowcount, older_than_days=older_than_days)
    return result.rowcount
