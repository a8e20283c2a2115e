"""
Payment orchestrator: the payment sub-state of a booking and its two channels.

    DIRECT   pay on arrival; only an administrator marks it PAID
    GATEWAY  redirect payment; only a provider callback carrying the booking's
             current intent token marks it PAID or FAILED

Every write is a guarded UPDATE on `bookings.version` (the same lock the
state machine uses), so a payment change and a status transition on one
booking never interleave.

Intent supersession: each initiate_gateway() call mints a new token and
makes it the booking's current one. Callbacks for any older token are
rejected with StaleIntentToken, whatever their outcome, so a superseded
attempt can never mark a booking paid. Duplicate deliveries of an outcome
that was already applied are acknowledged without re-applying it.

Payment status never drives booking status: an unpaid booking can still be
confirmed and completed, and unpaid bookings are not expired here.
"""

import secrets
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.config import get_settings
from booking_engine.core.errors import (
    AlreadyPaid,
    ConcurrentModification,
    GatewayError,
    NotDirectPayment,
    PaymentNotAllowed,
    PermissionDenied,
    StaleIntentToken,
)
from booking_engine.core.logging import get_logger
from booking_engine.core.metrics import payment_initiations, record_payment_callback
from booking_engine.core.retry import backoff
from booking_engine.core.security import Identity
from booking_engine.models.booking import Booking, PaymentMethod, PaymentStatus
from booking_engine.models.payment import IntentStatus, PaymentIntent
from booking_engine.services import booking_service, intent_store
from booking_engine.services.interfaces.gateway import IntentRequest, PaymentGateway
from booking_engine.services.state_machine import ACTIVE_STATUSES, PAYABLE_STATUSES

logger = get_logger(__name__)
settings = get_settings()

_INTENT_OUTCOME = {
    PaymentStatus.PAID: IntentStatus.PAID,
    PaymentStatus.FAILED: IntentStatus.FAILED,
}


async def _guarded_update(db: AsyncSession, booking: Booking, *conditions, **values) -> bool:
    """Write payment fields iff nobody touched the booking since it was read."""
    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking.id, Booking.version == booking.version, *conditions)
        .values(version=Booking.version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _ensure_can_initiate(booking: Booking) -> None:
    if booking.status not in PAYABLE_STATUSES:
        raise PaymentNotAllowed(
            f"Payments can only be started for pending or confirmed bookings, "
            f"booking {booking.id} is {booking.status.value}"
        )
    if booking.payment_status is PaymentStatus.PAID:
        raise AlreadyPaid(booking.id)


async def initiate_direct(db: AsyncSession, booking_id: int, identity: Identity) -> Booking:
    """Switch a booking to pay-on-arrival. Supersedes any open gateway intent."""
    for attempt in range(1, settings.TRANSITION_MAX_RETRIES + 1):
        booking = await booking_service.get_booking_for(db, booking_id, identity)
        _ensure_can_initiate(booking)

        if booking.payment_method is PaymentMethod.DIRECT and booking.payment_status is PaymentStatus.PENDING:
            return booking

        if await _guarded_update(
            db,
            booking,
            payment_method=PaymentMethod.DIRECT,
            payment_status=PaymentStatus.PENDING,
            payment_intent_token=None,
        ):
            await intent_store.supersede_open_intents(db, booking_id)
            payment_initiations.labels(method=PaymentMethod.DIRECT.value, result="issued").inc()
            logger.info("payment_direct_initiated", booking_id=booking_id, attempt=attempt)
            return await booking_service.get_booking(db, booking_id)

        if attempt < settings.TRANSITION_MAX_RETRIES:
            await backoff(attempt)

    raise ConcurrentModification(f"Booking {booking_id}")


async def initiate_gateway(
    db: AsyncSession,
    booking_id: int,
    identity: Identity,
    gateway: PaymentGateway,
) -> PaymentIntent:
    """
    Issue a new redirect-payment intent. The provider is asked first; state is
    only written once a payment URL exists, so a GatewayError changes nothing.
    """
    booking = await booking_service.get_booking_for(db, booking_id, identity)
    _ensure_can_initiate(booking)

    token = secrets.token_hex(16)
    order_id = f"BK{booking.id}-{token[:12]}"
    request = IntentRequest(
        booking_id=booking.id,
        provider_order_id=order_id,
        amount=booking.total_price,
        description=f"Booking #{booking.id}, tour {booking.tour_id} departing {booking.start_date}",
    )

    try:
        pay_url = await gateway.create_intent(request)
    except GatewayError:
        payment_initiations.labels(method=PaymentMethod.GATEWAY.value, result="failed").inc()
        raise

    for attempt in range(1, settings.TRANSITION_MAX_RETRIES + 1):
        if attempt > 1:
            booking = await booking_service.get_booking(db, booking_id)
            _ensure_can_initiate(booking)

        previous_token = booking.payment_intent_token
        if await _guarded_update(
            db,
            booking,
            payment_method=PaymentMethod.GATEWAY,
            payment_status=PaymentStatus.PENDING,
            payment_intent_token=token,
        ):
            intent = PaymentIntent(
                token=token,
                booking_id=booking_id,
                provider_order_id=order_id,
                pay_url=pay_url,
                amount=booking.total_price,
                status=IntentStatus.ISSUED,
            )
            db.add(intent)
            await db.flush()
            superseded = await intent_store.supersede_open_intents(db, booking_id, keep_token=token)

            payment_initiations.labels(method=PaymentMethod.GATEWAY.value, result="issued").inc()
            logger.info(
                "payment_intent_issued",
                booking_id=booking_id,
                order_id=order_id,
                gateway=gateway.name,
                amount=booking.total_price,
                replaced_previous=previous_token is not None,
                superseded=superseded,
            )
            return intent

        if attempt < settings.TRANSITION_MAX_RETRIES:
            await backoff(attempt)

    raise ConcurrentModification(f"Booking {booking_id}")


async def mark_paid_direct(db: AsyncSession, booking_id: int, identity: Identity) -> Booking:
    """Administrator confirms a pay-on-arrival payment was received."""
    if not identity.is_admin:
        raise PermissionDenied("Only administrators can record direct payments")

    for attempt in range(1, settings.TRANSITION_MAX_RETRIES + 1):
        booking = await booking_service.get_booking(db, booking_id)

        if booking.payment_method is not PaymentMethod.DIRECT:
            raise NotDirectPayment(booking_id)
        if booking.payment_status is PaymentStatus.PAID:
            raise AlreadyPaid(booking_id)
        if booking.status not in ACTIVE_STATUSES:
            raise PaymentNotAllowed(f"Booking {booking_id} is {booking.status.value}")

        if await _guarded_update(
            db,
            booking,
            payment_status=PaymentStatus.PAID,
            paid_at=datetime.now(timezone.utc),
        ):
            logger.info("payment_direct_paid", booking_id=booking_id, actor=identity.subject)
            return await booking_service.get_booking(db, booking_id)

        if attempt < settings.TRANSITION_MAX_RETRIES:
            await backoff(attempt)

    raise ConcurrentModification(f"Booking {booking_id}")


async def on_gateway_callback(
    db: AsyncSession,
    token: str,
    outcome: PaymentStatus,
    provider_transaction_id: Optional[str] = None,
) -> tuple[Booking, bool]:
    """
    Apply a provider outcome (PAID or FAILED) to the booking owning `token`.

    Returns the booking and whether this call changed it (False for a
    duplicate delivery of an outcome that was already applied).
    """
    if outcome not in _INTENT_OUTCOME:
        raise ValueError(f"Gateway outcome must be PAID or FAILED, got {outcome}")

    intent = await intent_store.get_by_token(db, token)
    if intent is None:
        record_payment_callback("stale")
        raise StaleIntentToken(token)

    for attempt in range(1, settings.TRANSITION_MAX_RETRIES + 1):
        booking = await booking_service.get_booking(db, intent.booking_id)

        if booking.payment_method is not PaymentMethod.GATEWAY or booking.payment_intent_token != token:
            record_payment_callback("stale")
            logger.warning(
                "payment_callback_stale",
                booking_id=booking.id,
                order_id=intent.provider_order_id,
                outcome=outcome.value,
            )
            raise StaleIntentToken(token)

        if booking.payment_status is not PaymentStatus.PENDING:
            if booking.payment_status is outcome:
                record_payment_callback("duplicate")
                logger.info(
                    "payment_callback_duplicate",
                    booking_id=booking.id,
                    order_id=intent.provider_order_id,
                    outcome=outcome.value,
                )
                return booking, False
            # The intent already settled the other way
            record_payment_callback("stale")
            raise StaleIntentToken(token)

        values = {"payment_status": outcome}
        if outcome is PaymentStatus.PAID:
            values["paid_at"] = datetime.now(timezone.utc)

        if await _guarded_update(
            db,
            booking,
            Booking.payment_intent_token == token,
            Booking.payment_status == PaymentStatus.PENDING,
            **values,
        ):
            await db.execute(
                update(PaymentIntent)
                .where(PaymentIntent.token == token)
                .values(status=_INTENT_OUTCOME[outcome], provider_transaction_id=provider_transaction_id)
                .execution_options(synchronize_session=False)
            )
            record_payment_callback("applied")
            logger.info(
                "payment_callback_applied",
                booking_id=booking.id,
                order_id=intent.provider_order_id,
                outcome=outcome.value,
                transaction_id=provider_transaction_id,
            )
            return await booking_service.get_booking(db, booking.id), True

        if attempt < settings.TRANSITION_MAX_RETRIES:
            await backoff(attempt)

    raise ConcurrentModification(f"Booking {intent.booking_id}")
