"""
Payment endpoints and the provider webhook.
"""

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.db.session import get_db
from booking_engine.core.security import Identity, get_admin_identity, get_identity
from booking_engine.core.logging import get_logger
from booking_engine.core.metrics import record_payment_callback
from booking_engine.schemas.payment import CallbackResult, PaymentIntentResponse, PaymentStateResponse
from booking_engine.services import payment_service
from booking_engine.services.interfaces.gateway import PaymentGateway
from booking_engine.services.reconciliation import handle_callback
from booking_engine.services.strategy_factory import get_payment_gateway

logger = get_logger(__name__)
router = APIRouter(prefix="/payments", tags=["Payments"])

# Rejections answered with 409 instead of 400
_CONFLICT_REASONS = {"stale_intent"}


def _payment_state(booking) -> PaymentStateResponse:
    return PaymentStateResponse(
        booking_id=booking.id,
        payment_method=booking.payment_method,
        payment_status=booking.payment_status,
    )


@router.post("/{booking_id}/direct", response_model=PaymentStateResponse)
async def choose_direct_payment(
    booking_id: int,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """Pay on arrival. Any open gateway payment for the booking is abandoned."""
    booking = await payment_service.initiate_direct(db, booking_id, identity)
    return _payment_state(booking)


@router.post(
    "/{booking_id}/gateway",
    response_model=PaymentIntentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def start_gateway_payment(
    booking_id: int,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Start (or restart) a redirect payment. Each call issues a fresh intent;
    callbacks for earlier ones are ignored from then on.
    """
    intent = await payment_service.initiate_gateway(db, booking_id, identity, gateway)
    return PaymentIntentResponse(
        booking_id=intent.booking_id,
        provider_order_id=intent.provider_order_id,
        pay_url=intent.pay_url,
        amount=intent.amount,
    )


@router.patch("/{booking_id}/paid", response_model=PaymentStateResponse)
async def mark_direct_payment_paid(
    booking_id: int,
    admin: Identity = Depends(get_admin_identity),
    db: AsyncSession = Depends(get_db),
):
    booking = await payment_service.mark_paid_direct(db, booking_id, admin)
    return _payment_state(booking)


@router.post(
    "/callback",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={400: {"model": CallbackResult}, 409: {"model": CallbackResult}},
)
async def gateway_callback(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Provider notification. 204 when applied or already applied, 400 for a
    bad signature or payload, 409 for a superseded payment attempt.
    """
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        record_payment_callback("rejected")
        logger.warning("payment_callback_rejected", reason="malformed_payload")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=CallbackResult(status="rejected", reason="malformed_payload").model_dump(),
        )

    outcome = await handle_callback(db, payload)
    if outcome.ok:
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    status_code = (
        status.HTTP_409_CONFLICT if outcome.reason in _CONFLICT_REASONS else status.HTTP_400_BAD_REQUEST
    )
    return JSONResponse(
        status_code=status_code,
        content=CallbackResult(status=outcome.status, reason=outcome.reason).model_dump(),
    )
