"""
Reconciliation adapter: provider notifications -> payment orchestrator.

  1. Verify the HMAC signature over the raw payload
  2. Validate the payload shape
  3. Map the provider's orderId to the intent we issued, check the amount
  4. resultCode 0 -> PAID, anything else -> FAILED
  5. Forward (intent token, outcome) to on_gateway_callback

Providers deliver at least once. Replays are safe because the orchestrator
only applies an outcome to the booking's current, still-pending intent.
Provider-side problems never raise: they come back as a rejected result.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.config import get_settings
from booking_engine.core.errors import StaleIntentToken
from booking_engine.core.logging import get_logger
from booking_engine.core.metrics import record_payment_callback
from booking_engine.core.signing import verify
from booking_engine.models.booking import PaymentStatus
from booking_engine.schemas.payment import GatewayCallback
from booking_engine.services import intent_store, payment_service

logger = get_logger(__name__)

SUCCESS_RESULT_CODE = 0


@dataclass(frozen=True)
class CallbackOutcome:
    status: str  # ok | rejected
    reason: Optional[str] = None
    booking_id: Optional[int] = None
    applied: bool = False

    @property
    def ok(self) -> bool:
        return self.status == "ok"


def _rejected(reason: str, **context) -> CallbackOutcome:
    record_payment_callback("rejected")
    logger.warning("payment_callback_rejected", reason=reason, **context)
    return CallbackOutcome(status="rejected", reason=reason, booking_id=context.get("booking_id"))


async def handle_callback(db: AsyncSession, payload: Mapping[str, Any]) -> CallbackOutcome:
    if not verify(payload, get_settings().GATEWAY_SECRET_KEY):
        return _rejected("invalid_signature", order_id=payload.get("orderId"))

    try:
        callback = GatewayCallback.model_validate(dict(payload))
    except ValidationError as e:
        return _rejected("malformed_payload", errors=e.error_count())

    intent = await intent_store.get_by_order_id(db, callback.orderId)
    if intent is None:
        return _rejected("unknown_order", order_id=callback.orderId)

    if callback.amount != intent.amount:
        return _rejected(
            "amount_mismatch",
            order_id=callback.orderId,
            booking_id=intent.booking_id,
            expected=intent.amount,
            received=callback.amount,
        )

    outcome = PaymentStatus.PAID if callback.resultCode == SUCCESS_RESULT_CODE else PaymentStatus.FAILED
    try:
        booking, applied = await payment_service.on_gateway_callback(
            db,
            token=intent.token,
            outcome=outcome,
            provider_transaction_id=str(callback.transId),
        )
    except StaleIntentToken:
        # Already counted by the orchestrator
        logger.warning(
            "payment_callback_rejected",
            reason="stale_intent",
            order_id=callback.orderId,
            booking_id=intent.booking_id,
        )
        return CallbackOutcome(status="rejected", reason="stale_intent", booking_id=intent.booking_id)

    return CallbackOutcome(status="ok", booking_id=booking.id, applied=applied)
