"""
Persistence helpers for payment intents, shared by the booking service
(which supersedes intents when a booking is rejected or cancelled) and the
payment orchestrator.
"""

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.models.payment import IntentStatus, PaymentIntent


async def get_by_token(db: AsyncSession, token: str) -> Optional[PaymentIntent]:
    result = await db.execute(select(PaymentIntent).where(PaymentIntent.token == token))
    return result.scalar_one_or_none()


async def get_by_order_id(db: AsyncSession, provider_order_id: str) -> Optional[PaymentIntent]:
    result = await db.execute(
        select(PaymentIntent).where(PaymentIntent.provider_order_id == provider_order_id)
    )
    return result.scalar_one_or_none()


async def supersede_open_intents(db: AsyncSession, booking_id: int, keep_token: Optional[str] = None) -> int:
    """Mark every still-ISSUED intent of a booking SUPERSEDED, except `keep_token`."""
    stmt = update(PaymentIntent).where(
        PaymentIntent.booking_id == booking_id,
        PaymentIntent.status == IntentStatus.ISSUED,
    )
    if keep_token is not None:
        stmt = stmt.where(PaymentIntent.token != keep_token)
    result = await db.execute(
        stmt.values(status=IntentStatus.SUPERSEDED).execution_options(synchronize_session=False)
    )
    return result.rowcount

