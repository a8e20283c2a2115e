"""
Bounded retry helpers for optimistic-locking loops.
"""

import asyncio
import random

from booking_engine.core.config import get_settings


async def backoff(attempt: int) -> None:
    """Exponential backoff with jitter before retry number `attempt` (1-based)."""
    base = get_settings().RETRY_BASE_DELAY
    await asyncio.sleep(base * (2 ** (attempt - 1)) + random.uniform(0, base))
