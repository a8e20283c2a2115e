"""
Redis caching for departure availability.

CACHING STRATEGY
================

What we cache:
  - The start-date availability list of a tour (JSON-serialized)
  - Cache key pattern: "tours:{tour_id}:availability"

Why:
  - Tour pages poll availability far more often than seats change
  - The list is advisory; reserve() re-checks against the ledger

Invalidation strategy:
  - Every reserve/release for a tour deletes that tour's key
  - TTL-based expiry (REDIS_CACHE_TTL) as safety net

Redis is optional: when disabled or unreachable every call degrades to a
cache miss and the database answers.
"""

import json
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from booking_engine.core.config import get_settings
from booking_engine.core.logging import get_logger
from booking_engine.core.metrics import record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled or down."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
        )
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            logger.error("redis_connection_failed", error=str(e))
            await client.aclose()
            return None
        _redis_client = client
        logger.info("redis_connected", url=settings.REDIS_URL)

    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def _availability_key(tour_id: int) -> str:
    return f"tours:{tour_id}:availability"


async def get_cached_availability(tour_id: int) -> Optional[list[dict]]:
    client = await get_redis()
    if not client:
        return None

    key = _availability_key(tour_id)
    try:
        data = await client.get(key)
    except RedisError as e:
        logger.error("cache_get_error", key=key, error=str(e))
        return None

    record_cache_operation("get", hit=data is not None)
    if data:
        logger.debug("cache_hit", key=key)
        return json.loads(data)
    logger.debug("cache_miss", key=key)
    return None


async def set_cached_availability(tour_id: int, availability: list[dict]) -> None:
    client = await get_redis()
    if not client:
        return

    key = _availability_key(tour_id)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(availability, default=str))
        record_cache_operation("set", hit=False)
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except RedisError as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_availability(tour_id: int) -> None:
    client = await get_redis()
    if not client:
        return

    key = _availability_key(tour_id)
    try:
        await client.delete(key)
        logger.info("cache_invalidated", key=key)
    except RedisError as e:
        logger.error("cache_invalidation_error", key=key, error=str(e))


async def get_cache_stats() -> dict:
    """Redis statistics for the health endpoint."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
    except RedisError as e:
        return {"status": "error", "error": str(e)}

    hits = info.get("keyspace_hits", 0)
    misses = info.get("keyspace_misses", 0)
    return {
        "status": "connected",
        "hits": hits,
        "misses": misses,
        "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
    }
