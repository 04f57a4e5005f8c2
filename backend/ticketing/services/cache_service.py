"""
Redis caching service for event listings.

CACHING STRATEGY
================

What we cache:
  - Event listing responses (paginated, filtered, JSON-serialized)
  - Key pattern: "events:list:page={page}&size={size}&search={search}&location={location}&date={date}"

Invalidation:
  - Any write that changes what a listing shows deletes every "events:list:*" key:
    event create/update/delete and every committed booking (available_seats moved)
  - TTL-based expiry as safety net (REDIS_CACHE_TTL)

What we never cache:
  - Single events and availability. The booking transaction always reads the
    database; a cached seat count is display data only.

Redis is optional: when it is disabled or unreachable every call degrades to
a miss / no-op and the API keeps serving from the database.
"""

import json
from datetime import date
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError
from ticketing.core.config import get_settings
from ticketing.core.logging import get_logger
from ticketing.core.metrics import record_cache_operation, record_cache_error, redis_connection_errors

logger = get_logger(__name__)
settings = get_settings()

EVENT_LIST_PREFIX = "events:list:"

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
        except RedisError as e:
            redis_connection_errors.inc()
            logger.error("redis_connection_failed", error=str(e))
            await client.aclose()
            return None
        _redis_client = client
        logger.info("redis_connected", url=settings.REDIS_URL)

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def make_event_list_key(
    page: int,
    page_size: int,
    search: Optional[str] = None,
    location: Optional[str] = None,
    on_date: Optional[date] = None,
) -> str:
    return (
        f"{EVENT_LIST_PREFIX}page={page}&size={page_size}"
        f"&search={search or ''}&location={location or ''}"
        f"&date={on_date.isoformat() if on_date else ''}"
    )


async def get_cached_events(key: str) -> Optional[dict]:
    """Retrieve a cached event list response."""
    client = await get_redis()
    if not client:
        return None

    try:
        data = await client.get(key)
    except RedisError as e:
        record_cache_error("get")
        logger.error("cache_get_error", key=key, error=str(e))
        return None

    record_cache_operation("get", hit=data is not None)
    if data:
        logger.debug("cache_hit", key=key)
        return json.loads(data)
    logger.debug("cache_miss", key=key)
    return None


async def set_cached_events(key: str, data: dict) -> None:
    """Cache an event list response with TTL."""
    client = await get_redis()
    if not client:
        return

    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except RedisError as e:
        record_cache_error("set")
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_event_cache() -> None:
    """
    Invalidate all cached event listings.
    Uses SCAN to find and delete all keys matching the prefix.
    """
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{EVENT_LIST_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", keys_deleted=deleted)
    except RedisError as e:
        record_cache_error("invalidate")
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled" if not settings.REDIS_ENABLED else "unavailable"}

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
