"""
Redis caching service for public listing feeds.

CACHING STRATEGY
================

What we cache:
  - Public listing responses (available listings by kind, JSON-serialized)
  - Cache key pattern:
    "listings:public:kind={kind}&city={city}&from={from}&to={to}"

Why:
  - The public feed is the most frequent anonymous read
  - Listings change rarely compared to how often they are browsed

Invalidation strategy:
  - On any listing mutation (create, update, images, delete): delete all
    public listing keys
  - On booking writes that narrow a date window: the date-filtered feed
    is only cached when no window is given, so bookings never stale it
  - TTL-based expiry as safety net (LISTING_CACHE_TTL)

  All public keys start with "listings:public:" so we can SCAN and delete them.

Never cached:
  - Availability, bookings and anything per-principal
"""

import json
from typing import Optional

import redis.asyncio as redis
from staybook.core.config import get_settings
from staybook.core.logging import get_logger
from staybook.core.metrics import cache_operations, record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

PUBLIC_PREFIX = "listings:public:"

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            # Test connection
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.close()
        _redis_client = None


def make_public_key(kind: str, city: Optional[str]) -> str:
    city_part = (city or "").strip().lower()
    return f"{PUBLIC_PREFIX}kind={kind}&city={city_part}"


async def get_cached_listings(kind: str, city: Optional[str]) -> Optional[dict]:
    """Retrieve a cached public listing response."""
    client = await get_redis()
    if not client:
        return None

    key = make_public_key(kind, city)
    try:
        data = await client.get(key)
        if data:
            logger.debug("cache_hit", key=key)
            record_cache_operation("get", hit=True)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
        record_cache_operation("get", hit=False)
    except Exception as e:
        cache_operations.labels(operation="get", result="error").inc()
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_listings(kind: str, city: Optional[str], data: dict) -> None:
    """Cache a public listing response with TTL."""
    client = await get_redis()
    if not client:
        return

    key = make_public_key(kind, city)
    try:
        await client.setex(key, settings.LISTING_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.LISTING_CACHE_TTL)
    except Exception as e:
        cache_operations.labels(operation="set", result="error").inc()
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_listing_cache() -> None:
    """
    Invalidate all cached public listings.
    Uses SCAN to find and delete all keys matching the prefix.
    """
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{PUBLIC_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        cache_operations.labels(operation="invalidate", result="ok").inc()
        logger.info("cache_invalidated", keys_deleted=deleted)
    except Exception as e:
        cache_operations.labels(operation="invalidate", result="error").inc()
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        keyspace = await client.info("keyspace")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
            "keys": keyspace,
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
