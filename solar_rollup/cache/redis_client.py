"""
Redis client for the cached current-mode payload.

The query surface caches ``GET /v1/solar/current`` under a single key and
the collector deletes it after each successful ingestion. Both sides are
best-effort: connection failures are logged but never propagate, and every
helper is a no-op when no Redis URL is configured.

CHANGELOG:
- 2026-10-15: Initial creation (STORY-012)
"""

import logging

import redis.asyncio as redis

logger = logging.getLogger(__name__)

CURRENT_CACHE_KEY = "solar:current"


def get_redis(url: str) -> redis.Redis:
    """Create an async Redis client for *url*.

    Args:
        url: Redis connection URL.

    Returns:
        redis.Redis: Async Redis client.
    """
    return redis.from_url(url)


async def read_cached(url: str | None, key: str) -> str | None:
    """Return the cached value for *key*, or None on miss or failure."""
    if not url:
        return None
    try:
        client = get_redis(url)
        try:
            cached = await client.get(key)
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Redis read failed for key %s", key, exc_info=True)
        return None
    if isinstance(cached, bytes):
        return cached.decode("utf-8")
    return cached


async def write_cached(url: str | None, key: str, value: str, ttl_s: int) -> None:
    """Store *value* under *key* with a TTL (best-effort)."""
    if not url:
        return
    try:
        client = get_redis(url)
        try:
            await client.set(key, value, ex=ttl_s)
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Redis write failed for key %s", key, exc_info=True)


async def invalidate_current_cache(url: str | None) -> None:
    """Delete the current-mode cache key.

    Best-effort operation: if Redis is unavailable or the delete fails,
    the error is logged but not raised, so ingestion is never blocked by
    cache infrastructure.

    Args:
        url: Redis connection URL, or None when caching is disabled.
    """
    if not url:
        return
    try:
        client = get_redis(url)
        try:
            await client.delete(CURRENT_CACHE_KEY)
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Failed to invalidate %s", CURRENT_CACHE_KEY, exc_info=True)
