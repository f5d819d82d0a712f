"""
Solar query endpoints: current snapshot and bucketed history.

``GET /v1/solar/current`` returns the latest raw sample, cached in Redis for
CACHE_TTL_S when REDIS_URL is set. ``GET /v1/solar/history`` returns the N
most recent buckets of a granularity. Store failures never surface as a
500: both routes answer with their zeroed payload plus an ``error`` field.

CHANGELOG:
- 2026-10-19: Degraded payload instead of 503 on current; clamp count (STORY-016)
- 2026-10-15: Initial creation (STORY-012)

TODO:
- None
"""

import json
import logging
from typing import Annotated

from fastapi import APIRouter, Query

from solar_rollup.api.deps import AppSettings, DbSession
from solar_rollup.cache.redis_client import CURRENT_CACHE_KEY, read_cached, write_cached
from solar_rollup.errors import StoreError
from solar_rollup.services.query import (
    Granularity,
    empty_current,
    empty_history,
    query_current,
    query_history,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/solar", tags=["solar"])


@router.get("/current")
async def current(db: DbSession, settings: AppSettings) -> dict:
    """Return the latest raw sample (power in W, energies in kWh).

    Tries the Redis cache first (best-effort) and falls back to the store.
    A store failure yields the zeroed payload with an ``error`` field.
    """
    cached = await read_cached(settings.redis_url, CURRENT_CACHE_KEY)
    if cached is not None:
        return json.loads(cached)

    try:
        payload = await query_current(db)
    except StoreError as exc:
        logger.error("Current query failed", exc_info=True)
        return empty_current(error=str(exc))

    if payload["timestamp"] is not None:
        await write_cached(
            settings.redis_url, CURRENT_CACHE_KEY, json.dumps(payload), settings.cache_ttl_s
        )
    return payload


@router.get("/history")
async def history(
    db: DbSession,
    settings: AppSettings,
    granularity: Annotated[Granularity, Query()] = Granularity.HOUR,
    count: Annotated[int, Query()] = 24,
) -> dict:
    """Return the *count* most recent buckets of *granularity*, oldest-first.

    Args:
        db: Async database session.
        settings: Loaded configuration.
        granularity: hour, day, month or year.
        count: Requested bucket count, clamped to the tier maximum.

    Returns:
        dict: ``{period, zoom, chartData, stats}`` plus ``error`` when the
        store could not be read.
    """
    try:
        return await query_history(
            db,
            granularity,
            count,
            capacity_w=settings.system_capacity_w,
            tz=settings.tz,
        )
    except StoreError as exc:
        logger.error("History query failed for %s", granularity.value, exc_info=True)
        return empty_history(granularity, count, error=str(exc))
