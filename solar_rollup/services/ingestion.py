"""
Sample ingestion: one poll of the plant overview per collection cycle.

A cycle is gated on the persisted ``last_collection_timestamp`` watermark
so overlapping or too-frequent invocations are cheap no-ops. A successful
poll writes the raw sample and advances the watermark in the same
transaction, prunes samples older than the retention window, runs the
aggregation pipeline, and invalidates the cached current-mode payload.

Source failures abort the cycle before anything is written. Pruning and
aggregation failures are logged and do not undo the stored sample.

CHANGELOG:
- 2026-10-14: Prune raw samples past RETENTION_DAYS (STORY-008)
- 2026-10-12: Initial creation (STORY-005)

TODO:
- None
"""

import enum
import logging
import time
from dataclasses import dataclass

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from solar_rollup.cache.redis_client import invalidate_current_cache
from solar_rollup.config import Settings
from solar_rollup.db.models import RawSample
from solar_rollup.db.store import LAST_COLLECTION, commit, get_watermark, set_watermark, upsert
from solar_rollup.errors import SolarRollupError, StoreError
from solar_rollup.models import RawReading
from solar_rollup.normalizer import normalize_overview
from solar_rollup.services.aggregation import PipelineResult, run_pipeline
from solar_rollup.telemetry.client import TelemetrySource

logger = logging.getLogger(__name__)

_DAY_S = 86400


class CollectStatus(str, enum.Enum):
    """Outcome of a collection cycle."""

    COLLECTED = "collected"
    SKIPPED = "skipped"
    DISABLED = "disabled"


@dataclass
class CollectResult:
    """Result of :func:`collect`.

    Attributes:
        status: What the cycle did.
        reading: The stored reading when status is COLLECTED.
        pipeline: Buckets written by the aggregation cascade, if it ran.
        pruned: Raw samples removed by retention.
    """

    status: CollectStatus
    reading: RawReading | None = None
    pipeline: PipelineResult | None = None
    pruned: int = 0


async def prune_samples(session: AsyncSession, *, now: int, retention_days: int) -> int:
    """Delete raw samples older than the retention window.

    Returns:
        int: Number of rows deleted.

    Raises:
        StoreError: If the delete or the commit fails.
    """
    cutoff = now - retention_days * _DAY_S
    try:
        result = await session.execute(delete(RawSample).where(RawSample.timestamp < cutoff))
    except SQLAlchemyError as exc:
        raise StoreError(f"Pruning raw samples failed: {exc}") from exc
    await commit(session)
    return result.rowcount or 0


async def collect(
    session: AsyncSession,
    source: TelemetrySource,
    settings: Settings,
    *,
    force: bool = False,
    now: int | None = None,
) -> CollectResult:
    """Run one collection cycle.

    Args:
        session: Async SQLAlchemy session.
        source: Telemetry source to poll.
        settings: Loaded configuration.
        force: Bypass the enabled switch and the minimum interval.
        now: Epoch second to stamp the sample with (defaults to the clock).

    Returns:
        CollectResult: COLLECTED, SKIPPED or DISABLED.

    Raises:
        SourceUnavailableError: The source could not be reached.
        MalformedResponseError: The payload could not be normalized.
        StoreError: The sample or watermark write failed (rolled back).
    """
    if now is None:
        now = int(time.time())

    if not settings.solplanet_enabled and not force:
        logger.info("Collection disabled by SOLPLANET_ENABLED, skipping")
        return CollectResult(status=CollectStatus.DISABLED)

    last = await get_watermark(session, LAST_COLLECTION)
    if not force and last is not None and now - last < settings.min_collection_interval_s:
        logger.info(
            "Last collection %ds ago (< %ds), skipping",
            now - last,
            settings.min_collection_interval_s,
        )
        return CollectResult(status=CollectStatus.SKIPPED)

    payload = await source.fetch_overview()
    reading = normalize_overview(payload, ts=now)

    try:
        await upsert(session, RawSample, reading.to_row(now), ["timestamp"])
        await set_watermark(session, LAST_COLLECTION, now, now)
        await commit(session)
    except StoreError:
        await session.rollback()
        raise

    logger.info(
        "Stored sample: power=%.0fW today=%dWh month=%dWh total=%dWh status=%d",
        reading.power_current_w,
        reading.energy_today_wh,
        reading.energy_month_wh,
        reading.energy_total_wh,
        reading.inverter_status,
    )
    result = CollectResult(status=CollectStatus.COLLECTED, reading=reading)

    try:
        result.pruned = await prune_samples(
            session, now=now, retention_days=settings.retention_days
        )
    except StoreError:
        await session.rollback()
        logger.error("Pruning raw samples failed", exc_info=True)

    try:
        result.pipeline = await run_pipeline(session, settings, now)
    except (SolarRollupError, SQLAlchemyError):
        await session.rollback()
        logger.error("Aggregation pipeline failed after collection", exc_info=True)

    await invalidate_current_cache(settings.redis_url)
    return result
