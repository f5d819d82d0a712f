"""
Tiered rollups: raw samples -> hour -> day -> month -> year.

Each stage reads its own watermark (the first boundary it has not yet
processed) and only handles periods that have fully elapsed and that the
tier below has already completed, i.e. whose end is at or before the lower
tier's watermark. Buckets are written by natural-key upsert, so re-running
a stage over unchanged input rewrites identical values.

Periods without any lower-tier data produce no bucket. Gaps are never
filled with zeros.

A forced range recompute (``start``/``end`` given) ignores both watermarks
and the skip-if-exists rule and leaves watermarks untouched. It is used by
backfill after it writes hour and day buckets directly. It still never
writes a period that has not fully elapsed.

CHANGELOG:
- 2026-10-13: Add forced range recompute for backfill (STORY-009)
- 2026-10-12: Initial creation (STORY-006)

TODO:
- None
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from solar_rollup.config import Settings
from solar_rollup.db.models import (
    DayBucket,
    HourBucket,
    MonthBucket,
    RawSample,
    YearBucket,
)
from solar_rollup.db.store import (
    LAST_DAILY,
    LAST_HOURLY,
    LAST_MONTHLY,
    LAST_YEARLY,
    commit,
    get_watermark,
    set_watermark,
    upsert,
)
from solar_rollup.services.periods import (
    HOUR_S,
    capacity_factor,
    day_start,
    days_in_month,
    days_in_year,
    hour_floor,
    local_date,
    month_start,
    next_day,
    next_month,
    year_start,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    """Bucket counts written by one pass of :func:`run_pipeline`."""

    hours: int
    days: int
    months: int
    years: int


# ---------------------------------------------------------------------------
# Pure summaries
# ---------------------------------------------------------------------------


def summarize_hour(samples: Sequence[RawSample]) -> dict:
    """Reduce one hour of raw samples to HourBucket values.

    The energy delta is the difference of the daily counter between the
    last and first sample, clamped at zero. A counter reset inside the
    window (the local-midnight rollover) therefore yields 0 rather than a
    negative value.

    Args:
        samples: Samples of a single hour, ordered by timestamp. Must not
            be empty.

    Returns:
        dict: energy_delta_wh, power_avg_w, power_max_w, power_min_w and
        sample_count.
    """
    powers = [s.power_current_w for s in samples]
    delta = samples[-1].energy_today_wh - samples[0].energy_today_wh
    return {
        "energy_delta_wh": max(0, delta),
        "power_avg_w": sum(powers) / len(powers),
        "power_max_w": max(powers),
        "power_min_w": min(powers),
        "sample_count": len(samples),
    }


def summarize_day(
    hours: Sequence[HourBucket],
    *,
    capacity_w: float,
    sunlight_threshold_w: float,
) -> dict:
    """Reduce the hour buckets of one local day to DayBucket values.

    Args:
        hours: Hour buckets of the day, ordered by timestamp. Must not be
            empty.
        capacity_w: Rated capacity in W.
        sunlight_threshold_w: Average power above which an hour is
            productive.

    Returns:
        dict: energy_total_wh, power_peak_w, power_peak_time,
        sunlight_hours and capacity_factor.
    """
    energy = sum(h.energy_delta_wh for h in hours)
    peak = max(h.power_max_w for h in hours)
    peak_time = next(h.timestamp for h in hours if h.power_max_w == peak)
    return {
        "energy_total_wh": energy,
        "power_peak_w": peak,
        "power_peak_time": peak_time,
        "sunlight_hours": float(
            sum(1 for h in hours if h.power_avg_w > sunlight_threshold_w)
        ),
        "capacity_factor": capacity_factor(energy, capacity_w, 24),
    }


def summarize_month(
    days: Sequence[DayBucket], *, year: int, month: int, capacity_w: float
) -> dict:
    energy = sum(d.energy_total_wh for d in days)
    return {
        "energy_total_wh": energy,
        "power_peak_w": max(d.power_peak_w for d in days),
        "days_with_data": len(days),
        "avg_daily_wh": energy / len(days),
        "capacity_factor": capacity_factor(
            energy, capacity_w, 24 * days_in_month(year, month)
        ),
    }


def summarize_year(
    months: Sequence[MonthBucket], *, year: int, capacity_w: float
) -> dict:
    energy = sum(m.energy_total_wh for m in months)
    return {
        "energy_total_wh": energy,
        "power_peak_w": max(m.power_peak_w for m in months),
        "months_with_data": len(months),
        "avg_monthly_wh": energy / len(months),
        "capacity_factor": capacity_factor(energy, capacity_w, 24 * days_in_year(year)),
    }


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


async def _rows_between(session: AsyncSession, model, start: int, end: int) -> list:
    """Return ORM rows with ``start <= timestamp < end`` ordered by timestamp."""
    stmt = (
        select(model)
        .where(model.timestamp >= start, model.timestamp < end)
        .order_by(model.timestamp)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def _earliest_timestamp(session: AsyncSession, model) -> int | None:
    result = await session.execute(select(func.min(model.timestamp)))
    return result.scalar_one_or_none()


async def _exists(session: AsyncSession, model, *criteria) -> bool:
    result = await session.execute(select(func.count()).select_from(model).where(*criteria))
    return result.scalar_one() > 0


# ---------------------------------------------------------------------------
# Hourly
# ---------------------------------------------------------------------------


async def aggregate_hours(
    session: AsyncSession, *, now: int, lookback_hours: int = 24
) -> int:
    """Roll raw samples up into completed hour buckets.

    Iterates hours from the hourly watermark (or ``lookback_hours`` before
    the current hour when unset) up to, but excluding, the current hour.
    Hours without samples are skipped. The watermark advances to the
    current hour boundary.

    Args:
        session: Async SQLAlchemy session.
        now: Current epoch second.
        lookback_hours: Start offset when no watermark exists yet.

    Returns:
        int: Number of hour buckets written.

    Raises:
        StoreError: If a write or the commit fails.
    """
    current = hour_floor(now)
    watermark = await get_watermark(session, LAST_HOURLY)
    start = hour_floor(watermark) if watermark is not None else current - lookback_hours * HOUR_S
    if start >= current:
        return 0

    samples = await _rows_between(session, RawSample, start, current)
    by_hour: dict[int, list[RawSample]] = {}
    for sample in samples:
        by_hour.setdefault(hour_floor(sample.timestamp), []).append(sample)

    rows = [
        {"timestamp": ts, **summarize_hour(window), "aggregated_at": now}
        for ts, window in sorted(by_hour.items())
    ]
    await upsert(session, HourBucket, rows, ["timestamp"])
    await set_watermark(session, LAST_HOURLY, current, now)
    await commit(session)

    logger.info(
        "Hourly aggregation wrote %d bucket(s) for [%d, %d)", len(rows), start, current
    )
    return len(rows)


# ---------------------------------------------------------------------------
# Daily
# ---------------------------------------------------------------------------


async def _write_day(
    session: AsyncSession,
    d: date,
    *,
    tz: ZoneInfo,
    capacity_w: float,
    sunlight_threshold_w: float,
    now: int,
) -> bool:
    begin = day_start(d, tz)
    hours = await _rows_between(session, HourBucket, begin, day_start(next_day(d), tz))
    if not hours:
        return False
    summary = summarize_day(
        hours, capacity_w=capacity_w, sunlight_threshold_w=sunlight_threshold_w
    )
    await upsert(
        session,
        DayBucket,
        {"date": d.isoformat(), "timestamp": begin, **summary, "aggregated_at": now},
        ["date"],
    )
    return True


async def aggregate_days(
    session: AsyncSession,
    *,
    now: int,
    tz: ZoneInfo,
    capacity_w: float,
    sunlight_threshold_w: float = 10.0,
    force: bool = False,
    start: date | None = None,
    end: date | None = None,
) -> int:
    """Roll hour buckets up into completed local days.

    In watermark mode a day is processed only when the hourly watermark is
    at or past its end, and an existing day bucket is left alone unless
    *force* is set. In range mode (*start* and *end* given) every completed
    day in the inclusive range is recomputed and no watermark moves.

    Args:
        session: Async SQLAlchemy session.
        now: Current epoch second.
        tz: Local zone defining day boundaries.
        capacity_w: Rated capacity in W.
        sunlight_threshold_w: Productive-hour threshold in W.
        force: Recompute days whose bucket already exists.
        start: First day of a forced range recompute.
        end: Last day (inclusive) of a forced range recompute.

    Returns:
        int: Number of day buckets written.

    Raises:
        StoreError: If a write or the commit fails.
    """
    today = local_date(now, tz)
    kwargs = {
        "tz": tz,
        "capacity_w": capacity_w,
        "sunlight_threshold_w": sunlight_threshold_w,
        "now": now,
    }

    written = 0
    if start is not None and end is not None:
        d = start
        while d <= end and d < today:
            if await _write_day(session, d, **kwargs):
                written += 1
            d = next_day(d)
        await commit(session)
        logger.info("Daily recompute %s..%s wrote %d bucket(s)", start, end, written)
        return written

    lower = await get_watermark(session, LAST_HOURLY)
    if lower is None:
        return 0
    watermark = await get_watermark(session, LAST_DAILY)
    if watermark is None:
        earliest = await _earliest_timestamp(session, HourBucket)
        if earliest is None:
            return 0
        d = local_date(earliest, tz)
    else:
        d = local_date(watermark, tz)

    processed_end: int | None = None
    while d < today:
        period_end = day_start(next_day(d), tz)
        if period_end > lower:
            break
        exists = await _exists(session, DayBucket, DayBucket.date == d.isoformat())
        if force or not exists:
            if await _write_day(session, d, **kwargs):
                written += 1
        processed_end = period_end
        d = next_day(d)

    if processed_end is not None:
        await set_watermark(session, LAST_DAILY, processed_end, now)
    await commit(session)

    logger.info("Daily aggregation wrote %d bucket(s)", written)
    return written


# ---------------------------------------------------------------------------
# Monthly
# ---------------------------------------------------------------------------


async def _write_month(
    session: AsyncSession, year: int, month: int, *, tz: ZoneInfo, capacity_w: float, now: int
) -> bool:
    begin = month_start(year, month, tz)
    days = await _rows_between(
        session, DayBucket, begin, month_start(*next_month(year, month), tz)
    )
    if not days:
        return False
    summary = summarize_month(days, year=year, month=month, capacity_w=capacity_w)
    await upsert(
        session,
        MonthBucket,
        {"year": year, "month": month, "timestamp": begin, **summary, "aggregated_at": now},
        ["year", "month"],
    )
    return True


async def aggregate_months(
    session: AsyncSession,
    *,
    now: int,
    tz: ZoneInfo,
    capacity_w: float,
    force: bool = False,
    start: date | None = None,
    end: date | None = None,
) -> int:
    """Roll day buckets up into completed local months.

    Same contract as :func:`aggregate_days`, one level up: gated on the
    daily watermark, and in range mode covering every completed month that
    overlaps ``[start, end]``.

    Returns:
        int: Number of month buckets written.
    """
    today = local_date(now, tz)
    current = (today.year, today.month)

    written = 0
    if start is not None and end is not None:
        ym = (start.year, start.month)
        while ym <= (end.year, end.month) and ym < current:
            if await _write_month(session, *ym, tz=tz, capacity_w=capacity_w, now=now):
                written += 1
            ym = next_month(*ym)
        await commit(session)
        logger.info("Monthly recompute %s..%s wrote %d bucket(s)", start, end, written)
        return written

    lower = await get_watermark(session, LAST_DAILY)
    if lower is None:
        return 0
    watermark = await get_watermark(session, LAST_MONTHLY)
    if watermark is None:
        earliest = await _earliest_timestamp(session, DayBucket)
        if earliest is None:
            return 0
        first = local_date(earliest, tz)
    else:
        first = local_date(watermark, tz)
    ym = (first.year, first.month)

    processed_end: int | None = None
    while ym < current:
        period_end = month_start(*next_month(*ym), tz)
        if period_end > lower:
            break
        exists = await _exists(
            session, MonthBucket, MonthBucket.year == ym[0], MonthBucket.month == ym[1]
        )
        if force or not exists:
            if await _write_month(session, *ym, tz=tz, capacity_w=capacity_w, now=now):
                written += 1
        processed_end = period_end
        ym = next_month(*ym)

    if processed_end is not None:
        await set_watermark(session, LAST_MONTHLY, processed_end, now)
    await commit(session)

    logger.info("Monthly aggregation wrote %d bucket(s)", written)
    return written


# ---------------------------------------------------------------------------
# Yearly
# ---------------------------------------------------------------------------


async def _write_year(
    session: AsyncSession, year: int, *, tz: ZoneInfo, capacity_w: float, now: int
) -> bool:
    begin = year_start(year, tz)
    months = await _rows_between(session, MonthBucket, begin, year_start(year + 1, tz))
    if not months:
        return False
    summary = summarize_year(months, year=year, capacity_w=capacity_w)
    await upsert(
        session,
        YearBucket,
        {"year": year, "timestamp": begin, **summary, "aggregated_at": now},
        ["year"],
    )
    return True


async def aggregate_years(
    session: AsyncSession,
    *,
    now: int,
    tz: ZoneInfo,
    capacity_w: float,
    force: bool = False,
    start: date | None = None,
    end: date | None = None,
) -> int:
    """Roll month buckets up into completed local years.

    Gated on the monthly watermark; the capacity factor denominator uses
    the leap-aware length of the year.

    Returns:
        int: Number of year buckets written.
    """
    current = local_date(now, tz).year

    written = 0
    if start is not None and end is not None:
        for year in range(start.year, min(end.year, current - 1) + 1):
            if await _write_year(session, year, tz=tz, capacity_w=capacity_w, now=now):
                written += 1
        await commit(session)
        logger.info("Yearly recompute %s..%s wrote %d bucket(s)", start, end, written)
        return written

    lower = await get_watermark(session, LAST_MONTHLY)
    if lower is None:
        return 0
    watermark = await get_watermark(session, LAST_YEARLY)
    if watermark is None:
        earliest = await _earliest_timestamp(session, MonthBucket)
        if earliest is None:
            return 0
        year = local_date(earliest, tz).year
    else:
        year = local_date(watermark, tz).year

    processed_end: int | None = None
    while year < current:
        period_end = year_start(year + 1, tz)
        if period_end > lower:
            break
        exists = await _exists(session, YearBucket, YearBucket.year == year)
        if force or not exists:
            if await _write_year(session, year, tz=tz, capacity_w=capacity_w, now=now):
                written += 1
        processed_end = period_end
        year += 1

    if processed_end is not None:
        await set_watermark(session, LAST_YEARLY, processed_end, now)
    await commit(session)

    logger.info("Yearly aggregation wrote %d bucket(s)", written)
    return written


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


async def run_pipeline(session: AsyncSession, settings: Settings, now: int) -> PipelineResult:
    """Run hour -> day -> month -> year in order.

    Each stage checks its own precondition against the watermark of the
    stage below, so calling this at any time is safe.

    Args:
        session: Async SQLAlchemy session.
        settings: Loaded configuration.
        now: Current epoch second.

    Returns:
        PipelineResult: Buckets written per tier.
    """
    tz = settings.tz
    capacity = settings.system_capacity_w
    hours = await aggregate_hours(
        session, now=now, lookback_hours=settings.hourly_lookback_hours
    )
    days = await aggregate_days(
        session,
        now=now,
        tz=tz,
        capacity_w=capacity,
        sunlight_threshold_w=settings.sunlight_threshold_w,
    )
    months = await aggregate_months(session, now=now, tz=tz, capacity_w=capacity)
    years = await aggregate_years(session, now=now, tz=tz, capacity_w=capacity)
    return PipelineResult(hours=hours, days=days, months=months, years=years)
