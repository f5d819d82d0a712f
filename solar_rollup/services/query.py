"""
Read-only range queries over the bucket tiers.

``query_history`` returns the N most recent *existing* buckets of a tier,
oldest-first, with a tier-specific summary. Missing periods are never
filled in. ``query_current`` returns the latest raw sample for the live
tile. Both are safe on an empty store.

TIER_CONFIG maps each granularity to its bucket model, ordering columns,
and the maximum number of buckets a single query may return.

CHANGELOG:
- 2026-10-19: Shared zeroed current payload with optional error (STORY-016)
- 2026-10-15: Capacity factor over true month/year lengths (STORY-013)
- 2026-10-15: Initial creation (STORY-012)

TODO:
- None
"""

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from solar_rollup.db.models import DayBucket, HourBucket, MonthBucket, RawSample, YearBucket
from solar_rollup.errors import StoreError
from solar_rollup.services.periods import capacity_factor, days_in_month, days_in_year

logger = logging.getLogger(__name__)


class Granularity(str, enum.Enum):
    HOUR = "hour"
    DAY = "day"
    MONTH = "month"
    YEAR = "year"


@dataclass(frozen=True)
class TierConfig:
    """How a granularity maps onto the store.

    Attributes:
        model: Bucket ORM model.
        order_by: Columns giving newest-first order when descending.
        max_count: Upper bound on returned buckets.
        avg_key: Name of the tier-specific average in ``stats``.
    """

    model: type
    order_by: tuple
    max_count: int
    avg_key: str


TIER_CONFIG: dict[Granularity, TierConfig] = {
    Granularity.HOUR: TierConfig(
        model=HourBucket,
        order_by=(HourBucket.timestamp,),
        max_count=168,
        avg_key="avgPower",
    ),
    Granularity.DAY: TierConfig(
        model=DayBucket,
        order_by=(DayBucket.timestamp,),
        max_count=365,
        avg_key="avgDaily",
    ),
    Granularity.MONTH: TierConfig(
        model=MonthBucket,
        order_by=(MonthBucket.year, MonthBucket.month),
        max_count=24,
        avg_key="avgMonthly",
    ),
    Granularity.YEAR: TierConfig(
        model=YearBucket,
        order_by=(YearBucket.year,),
        max_count=10,
        avg_key="avgYearly",
    ),
}


def clamp_count(granularity: Granularity, count: int) -> int:
    """Clamp *count* to ``[1, max_count]`` for the tier."""
    return max(1, min(count, TIER_CONFIG[granularity].max_count))


def _kwh(wh: float, digits: int = 3) -> float:
    return round(wh / 1000, digits)


# ---------------------------------------------------------------------------
# Per-tier chart entries, returned with the elapsed hours of the bucket
# ---------------------------------------------------------------------------


def _hour_entry(row: HourBucket, tz: ZoneInfo) -> tuple[dict, float]:
    label = datetime.fromtimestamp(row.timestamp, tz).strftime("%Y-%m-%d %H:%M:%S")
    return {
        "timestamp": label,
        "unixTimestamp": row.timestamp,
        "production": _kwh(row.energy_delta_wh),
        "power": round(row.power_avg_w),
        "powerMax": round(row.power_max_w),
        "powerMin": round(row.power_min_w),
        "samples": row.sample_count,
    }, 1


def _day_entry(row: DayBucket, tz: ZoneInfo) -> tuple[dict, float]:
    return {
        "timestamp": row.date,
        "unixTimestamp": row.timestamp,
        "production": _kwh(row.energy_total_wh),
        "power": round(row.energy_total_wh / 24),
        "powerMax": round(row.power_peak_w),
        "peakTime": row.power_peak_time,
        "sunlightHours": row.sunlight_hours,
        "capacityFactor": row.capacity_factor,
    }, 24


def _month_entry(row: MonthBucket, tz: ZoneInfo) -> tuple[dict, float]:
    hours = 24 * days_in_month(row.year, row.month)
    return {
        "timestamp": f"{row.year:04d}-{row.month:02d}",
        "unixTimestamp": row.timestamp,
        "production": _kwh(row.energy_total_wh),
        "power": round(row.energy_total_wh / hours),
        "powerMax": round(row.power_peak_w),
        "avgDaily": _kwh(row.avg_daily_wh),
        "daysWithData": row.days_with_data,
        "capacityFactor": row.capacity_factor,
    }, hours


def _year_entry(row: YearBucket, tz: ZoneInfo) -> tuple[dict, float]:
    hours = 24 * days_in_year(row.year)
    return {
        "timestamp": f"{row.year:04d}",
        "unixTimestamp": row.timestamp,
        "production": _kwh(row.energy_total_wh),
        "power": round(row.energy_total_wh / hours),
        "powerMax": round(row.power_peak_w),
        "avgMonthly": _kwh(row.avg_monthly_wh),
        "monthsWithData": row.months_with_data,
        "capacityFactor": row.capacity_factor,
    }, hours


_ENTRY_BUILDERS: dict[Granularity, Callable[[Any, ZoneInfo], tuple[dict, float]]] = {
    Granularity.HOUR: _hour_entry,
    Granularity.DAY: _day_entry,
    Granularity.MONTH: _month_entry,
    Granularity.YEAR: _year_entry,
}


def _energy_wh(granularity: Granularity, row) -> int:
    if granularity is Granularity.HOUR:
        return row.energy_delta_wh
    return row.energy_total_wh


def _peak_w(granularity: Granularity, row) -> float:
    if granularity is Granularity.HOUR:
        return row.power_max_w
    return row.power_peak_w


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def empty_current(error: str | None = None) -> dict:
    """Return the zeroed current payload used for an empty or unavailable store."""
    payload: dict[str, Any] = {
        "power": 0,
        "energy": 0,
        "energyToday": 0,
        "energyMonth": 0,
        "status": 0,
        "timestamp": None,
    }
    if error is not None:
        payload["error"] = error
    return payload


def empty_history(granularity: Granularity, count: int, error: str | None = None) -> dict:
    """Return the zeroed payload used for an empty or unavailable store."""
    payload: dict[str, Any] = {
        "period": granularity.value,
        "zoom": clamp_count(granularity, count),
        "chartData": [],
        "stats": {
            "totalEnergy": 0,
            TIER_CONFIG[granularity].avg_key: 0,
            "peakPower": {"value": 0, "time": None},
            "capacityFactor": 0,
        },
    }
    if error is not None:
        payload["error"] = error
    return payload


async def query_history(
    session: AsyncSession,
    granularity: Granularity,
    count: int,
    *,
    capacity_w: float,
    tz: ZoneInfo,
) -> dict:
    """Return the *count* most recent buckets of a tier, oldest-first.

    Args:
        session: Async SQLAlchemy session.
        granularity: Tier to read.
        count: Requested number of buckets (clamped to the tier maximum).
        capacity_w: Rated capacity in W for the summary capacity factor.
        tz: Local zone for hour labels.

    Returns:
        dict: ``{period, zoom, chartData, stats}``.

    Raises:
        StoreError: If the read fails.
    """
    tier = TIER_CONFIG[granularity]
    zoom = clamp_count(granularity, count)

    stmt = (
        select(tier.model)
        .order_by(*(col.desc() for col in tier.order_by))
        .limit(zoom)
        .execution_options(populate_existing=True)
    )
    try:
        result = await session.execute(stmt)
        rows = list(result.scalars().all())
    except SQLAlchemyError as exc:
        raise StoreError(f"Reading {tier.model.__tablename__} failed: {exc}") from exc
    rows.reverse()

    if not rows:
        return empty_history(granularity, count)

    build = _ENTRY_BUILDERS[granularity]
    chart: list[dict] = []
    total_wh = 0
    total_hours = 0.0
    peak_value = -1.0
    peak_label = None
    for row in rows:
        entry, hours = build(row, tz)
        chart.append(entry)
        total_wh += _energy_wh(granularity, row)
        total_hours += hours
        peak = _peak_w(granularity, row)
        if peak > peak_value:
            peak_value, peak_label = peak, entry["timestamp"]

    if granularity is Granularity.HOUR:
        average = round(sum(r.power_avg_w for r in rows) / len(rows))
    else:
        average = _kwh(total_wh / len(rows))

    return {
        "period": granularity.value,
        "zoom": zoom,
        "chartData": chart,
        "stats": {
            "totalEnergy": _kwh(total_wh, 2),
            tier.avg_key: average,
            "peakPower": {"value": round(peak_value), "time": peak_label},
            "capacityFactor": capacity_factor(total_wh, capacity_w, total_hours),
        },
    }


async def query_current(session: AsyncSession) -> dict:
    """Return the latest raw sample for the live view.

    Returns:
        dict: ``{power, energy, energyToday, energyMonth, status, timestamp}``
        with power in W and energies in kWh; zeros and ``timestamp=None``
        when no sample exists.

    Raises:
        StoreError: If the read fails.
    """
    stmt = select(RawSample).order_by(RawSample.timestamp.desc()).limit(1)
    try:
        result = await session.execute(stmt)
        sample = result.scalar_one_or_none()
    except SQLAlchemyError as exc:
        raise StoreError(f"Reading solar_realtime failed: {exc}") from exc

    if sample is None:
        return empty_current()
    return {
        "power": sample.power_current_w,
        "energy": _kwh(sample.energy_total_wh),
        "energyToday": _kwh(sample.energy_today_wh),
        "energyMonth": _kwh(sample.energy_month_wh),
        "status": sample.inverter_status,
        "timestamp": sample.timestamp,
    }
