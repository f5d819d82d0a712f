"""
Cross-tier consistency report for the bucket store.

Checks that every tier equals the sum of the tier below over the same
window, that no energy value is negative, and that no day exceeds a
plausibility ceiling. Missing days between the first and last day bucket
are listed for information but are not issues: gaps are never filled.

CHANGELOG:
- 2026-10-14: Initial creation (STORY-014)

TODO:
- None
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from solar_rollup.config import Settings
from solar_rollup.db.models import DayBucket, HourBucket, MonthBucket, RawSample, YearBucket
from solar_rollup.services.periods import local_date

logger = logging.getLogger(__name__)

_TABLES = (RawSample, HourBucket, DayBucket, MonthBucket, YearBucket)


@dataclass
class ValidationReport:
    """Outcome of :func:`validate_store`.

    Attributes:
        counts: Row count per table name.
        issues: Human-readable consistency or range problems.
        missing_days: Dates without a day bucket inside the covered range.
    """

    counts: dict[str, int] = field(default_factory=dict)
    issues: list[str] = field(default_factory=list)
    missing_days: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues


async def _all(session: AsyncSession, model) -> list:
    result = await session.execute(select(model).execution_options(populate_existing=True))
    return list(result.scalars().all())


async def validate_store(session: AsyncSession, settings: Settings) -> ValidationReport:
    """Build a consistency report over all tiers.

    Args:
        session: Async SQLAlchemy session.
        settings: Loaded configuration (zone and plausibility ceiling).

    Returns:
        ValidationReport: Counts, issues and informational gaps.
    """
    tz = settings.tz
    report = ValidationReport()

    for model in _TABLES:
        result = await session.execute(select(func.count()).select_from(model))
        report.counts[model.__tablename__] = result.scalar_one()

    hours = await _all(session, HourBucket)
    days = await _all(session, DayBucket)
    months = await _all(session, MonthBucket)
    years = await _all(session, YearBucket)

    hourly_by_day: dict[str, int] = defaultdict(int)
    for h in hours:
        hourly_by_day[local_date(h.timestamp, tz).isoformat()] += h.energy_delta_wh
        if h.energy_delta_wh < 0:
            report.issues.append(f"hour {h.timestamp}: negative energy {h.energy_delta_wh} Wh")

    daily_by_month: dict[tuple[int, int], int] = defaultdict(int)
    ceiling = settings.plausible_daily_wh
    for d in sorted(days, key=lambda row: row.date):
        if d.energy_total_wh < 0:
            report.issues.append(f"day {d.date}: negative energy {d.energy_total_wh} Wh")
        if d.energy_total_wh > ceiling:
            report.issues.append(
                f"day {d.date}: {d.energy_total_wh} Wh exceeds plausible maximum {ceiling:.0f} Wh"
            )
        hourly = hourly_by_day.get(d.date, 0)
        if hourly != d.energy_total_wh:
            report.issues.append(
                f"day {d.date}: hourly sum {hourly} Wh != daily total {d.energy_total_wh} Wh"
            )
        parsed = date.fromisoformat(d.date)
        daily_by_month[(parsed.year, parsed.month)] += d.energy_total_wh

    monthly_by_year: dict[int, int] = defaultdict(int)
    for m in months:
        daily = daily_by_month.get((m.year, m.month), 0)
        if daily != m.energy_total_wh:
            report.issues.append(
                f"month {m.year:04d}-{m.month:02d}: daily sum {daily} Wh "
                f"!= monthly total {m.energy_total_wh} Wh"
            )
        monthly_by_year[m.year] += m.energy_total_wh

    for y in years:
        monthly = monthly_by_year.get(y.year, 0)
        if monthly != y.energy_total_wh:
            report.issues.append(
                f"year {y.year}: monthly sum {monthly} Wh != yearly total {y.energy_total_wh} Wh"
            )

    if days:
        present = {d.date for d in days}
        first = date.fromisoformat(min(present))
        last = date.fromisoformat(max(present))
        cursor = first
        while cursor <= last:
            if cursor.isoformat() not in present:
                report.missing_days.append(cursor.isoformat())
            cursor += timedelta(days=1)

    logger.info(
        "Validation: %d issue(s), %d missing day(s)", len(report.issues), len(report.missing_days)
    )
    return report
