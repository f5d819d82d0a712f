"""
Historical backfill from the vendor's per-day interval output.

For each local day in an inclusive range the importer fetches the day's
interval power samples (one external call per day, paced by a rate-limit
policy), turns them into hour buckets and a day bucket with the same shape
the live pipeline produces, and writes both in one transaction. Afterwards
it forces a monthly and yearly recompute over the touched range so the
upper tiers use the canonical formulas.

The day total is the sum of the rounded hour energies, so for every
backfilled day ``sum(hourly.energy_delta_wh) == daily.energy_total_wh``.

CHANGELOG:
- 2026-10-19: Drop stale hour buckets on re-import, peak time at hour start (STORY-016)
- 2026-10-14: Record empty days as failures instead of silent skips (STORY-011)
- 2026-10-13: Initial creation (STORY-009)

TODO:
- None
"""

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from datetime import time as dt_time
from zoneinfo import ZoneInfo

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from solar_rollup.config import Settings
from solar_rollup.db.models import DayBucket, HourBucket
from solar_rollup.db.store import commit, upsert
from solar_rollup.errors import MalformedResponseError, SourceUnavailableError, StoreError
from solar_rollup.models import IntervalPoint
from solar_rollup.normalizer import normalize_interval_points
from solar_rollup.services.aggregation import aggregate_months, aggregate_years
from solar_rollup.services.periods import (
    capacity_factor,
    day_start,
    hour_floor,
    local_date,
    next_day,
)
from solar_rollup.services.ratelimit import RateLimitPolicy
from solar_rollup.telemetry.client import TelemetrySource

logger = logging.getLogger(__name__)


@dataclass
class DayRollup:
    """Hour and day rows computed for one backfilled day."""

    hours: list[dict]
    day: dict

    @property
    def energy_wh(self) -> int:
        return self.day["energy_total_wh"]


@dataclass
class BackfillReport:
    """Summary of a backfill run.

    In dry-run mode the totals describe what a real run would have written.

    Attributes:
        start: First day of the effective range.
        end: Last day (inclusive) of the effective range.
        dry_run: Whether writes were suppressed.
        days_processed: Days fetched and computed (and written unless dry run).
        days_skipped: Days left alone because a day bucket already existed.
        hourly_records: Hour buckets computed.
        total_energy_kwh: Energy of all processed days.
        api_calls: External calls made.
        failures: ISO date (or stage) mapped to the failure reason.
    """

    start: date
    end: date
    dry_run: bool = False
    days_processed: int = 0
    days_skipped: int = 0
    hourly_records: int = 0
    total_energy_kwh: float = 0.0
    api_calls: int = 0
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


def build_day_rollup(
    day: date,
    points: Sequence[IntervalPoint],
    *,
    tz: ZoneInfo,
    interval_minutes: int,
    capacity_w: float,
    sunlight_threshold_w: float,
    now: int,
) -> DayRollup:
    """Turn one day of interval samples into hour and day bucket rows.

    Each sample contributes ``power * interval_minutes / 60`` Wh to the
    hour containing its start. Hour energy is rounded to whole Wh and the
    day total is the sum of those rounded values.

    Args:
        day: Local calendar day the samples belong to.
        points: Interval samples of the day. Must not be empty.
        tz: Local zone of the ``HH:MM`` labels.
        interval_minutes: Width of one sample.
        capacity_w: Rated capacity in W.
        sunlight_threshold_w: Power above which an interval is productive.
        now: Epoch second recorded as ``aggregated_at``.

    Returns:
        DayRollup: Rows ready for upsert.
    """
    interval_h = interval_minutes / 60

    stamped = sorted(
        (
            int(datetime.combine(day, dt_time(p.hour, p.minute), tzinfo=tz).timestamp()),
            p.power_w,
        )
        for p in points
    )

    by_hour: dict[int, list[float]] = {}
    for ts, power in stamped:
        by_hour.setdefault(hour_floor(ts), []).append(power)

    hours = [
        {
            "timestamp": ts,
            "energy_delta_wh": round(sum(powers) * interval_h),
            "power_avg_w": sum(powers) / len(powers),
            "power_max_w": max(powers),
            "power_min_w": min(powers),
            "sample_count": len(powers),
            "aggregated_at": now,
        }
        for ts, powers in sorted(by_hour.items())
    ]

    energy = sum(h["energy_delta_wh"] for h in hours)
    peak_ts, peak = stamped[0]
    for ts, power in stamped:
        if power > peak:
            peak_ts, peak = ts, power
    # Peak time is the start of the peak hour, as on the live path.
    peak_time = hour_floor(peak_ts)
    productive = sum(1 for _, power in stamped if power > sunlight_threshold_w)

    return DayRollup(
        hours=hours,
        day={
            "date": day.isoformat(),
            "timestamp": day_start(day, tz),
            "energy_total_wh": energy,
            "power_peak_w": peak,
            "power_peak_time": peak_time,
            "sunlight_hours": round(productive * interval_h, 2),
            "capacity_factor": capacity_factor(energy, capacity_w, 24),
            "aggregated_at": now,
        },
    )


class BackfillImporter:
    """Import historical days into the hour and day tiers.

    Args:
        session: Async SQLAlchemy session.
        source: Telemetry source providing day output payloads.
        settings: Loaded configuration.
        rate_limit: Policy awaited between consecutive external calls.
    """

    def __init__(
        self,
        session: AsyncSession,
        source: TelemetrySource,
        settings: Settings,
        rate_limit: RateLimitPolicy,
    ) -> None:
        self._session = session
        self._source = source
        self._settings = settings
        self._rate_limit = rate_limit

    async def run(
        self,
        start: date,
        end: date,
        *,
        overwrite: bool = False,
        dry_run: bool = False,
        now: int | None = None,
    ) -> BackfillReport:
        """Backfill every day in ``[start, end]``, capped at yesterday.

        Args:
            start: First local day to import.
            end: Last local day to import (inclusive).
            overwrite: Re-import days whose day bucket already exists.
            dry_run: Fetch and compute but write nothing.
            now: Current epoch second (defaults to the clock).

        Returns:
            BackfillReport: What was (or would have been) written.
        """
        if now is None:
            now = int(time.time())
        tz = self._settings.tz
        yesterday = local_date(now, tz) - timedelta(days=1)
        if end > yesterday:
            logger.info("Capping backfill end %s at yesterday (%s)", end, yesterday)
            end = yesterday

        report = BackfillReport(start=start, end=end, dry_run=dry_run)
        touched: list[date] = []

        d = start
        while d <= end:
            if not dry_run and not overwrite:
                try:
                    exists = await self._day_exists(d)
                except StoreError as exc:
                    await self._session.rollback()
                    logger.error("Backfill %s: existence check failed", d, exc_info=True)
                    report.failures[d.isoformat()] = str(exc)
                    d += timedelta(days=1)
                    continue
                if exists:
                    logger.info("%s already has a day bucket, skipping", d)
                    report.days_skipped += 1
                    d += timedelta(days=1)
                    continue

            if report.api_calls > 0:
                await self._rate_limit.wait()
            report.api_calls += 1

            rollup = await self._fetch_day(d, report, now)
            if rollup is not None and await self._store_day(d, rollup, report, dry_run):
                report.days_processed += 1
                report.hourly_records += len(rollup.hours)
                report.total_energy_kwh += rollup.energy_wh / 1000
                touched.append(d)
            d += timedelta(days=1)

        if touched and not dry_run:
            await self._recompute_upper_tiers(min(touched), max(touched), report, now)

        report.total_energy_kwh = round(report.total_energy_kwh, 3)
        logger.info(
            "Backfill %s..%s: processed=%d skipped=%d failed=%d api_calls=%d energy=%.3fkWh%s",
            report.start,
            report.end,
            report.days_processed,
            report.days_skipped,
            len(report.failures),
            report.api_calls,
            report.total_energy_kwh,
            " (dry run)" if dry_run else "",
        )
        return report

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _day_exists(self, d: date) -> bool:
        try:
            result = await self._session.execute(
                select(func.count()).select_from(DayBucket).where(DayBucket.date == d.isoformat())
            )
        except SQLAlchemyError as exc:
            raise StoreError(f"Reading solar_daily failed: {exc}") from exc
        return result.scalar_one() > 0

    async def _drop_stale_hours(self, d: date, rollup: DayRollup) -> None:
        """Delete hour buckets of *d* that the rebuilt day does not contain."""
        tz = self._settings.tz
        keep = [h["timestamp"] for h in rollup.hours]
        stmt = delete(HourBucket).where(
            HourBucket.timestamp >= day_start(d, tz),
            HourBucket.timestamp < day_start(next_day(d), tz),
            HourBucket.timestamp.not_in(keep),
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as exc:
            raise StoreError(f"Deleting stale hour buckets failed: {exc}") from exc
        if result.rowcount:
            logger.info("Backfill %s: removed %d stale hour bucket(s)", d, result.rowcount)

    async def _fetch_day(self, d: date, report: BackfillReport, now: int) -> DayRollup | None:
        try:
            payload = await self._source.fetch_day_output(d)
            points = normalize_interval_points(payload)
        except (SourceUnavailableError, MalformedResponseError) as exc:
            logger.warning("Backfill %s failed: %s", d, exc)
            report.failures[d.isoformat()] = str(exc)
            return None

        if not points:
            logger.warning("Backfill %s: source returned no data", d)
            report.failures[d.isoformat()] = "no data"
            return None
        logger.debug(
            "Backfill %s: %d interval(s) %s..%s", d, len(points), points[0].label, points[-1].label
        )

        return build_day_rollup(
            d,
            points,
            tz=self._settings.tz,
            interval_minutes=self._settings.backfill_interval_minutes,
            capacity_w=self._settings.system_capacity_w,
            sunlight_threshold_w=self._settings.sunlight_threshold_w,
            now=now,
        )

    async def _store_day(
        self, d: date, rollup: DayRollup, report: BackfillReport, dry_run: bool
    ) -> bool:
        if dry_run:
            logger.info(
                "[dry run] %s: would write %d hour bucket(s), %d Wh",
                d,
                len(rollup.hours),
                rollup.energy_wh,
            )
            return True
        try:
            await self._drop_stale_hours(d, rollup)
            await upsert(self._session, HourBucket, rollup.hours, ["timestamp"])
            await upsert(self._session, DayBucket, rollup.day, ["date"])
            await commit(self._session)
        except StoreError as exc:
            await self._session.rollback()
            logger.error("Backfill %s: write failed", d, exc_info=True)
            report.failures[d.isoformat()] = str(exc)
            return False
        logger.info("Backfilled %s: %d hour bucket(s), %d Wh", d, len(rollup.hours), rollup.energy_wh)
        return True

    async def _recompute_upper_tiers(
        self, first: date, last: date, report: BackfillReport, now: int
    ) -> None:
        tz = self._settings.tz
        capacity = self._settings.system_capacity_w
        try:
            months = await aggregate_months(
                self._session, now=now, tz=tz, capacity_w=capacity, force=True, start=first, end=last
            )
            years = await aggregate_years(
                self._session, now=now, tz=tz, capacity_w=capacity, force=True, start=first, end=last
            )
        except StoreError as exc:
            await self._session.rollback()
            logger.error("Month/year recompute after backfill failed", exc_info=True)
            report.failures["rollup"] = str(exc)
            return
        logger.info("Recomputed %d month(s) and %d year(s) after backfill", months, years)
