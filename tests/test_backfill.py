"""
Tests for the historical backfill importer (STORY-009, STORY-011).

CHANGELOG:
- 2026-10-19: Stale live hours removed on re-import, failed existence check (STORY-016)
- 2026-10-14: Empty days are reported as failures (STORY-011)
- 2026-10-13: Initial creation (STORY-009)

TODO:
- None
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from unittest.mock import AsyncMock, patch
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.exc import OperationalError

from solar_rollup.db.models import DayBucket, HourBucket, MonthBucket, YearBucket
from solar_rollup.db.store import upsert
from solar_rollup.errors import SourceUnavailableError, StoreError
from solar_rollup.models import IntervalPoint
from solar_rollup.services.backfill import BackfillImporter, build_day_rollup
from solar_rollup.services.periods import capacity_factor
from solar_rollup.services.ratelimit import FixedDelay, NoDelay

UTC_TZ = ZoneInfo("UTC")
NOW = int(datetime(2026, 6, 15, 9, tzinfo=UTC).timestamp())
D1, D2, D3 = date(2026, 5, 30), date(2026, 5, 31), date(2026, 6, 1)


def _ts(*args: int) -> int:
    return int(datetime(*args, tzinfo=UTC).timestamp())


def _payload(points: list[tuple[str, float]], unit: str = "W") -> dict:
    return {"data": {"dataunit": unit, "data": [{"time": t, "value": v} for t, v in points]}}


_SUNNY = [("10:00", 300), ("10:20", 300), ("10:40", 300), ("11:00", 600), ("11:20", 600),
          ("11:40", 600), ("12:00", 5)]


class CountingDelay:
    """Rate-limit policy that only counts waits."""

    def __init__(self) -> None:
        self.waits = 0

    async def wait(self) -> None:
        self.waits += 1


async def _count(session, fetch_all, model) -> int:
    return len(await fetch_all(session, model))


# ===========================================================================
# Pure rollup
# ===========================================================================


class TestBuildDayRollup:
    def _build(self, points, **overrides):
        kwargs = {
            "tz": UTC_TZ,
            "interval_minutes": 20,
            "capacity_w": 3780.0,
            "sunlight_threshold_w": 10.0,
            "now": NOW,
        }
        kwargs.update(overrides)
        parsed = [IntervalPoint(hour=int(t[:2]), minute=int(t[3:]), power_w=v) for t, v in points]
        return build_day_rollup(D2, parsed, **kwargs)

    def test_hour_buckets(self) -> None:
        rollup = self._build(_SUNNY)

        assert [h["timestamp"] for h in rollup.hours] == [
            _ts(2026, 5, 31, 10),
            _ts(2026, 5, 31, 11),
            _ts(2026, 5, 31, 12),
        ]
        ten = rollup.hours[0]
        assert ten["energy_delta_wh"] == 300
        assert ten["power_avg_w"] == 300
        assert ten["power_max_w"] == 300
        assert ten["power_min_w"] == 300
        assert ten["sample_count"] == 3
        assert rollup.hours[1]["energy_delta_wh"] == 600
        # 5 W for 20 minutes = 1.67 Wh
        assert rollup.hours[2]["energy_delta_wh"] == 2

    def test_day_bucket(self) -> None:
        day = self._build(_SUNNY).day

        assert day["date"] == "2026-05-31"
        assert day["timestamp"] == _ts(2026, 5, 31)
        assert day["energy_total_wh"] == 902
        assert day["power_peak_w"] == 600
        assert day["power_peak_time"] == _ts(2026, 5, 31, 11)
        assert day["sunlight_hours"] == 2.0
        assert day["capacity_factor"] == capacity_factor(902, 3780.0, 24)

    def test_peak_time_is_start_of_peak_hour(self) -> None:
        day = self._build([("09:40", 200), ("11:20", 900), ("11:40", 400)]).day

        assert day["power_peak_w"] == 900
        assert day["power_peak_time"] == _ts(2026, 5, 31, 11)

    def test_daily_total_equals_sum_of_hours(self) -> None:
        points = [(f"{h:02d}:{m:02d}", 137.3 + h * 11.1 + m) for h in range(5, 21) for m in (0, 20, 40)]
        rollup = self._build(points)
        assert sum(h["energy_delta_wh"] for h in rollup.hours) == rollup.day["energy_total_wh"]

    def test_local_zone_hours(self) -> None:
        rollup = self._build([("00:00", 100)], tz=ZoneInfo("Europe/Amsterdam"))
        # 2026-05-31 00:00 CEST = 2026-05-30 22:00 UTC
        assert rollup.hours[0]["timestamp"] == _ts(2026, 5, 30, 22)
        assert rollup.day["timestamp"] == _ts(2026, 5, 30, 22)


# ===========================================================================
# Importer
# ===========================================================================


class TestDryRun:
    @pytest.mark.asyncio
    async def test_scenario_c(self, session, settings, make_source, fetch_all) -> None:
        source = make_source(days={d: _payload(_SUNNY) for d in (D1, D2, D3)})
        policy = CountingDelay()
        before = [await _count(session, fetch_all, m) for m in (HourBucket, DayBucket, MonthBucket)]

        report = await BackfillImporter(session, source, settings, policy).run(
            D1, D3, dry_run=True, now=NOW
        )

        after = [await _count(session, fetch_all, m) for m in (HourBucket, DayBucket, MonthBucket)]
        assert len(source.day_calls) == 3
        assert report.api_calls == 3
        assert before == after == [0, 0, 0]
        assert report.days_processed == 3
        assert report.hourly_records == 9
        assert report.total_energy_kwh == pytest.approx(2.706)
        assert report.dry_run is True
        assert policy.waits == 2

    @pytest.mark.asyncio
    async def test_dry_run_fetches_existing_days(self, session, settings, make_source) -> None:
        source = make_source(days={D1: _payload(_SUNNY)})
        await BackfillImporter(session, source, settings, NoDelay()).run(D1, D1, now=NOW)

        report = await BackfillImporter(session, source, settings, NoDelay()).run(
            D1, D1, dry_run=True, now=NOW
        )

        assert report.days_skipped == 0
        assert report.api_calls == 1


class TestImport:
    @pytest.mark.asyncio
    async def test_writes_hours_days_and_upper_tiers(self, session, settings, make_source, fetch_all) -> None:
        source = make_source(days={d: _payload(_SUNNY) for d in (D1, D2, D3)})

        report = await BackfillImporter(session, source, settings, NoDelay()).run(D1, D3, now=NOW)

        assert report.ok
        assert report.days_processed == 3
        days = await fetch_all(session, DayBucket, DayBucket.date)
        assert [d.date for d in days] == ["2026-05-30", "2026-05-31", "2026-06-01"]
        hours = await fetch_all(session, HourBucket)
        assert len(hours) == 9

        # May is complete relative to NOW; June is not.
        (month,) = await fetch_all(session, MonthBucket)
        assert (month.year, month.month) == (2026, 5)
        assert month.energy_total_wh == 2 * 902
        assert month.days_with_data == 2
        assert month.capacity_factor == capacity_factor(2 * 902, 3780.0, 24 * 31)
        assert await fetch_all(session, YearBucket) == []

    @pytest.mark.asyncio
    async def test_consistency_per_day(self, session, settings, make_source, fetch_all) -> None:
        points = [(f"{h:02d}:{m:02d}", 55.5 * h + m / 3) for h in range(6, 20) for m in (0, 20, 40)]
        source = make_source(days={D2: _payload(points)})

        await BackfillImporter(session, source, settings, NoDelay()).run(D2, D2, now=NOW)

        (day,) = await fetch_all(session, DayBucket)
        hours = await fetch_all(session, HourBucket)
        assert sum(h.energy_delta_wh for h in hours) == day.energy_total_wh

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overwrite", [True, False])
    async def test_live_hours_outside_payload_removed(
        self, session, settings, make_source, fetch_all, overwrite
    ) -> None:
        live = {
            "timestamp": _ts(2026, 5, 30, 6),
            "energy_delta_wh": 50,
            "power_avg_w": 50.0,
            "power_max_w": 80.0,
            "power_min_w": 20.0,
            "sample_count": 12,
            "aggregated_at": 0,
        }
        neighbour = {**live, "timestamp": _ts(2026, 5, 31, 6)}
        await upsert(session, HourBucket, [live, neighbour], ["timestamp"])
        await session.commit()
        source = make_source(days={D1: _payload([("10:00", 300), ("10:20", 300)])})

        report = await BackfillImporter(session, source, settings, NoDelay()).run(
            D1, D1, overwrite=overwrite, now=NOW
        )

        assert report.ok
        (day,) = await fetch_all(session, DayBucket)
        hours = await fetch_all(session, HourBucket, HourBucket.timestamp)
        day_hours = [h for h in hours if h.timestamp < _ts(2026, 5, 31)]
        assert [h.timestamp for h in day_hours] == [_ts(2026, 5, 30, 10)]
        assert sum(h.energy_delta_wh for h in day_hours) == day.energy_total_wh == 200
        # Hours of other days are untouched.
        assert hours[-1].timestamp == _ts(2026, 5, 31, 6)

    @pytest.mark.asyncio
    async def test_existing_day_skipped(self, session, settings, make_source, fetch_all) -> None:
        source = make_source(days={d: _payload(_SUNNY) for d in (D1, D2)})
        await BackfillImporter(session, source, settings, NoDelay()).run(D1, D1, now=NOW)
        source.day_calls.clear()

        report = await BackfillImporter(session, source, settings, NoDelay()).run(D1, D2, now=NOW)

        assert report.days_skipped == 1
        assert source.day_calls == [D2]

    @pytest.mark.asyncio
    async def test_overwrite_replaces_existing_day(self, session, settings, make_source, fetch_all) -> None:
        await upsert(
            session,
            DayBucket,
            {
                "date": D1.isoformat(),
                "timestamp": _ts(2026, 5, 30),
                "energy_total_wh": 1,
                "power_peak_w": 1.0,
                "power_peak_time": None,
                "sunlight_hours": 0.0,
                "capacity_factor": 0.0,
                "aggregated_at": 0,
            },
            ["date"],
        )
        await session.commit()
        source = make_source(days={D1: _payload(_SUNNY)})

        report = await BackfillImporter(session, source, settings, NoDelay()).run(
            D1, D1, overwrite=True, now=NOW
        )

        assert report.days_processed == 1
        (day,) = await fetch_all(session, DayBucket)
        assert day.energy_total_wh == 902

    @pytest.mark.asyncio
    async def test_end_capped_at_yesterday(self, session, settings, make_source) -> None:
        source = make_source()

        report = await BackfillImporter(session, source, settings, NoDelay()).run(
            date(2026, 6, 13), date(2026, 6, 20), now=NOW
        )

        assert report.end == date(2026, 6, 14)
        assert source.day_calls == [date(2026, 6, 13), date(2026, 6, 14)]


class TestFailures:
    @pytest.mark.asyncio
    async def test_failures_recorded_and_loop_continues(
        self, session, settings, make_source, fetch_all
    ) -> None:
        source = make_source(
            days={D1: _payload(_SUNNY), D2: SourceUnavailableError("HTTP 500")}
        )

        report = await BackfillImporter(session, source, settings, NoDelay()).run(D1, D3, now=NOW)

        assert report.days_processed == 1
        assert set(report.failures) == {"2026-05-31", "2026-06-01"}
        assert "500" in report.failures["2026-05-31"]
        assert report.failures["2026-06-01"] == "no data"
        assert not report.ok
        assert [d.date for d in await fetch_all(session, DayBucket)] == ["2026-05-30"]

    @pytest.mark.asyncio
    async def test_store_error_rolls_back_day(self, session, settings, make_source, fetch_all) -> None:
        source = make_source(days={D1: _payload(_SUNNY), D2: _payload(_SUNNY)})

        with patch(
            "solar_rollup.services.backfill.upsert",
            new=AsyncMock(side_effect=StoreError("disk full")),
        ):
            report = await BackfillImporter(session, source, settings, NoDelay()).run(
                D1, D2, now=NOW
            )

        assert report.days_processed == 0
        assert set(report.failures) == {"2026-05-30", "2026-05-31"}
        assert await fetch_all(session, DayBucket) == []


    @pytest.mark.asyncio
    async def test_existence_check_failure_recorded(
        self, session, settings, make_source, fetch_all
    ) -> None:
        source = make_source(days={D1: _payload(_SUNNY), D2: _payload(_SUNNY)})
        real_execute = session.execute
        calls = 0

        async def _fail_first(stmt, *args, **kwargs):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise OperationalError("SELECT count(*)", {}, Exception("database is locked"))
            return await real_execute(stmt, *args, **kwargs)

        with patch.object(session, "execute", new=_fail_first):
            report = await BackfillImporter(session, source, settings, NoDelay()).run(
                D1, D2, now=NOW
            )

        assert set(report.failures) == {"2026-05-30"}
        assert "database is locked" in report.failures["2026-05-30"]
        assert source.day_calls == [D2]
        assert report.days_processed == 1
        assert [d.date for d in await fetch_all(session, DayBucket)] == ["2026-05-31"]


class TestRateLimit:
    @pytest.mark.asyncio
    async def test_waits_between_calls_only(self, session, settings, make_source) -> None:
        sleep = AsyncMock()
        source = make_source(days={d: _payload(_SUNNY) for d in (D1, D2, D3)})

        await BackfillImporter(session, source, settings, FixedDelay(10.0, sleep=sleep)).run(
            D1, D3, dry_run=True, now=NOW
        )

        assert sleep.await_count == 2
        sleep.assert_awaited_with(10.0)

    @pytest.mark.asyncio
    async def test_zero_delay_never_sleeps(self) -> None:
        sleep = AsyncMock()
        await FixedDelay(0, sleep=sleep).wait()
        sleep.assert_not_awaited()
