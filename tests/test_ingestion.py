"""
Tests for the collection cycle (STORY-005, STORY-008).

Uses a real SQLite database and a scripted source; the Redis invalidation
is patched out.

CHANGELOG:
- 2026-10-14: Cover retention pruning (STORY-008)
- 2026-10-12: Initial creation (STORY-005)

TODO:
- None
"""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest

from solar_rollup.db.models import RawSample
from solar_rollup.db.store import LAST_COLLECTION, get_watermark, upsert
from solar_rollup.errors import MalformedResponseError, SourceUnavailableError, StoreError
from solar_rollup.services.ingestion import CollectStatus, collect, prune_samples

T = int(datetime(2026, 6, 15, 10, 7, tzinfo=UTC).timestamp())


@pytest.fixture(autouse=True)
def _no_redis():
    with patch(
        "solar_rollup.services.ingestion.invalidate_current_cache", new_callable=AsyncMock
    ) as mock:
        yield mock


class TestMinimumInterval:
    """The persisted watermark gates collection frequency."""

    @pytest.mark.asyncio
    async def test_scenario_d_two_calls_120s_apart(
        self, session, settings, make_source, overview, fetch_all
    ) -> None:
        source = make_source(overview=overview())

        first = await collect(session, source, settings, now=T)
        second = await collect(session, source, settings, now=T + 120)

        assert first.status is CollectStatus.COLLECTED
        assert second.status is CollectStatus.SKIPPED
        assert source.overview_calls == 1
        assert len(await fetch_all(session, RawSample)) == 1
        assert await get_watermark(session, LAST_COLLECTION) == T

    @pytest.mark.asyncio
    async def test_collects_again_after_interval(
        self, session, settings, make_source, overview, fetch_all
    ) -> None:
        source = make_source(overview=overview())

        await collect(session, source, settings, now=T)
        result = await collect(session, source, settings, now=T + 300)

        assert result.status is CollectStatus.COLLECTED
        assert len(await fetch_all(session, RawSample)) == 2

    @pytest.mark.asyncio
    async def test_force_bypasses_interval(self, session, settings, make_source, overview) -> None:
        source = make_source(overview=overview())

        await collect(session, source, settings, now=T)
        result = await collect(session, source, settings, now=T + 10, force=True)

        assert result.status is CollectStatus.COLLECTED
        assert source.overview_calls == 2


class TestEnabledSwitch:
    @pytest.mark.asyncio
    async def test_disabled_does_not_fetch(self, session, settings, make_source, overview) -> None:
        settings.solplanet_enabled = False
        source = make_source(overview=overview())

        result = await collect(session, source, settings, now=T)

        assert result.status is CollectStatus.DISABLED
        assert source.overview_calls == 0

    @pytest.mark.asyncio
    async def test_force_overrides_disabled(self, session, settings, make_source, overview) -> None:
        settings.solplanet_enabled = False
        source = make_source(overview=overview())

        result = await collect(session, source, settings, now=T, force=True)

        assert result.status is CollectStatus.COLLECTED


class TestStoredSample:
    @pytest.mark.asyncio
    async def test_sample_in_canonical_units(
        self, session, settings, make_source, overview, fetch_all, _no_redis
    ) -> None:
        source = make_source(overview=overview(power=2100, today_kwh=7.25, month_kwh=88.0, total_mwh=3.5))

        result = await collect(session, source, settings, now=T)

        (sample,) = await fetch_all(session, RawSample)
        assert sample.timestamp == T
        assert sample.power_current_w == 2100
        assert sample.energy_today_wh == 7250
        assert sample.energy_month_wh == 88000
        assert sample.energy_total_wh == 3_500_000
        assert sample.inverter_status == 1
        assert result.reading is not None
        _no_redis.assert_awaited_once_with(settings.redis_url)


class TestSourceFailure:
    """Source failures write nothing and leave the watermark alone."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overview_value, exc_type",
        [
            (SourceUnavailableError("timeout"), SourceUnavailableError),
            ({"data": {"status": 1}}, MalformedResponseError),
        ],
    )
    async def test_nothing_written(
        self, session, settings, make_source, fetch_all, overview_value, exc_type, _no_redis
    ) -> None:
        source = make_source(overview=overview_value)

        with pytest.raises(exc_type):
            await collect(session, source, settings, now=T)

        assert await fetch_all(session, RawSample) == []
        assert await get_watermark(session, LAST_COLLECTION) is None
        _no_redis.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_error_propagates(self, session, settings, make_source, overview) -> None:
        source = make_source(overview=overview())

        with patch(
            "solar_rollup.services.ingestion.upsert",
            new=AsyncMock(side_effect=StoreError("disk full")),
        ):
            with pytest.raises(StoreError):
                await collect(session, source, settings, now=T)

        assert await get_watermark(session, LAST_COLLECTION) is None


class TestCascade:
    @pytest.mark.asyncio
    async def test_aggregation_failure_keeps_sample(
        self, session, settings, make_source, overview, fetch_all
    ) -> None:
        source = make_source(overview=overview())

        with patch(
            "solar_rollup.services.ingestion.run_pipeline",
            new=AsyncMock(side_effect=StoreError("boom")),
        ):
            result = await collect(session, source, settings, now=T)

        assert result.status is CollectStatus.COLLECTED
        assert result.pipeline is None
        assert len(await fetch_all(session, RawSample)) == 1
        assert await get_watermark(session, LAST_COLLECTION) == T

    @pytest.mark.asyncio
    async def test_pipeline_runs_after_collection(self, session, settings, make_source, overview) -> None:
        source = make_source(overview=overview())

        result = await collect(session, source, settings, now=T)

        assert result.pipeline is not None
        assert result.pipeline.hours == 0


class TestRetention:
    @pytest.mark.asyncio
    async def test_old_samples_pruned(self, session, settings, make_source, overview, fetch_all) -> None:
        old = {
            "timestamp": T - 8 * 86400,
            "power_current_w": 0.0,
            "energy_today_wh": 0,
            "energy_month_wh": 0,
            "energy_total_wh": 0,
            "inverter_status": 0,
            "collected_at": T - 8 * 86400,
        }
        recent = {**old, "timestamp": T - 6 * 86400, "collected_at": T - 6 * 86400}
        await upsert(session, RawSample, [old, recent], ["timestamp"])
        await session.commit()

        result = await collect(session, make_source(overview=overview()), settings, now=T)

        assert result.pruned == 1
        remaining = await fetch_all(session, RawSample, RawSample.timestamp)
        assert [s.timestamp for s in remaining] == [T - 6 * 86400, T]

    @pytest.mark.asyncio
    async def test_prune_samples_returns_count(self, session) -> None:
        assert await prune_samples(session, now=T, retention_days=7) == 0
