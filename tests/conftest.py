"""
Shared test fixtures for the solar rollup tests.

Cleans all solar env vars before each test, provides a Settings instance
pinned to UTC, a real SQLite database per test (file-backed in tmp_path so
every connection sees the same tables), and a scripted fake telemetry
source.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import date
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from solar_rollup.config import Settings
from solar_rollup.db.session import create_engine, create_session_factory, init_schema

# All Settings environment variable names, used for cleanup.
_ALL_SOLAR_ENV_VARS = (
    "DATABASE_URL",
    "REDIS_URL",
    "CACHE_TTL_S",
    "SOLPLANET_ENABLED",
    "SOLPLANET_BASE_URL",
    "SOLPLANET_API_KEY",
    "SOLPLANET_SN",
    "SYSTEM_CAPACITY_W",
    "TIMEZONE",
    "MIN_COLLECTION_INTERVAL_S",
    "RETENTION_DAYS",
    "HOURLY_LOOKBACK_HOURS",
    "SUNLIGHT_THRESHOLD_W",
    "REQUEST_TIMEOUT_S",
    "BACKFILL_DELAY_S",
    "BACKFILL_INTERVAL_MINUTES",
    "MAX_PLAUSIBLE_DAILY_WH",
)


@pytest.fixture(autouse=True)
def _clean_solar_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Remove all solar env vars and isolate from .env files before each test."""
    for var in _ALL_SOLAR_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'solar-test.db'}"


@pytest.fixture()
def settings(db_url: str) -> Settings:
    """Settings pinned to UTC with test credentials and no Redis."""
    return Settings(
        database_url=db_url,
        solplanet_api_key="test-key",
        solplanet_sn="SN-TEST-001",
        timezone="UTC",
        system_capacity_w=3780.0,
        backfill_delay_s=0.0,
    )


@pytest_asyncio.fixture()
async def session(db_url: str) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session bound to a freshly created SQLite schema."""
    engine = create_engine(db_url)
    await init_schema(engine)
    factory = create_session_factory(engine)
    async with factory() as s:
        yield s
    await engine.dispose()


@pytest.fixture()
def fetch_all():
    """Return an async helper that reads every row of a model, fresh from the DB."""

    async def _fetch_all(session: AsyncSession, model, *order_by) -> list:
        stmt = select(model).execution_options(populate_existing=True)
        if order_by:
            stmt = stmt.order_by(*order_by)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    return _fetch_all


class FakeSource:
    """Scripted telemetry source.

    ``overview`` is returned (or raised, if an exception) by every
    fetch_overview call; ``days`` maps a date to a payload or exception.
    Days missing from the map return an empty payload.
    """

    def __init__(self, overview=None, days=None) -> None:
        self.overview = overview
        self.days = days or {}
        self.overview_calls = 0
        self.day_calls: list[date] = []

    async def fetch_overview(self) -> dict:
        self.overview_calls += 1
        if isinstance(self.overview, Exception):
            raise self.overview
        return self.overview

    async def fetch_day_output(self, day: date) -> dict:
        self.day_calls.append(day)
        result = self.days.get(day, {"data": {"data": [], "dataunit": "W"}})
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture()
def make_source():
    """Return the FakeSource class for building scripted sources."""
    return FakeSource


def overview_payload(
    power: float = 1500, today_kwh: float = 5.0, month_kwh: float = 120.0, total_mwh: float = 12.5
) -> dict:
    return {
        "data": {
            "Power": {"value": power, "unit": "W"},
            "E-Today": {"value": today_kwh, "unit": "kWh"},
            "E-Month": {"value": month_kwh, "unit": "kWh"},
            "E-Total": {"value": total_mwh, "unit": "MWh"},
            "status": "1",
        }
    }


@pytest.fixture()
def overview():
    """Return the overview payload builder."""
    return overview_payload
