"""
Tests for Settings loading and validation (STORY-001).

CHANGELOG:
- 2026-10-14: Cover MAX_PLAUSIBLE_DAILY_WH (STORY-014)
- 2026-10-12: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from solar_rollup.config import Settings, get_settings


class TestDefaults:
    """Everything has a default so the API can start without credentials."""

    def test_defaults(self) -> None:
        settings = get_settings()
        assert settings.database_url == "sqlite+aiosqlite:///solar.db"
        assert settings.redis_url is None
        assert settings.system_capacity_w == 3780.0
        assert settings.timezone == "Europe/Amsterdam"
        assert settings.min_collection_interval_s == 300
        assert settings.retention_days == 7
        assert settings.hourly_lookback_hours == 24
        assert settings.sunlight_threshold_w == 10.0
        assert settings.request_timeout_s == 15.0
        assert settings.backfill_delay_s == 10.0
        assert settings.backfill_interval_minutes == 20
        assert settings.solplanet_enabled is True

    def test_tz_property(self) -> None:
        assert get_settings().tz == ZoneInfo("Europe/Amsterdam")

    def test_plausible_daily_default_is_half_of_24h(self) -> None:
        assert get_settings().plausible_daily_wh == 3780.0 * 24 * 0.5

    def test_plausible_daily_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MAX_PLAUSIBLE_DAILY_WH", "40000")
        assert get_settings().plausible_daily_wh == 40000.0


class TestEnvLoading:
    """Values come from environment variables."""

    def test_reads_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SYSTEM_CAPACITY_W", "5000")
        monkeypatch.setenv("TIMEZONE", "UTC")
        monkeypatch.setenv("SOLPLANET_ENABLED", "false")
        monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")
        settings = get_settings()
        assert settings.system_capacity_w == 5000.0
        assert settings.timezone == "UTC"
        assert settings.solplanet_enabled is False
        assert settings.redis_url == "redis://localhost:6379/0"

    def test_reads_dotenv_file(self, tmp_path) -> None:
        (tmp_path / ".env").write_text("SOLPLANET_SN=SN-FROM-DOTENV\n")
        assert get_settings().solplanet_sn == "SN-FROM-DOTENV"


class TestValidators:
    """Field validators reject unsafe or meaningless values."""

    def test_http_base_url_rejected(self) -> None:
        with pytest.raises(ValidationError, match="HTTPS"):
            Settings(solplanet_base_url="http://eu-api-genergal.aisweicloud.com")

    def test_trailing_slash_stripped(self) -> None:
        settings = Settings(solplanet_base_url="https://api.example.com/")
        assert settings.solplanet_base_url == "https://api.example.com"

    @pytest.mark.parametrize("value", [0, -100])
    def test_capacity_must_be_positive(self, value: float) -> None:
        with pytest.raises(ValidationError):
            Settings(system_capacity_w=value)

    def test_unknown_timezone_rejected(self) -> None:
        with pytest.raises(ValidationError, match="IANA"):
            Settings(timezone="Mars/Olympus_Mons")

    def test_negative_interval_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(min_collection_interval_s=-1)

    def test_zero_interval_allowed(self) -> None:
        assert Settings(min_collection_interval_s=0).min_collection_interval_s == 0

    @pytest.mark.parametrize("value", [0, 7, 25])
    def test_backfill_interval_must_divide_hour(self, value: int) -> None:
        with pytest.raises(ValidationError):
            Settings(backfill_interval_minutes=value)

    @pytest.mark.parametrize("value", [5, 15, 20, 30, 60])
    def test_backfill_interval_accepted(self, value: int) -> None:
        assert Settings(backfill_interval_minutes=value).backfill_interval_minutes == value

    def test_negative_delay_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(backfill_delay_s=-1)
