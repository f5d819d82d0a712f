"""
Collector and query service configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All configuration values come from environment variables or .env files;
no hardcoded credentials.

CHANGELOG:
- 2026-10-14: Add MAX_PLAUSIBLE_DAILY_WH for the validation report (STORY-014)
- 2026-10-13: Add backfill interval and delay settings (STORY-009)
- 2026-10-12: Initial creation (STORY-001)

TODO:
- None
"""

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Solar rollup configuration.

    All values are loaded from environment variables. Everything has a
    default so the query API can start against an existing database
    without vendor credentials; the collector and backfill commands check
    for credentials themselves.

    Attributes:
        database_url: SQLAlchemy async URL for the bucket store.
        redis_url: Optional Redis URL for caching the current-mode payload.
        cache_ttl_s: TTL of the cached current-mode payload.
        solplanet_enabled: Master switch for scheduled collection.
        solplanet_base_url: Vendor cloud API base URL (must be HTTPS).
        solplanet_api_key: Plant API key sent as the ``key`` query parameter.
        solplanet_sn: Inverter serial number.
        system_capacity_w: Rated capacity of the installation in watts.
        timezone: IANA zone used for day/month/year boundaries.
        min_collection_interval_s: Minimum gap between two collections.
        retention_days: Raw sample retention window.
        hourly_lookback_hours: Hourly aggregation lookback when no
            watermark exists yet.
        sunlight_threshold_w: Average power above which an hour counts as
            productive.
        request_timeout_s: Timeout for every vendor API call.
        backfill_delay_s: Pause between per-day backfill calls.
        backfill_interval_minutes: Width of one historical interval sample.
        max_plausible_daily_wh: Upper bound used by the validation report.
            Defaults to half of the theoretical 24h maximum.
    """

    database_url: str = "sqlite+aiosqlite:///solar.db"
    redis_url: str | None = None
    cache_ttl_s: int = 60

    solplanet_enabled: bool = True
    solplanet_base_url: str = "https://eu-api-genergal.aisweicloud.com"
    solplanet_api_key: str = ""
    solplanet_sn: str = ""

    system_capacity_w: float = 3780.0
    timezone: str = "Europe/Amsterdam"

    min_collection_interval_s: int = 300
    retention_days: int = 7
    hourly_lookback_hours: int = 24
    sunlight_threshold_w: float = 10.0
    request_timeout_s: float = 15.0

    backfill_delay_s: float = 10.0
    backfill_interval_minutes: int = 20

    max_plausible_daily_wh: int | None = None

    @property
    def tz(self) -> ZoneInfo:
        """Return the configured local zone as a ZoneInfo instance."""
        return ZoneInfo(self.timezone)

    @field_validator("solplanet_base_url")
    @classmethod
    def base_url_must_be_https(cls, v: str) -> str:
        """Reject plain HTTP for the vendor API."""
        if not v.lower().startswith("https://"):
            raise ValueError(f"SOLPLANET_BASE_URL must use HTTPS (got: '{v[:20]}...')")
        return v.rstrip("/")

    @field_validator("system_capacity_w")
    @classmethod
    def capacity_must_be_positive(cls, v: float) -> float:
        """Capacity is the denominator of every capacity factor."""
        if v <= 0:
            raise ValueError("SYSTEM_CAPACITY_W must be > 0")
        return v

    @field_validator("timezone")
    @classmethod
    def timezone_must_exist(cls, v: str) -> str:
        """Validate the zone name against the tz database."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"TIMEZONE '{v}' is not a known IANA zone") from exc
        return v

    @field_validator("min_collection_interval_s", "retention_days", "hourly_lookback_hours")
    @classmethod
    def must_be_non_negative(cls, v: int) -> int:
        """Interval and window settings cannot be negative."""
        if v < 0:
            raise ValueError("value must be >= 0")
        return v

    @field_validator("backfill_delay_s", "request_timeout_s")
    @classmethod
    def seconds_must_be_non_negative(cls, v: float) -> float:
        """Delays and timeouts cannot be negative."""
        if v < 0:
            raise ValueError("value must be >= 0")
        return v

    @field_validator("backfill_interval_minutes")
    @classmethod
    def interval_must_divide_hour(cls, v: int) -> int:
        """Interval samples must tile an hour exactly."""
        if v < 1 or 60 % v != 0:
            raise ValueError("BACKFILL_INTERVAL_MINUTES must divide 60")
        return v

    @property
    def plausible_daily_wh(self) -> float:
        """Ceiling for a believable single-day production total."""
        if self.max_plausible_daily_wh is not None:
            return float(self.max_plausible_daily_wh)
        return self.system_capacity_w * 24 * 0.5

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


def get_settings() -> Settings:
    """Create and return a Settings instance.

    Returns:
        Settings: Validated configuration from environment variables.
    """
    return Settings()
