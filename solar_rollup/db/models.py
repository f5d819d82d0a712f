"""
SQLAlchemy ORM models for the solar bucket store.

Defines the raw sample table, the four aggregate tiers, and the watermark
table. Every table is keyed on its natural key so that all writes can be
idempotent upserts; there are no surrogate ids.

All timestamps are epoch seconds. Energy columns are integer Wh, power
columns are float W.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-003)

TODO:
- None
"""

from sqlalchemy import Double, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all solar rollup ORM models."""

    pass


class RawSample(Base):
    """One poll of the plant overview, in canonical units.

    Attributes:
        timestamp: Epoch second the sample was taken (natural key).
        power_current_w: Instantaneous output power in watts.
        energy_today_wh: Cumulative production today in Wh (resets at
            local midnight on the inverter side).
        energy_month_wh: Cumulative production this month in Wh.
        energy_total_wh: Lifetime production in Wh.
        inverter_status: Vendor status code (0=offline, 1=normal,
            2=warning, 3=error).
        collected_at: Epoch second the sample was written.
    """

    __tablename__ = "solar_realtime"

    timestamp: Mapped[int] = mapped_column(Integer, primary_key=True)
    power_current_w: Mapped[float] = mapped_column(Double, nullable=False)
    energy_today_wh: Mapped[int] = mapped_column(Integer, nullable=False)
    energy_month_wh: Mapped[int] = mapped_column(Integer, nullable=False)
    energy_total_wh: Mapped[int] = mapped_column(Integer, nullable=False)
    inverter_status: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    collected_at: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of the RawSample."""
        return (
            f"RawSample(timestamp={self.timestamp!r}, "
            f"power_current_w={self.power_current_w!r}, "
            f"energy_today_wh={self.energy_today_wh!r})"
        )


class HourBucket(Base):
    """Rollup of one clock hour, keyed on its epoch-aligned start."""

    __tablename__ = "solar_hourly"

    timestamp: Mapped[int] = mapped_column(Integer, primary_key=True)
    energy_delta_wh: Mapped[int] = mapped_column(Integer, nullable=False)
    power_avg_w: Mapped[float] = mapped_column(Double, nullable=False)
    power_max_w: Mapped[float] = mapped_column(Double, nullable=False)
    power_min_w: Mapped[float] = mapped_column(Double, nullable=False)
    sample_count: Mapped[int] = mapped_column(Integer, nullable=False)
    aggregated_at: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of the HourBucket."""
        return (
            f"HourBucket(timestamp={self.timestamp!r}, "
            f"energy_delta_wh={self.energy_delta_wh!r})"
        )


class DayBucket(Base):
    """Rollup of one local calendar day.

    Attributes:
        date: Local date as ``YYYY-MM-DD`` (natural key).
        timestamp: Epoch second of local midnight starting the day.
        energy_total_wh: Sum of hourly energy deltas.
        power_peak_w: Highest hourly (or interval) power of the day.
        power_peak_time: Epoch second the peak was observed, if known.
        sunlight_hours: Hours with average power above the productive
            threshold.
        capacity_factor: Percentage of the 24h theoretical maximum.
        aggregated_at: Epoch second the row was last computed.
    """

    __tablename__ = "solar_daily"

    date: Mapped[str] = mapped_column(String(10), primary_key=True)
    timestamp: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    energy_total_wh: Mapped[int] = mapped_column(Integer, nullable=False)
    power_peak_w: Mapped[float] = mapped_column(Double, nullable=False)
    power_peak_time: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sunlight_hours: Mapped[float] = mapped_column(Double, nullable=False)
    capacity_factor: Mapped[float] = mapped_column(Double, nullable=False)
    aggregated_at: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of the DayBucket."""
        return (
            f"DayBucket(date={self.date!r}, "
            f"energy_total_wh={self.energy_total_wh!r})"
        )


class MonthBucket(Base):
    """Rollup of one local calendar month, keyed on (year, month)."""

    __tablename__ = "solar_monthly"

    year: Mapped[int] = mapped_column(Integer, primary_key=True)
    month: Mapped[int] = mapped_column(Integer, primary_key=True)
    timestamp: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    energy_total_wh: Mapped[int] = mapped_column(Integer, nullable=False)
    power_peak_w: Mapped[float] = mapped_column(Double, nullable=False)
    days_with_data: Mapped[int] = mapped_column(Integer, nullable=False)
    avg_daily_wh: Mapped[float] = mapped_column(Double, nullable=False)
    capacity_factor: Mapped[float] = mapped_column(Double, nullable=False)
    aggregated_at: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of the MonthBucket."""
        return (
            f"MonthBucket(year={self.year!r}, month={self.month!r}, "
            f"energy_total_wh={self.energy_total_wh!r})"
        )


class YearBucket(Base):
    """Rollup of one local calendar year."""

    __tablename__ = "solar_yearly"

    year: Mapped[int] = mapped_column(Integer, primary_key=True)
    timestamp: Mapped[int] = mapped_column(Integer, nullable=False)
    energy_total_wh: Mapped[int] = mapped_column(Integer, nullable=False)
    power_peak_w: Mapped[float] = mapped_column(Double, nullable=False)
    months_with_data: Mapped[int] = mapped_column(Integer, nullable=False)
    avg_monthly_wh: Mapped[float] = mapped_column(Double, nullable=False)
    capacity_factor: Mapped[float] = mapped_column(Double, nullable=False)
    aggregated_at: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of the YearBucket."""
        return (
            f"YearBucket(year={self.year!r}, "
            f"energy_total_wh={self.energy_total_wh!r})"
        )


class Watermark(Base):
    """Per-stage progress marker (epoch seconds) keyed by stage name."""

    __tablename__ = "collection_metadata"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of the Watermark."""
        return f"Watermark(key={self.key!r}, value={self.value!r})"
