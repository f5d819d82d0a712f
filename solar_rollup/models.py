"""
Pydantic models for normalized telemetry readings.

Defines the RawReading model (one plant overview poll in canonical units)
and the IntervalPoint model (one historical sub-hour power sample used by
backfill). Both are produced by the pure normalizer from vendor payloads.

CHANGELOG:
- 2026-10-13: Add IntervalPoint for backfill (STORY-009)
- 2026-10-12: Initial creation (STORY-004)

TODO:
- None
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class RawReading(BaseModel):
    """A single normalized plant overview reading.

    All values are in canonical units after conversion. The timestamp is
    injected by the caller, keeping the normalizer a pure function.

    Attributes:
        timestamp: Epoch second the reading was taken.
        power_current_w: Instantaneous output power in watts.
        energy_today_wh: Today's cumulative production in Wh.
        energy_month_wh: This month's cumulative production in Wh.
        energy_total_wh: Lifetime production in Wh.
        inverter_status: Vendor status code.
    """

    timestamp: int
    power_current_w: float = Field(ge=0)
    energy_today_wh: int = Field(ge=0)
    energy_month_wh: int = Field(ge=0)
    energy_total_wh: int = Field(ge=0)
    inverter_status: int = 0

    def to_row(self, collected_at: int) -> dict:
        """Return a dict ready for upsert into ``solar_realtime``."""
        return {**self.model_dump(), "collected_at": collected_at}


class IntervalPoint(BaseModel):
    """One historical interval sample for a local calendar day.

    Attributes:
        hour: Local hour of day (0-23) the interval starts in.
        minute: Local minute (0-59) the interval starts at.
        power_w: Average power over the interval in watts (clamped >= 0).
    """

    hour: int = Field(ge=0, le=23)
    minute: int = Field(ge=0, le=59)
    power_w: float = Field(ge=0)

    @property
    def label(self) -> str:
        """Return the ``HH:MM`` label of the interval start."""
        return f"{self.hour:02d}:{self.minute:02d}"
