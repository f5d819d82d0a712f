"""
Pure normalizer that converts vendor cloud payloads into canonical readings.

The plant overview reports values as ``{"value": ..., "unit": ...}``
objects: ``Power`` in W, ``E-Today`` and ``E-Month`` in kWh, ``E-Total``
in MWh. They are converted to W and Wh here. The day output payload is a
list of ``{"time": "HH:MM", "value": <power>}`` points with a
``dataunit`` (``W`` or ``kW``).

These are pure functions: no side effects, no I/O, no clock. The
timestamp is accepted as a parameter so it can be injected by the caller.

CHANGELOG:
- 2026-10-13: Add normalize_interval_points for backfill (STORY-009)
- 2026-10-12: Initial creation (STORY-004)

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from solar_rollup.errors import MalformedResponseError
from solar_rollup.models import IntervalPoint, RawReading

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Unit conversion: overview field -> multiplier to the canonical unit.
# ---------------------------------------------------------------------------

_WH_PER_KWH = 1_000
_WH_PER_MWH = 1_000_000

_REQUIRED_FIELDS = ("Power", "E-Today")
_OPTIONAL_ENERGY_FIELDS: dict[str, tuple[str, int]] = {
    "energy_month_wh": ("E-Month", _WH_PER_KWH),
    "energy_total_wh": ("E-Total", _WH_PER_MWH),
}

_POWER_UNIT_SCALE = {"w": 1.0, "kw": 1_000.0}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _field_value(data: dict[str, Any], name: str) -> float | None:
    """Return the numeric ``value`` of an overview field, or None if absent.

    Raises:
        MalformedResponseError: If the field is present but not numeric.
    """
    field = data.get(name)
    if field is None:
        return None
    raw = field.get("value") if isinstance(field, dict) else field
    if raw is None:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedResponseError(
            f"Overview field '{name}' is not numeric: {raw!r}"
        ) from exc


def _unwrap_overview(payload: dict[str, Any]) -> dict[str, Any]:
    """Accept the overview either flat or wrapped once in ``data``."""
    if "Power" not in payload and isinstance(payload.get("data"), dict):
        return payload["data"]
    return payload


def _parse_time(label: Any) -> tuple[int, int] | None:
    """Parse ``HH:MM`` into (hour, minute), or None when unparseable."""
    if not isinstance(label, str) or ":" not in label:
        return None
    hour_s, minute_s = label.split(":", 1)
    try:
        return int(hour_s), int(minute_s[:2])
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize_overview(payload: dict[str, Any], *, ts: int) -> RawReading:
    """Convert a plant overview payload into a :class:`RawReading`.

    ``Power`` and ``E-Today`` are required because they drive the hourly
    rollup. ``E-Month`` and ``E-Total`` default to 0 with a warning when
    the vendor omits them.

    Args:
        payload: Decoded JSON body of the overview request.
        ts: Epoch second to stamp the reading with.

    Returns:
        A validated RawReading in W / Wh.

    Raises:
        MalformedResponseError: If a required field is missing, a value is
            not numeric, or a converted value is out of range.
    """
    data = _unwrap_overview(payload)

    values: dict[str, float] = {}
    for name in _REQUIRED_FIELDS:
        value = _field_value(data, name)
        if value is None:
            raise MalformedResponseError(f"Overview payload missing '{name}'")
        values[name] = value

    fields: dict[str, Any] = {
        "power_current_w": values["Power"],
        "energy_today_wh": round(values["E-Today"] * _WH_PER_KWH),
    }

    for attr, (name, scale) in _OPTIONAL_ENERGY_FIELDS.items():
        value = _field_value(data, name)
        if value is None:
            logger.warning("Overview field '%s' missing; storing 0", name)
            value = 0.0
        fields[attr] = round(value * scale)

    status = data.get("status", 0)
    try:
        fields["inverter_status"] = int(status)
    except (TypeError, ValueError):
        logger.warning("Overview status %r is not an integer; storing 0", status)
        fields["inverter_status"] = 0

    try:
        return RawReading(timestamp=ts, **fields)
    except ValidationError as exc:
        raise MalformedResponseError(f"Overview values out of range: {exc}") from exc


def normalize_interval_points(payload: dict[str, Any]) -> list[IntervalPoint]:
    """Convert a day output payload into interval points.

    A payload without a ``data`` list means the vendor has nothing for the
    day and yields an empty list. Individual points with an unparseable
    time or value are logged and dropped; negative power is clamped to 0.

    Args:
        payload: Decoded JSON body of the day output request.

    Returns:
        Interval points in payload order, power in W.

    Raises:
        MalformedResponseError: If ``data`` is present but not a list, or
            the declared unit is unknown.
    """
    body = payload
    if isinstance(body.get("data"), dict):
        body = body["data"]

    points = body.get("data")
    if points is None:
        return []
    if not isinstance(points, list):
        raise MalformedResponseError(
            f"Day output 'data' must be a list, got {type(points).__name__}"
        )

    unit = str(body.get("dataunit") or "W").strip().lower()
    scale = _POWER_UNIT_SCALE.get(unit)
    if scale is None:
        raise MalformedResponseError(f"Unknown day output unit '{unit}'")

    result: list[IntervalPoint] = []
    for point in points:
        if not isinstance(point, dict):
            logger.warning("Dropping non-object interval point %r", point)
            continue
        parsed = _parse_time(point.get("time"))
        try:
            power = float(point.get("value"))
        except (TypeError, ValueError):
            power = None
        if parsed is None or power is None:
            logger.warning("Dropping unparseable interval point %r", point)
            continue
        try:
            result.append(
                IntervalPoint(
                    hour=parsed[0],
                    minute=parsed[1],
                    power_w=max(0.0, power * scale),
                )
            )
        except ValidationError:
            logger.warning("Dropping out-of-range interval point %r", point)

    return result
