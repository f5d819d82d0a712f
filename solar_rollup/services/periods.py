"""
Bucket boundary arithmetic and the canonical capacity-factor formula.

Hours are aligned to epoch multiples of 3600 s. Days, months, and years
start at local midnight in the configured zone, so their lengths in
seconds follow DST transitions while ``days_in_month``/``days_in_year``
give the calendar lengths used by the capacity-factor denominators.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-006)

TODO:
- None
"""

import calendar
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

HOUR_S = 3600


def hour_floor(ts: int) -> int:
    """Return the start of the epoch-aligned hour containing *ts*."""
    return ts // HOUR_S * HOUR_S


def local_date(ts: int, tz: ZoneInfo) -> date:
    """Return the local calendar date of epoch second *ts*."""
    return datetime.fromtimestamp(ts, tz).date()


def day_start(d: date, tz: ZoneInfo) -> int:
    """Return the epoch second of local midnight starting *d*."""
    return int(datetime.combine(d, time(0), tzinfo=tz).timestamp())


def month_start(year: int, month: int, tz: ZoneInfo) -> int:
    """Return the epoch second of local midnight on the 1st of the month."""
    return day_start(date(year, month, 1), tz)


def year_start(year: int, tz: ZoneInfo) -> int:
    """Return the epoch second of local midnight on January 1st."""
    return day_start(date(year, 1, 1), tz)


def next_month(year: int, month: int) -> tuple[int, int]:
    """Return the (year, month) following the given one."""
    if month == 12:
        return year + 1, 1
    return year, month + 1


def next_day(d: date) -> date:
    return d + timedelta(days=1)


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def days_in_year(year: int) -> int:
    return 366 if calendar.isleap(year) else 365


def capacity_factor(energy_wh: float, capacity_w: float, hours: float) -> float:
    """Return produced energy as a percentage of the rated maximum.

    Args:
        energy_wh: Energy produced over the window in Wh.
        capacity_w: Rated capacity of the installation in W.
        hours: Elapsed hours of the window.

    Returns:
        Percentage rounded to 2 decimals, not clamped. 0.0 when the
        theoretical maximum is zero.
    """
    max_wh = capacity_w * hours
    if max_wh <= 0:
        return 0.0
    return round(energy_wh / max_wh * 100, 2)
