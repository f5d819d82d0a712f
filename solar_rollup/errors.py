"""
Exception hierarchy for the collector, aggregators, and backfill.

Source errors abort a collection cycle without writing anything; store
errors abort a single write (or one backfill day) and are logged by the
caller. Gaps in data are not errors and have no exception type.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-002)

TODO:
- None
"""


class SolarRollupError(Exception):
    """Base exception for solar rollup operations."""

    pass


class SourceUnavailableError(SolarRollupError):
    """Raised when the telemetry source cannot be reached or returns non-200."""

    pass


class MalformedResponseError(SolarRollupError):
    """Raised when a telemetry payload cannot be parsed or lacks required fields."""

    pass


class StoreError(SolarRollupError):
    """Raised when a bucket or sample write fails in the underlying store."""

    pass
