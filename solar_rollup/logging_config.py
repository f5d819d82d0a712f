"""
Structured JSON logging configuration for the batch commands and API.

Provides a custom JSON formatter and a ``setup_logging()`` function that
replaces the default logging configuration with structured output. Each
log record is emitted as a single JSON line containing ``timestamp``,
``level``, ``logger`` and ``message`` (plus ``exception`` when present).

CHANGELOG:
- 2026-10-12: Initial creation (STORY-002)

TODO:
- None
"""

import json
import logging
import sys
from datetime import UTC, datetime


class JSONFormatter(logging.Formatter):
    """Logging formatter that outputs a single JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        """Format *record* as a JSON string.

        Args:
            record: The log record to format.

        Returns:
            A single-line JSON string.
        """
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging(verbose: bool = False) -> None:
    """Configure the root logger with structured JSON output on stderr.

    Removes any existing handlers on the root logger and installs a single
    ``StreamHandler`` using :class:`JSONFormatter`.

    Args:
        verbose: Log at DEBUG instead of INFO.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
