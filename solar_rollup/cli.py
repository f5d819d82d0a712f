"""
Operational command-line entry points.

Each command runs a single ``asyncio.run()`` against one engine and reports
failure through its exit status:

- ``solar-collector [--force] [--verbose]``: one collection cycle plus the
  aggregation cascade. Skipped and disabled cycles exit 0.
- ``solar-backfill [--days N | --start DATE --end DATE] [--dry-run]
  [--force] [--verbose]``: historical import; exits 1 if any day failed.
- ``solar-init-db``: create missing tables.
- ``solar-validate``: cross-tier consistency report; exits 1 on issues.

CHANGELOG:
- 2026-10-14: Add solar-validate (STORY-014)
- 2026-10-13: Add solar-backfill (STORY-009)
- 2026-10-12: Initial creation (STORY-005)

TODO:
- None
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import hashlib
import json
import logging
import sys
import time
from datetime import date, timedelta

from pydantic import ValidationError

from solar_rollup.config import Settings, get_settings
from solar_rollup.db.session import create_engine, create_session_factory, init_schema
from solar_rollup.errors import SolarRollupError
from solar_rollup.logging_config import setup_logging
from solar_rollup.services.backfill import BackfillImporter, BackfillReport
from solar_rollup.services.ingestion import CollectStatus, collect
from solar_rollup.services.periods import local_date
from solar_rollup.services.ratelimit import FixedDelay
from solar_rollup.services.validation import validate_store
from solar_rollup.telemetry.client import SolplanetClient

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _masked_token(value: str | None) -> str:
    """Return a short non-reversible fingerprint of a secret for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


def log_config_summary(settings: Settings) -> None:
    """Log a config summary at startup, with the API key masked."""
    logger.info(
        "Starting with config: database_url=%s, base_url=%s, sn=%s, "
        "enabled=%s, capacity_w=%s, timezone=%s, min_interval_s=%s, "
        "retention_days=%s, api_key_masked=%s",
        settings.database_url.split("@")[-1],
        settings.solplanet_base_url,
        settings.solplanet_sn,
        settings.solplanet_enabled,
        settings.system_capacity_w,
        settings.timezone,
        settings.min_collection_interval_s,
        settings.retention_days,
        _masked_token(settings.solplanet_api_key),
    )


def _load_settings() -> Settings | None:
    try:
        return get_settings()
    except ValidationError:
        logger.error("Invalid configuration", exc_info=True)
        return None


def _has_credentials(settings: Settings) -> bool:
    if settings.solplanet_api_key and settings.solplanet_sn:
        return True
    logger.error("SOLPLANET_API_KEY and SOLPLANET_SN are required")
    return False


def build_client(settings: Settings) -> SolplanetClient:
    return SolplanetClient(
        base_url=settings.solplanet_base_url,
        api_key=settings.solplanet_api_key,
        serial_number=settings.solplanet_sn,
        timeout_s=settings.request_timeout_s,
    )


# ---------------------------------------------------------------------------
# solar-collector
# ---------------------------------------------------------------------------


async def _collect(settings: Settings, force: bool) -> int:
    engine = create_engine(settings.database_url)
    try:
        async with create_session_factory(engine)() as session:
            result = await collect(session, build_client(settings), settings, force=force)
    except SolarRollupError:
        logger.error("Collection failed", exc_info=True)
        return 1
    finally:
        await engine.dispose()

    if result.status is CollectStatus.COLLECTED and result.pipeline is not None:
        logger.info(
            "Cascade wrote hours=%d days=%d months=%d years=%d",
            result.pipeline.hours,
            result.pipeline.days,
            result.pipeline.months,
            result.pipeline.years,
        )
    return 0


def collector_main(argv: list[str] | None = None) -> int:
    """Run one collection cycle and return the exit status."""
    parser = argparse.ArgumentParser(
        prog="solar-collector",
        description="Poll the plant overview once and roll it up.",
    )
    parser.add_argument("--force", action="store_true", help="Ignore the minimum interval and the enabled switch")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose)
    settings = _load_settings()
    if settings is None:
        return 1
    log_config_summary(settings)

    if (settings.solplanet_enabled or args.force) and not _has_credentials(settings):
        return 1
    return asyncio.run(_collect(settings, args.force))


# ---------------------------------------------------------------------------
# solar-backfill
# ---------------------------------------------------------------------------


def _report_dict(report: BackfillReport) -> dict:
    data = dataclasses.asdict(report)
    data["start"] = report.start.isoformat()
    data["end"] = report.end.isoformat()
    return data


async def _backfill(
    settings: Settings, start: date, end: date, *, overwrite: bool, dry_run: bool
) -> BackfillReport:
    engine = create_engine(settings.database_url)
    try:
        async with create_session_factory(engine)() as session:
            importer = BackfillImporter(
                session,
                build_client(settings),
                settings,
                FixedDelay(settings.backfill_delay_s),
            )
            return await importer.run(start, end, overwrite=overwrite, dry_run=dry_run)
    finally:
        await engine.dispose()


def backfill_main(argv: list[str] | None = None) -> int:
    """Import historical days and return the exit status."""
    parser = argparse.ArgumentParser(
        prog="solar-backfill",
        description="Import historical interval data into the hour and day tiers.",
    )
    parser.add_argument("--days", type=int, default=7, help="Days before today to import (default: 7)")
    parser.add_argument("--start", type=date.fromisoformat, help="First day, YYYY-MM-DD")
    parser.add_argument("--end", type=date.fromisoformat, help="Last day (inclusive), YYYY-MM-DD")
    parser.add_argument("--dry-run", action="store_true", help="Fetch and compute without writing")
    parser.add_argument("--force", action="store_true", help="Overwrite days that already exist")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    args = parser.parse_args(argv)

    if (args.start is None) != (args.end is None):
        parser.error("--start and --end must be given together")
    if args.start is not None and args.start > args.end:
        parser.error("--start must not be after --end")
    if args.days < 1:
        parser.error("--days must be >= 1")

    setup_logging(verbose=args.verbose)
    settings = _load_settings()
    if settings is None:
        return 1
    log_config_summary(settings)
    if not _has_credentials(settings):
        return 1

    if args.start is not None:
        start, end = args.start, args.end
    else:
        today = local_date(int(time.time()), settings.tz)
        start, end = today - timedelta(days=args.days), today - timedelta(days=1)

    try:
        report = asyncio.run(
            _backfill(settings, start, end, overwrite=args.force, dry_run=args.dry_run)
        )
    except SolarRollupError:
        logger.error("Backfill aborted", exc_info=True)
        return 1

    print(json.dumps(_report_dict(report), indent=2))
    return 0 if report.ok else 1


# ---------------------------------------------------------------------------
# solar-init-db / solar-validate
# ---------------------------------------------------------------------------


async def _init_db(settings: Settings) -> None:
    engine = create_engine(settings.database_url)
    try:
        await init_schema(engine)
    finally:
        await engine.dispose()


def init_db_main(argv: list[str] | None = None) -> int:
    """Create any missing tables and return the exit status."""
    parser = argparse.ArgumentParser(prog="solar-init-db", description="Create the solar tables.")
    parser.parse_args(argv)

    setup_logging()
    settings = _load_settings()
    if settings is None:
        return 1
    asyncio.run(_init_db(settings))
    logger.info("Schema ready at %s", settings.database_url.split("@")[-1])
    return 0


async def _validate(settings: Settings):
    engine = create_engine(settings.database_url)
    try:
        async with create_session_factory(engine)() as session:
            return await validate_store(session, settings)
    finally:
        await engine.dispose()


def validate_main(argv: list[str] | None = None) -> int:
    """Print the consistency report; exit 1 when issues were found."""
    parser = argparse.ArgumentParser(
        prog="solar-validate", description="Check cross-tier consistency of the store."
    )
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose)
    settings = _load_settings()
    if settings is None:
        return 1
    report = asyncio.run(_validate(settings))
    print(json.dumps(dataclasses.asdict(report), indent=2))
    return 0 if report.ok else 1


# ---------------------------------------------------------------------------
# Console-script wrappers
# ---------------------------------------------------------------------------


def run_collector() -> None:
    sys.exit(collector_main())


def run_backfill() -> None:
    sys.exit(backfill_main())


def run_init_db() -> None:
    sys.exit(init_db_main())


def run_validate() -> None:
    sys.exit(validate_main())
