"""
Natural-key upsert and watermark helpers shared by every writer.

All bucket and sample writes go through :func:`upsert`, which issues a
dialect-specific ``INSERT ... ON CONFLICT (<natural key>) DO UPDATE``.
Re-running a deterministic computation therefore rewrites the same row
with the same values, and concurrent writers converge on the last commit.

Callers own the transaction: only :func:`commit` ends it.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-003)

TODO:
- None
"""

import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from solar_rollup.db.models import Base, Watermark
from solar_rollup.errors import StoreError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Watermark keys
# ---------------------------------------------------------------------------

LAST_COLLECTION = "last_collection_timestamp"
LAST_HOURLY = "last_hourly_aggregation"
LAST_DAILY = "last_daily_aggregation"
LAST_MONTHLY = "last_monthly_aggregation"
LAST_YEARLY = "last_yearly_aggregation"

_INSERT_BY_DIALECT = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


async def upsert(
    session: AsyncSession,
    model: type[Base],
    rows: dict[str, Any] | Sequence[dict[str, Any]],
    index_elements: list[str],
) -> None:
    """Insert rows, replacing non-key columns when the natural key exists.

    Args:
        session: Async SQLAlchemy session.
        model: ORM model class of the target table.
        rows: One row dict or a sequence of row dicts with identical keys.
        index_elements: Columns forming the natural key.

    Raises:
        StoreError: If the dialect has no upsert support or the statement fails.
    """
    if isinstance(rows, dict):
        rows = [rows]
    if not rows:
        return

    dialect = session.get_bind().dialect.name
    insert_fn = _INSERT_BY_DIALECT.get(dialect)
    if insert_fn is None:
        raise StoreError(f"Upsert is not supported for dialect '{dialect}'")

    stmt = insert_fn(model).values(list(rows))
    update_cols = {
        col: stmt.excluded[col] for col in rows[0] if col not in index_elements
    }
    stmt = stmt.on_conflict_do_update(index_elements=index_elements, set_=update_cols)

    try:
        await session.execute(stmt)
    except SQLAlchemyError as exc:
        raise StoreError(
            f"Upsert into {model.__tablename__} failed: {exc}"
        ) from exc


async def commit(session: AsyncSession) -> None:
    """Commit the session, wrapping driver failures in StoreError."""
    try:
        await session.commit()
    except SQLAlchemyError as exc:
        raise StoreError(f"Commit failed: {exc}") from exc


async def get_watermark(session: AsyncSession, key: str) -> int | None:
    """Return the stored boundary for *key*, or None if never written."""
    result = await session.execute(select(Watermark.value).where(Watermark.key == key))
    return result.scalar_one_or_none()


async def set_watermark(session: AsyncSession, key: str, value: int, now: int) -> None:
    """Upsert the boundary for *key*.

    Args:
        session: Async SQLAlchemy session.
        key: Watermark name (one of the module-level constants).
        value: Epoch-second boundary to store.
        now: Epoch second recorded as ``updated_at``.
    """
    await upsert(
        session,
        Watermark,
        {"key": key, "value": value, "updated_at": now},
        ["key"],
    )
    logger.debug("Watermark %s advanced to %d", key, value)
