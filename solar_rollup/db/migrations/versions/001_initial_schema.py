"""
Initial schema: raw samples, four aggregate tiers, and watermarks.

Every table uses its natural key as primary key so writers can upsert.
Day and month tables carry an extra index on ``timestamp`` for the
range scans done by the next tier up.

Revision ID: 001
Revises: None
Create Date: 2026-10-12

CHANGELOG:
- 2026-10-12: Initial creation (STORY-003)

TODO:
- None
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# Revision identifiers used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create solar_realtime, the four bucket tables and collection_metadata."""
    op.create_table(
        "solar_realtime",
        sa.Column("timestamp", sa.Integer(), nullable=False),
        sa.Column("power_current_w", sa.Double(), nullable=False),
        sa.Column("energy_today_wh", sa.Integer(), nullable=False),
        sa.Column("energy_month_wh", sa.Integer(), nullable=False),
        sa.Column("energy_total_wh", sa.Integer(), nullable=False),
        sa.Column("inverter_status", sa.Integer(), nullable=False),
        sa.Column("collected_at", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("timestamp"),
    )

    op.create_table(
        "solar_hourly",
        sa.Column("timestamp", sa.Integer(), nullable=False),
        sa.Column("energy_delta_wh", sa.Integer(), nullable=False),
        sa.Column("power_avg_w", sa.Double(), nullable=False),
        sa.Column("power_max_w", sa.Double(), nullable=False),
        sa.Column("power_min_w", sa.Double(), nullable=False),
        sa.Column("sample_count", sa.Integer(), nullable=False),
        sa.Column("aggregated_at", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("timestamp"),
    )

    op.create_table(
        "solar_daily",
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("timestamp", sa.Integer(), nullable=False),
        sa.Column("energy_total_wh", sa.Integer(), nullable=False),
        sa.Column("power_peak_w", sa.Double(), nullable=False),
        sa.Column("power_peak_time", sa.Integer(), nullable=True),
        sa.Column("sunlight_hours", sa.Double(), nullable=False),
        sa.Column("capacity_factor", sa.Double(), nullable=False),
        sa.Column("aggregated_at", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("date"),
    )
    op.create_index("ix_solar_daily_timestamp", "solar_daily", ["timestamp"])

    op.create_table(
        "solar_monthly",
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("timestamp", sa.Integer(), nullable=False),
        sa.Column("energy_total_wh", sa.Integer(), nullable=False),
        sa.Column("power_peak_w", sa.Double(), nullable=False),
        sa.Column("days_with_data", sa.Integer(), nullable=False),
        sa.Column("avg_daily_wh", sa.Double(), nullable=False),
        sa.Column("capacity_factor", sa.Double(), nullable=False),
        sa.Column("aggregated_at", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("year", "month"),
    )
    op.create_index("ix_solar_monthly_timestamp", "solar_monthly", ["timestamp"])

    op.create_table(
        "solar_yearly",
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("timestamp", sa.Integer(), nullable=False),
        sa.Column("energy_total_wh", sa.Integer(), nullable=False),
        sa.Column("power_peak_w", sa.Double(), nullable=False),
        sa.Column("months_with_data", sa.Integer(), nullable=False),
        sa.Column("avg_monthly_wh", sa.Double(), nullable=False),
        sa.Column("capacity_factor", sa.Double(), nullable=False),
        sa.Column("aggregated_at", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("year"),
    )

    op.create_table(
        "collection_metadata",
        sa.Column("key", sa.Text(), nullable=False),
        sa.Column("value", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )


def downgrade() -> None:
    """Drop all solar tables."""
    op.drop_table("collection_metadata")
    op.drop_table("solar_yearly")
    op.drop_index("ix_solar_monthly_timestamp", table_name="solar_monthly")
    op.drop_table("solar_monthly")
    op.drop_index("ix_solar_daily_timestamp", table_name="solar_daily")
    op.drop_table("solar_daily")
    op.drop_table("solar_hourly")
    op.drop_table("solar_realtime")
