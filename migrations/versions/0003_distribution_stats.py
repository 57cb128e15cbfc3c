"""distribution statistics

Revision ID: 0003
Revises: 0002
Create Date: 2026-10-19

Adds ``asset_distribution_stats`` (rolling skewness and excess kurtosis
of log returns).
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0003"
down_revision: Union[str, None] = "0002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "asset_distribution_stats",
        sa.Column("distribution_stats_id", sa.String(length=64), primary_key=True),
        sa.Column(
            "asset_id",
            sa.Integer,
            sa.ForeignKey("assets.asset_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("window_days", sa.Integer, nullable=False, server_default=sa.text("90")),
        sa.Column("skewness", sa.Float, nullable=False),
        sa.Column("kurtosis", sa.Float, nullable=False),
        sa.Column("mean_return", sa.Float, nullable=False),
        sa.Column("std_dev", sa.Float, nullable=False),
        sa.Column("observation_count", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.UniqueConstraint(
            "asset_id",
            "date",
            "window_days",
            name="uq_asset_distribution_stats_asset_date_window",
        ),
    )


def downgrade() -> None:
    op.drop_table("asset_distribution_stats")
