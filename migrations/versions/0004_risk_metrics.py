"""per-asset risk metrics

Revision ID: 0004
Revises: 0003
Create Date: 2026-10-19

Adds ``asset_value_at_risk`` (historical VaR/CVaR), ``asset_beta_stats``
(regression on the index returns) and ``asset_sml_stats`` (security
market line position).
"""

from __future__ import annotations

from typing import List, Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0004"
down_revision: Union[str, None] = "0003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _asset_metric_table(table: str, id_column: str, metrics: List[sa.Column]) -> None:
    op.create_table(
        table,
        sa.Column(id_column, sa.String(length=64), primary_key=True),
        sa.Column(
            "asset_id",
            sa.Integer,
            sa.ForeignKey("assets.asset_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("window_days", sa.Integer, nullable=False),
        *metrics,
        sa.Column("observation_count", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.UniqueConstraint("asset_id", "date", "window_days", name=f"uq_{table}_asset_date_window"),
    )
    op.create_index(f"idx_{table}_date", table, ["date"])


def upgrade() -> None:
    _asset_metric_table(
        "asset_value_at_risk",
        "value_at_risk_id",
        [
            sa.Column("var_95", sa.Float, nullable=False),
            sa.Column("var_99", sa.Float, nullable=False),
            sa.Column("cvar_95", sa.Float, nullable=False),
            sa.Column("cvar_99", sa.Float, nullable=False),
            sa.Column("mean_return", sa.Float, nullable=False),
            sa.Column("std_dev", sa.Float, nullable=False),
            sa.Column("min_return", sa.Float, nullable=False),
            sa.Column("max_return", sa.Float, nullable=False),
        ],
    )

    _asset_metric_table(
        "asset_beta_stats",
        "beta_stats_id",
        [
            sa.Column("beta", sa.Float, nullable=False),
            sa.Column("alpha", sa.Float, nullable=False),
            sa.Column("r_squared", sa.Float, nullable=False),
            sa.Column("correlation", sa.Float, nullable=False),
        ],
    )

    _asset_metric_table(
        "asset_sml_stats",
        "sml_stats_id",
        [
            sa.Column("beta", sa.Float, nullable=False),
            sa.Column("expected_return", sa.Float, nullable=False),
            sa.Column("actual_return", sa.Float, nullable=False),
            sa.Column("alpha", sa.Float, nullable=False),
            sa.Column("is_overvalued", sa.Boolean, nullable=False),
            sa.Column("market_return", sa.Float, nullable=False),
        ],
    )


def downgrade() -> None:
    for table in ("asset_sml_stats", "asset_beta_stats", "asset_value_at_risk"):
        op.drop_index(f"idx_{table}_date", table_name=table)
        op.drop_table(table)
