"""log returns and volatility tables

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19

This migration creates:

- asset_log_returns
- asset_volatility
- portfolio_volatility
- portfolio_volatility_constituents
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0002"
down_revision: Union[str, None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create return and volatility tables."""

    op.create_table(
        "asset_log_returns",
        sa.Column("log_return_id", sa.String(length=64), primary_key=True),
        sa.Column(
            "asset_id",
            sa.Integer,
            sa.ForeignKey("assets.asset_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("log_return", sa.Float, nullable=False),
        sa.Column("price_current", sa.Numeric(30, 18), nullable=False),
        sa.Column("price_previous", sa.Numeric(30, 18), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.UniqueConstraint("asset_id", "date", name="uq_asset_log_returns_asset_date"),
    )
    op.create_index("idx_asset_log_returns_date", "asset_log_returns", ["date"])

    op.create_table(
        "asset_volatility",
        sa.Column("asset_volatility_id", sa.String(length=64), primary_key=True),
        sa.Column(
            "asset_id",
            sa.Integer,
            sa.ForeignKey("assets.asset_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("window_days", sa.Integer, nullable=False, server_default=sa.text("90")),
        sa.Column("daily_volatility", sa.Float, nullable=False),
        sa.Column("annualized_volatility", sa.Float, nullable=False),
        sa.Column("observation_count", sa.Integer, nullable=False),
        sa.Column("mean_return", sa.Float, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.UniqueConstraint("asset_id", "date", "window_days", name="uq_asset_volatility_asset_date_window"),
    )
    op.create_index("idx_asset_volatility_date", "asset_volatility", ["date"])

    op.create_table(
        "portfolio_volatility",
        sa.Column("portfolio_volatility_id", sa.String(length=64), primary_key=True),
        sa.Column(
            "index_config_id",
            sa.String(length=64),
            sa.ForeignKey("index_config.index_config_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("window_days", sa.Integer, nullable=False, server_default=sa.text("90")),
        sa.Column("daily_volatility", sa.Float, nullable=False),
        sa.Column("annualized_volatility", sa.Float, nullable=False),
        sa.Column("constituent_count", sa.Integer, nullable=False),
        sa.Column("total_market_cap", sa.Numeric(40, 8), nullable=False),
        sa.Column("weighted_avg_volatility", sa.Float, nullable=False),
        sa.Column("diversification_benefit", sa.Float, nullable=False),
        sa.Column("diversification_benefit_pct", sa.Float, nullable=False),
        sa.Column("calculation_duration_ms", sa.Integer, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.UniqueConstraint(
            "index_config_id",
            "date",
            "window_days",
            name="uq_portfolio_volatility_config_date_window",
        ),
    )
    op.create_index("idx_portfolio_volatility_date", "portfolio_volatility", ["date"])

    op.create_table(
        "portfolio_volatility_constituents",
        sa.Column("portfolio_constituent_id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "portfolio_volatility_id",
            sa.String(length=64),
            sa.ForeignKey("portfolio_volatility.portfolio_volatility_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("asset_id", sa.Integer, sa.ForeignKey("assets.asset_id"), nullable=False),
        sa.Column("weight", sa.Float, nullable=False),
        sa.Column("daily_volatility", sa.Float, nullable=False),
        sa.Column("annualized_volatility", sa.Float, nullable=False),
        sa.Column("market_cap", sa.Numeric(40, 8), nullable=False),
        sa.Column("risk_contribution", sa.Float, nullable=False),
        sa.Column("risk_contribution_pct", sa.Float, nullable=False),
        sa.Column("component_risk_pct", sa.Float, nullable=False),
        sa.UniqueConstraint(
            "portfolio_volatility_id",
            "asset_id",
            name="uq_portfolio_volatility_constituents_parent_asset",
        ),
    )


def downgrade() -> None:
    """Drop return and volatility tables."""

    op.drop_table("portfolio_volatility_constituents")

    op.drop_index("idx_portfolio_volatility_date", table_name="portfolio_volatility")
    op.drop_table("portfolio_volatility")

    op.drop_index("idx_asset_volatility_date", table_name="asset_volatility")
    op.drop_table("asset_volatility")

    op.drop_index("idx_asset_log_returns_date", table_name="asset_log_returns")
    op.drop_table("asset_log_returns")
