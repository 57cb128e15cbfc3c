"""market data and index tables

Revision ID: 0001
Revises:
Create Date: 2026-10-19

This migration creates the read-side tables populated by ingestion and
the index tables:

- assets
- asset_metadata
- market_data
- index_config
- index_history
- index_constituents
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create market data and index tables."""

    # assets
    op.create_table(
        "assets",
        sa.Column("asset_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("symbol", sa.String(length=20), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.UniqueConstraint("symbol", name="uq_assets_symbol"),
    )

    # asset_metadata: a missing row means the flags are unknown.
    op.create_table(
        "asset_metadata",
        sa.Column(
            "asset_id",
            sa.Integer,
            sa.ForeignKey("assets.asset_id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("is_stablecoin", sa.Boolean, nullable=True),
        sa.Column("is_wrapped", sa.Boolean, nullable=True),
        sa.Column("is_liquid_staking", sa.Boolean, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
    )

    # market_data
    op.create_table(
        "market_data",
        sa.Column("market_data_id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "asset_id",
            sa.Integer,
            sa.ForeignKey("assets.asset_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("price_usd", sa.Numeric(30, 18), nullable=False),
        sa.Column("circulating_supply", sa.Numeric(30, 8), nullable=False),
        sa.UniqueConstraint("asset_id", "timestamp", name="uq_market_data_asset_timestamp"),
    )
    op.create_index("idx_market_data_timestamp", "market_data", ["timestamp"])

    # index_config
    op.create_table(
        "index_config",
        sa.Column("index_config_id", sa.String(length=64), primary_key=True),
        sa.Column("index_name", sa.String(length=100), nullable=False),
        sa.Column("base_level", sa.Numeric(20, 8), nullable=False, server_default=sa.text("100")),
        sa.Column("divisor", sa.Numeric(30, 8), nullable=False, server_default=sa.text("1")),
        sa.Column("base_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_constituents", sa.Integer, nullable=False, server_default=sa.text("80")),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("TRUE")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.UniqueConstraint("index_name", name="uq_index_config_name"),
        sa.CheckConstraint("divisor > 0", name="ck_index_config_divisor_positive"),
    )

    # index_history
    op.create_table(
        "index_history",
        sa.Column("index_history_id", sa.String(length=64), primary_key=True),
        sa.Column(
            "index_config_id",
            sa.String(length=64),
            sa.ForeignKey("index_config.index_config_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_market_cap", sa.Numeric(40, 8), nullable=False),
        sa.Column("index_level", sa.Numeric(30, 12), nullable=False),
        sa.Column("divisor", sa.Numeric(30, 8), nullable=False),
        sa.Column("constituent_count", sa.Integer, nullable=False),
        sa.Column("calculation_duration_ms", sa.Integer, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.UniqueConstraint("index_config_id", "timestamp", name="uq_index_history_config_timestamp"),
    )
    op.create_index("idx_index_history_timestamp", "index_history", ["timestamp"])

    # index_constituents
    op.create_table(
        "index_constituents",
        sa.Column("index_constituent_id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "index_history_id",
            sa.String(length=64),
            sa.ForeignKey("index_history.index_history_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("asset_id", sa.Integer, sa.ForeignKey("assets.asset_id"), nullable=False),
        sa.Column("market_data_id", sa.BigInteger, sa.ForeignKey("market_data.market_data_id"), nullable=True),
        sa.Column("rank_position", sa.Integer, nullable=False),
        sa.Column("price_usd", sa.Numeric(30, 18), nullable=False),
        sa.Column("circulating_supply", sa.Numeric(30, 8), nullable=False),
        sa.Column("weight_in_index", sa.Numeric(20, 12), nullable=False),
        sa.UniqueConstraint("index_history_id", "asset_id", name="uq_index_constituents_history_asset"),
    )
    op.create_index("idx_index_constituents_asset", "index_constituents", ["asset_id"])


def downgrade() -> None:
    """Drop market data and index tables."""

    op.drop_index("idx_index_constituents_asset", table_name="index_constituents")
    op.drop_table("index_constituents")

    op.drop_index("idx_index_history_timestamp", table_name="index_history")
    op.drop_table("index_history")
    op.drop_table("index_config")

    op.drop_index("idx_market_data_timestamp", table_name="market_data")
    op.drop_table("market_data")
    op.drop_table("asset_metadata")
    op.drop_table("assets")
