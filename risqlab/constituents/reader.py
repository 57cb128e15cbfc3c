"""RisqLab – Market snapshot reader.

Read-only access to the tables owned by ingestion:

- ``market_data``: one row per (asset, timestamp) with price and supply.
- ``assets``: symbols.
- ``asset_metadata``: exclusion flags. A missing row means the flags are
  unknown and the selector falls back to the static symbol list.

Each call reads a consistent point-in-time view for one timestamp or one
asset; there is no cross-call transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from risqlab.constituents.types import MarketSnapshot
from risqlab.core.database import DatabaseManager
from risqlab.core.logging import get_logger


logger = get_logger(__name__)


_SNAPSHOT_COLUMNS = """
    md.market_data_id,
    md.asset_id,
    a.symbol,
    md.timestamp,
    md.price_usd,
    md.circulating_supply,
    am.is_stablecoin,
    am.is_wrapped,
    am.is_liquid_staking
"""


def _optional_bool(value: object) -> Optional[bool]:
    if value is None:
        return None
    return bool(value)


def _row_to_snapshot(row: tuple) -> MarketSnapshot:
    (
        market_data_id,
        asset_id,
        symbol,
        ts,
        price,
        supply,
        is_stablecoin,
        is_wrapped,
        is_liquid_staking,
    ) = row
    return MarketSnapshot(
        asset_id=int(asset_id),
        symbol=str(symbol),
        timestamp=ts,
        price=Decimal(str(price)),
        circulating_supply=Decimal(str(supply)),
        is_stablecoin=_optional_bool(is_stablecoin),
        is_wrapped=_optional_bool(is_wrapped),
        is_liquid_staking=_optional_bool(is_liquid_staking),
        market_data_id=int(market_data_id) if market_data_id is not None else None,
    )


@dataclass
class SnapshotReader:
    """Read market snapshots and daily closing prices."""

    db_manager: DatabaseManager

    def _fetch_snapshots(self, sql: str, params: tuple) -> list[MarketSnapshot]:
        with self.db_manager.get_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(sql, params)
                rows = cursor.fetchall()
            finally:
                cursor.close()

        return [_row_to_snapshot(row) for row in rows]

    def get_snapshots(self, timestamp: datetime) -> list[MarketSnapshot]:
        """Return every asset's snapshot recorded at ``timestamp``."""

        sql = f"""
            SELECT {_SNAPSHOT_COLUMNS}
            FROM market_data AS md
            JOIN assets AS a ON a.asset_id = md.asset_id
            LEFT JOIN asset_metadata AS am ON am.asset_id = md.asset_id
            WHERE md.timestamp = %s
            ORDER BY md.asset_id
        """
        return self._fetch_snapshots(sql, (timestamp,))

    def get_most_recent_snapshots(self) -> list[MarketSnapshot]:
        """Return the snapshot set of the latest timestamp in ``market_data``."""

        sql = f"""
            SELECT {_SNAPSHOT_COLUMNS}
            FROM market_data AS md
            JOIN assets AS a ON a.asset_id = md.asset_id
            LEFT JOIN asset_metadata AS am ON am.asset_id = md.asset_id
            WHERE md.timestamp = (SELECT MAX(timestamp) FROM market_data)
            ORDER BY md.asset_id
        """
        return self._fetch_snapshots(sql, ())

    def get_assets_with_prices(self) -> list[tuple[int, str]]:
        """Return (asset_id, symbol) for assets with at least two price days."""

        sql = """
            SELECT a.asset_id, a.symbol
            FROM assets AS a
            JOIN market_data AS md ON md.asset_id = a.asset_id
            WHERE md.price_usd > 0
            GROUP BY a.asset_id, a.symbol
            HAVING COUNT(DISTINCT (md.timestamp AT TIME ZONE 'UTC')::date) >= 2
            ORDER BY a.symbol
        """
        with self.db_manager.get_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(sql)
                rows = cursor.fetchall()
            finally:
                cursor.close()

        return [(int(asset_id), str(symbol)) for asset_id, symbol in rows]

    def get_daily_closing_prices(self, asset_id: int) -> list[tuple[date, Decimal]]:
        """Return one price per calendar day for ``asset_id``, oldest first.

        When several snapshots exist on the same (UTC) day, the latest one
        is that day's closing price.
        """

        sql = """
            SELECT DISTINCT ON ((md.timestamp AT TIME ZONE 'UTC')::date)
                   (md.timestamp AT TIME ZONE 'UTC')::date AS price_date,
                   md.price_usd
            FROM market_data AS md
            WHERE md.asset_id = %s
            ORDER BY (md.timestamp AT TIME ZONE 'UTC')::date ASC,
                     md.timestamp DESC
        """
        with self.db_manager.get_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(sql, (asset_id,))
                rows = cursor.fetchall()
            finally:
                cursor.close()

        return [(price_date, Decimal(str(price))) for price_date, price in rows]


__all__ = ["SnapshotReader"]
