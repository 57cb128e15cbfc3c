"""RisqLab – Index storage helpers.

Persistence for the Index Engine:

- ``index_config``: one row per index name; holds base level, divisor and
  base date.
- ``index_history``: one row per (config, timestamp) with the computed
  level.
- ``index_constituents``: constituent breakdown of each history row.

A history row and its constituents are always written in a single
transaction so readers never observe a level without its breakdown.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from psycopg2.extras import execute_values

from risqlab.core.database import DatabaseManager
from risqlab.core.ids import generate_uuid
from risqlab.core.logging import get_logger
from risqlab.index.types import (
    PLACEHOLDER_DIVISOR,
    IndexConfiguration,
    IndexConstituentRecord,
    IndexResult,
)


logger = get_logger(__name__)


class IndexNotInitialisedError(RuntimeError):
    """Raised when an index level is requested before the divisor is set."""


def _row_to_configuration(row: tuple) -> IndexConfiguration:
    (
        config_id,
        index_name,
        base_level,
        divisor,
        base_date,
        max_constituents,
        is_active,
    ) = row
    return IndexConfiguration(
        config_id=str(config_id),
        index_name=str(index_name),
        base_level=Decimal(str(base_level)),
        divisor=Decimal(str(divisor)),
        base_date=base_date,
        max_constituents=int(max_constituents),
        is_active=bool(is_active),
    )


@dataclass
class IndexStorage:
    """Persistence helper for index configuration and history.

    Attributes:
        db_manager: DatabaseManager instance for connection management.
    """

    db_manager: DatabaseManager

    # ========================================================================
    # Configuration
    # ========================================================================

    def get_active_configuration(self, index_name: str) -> Optional[IndexConfiguration]:
        """Return the active configuration for ``index_name``, if any."""

        sql = """
            SELECT index_config_id,
                   index_name,
                   base_level,
                   divisor,
                   base_date,
                   max_constituents,
                   is_active
            FROM index_config
            WHERE index_name = %s
              AND is_active = TRUE
        """

        with self.db_manager.get_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(sql, (index_name,))
                row = cursor.fetchone()
            finally:
                cursor.close()

        if row is None:
            return None
        return _row_to_configuration(row)

    def create_configuration(
        self,
        index_name: str,
        base_level: Decimal,
        divisor: Decimal,
        base_date: Optional[datetime],
        max_constituents: int,
    ) -> IndexConfiguration:
        """Create (or reactivate) the configuration row for ``index_name``.

        An inactive row with the same name is reused and overwritten.
        """

        sql = """
            INSERT INTO index_config (
                index_config_id,
                index_name,
                base_level,
                divisor,
                base_date,
                max_constituents,
                is_active,
                created_at,
                updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s, TRUE, NOW(), NOW())
            ON CONFLICT (index_name) DO UPDATE SET
                base_level = EXCLUDED.base_level,
                divisor = EXCLUDED.divisor,
                base_date = EXCLUDED.base_date,
                max_constituents = EXCLUDED.max_constituents,
                is_active = TRUE,
                updated_at = NOW()
            RETURNING index_config_id
        """

        with self.db_manager.get_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(
                    sql,
                    (
                        generate_uuid(),
                        index_name,
                        base_level,
                        divisor,
                        base_date,
                        max_constituents,
                    ),
                )
                (config_id,) = cursor.fetchone()
                conn.commit()
            finally:
                cursor.close()

        return IndexConfiguration(
            config_id=str(config_id),
            index_name=index_name,
            base_level=base_level,
            divisor=divisor,
            base_date=base_date,
            max_constituents=max_constituents,
            is_active=True,
        )

    def set_divisor(self, config_id: str, divisor: Decimal, base_date: Optional[datetime]) -> None:
        """Persist a new divisor and base date for ``config_id``."""

        sql = """
            UPDATE index_config
            SET divisor = %s,
                base_date = %s,
                updated_at = NOW()
            WHERE index_config_id = %s
        """

        with self.db_manager.get_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(sql, (divisor, base_date, config_id))
                conn.commit()
            finally:
                cursor.close()

    def reset_divisor(self, config_id: str) -> None:
        """Put ``config_id`` back to the uninitialised placeholder divisor."""

        self.set_divisor(config_id, PLACEHOLDER_DIVISOR, None)

    # ========================================================================
    # History
    # ========================================================================

    def get_missing_timestamps(self, config_id: str) -> list[datetime]:
        """Return snapshot timestamps without an index result, oldest first."""

        sql = """
            SELECT DISTINCT md.timestamp
            FROM market_data AS md
            WHERE NOT EXISTS (
                SELECT 1
                FROM index_history AS ih
                WHERE ih.index_config_id = %s
                  AND ih.timestamp = md.timestamp
            )
            ORDER BY md.timestamp ASC
        """

        with self.db_manager.get_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(sql, (config_id,))
                rows = cursor.fetchall()
            finally:
                cursor.close()

        return [ts for (ts,) in rows]

    def save_result(self, result: IndexResult) -> str:
        """Upsert ``result`` and replace its constituents atomically.

        Returns:
            The ``index_history_id`` of the stored row. Recomputing an
            existing (config, timestamp) keeps its id.
        """

        upsert_sql = """
            INSERT INTO index_history (
                index_history_id,
                index_config_id,
                timestamp,
                total_market_cap,
                index_level,
                divisor,
                constituent_count,
                calculation_duration_ms,
                created_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, NOW())
            ON CONFLICT (index_config_id, timestamp) DO UPDATE SET
                total_market_cap = EXCLUDED.total_market_cap,
                index_level = EXCLUDED.index_level,
                divisor = EXCLUDED.divisor,
                constituent_count = EXCLUDED.constituent_count,
                calculation_duration_ms = EXCLUDED.calculation_duration_ms,
                created_at = NOW()
            RETURNING index_history_id
        """

        delete_sql = "DELETE FROM index_constituents WHERE index_history_id = %s"

        insert_sql = """
            INSERT INTO index_constituents (
                index_history_id,
                asset_id,
                market_data_id,
                rank_position,
                price_usd,
                circulating_supply,
                weight_in_index
            ) VALUES %s
        """

        with self.db_manager.get_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(
                    upsert_sql,
                    (
                        generate_uuid(),
                        result.index_config_id,
                        result.timestamp,
                        result.total_market_cap,
                        result.index_level,
                        result.divisor_used,
                        result.constituent_count,
                        result.duration_ms,
                    ),
                )
                (history_id,) = cursor.fetchone()
                cursor.execute(delete_sql, (history_id,))
                if result.constituents:
                    execute_values(
                        cursor,
                        insert_sql,
                        [
                            (
                                history_id,
                                c.asset_id,
                                c.market_data_id,
                                c.rank_position,
                                c.price,
                                c.circulating_supply,
                                c.weight_percent,
                            )
                            for c in result.constituents
                        ],
                    )
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()

        return str(history_id)

    def delete_results(self, config_id: str, timestamps: Sequence[datetime]) -> int:
        """Delete history rows (and their constituents) for ``timestamps``."""

        if not timestamps:
            return 0

        sql = """
            DELETE FROM index_history
            WHERE index_config_id = %s
              AND timestamp = ANY(%s)
        """

        with self.db_manager.get_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(sql, (config_id, list(timestamps)))
                deleted = cursor.rowcount
                conn.commit()
            finally:
                cursor.close()

        return int(deleted)

    def get_latest_constituents_by_date(
        self,
        config_id: str,
    ) -> dict:
        """Return constituents of the last result of every calendar day.

        Returns:
            Mapping of UTC date to the tuple of constituent records of that
            day's latest index result, ordered by rank.
        """

        sql = """
            WITH daily AS (
                SELECT DISTINCT ON ((ih.timestamp AT TIME ZONE 'UTC')::date)
                       (ih.timestamp AT TIME ZONE 'UTC')::date AS result_date,
                       ih.index_history_id
                FROM index_history AS ih
                WHERE ih.index_config_id = %s
                ORDER BY (ih.timestamp AT TIME ZONE 'UTC')::date ASC,
                         ih.timestamp DESC
            )
            SELECT d.result_date,
                   d.index_history_id,
                   ic.asset_id,
                   a.symbol,
                   ic.market_data_id,
                   ic.rank_position,
                   ic.price_usd,
                   ic.circulating_supply,
                   ic.weight_in_index
            FROM daily AS d
            JOIN index_constituents AS ic ON ic.index_history_id = d.index_history_id
            JOIN assets AS a ON a.asset_id = ic.asset_id
            ORDER BY d.result_date ASC, ic.rank_position ASC
        """

        with self.db_manager.get_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(sql, (config_id,))
                rows = cursor.fetchall()
            finally:
                cursor.close()

        by_date: dict = {}
        for (
            result_date,
            history_id,
            asset_id,
            symbol,
            market_data_id,
            rank_position,
            price,
            supply,
            weight,
        ) in rows:
            by_date.setdefault(result_date, []).append(
                IndexConstituentRecord(
                    asset_id=int(asset_id),
                    rank_position=int(rank_position),
                    price=Decimal(str(price)),
                    circulating_supply=Decimal(str(supply)),
                    weight_percent=Decimal(str(weight)),
                    symbol=str(symbol),
                    market_data_id=int(market_data_id) if market_data_id is not None else None,
                    index_result_id=str(history_id),
                )
            )

        return {d: tuple(records) for d, records in by_date.items()}


__all__ = ["IndexNotInitialisedError", "IndexStorage"]
