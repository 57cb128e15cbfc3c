"""RisqLab – Volatility storage helpers.

Persistence for derived return and risk data:

- ``asset_log_returns``: one row per (asset, date).
- ``asset_volatility``: one row per (asset, date, window_days).
- ``portfolio_volatility``: one row per (index config, date, window_days)
  with its children in ``portfolio_volatility_constituents``.
- ``asset_distribution_stats``: one row per (asset, date, window_days).
- ``asset_value_at_risk``, ``asset_beta_stats`` and ``asset_sml_stats``:
  one row per (asset, date, window_days).

Every write is an upsert, so recomputation replaces prior values without
creating duplicates. A portfolio row and its constituents are written in
a single transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Set, Tuple

import pandas as pd
from psycopg2.extras import execute_values

from risqlab.core.database import DatabaseManager
from risqlab.core.ids import generate_uuid
from risqlab.core.logging import get_logger
from risqlab.volatility.types import (
    AssetVolatility,
    BetaStats,
    DistributionStats,
    LogReturn,
    PortfolioVolatility,
    SecurityMarketLine,
    ValueAtRisk,
)


logger = get_logger(__name__)


# Deletion order respects foreign keys.
VOLATILITY_TABLES: Tuple[str, ...] = (
    "portfolio_volatility_constituents",
    "portfolio_volatility",
    "asset_sml_stats",
    "asset_beta_stats",
    "asset_value_at_risk",
    "asset_distribution_stats",
    "asset_volatility",
    "asset_log_returns",
)


@dataclass
class VolatilityStorage:
    """Persistence helper for log returns and the per-asset and portfolio risk figures.

    Attributes:
        db_manager: DatabaseManager instance for connection management.
    """

    db_manager: DatabaseManager

    def _fetchall(self, sql: str, params: tuple = ()) -> list:
        with self.db_manager.get_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(sql, params)
                rows = cursor.fetchall()
            finally:
                cursor.close()
        return rows

    def _write_batch(self, sql: str, rows: List[tuple]) -> int:
        if not rows:
            return 0

        with self.db_manager.get_connection() as conn:
            cursor = conn.cursor()
            try:
                execute_values(cursor, sql, rows)
                conn.commit()
            finally:
                cursor.close()
        return len(rows)

    # ========================================================================
    # Log returns
    # ========================================================================

    def save_log_returns(self, returns: Sequence[LogReturn]) -> int:
        """Upsert log returns; returns the number of rows written."""

        sql = """
            INSERT INTO asset_log_returns (
                log_return_id,
                asset_id,
                date,
                log_return,
                price_current,
                price_previous
            ) VALUES %s
            ON CONFLICT (asset_id, date) DO UPDATE SET
                log_return = EXCLUDED.log_return,
                price_current = EXCLUDED.price_current,
                price_previous = EXCLUDED.price_previous
        """
        rows = [
            (
                generate_uuid(),
                r.asset_id,
                r.date,
                r.log_return,
                r.price_current,
                r.price_previous,
            )
            for r in returns
        ]
        return self._write_batch(sql, rows)

    def get_last_log_return_date(self, asset_id: int) -> Optional[date]:
        rows = self._fetchall(
            "SELECT MAX(date) FROM asset_log_returns WHERE asset_id = %s",
            (asset_id,),
        )
        if not rows:
            return None
        return rows[0][0]

    def get_assets_with_log_returns(self) -> List[Tuple[int, str]]:
        """Return (asset_id, symbol) for every asset with stored returns."""

        sql = """
            SELECT DISTINCT a.asset_id, a.symbol
            FROM asset_log_returns AS lr
            JOIN assets AS a ON a.asset_id = lr.asset_id
            ORDER BY a.symbol
        """
        return [(int(asset_id), str(symbol)) for asset_id, symbol in self._fetchall(sql)]

    def get_log_returns(self, asset_id: int, window_end_date: date, window_days: int) -> List[LogReturn]:
        """Return the stored returns in the ``window_days`` days ending on ``window_end_date``."""

        sql = """
            SELECT asset_id, date, log_return, price_current, price_previous
            FROM asset_log_returns
            WHERE asset_id = %s
              AND date > %s
              AND date <= %s
            ORDER BY date ASC
        """
        window_start = window_end_date - timedelta(days=window_days)
        rows = self._fetchall(sql, (asset_id, window_start, window_end_date))
        return [
            LogReturn(
                asset_id=int(row_asset_id),
                date=row_date,
                log_return=float(value),
                price_current=Decimal(str(current)),
                price_previous=Decimal(str(previous)),
            )
            for row_asset_id, row_date, value, current, previous in rows
        ]

    def get_log_return_series(self, asset_id: int) -> pd.Series:
        """Return every stored return of ``asset_id`` as a date-indexed Series."""

        rows = self._fetchall(
            "SELECT date, log_return FROM asset_log_returns WHERE asset_id = %s ORDER BY date ASC",
            (asset_id,),
        )
        if not rows:
            return pd.Series(dtype=float, name="log_return")
        dates, values = zip(*rows)
        return pd.Series([float(v) for v in values], index=list(dates), dtype=float, name="log_return")

    # ========================================================================
    # Asset volatility
    # ========================================================================

    def save_asset_volatility(self, records: Sequence[AssetVolatility]) -> int:
        sql = """
            INSERT INTO asset_volatility (
                asset_volatility_id,
                asset_id,
                date,
                window_days,
                daily_volatility,
                annualized_volatility,
                observation_count,
                mean_return
            ) VALUES %s
            ON CONFLICT (asset_id, date, window_days) DO UPDATE SET
                daily_volatility = EXCLUDED.daily_volatility,
                annualized_volatility = EXCLUDED.annualized_volatility,
                observation_count = EXCLUDED.observation_count,
                mean_return = EXCLUDED.mean_return
        """
        rows = [
            (
                generate_uuid(),
                r.asset_id,
                r.date,
                r.window_days,
                r.daily_volatility,
                r.annualized_volatility,
                r.observation_count,
                r.mean_return,
            )
            for r in records
        ]
        return self._write_batch(sql, rows)

    def get_asset_volatility_dates(self, asset_id: int, window_days: int) -> Set[date]:
        rows = self._fetchall(
            "SELECT date FROM asset_volatility WHERE asset_id = %s AND window_days = %s",
            (asset_id, window_days),
        )
        return {d for (d,) in rows}

    # ========================================================================
    # Portfolio volatility
    # ========================================================================

    def get_dates_missing_portfolio_volatility(self, config_id: str, window_days: int) -> List[date]:
        """Return index result dates that have no portfolio volatility row."""

        sql = """
            SELECT DISTINCT (ih.timestamp AT TIME ZONE 'UTC')::date AS result_date
            FROM index_history AS ih
            WHERE ih.index_config_id = %s
              AND NOT EXISTS (
                  SELECT 1
                  FROM portfolio_volatility AS pv
                  WHERE pv.index_config_id = ih.index_config_id
                    AND pv.date = (ih.timestamp AT TIME ZONE 'UTC')::date
                    AND pv.window_days = %s
              )
            ORDER BY result_date ASC
        """
        return [d for (d,) in self._fetchall(sql, (config_id, window_days))]

    def get_last_portfolio_volatility_date(self, config_id: str, window_days: int) -> Optional[date]:
        rows = self._fetchall(
            "SELECT MAX(date) FROM portfolio_volatility WHERE index_config_id = %s AND window_days = %s",
            (config_id, window_days),
        )
        if not rows:
            return None
        return rows[0][0]

    def save_portfolio_volatility(self, record: PortfolioVolatility) -> str:
        """Upsert ``record`` and replace its constituents atomically.

        Returns:
            The ``portfolio_volatility_id`` of the stored row.
        """

        upsert_sql = """
            INSERT INTO portfolio_volatility (
                portfolio_volatility_id,
                index_config_id,
                date,
                window_days,
                daily_volatility,
                annualized_volatility,
                constituent_count,
                total_market_cap,
                weighted_avg_volatility,
                diversification_benefit,
                diversification_benefit_pct,
                calculation_duration_ms,
                created_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, NOW())
            ON CONFLICT (index_config_id, date, window_days) DO UPDATE SET
                daily_volatility = EXCLUDED.daily_volatility,
                annualized_volatility = EXCLUDED.annualized_volatility,
                constituent_count = EXCLUDED.constituent_count,
                total_market_cap = EXCLUDED.total_market_cap,
                weighted_avg_volatility = EXCLUDED.weighted_avg_volatility,
                diversification_benefit = EXCLUDED.diversification_benefit,
                diversification_benefit_pct = EXCLUDED.diversification_benefit_pct,
                calculation_duration_ms = EXCLUDED.calculation_duration_ms,
                created_at = NOW()
            RETURNING portfolio_volatility_id
        """

        delete_sql = "DELETE FROM portfolio_volatility_constituents WHERE portfolio_volatility_id = %s"

        insert_sql = """
            INSERT INTO portfolio_volatility_constituents (
                portfolio_volatility_id,
                asset_id,
                weight,
                daily_volatility,
                annualized_volatility,
                market_cap,
                risk_contribution,
                risk_contribution_pct,
                component_risk_pct
            ) VALUES %s
        """

        with self.db_manager.get_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(
                    upsert_sql,
                    (
                        generate_uuid(),
                        record.index_config_id,
                        record.date,
                        record.window_days,
                        record.daily_volatility,
                        record.annualized_volatility,
                        record.constituent_count,
                        record.total_market_cap,
                        record.weighted_avg_volatility,
                        record.diversification_benefit,
                        record.diversification_benefit_pct,
                        record.duration_ms,
                    ),
                )
                (portfolio_id,) = cursor.fetchone()
                cursor.execute(delete_sql, (portfolio_id,))
                if record.constituents:
                    execute_values(
                        cursor,
                        insert_sql,
                        [
                            (
                                portfolio_id,
                                c.asset_id,
                                c.weight,
                                c.daily_volatility,
                                c.annualized_volatility,
                                c.market_cap,
                                c.risk_contribution,
                                c.risk_contribution_pct,
                                c.component_risk_pct,
                            )
                            for c in record.constituents
                        ],
                    )
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()

        return str(portfolio_id)

    # ========================================================================
    # Distribution statistics
    # ========================================================================

    def save_distribution_stats(self, records: Sequence[DistributionStats]) -> int:
        sql = """
            INSERT INTO asset_distribution_stats (
                distribution_stats_id,
                asset_id,
                date,
                window_days,
                skewness,
                kurtosis,
                mean_return,
                std_dev,
                observation_count
            ) VALUES %s
            ON CONFLICT (asset_id, date, window_days) DO UPDATE SET
                skewness = EXCLUDED.skewness,
                kurtosis = EXCLUDED.kurtosis,
                mean_return = EXCLUDED.mean_return,
                std_dev = EXCLUDED.std_dev,
                observation_count = EXCLUDED.observation_count
        """
        rows = [
            (
                generate_uuid(),
                r.asset_id,
                r.date,
                r.window_days,
                r.skewness,
                r.kurtosis,
                r.mean_return,
                r.std_dev,
                r.observation_count,
            )
            for r in records
        ]
        return self._write_batch(sql, rows)

    def get_distribution_stats_dates(self, asset_id: int, window_days: int) -> Set[date]:
        rows = self._fetchall(
            "SELECT date FROM asset_distribution_stats WHERE asset_id = %s AND window_days = %s",
            (asset_id, window_days),
        )
        return {d for (d,) in rows}

    # ========================================================================
    # Value at risk, beta and security market line
    # ========================================================================

    def get_index_daily_levels(self, config_id: str) -> List[Tuple[date, Decimal]]:
        """Return the last index level of each UTC day, oldest first."""

        sql = """
            SELECT DISTINCT ON ((ih.timestamp AT TIME ZONE 'UTC')::date)
                (ih.timestamp AT TIME ZONE 'UTC')::date AS level_date,
                ih.index_level
            FROM index_history AS ih
            WHERE ih.index_config_id = %s
            ORDER BY level_date ASC, ih.timestamp DESC
        """
        return [(d, Decimal(str(level))) for d, level in self._fetchall(sql, (config_id,))]

    def save_value_at_risk(self, records: Sequence[ValueAtRisk]) -> int:
        sql = """
            INSERT INTO asset_value_at_risk (
                value_at_risk_id,
                asset_id,
                date,
                window_days,
                var_95,
                var_99,
                cvar_95,
                cvar_99,
                mean_return,
                std_dev,
                min_return,
                max_return,
                observation_count
            ) VALUES %s
            ON CONFLICT (asset_id, date, window_days) DO UPDATE SET
                var_95 = EXCLUDED.var_95,
                var_99 = EXCLUDED.var_99,
                cvar_95 = EXCLUDED.cvar_95,
                cvar_99 = EXCLUDED.cvar_99,
                mean_return = EXCLUDED.mean_return,
                std_dev = EXCLUDED.std_dev,
                min_return = EXCLUDED.min_return,
                max_return = EXCLUDED.max_return,
                observation_count = EXCLUDED.observation_count
        """
        rows = [
            (
                generate_uuid(),
                r.asset_id,
                r.date,
                r.window_days,
                r.var_95,
                r.var_99,
                r.cvar_95,
                r.cvar_99,
                r.mean_return,
                r.std_dev,
                r.min_return,
                r.max_return,
                r.observation_count,
            )
            for r in records
        ]
        return self._write_batch(sql, rows)

    def save_beta_stats(self, records: Sequence[BetaStats]) -> int:
        sql = """
            INSERT INTO asset_beta_stats (
                beta_stats_id,
                asset_id,
                date,
                window_days,
                beta,
                alpha,
                r_squared,
                correlation,
                observation_count
            ) VALUES %s
            ON CONFLICT (asset_id, date, window_days) DO UPDATE SET
                beta = EXCLUDED.beta,
                alpha = EXCLUDED.alpha,
                r_squared = EXCLUDED.r_squared,
                correlation = EXCLUDED.correlation,
                observation_count = EXCLUDED.observation_count
        """
        rows = [
            (
                generate_uuid(),
                r.asset_id,
                r.date,
                r.window_days,
                r.beta,
                r.alpha,
                r.r_squared,
                r.correlation,
                r.observation_count,
            )
            for r in records
        ]
        return self._write_batch(sql, rows)

    def get_beta_stats_dates(self, asset_id: int) -> Set[date]:
        rows = self._fetchall(
            "SELECT DISTINCT date FROM asset_beta_stats WHERE asset_id = %s",
            (asset_id,),
        )
        return {d for (d,) in rows}

    def save_sml_stats(self, records: Sequence[SecurityMarketLine]) -> int:
        sql = """
            INSERT INTO asset_sml_stats (
                sml_stats_id,
                asset_id,
                date,
                window_days,
                beta,
                expected_return,
                actual_return,
                alpha,
                is_overvalued,
                market_return,
                observation_count
            ) VALUES %s
            ON CONFLICT (asset_id, date, window_days) DO UPDATE SET
                beta = EXCLUDED.beta,
                expected_return = EXCLUDED.expected_return,
                actual_return = EXCLUDED.actual_return,
                alpha = EXCLUDED.alpha,
                is_overvalued = EXCLUDED.is_overvalued,
                market_return = EXCLUDED.market_return,
                observation_count = EXCLUDED.observation_count
        """
        rows = [
            (
                generate_uuid(),
                r.asset_id,
                r.date,
                r.window_days,
                r.beta,
                r.expected_return,
                r.actual_return,
                r.alpha,
                r.is_overvalued,
                r.market_return,
                r.observation_count,
            )
            for r in records
        ]
        return self._write_batch(sql, rows)

    def get_sml_stats_dates(self, asset_id: int) -> Set[date]:
        rows = self._fetchall(
            "SELECT DISTINCT date FROM asset_sml_stats WHERE asset_id = %s",
            (asset_id,),
        )
        return {d for (d,) in rows}

    # ========================================================================
    # Maintenance
    # ========================================================================

    def clean_all(self) -> Dict[str, int]:
        """Delete every derived volatility row; returns counts per table."""

        counts: Dict[str, int] = {}
        with self.db_manager.get_connection() as conn:
            cursor = conn.cursor()
            try:
                for table in VOLATILITY_TABLES:
                    cursor.execute(f"DELETE FROM {table}")
                    counts[table] = int(cursor.rowcount)
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()

        for table, count in counts.items():
            logger.info("Deleted %d rows from %s", count, table)
        return counts


__all__ = ["VOLATILITY_TABLES", "VolatilityStorage"]
