"""RisqLab: Tests for VolatilityStorage SQL and transaction handling."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from risqlab.volatility import (
    VOLATILITY_TABLES,
    LogReturn,
    PortfolioVolatility,
    PortfolioVolatilityConstituent,
    SecurityMarketLine,
    ValueAtRisk,
    VolatilityStorage,
)
from risqlab.volatility import storage as storage_module


D = date(2025, 3, 31)


class _StubDbManager:
    def __init__(self) -> None:
        self.conn = MagicMock()
        self.cursor = MagicMock()
        self.conn.cursor.return_value = self.cursor

    @contextmanager
    def get_connection(self):  # type: ignore[no-untyped-def]
        yield self.conn


def _sql(call) -> str:  # type: ignore[no-untyped-def]
    return " ".join(call.args[0].split())


def _portfolio() -> PortfolioVolatility:
    constituent = PortfolioVolatilityConstituent(
        asset_id=1,
        symbol="BTC",
        weight=1.0,
        daily_volatility=0.03,
        annualized_volatility=0.57,
        market_cap=Decimal("1000"),
        risk_contribution=0.57,
        risk_contribution_pct=100.0,
        component_risk_pct=100.0,
    )
    return PortfolioVolatility(
        index_config_id="cfg-1",
        date=D,
        window_days=90,
        daily_volatility=0.03,
        annualized_volatility=0.57,
        constituent_count=1,
        total_market_cap=Decimal("1000"),
        weighted_avg_volatility=0.57,
        diversification_benefit=0.0,
        diversification_benefit_pct=0.0,
        duration_ms=3,
        constituents=(constituent,),
    )


class TestLogReturns:
    def test_save_upserts_on_asset_and_date(self, monkeypatch: pytest.MonkeyPatch) -> None:
        db = _StubDbManager()
        batches = []
        monkeypatch.setattr(storage_module, "execute_values", lambda cur, sql, rows: batches.append((sql, rows)))
        returns = [LogReturn(1, D, 0.01, Decimal("101"), Decimal("100"))]

        written = VolatilityStorage(db).save_log_returns(returns)  # type: ignore[arg-type]

        assert written == 1
        sql, rows = batches[0]
        assert "ON CONFLICT (asset_id, date) DO UPDATE" in sql
        assert rows[0][1:] == (1, D, 0.01, Decimal("101"), Decimal("100"))
        db.conn.commit.assert_called_once()

    def test_empty_batch_does_not_touch_the_database(self) -> None:
        db = _StubDbManager()

        assert VolatilityStorage(db).save_log_returns([]) == 0  # type: ignore[arg-type]
        db.conn.cursor.assert_not_called()

    def test_window_query_bounds(self) -> None:
        db = _StubDbManager()
        db.cursor.fetchall.return_value = [(1, D, 0.01, 101, 100)]

        returns = VolatilityStorage(db).get_log_returns(1, D, 90)  # type: ignore[arg-type]

        params = db.cursor.execute.call_args.args[1]
        assert params == (1, date(2024, 12, 31), D)
        assert returns[0].price_current == Decimal("101")

    def test_log_return_series(self) -> None:
        db = _StubDbManager()
        db.cursor.fetchall.return_value = [(date(2025, 3, 30), 0.01), (D, -0.02)]

        series = VolatilityStorage(db).get_log_return_series(1)  # type: ignore[arg-type]

        assert list(series.index) == [date(2025, 3, 30), D]
        assert list(series) == [0.01, -0.02]

    def test_last_log_return_date_can_be_missing(self) -> None:
        db = _StubDbManager()
        db.cursor.fetchall.return_value = [(None,)]

        assert VolatilityStorage(db).get_last_log_return_date(1) is None  # type: ignore[arg-type]


class TestSavePortfolioVolatility:
    def test_parent_and_children_in_one_transaction(self, monkeypatch: pytest.MonkeyPatch) -> None:
        db = _StubDbManager()
        db.cursor.fetchone.return_value = ("pv-1",)
        batches = []
        monkeypatch.setattr(storage_module, "execute_values", lambda cur, sql, rows: batches.append((sql, rows)))

        portfolio_id = VolatilityStorage(db).save_portfolio_volatility(_portfolio())  # type: ignore[arg-type]

        assert portfolio_id == "pv-1"
        statements = [_sql(c) for c in db.cursor.execute.call_args_list]
        assert "ON CONFLICT (index_config_id, date, window_days) DO UPDATE" in statements[0]
        assert statements[1].startswith("DELETE FROM portfolio_volatility_constituents")
        sql, rows = batches[0]
        assert "portfolio_volatility_constituents" in sql
        assert rows[0][0] == "pv-1"
        assert rows[0][-1] == 100.0
        db.conn.commit.assert_called_once()
        db.conn.rollback.assert_not_called()

    def test_rolls_back_when_children_fail(self, monkeypatch: pytest.MonkeyPatch) -> None:
        db = _StubDbManager()
        db.cursor.fetchone.return_value = ("pv-1",)

        def _boom(cur, sql, rows):  # type: ignore[no-untyped-def]
            raise RuntimeError("insert failed")

        monkeypatch.setattr(storage_module, "execute_values", _boom)

        with pytest.raises(RuntimeError):
            VolatilityStorage(db).save_portfolio_volatility(_portfolio())  # type: ignore[arg-type]

        db.conn.rollback.assert_called_once()
        db.conn.commit.assert_not_called()
        db.cursor.close.assert_called_once()


class TestCleanAll:
    def test_deletes_children_before_parents(self) -> None:
        db = _StubDbManager()
        db.cursor.rowcount = 4

        counts = VolatilityStorage(db).clean_all()  # type: ignore[arg-type]

        statements = [_sql(c) for c in db.cursor.execute.call_args_list]
        assert statements == [f"DELETE FROM {table}" for table in VOLATILITY_TABLES]
        assert statements.index("DELETE FROM portfolio_volatility_constituents") < statements.index(
            "DELETE FROM portfolio_volatility"
        )
        assert counts == {table: 4 for table in VOLATILITY_TABLES}
        db.conn.commit.assert_called_once()

    def test_index_tables_are_untouched(self) -> None:
        db = _StubDbManager()
        db.cursor.rowcount = 0

        VolatilityStorage(db).clean_all()  # type: ignore[arg-type]

        statements = " ".join(_sql(c) for c in db.cursor.execute.call_args_list)
        assert "index_history" not in statements
        assert "index_constituents" not in statements


class TestRiskMetrics:
    def test_value_at_risk_upserts_on_asset_date_window(self, monkeypatch: pytest.MonkeyPatch) -> None:
        db = _StubDbManager()
        batches = []
        monkeypatch.setattr(storage_module, "execute_values", lambda cur, sql, rows: batches.append((sql, rows)))
        record = ValueAtRisk(1, D, 365, 0.04, 0.05, 0.045, 0.05, 0.0, 0.02, -0.05, 0.14, 20)

        written = VolatilityStorage(db).save_value_at_risk([record])  # type: ignore[arg-type]

        assert written == 1
        sql, rows = batches[0]
        assert "INSERT INTO asset_value_at_risk" in sql
        assert "ON CONFLICT (asset_id, date, window_days) DO UPDATE" in sql
        assert rows[0][1:4] == (1, D, 365)

    def test_sml_stores_overvaluation_flag(self, monkeypatch: pytest.MonkeyPatch) -> None:
        db = _StubDbManager()
        batches = []
        monkeypatch.setattr(storage_module, "execute_values", lambda cur, sql, rows: batches.append((sql, rows)))
        record = SecurityMarketLine(1, D, 30, 1.5, 0.3, 0.2, -0.1, True, 0.2, 30)

        VolatilityStorage(db).save_sml_stats([record])  # type: ignore[arg-type]

        sql, rows = batches[0]
        assert "INSERT INTO asset_sml_stats" in sql
        assert rows[0][8] is True

    def test_index_daily_levels_take_the_last_result_per_day(self) -> None:
        db = _StubDbManager()
        db.cursor.fetchall.return_value = [(date(2025, 3, 30), 101.5), (D, 99.25)]

        levels = VolatilityStorage(db).get_index_daily_levels("cfg-1")  # type: ignore[arg-type]

        sql = _sql(db.cursor.execute.call_args)
        assert "DISTINCT ON" in sql
        assert "ORDER BY level_date ASC, ih.timestamp DESC" in sql
        assert levels == [(date(2025, 3, 30), Decimal("101.5")), (D, Decimal("99.25"))]

    def test_last_portfolio_date_can_be_missing(self) -> None:
        db = _StubDbManager()
        db.cursor.fetchall.return_value = [(None,)]

        assert VolatilityStorage(db).get_last_portfolio_volatility_date("cfg-1", 90) is None  # type: ignore[arg-type]
        assert db.cursor.execute.call_args.args[1] == ("cfg-1", 90)
