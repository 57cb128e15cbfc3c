"""RisqLab: Tests for daily log-return computation."""

from __future__ import annotations

import math
from datetime import date, timedelta
from decimal import Decimal

import pytest

from risqlab.volatility import compute_asset_volatility, compute_log_returns, level_log_returns, returns_to_series


D0 = date(2025, 1, 1)


def _days(n: int) -> list[date]:
    return [D0 + timedelta(days=i) for i in range(n)]


class TestComputeLogReturns:
    def test_round_trip_example(self) -> None:
        """Prices [100, 110, 99] give returns [ln 1.1, ln 0.9]."""

        prices = list(zip(_days(3), [Decimal("100"), Decimal("110"), Decimal("99")]))

        returns = compute_log_returns(prices, asset_id=1)

        assert [r.date for r in returns] == _days(3)[1:]
        assert returns[0].log_return == pytest.approx(math.log(1.1))
        assert returns[1].log_return == pytest.approx(math.log(0.9))
        assert returns[0].price_previous == Decimal("100")
        assert returns[0].price_current == Decimal("110")

    def test_round_trip_volatility_is_reproducible(self) -> None:
        prices = list(zip(_days(3), [Decimal("100"), Decimal("110"), Decimal("99")]))
        returns = compute_log_returns(prices, asset_id=1)

        first = compute_asset_volatility(1, returns, window_days=2)
        second = compute_asset_volatility(1, returns, window_days=2)

        expected = abs(math.log(1.1) - math.log(0.9)) / 2
        assert len(first) == 1
        assert first[0].daily_volatility == pytest.approx(expected)
        assert first[0].annualized_volatility == pytest.approx(expected * math.sqrt(365))
        assert first == second

    def test_gap_breaks_adjacency(self) -> None:
        days = _days(5)
        prices = {
            days[0]: Decimal("100"),
            days[1]: Decimal("101"),
            days[3]: Decimal("103"),
            days[4]: Decimal("104"),
        }

        returns = compute_log_returns(prices, asset_id=1)

        assert [r.date for r in returns] == [days[1], days[4]]

    def test_non_positive_prices_are_skipped(self) -> None:
        days = _days(4)
        prices = list(zip(days, [Decimal("100"), Decimal("0"), Decimal("50"), Decimal("55")]))

        returns = compute_log_returns(prices, asset_id=1)

        assert [r.date for r in returns] == [days[3]]

    def test_identical_prices_give_zero_return(self) -> None:
        prices = list(zip(_days(2), [Decimal("42"), Decimal("42")]))

        returns = compute_log_returns(prices, asset_id=1)

        assert len(returns) == 1
        assert returns[0].log_return == 0.0

    def test_unordered_input_is_sorted(self) -> None:
        days = _days(3)
        prices = [(days[2], Decimal("3")), (days[0], Decimal("1")), (days[1], Decimal("2"))]

        returns = compute_log_returns(prices, asset_id=7)

        assert [r.date for r in returns] == days[1:]
        assert all(r.asset_id == 7 for r in returns)

    def test_fewer_than_two_prices_gives_nothing(self) -> None:
        assert compute_log_returns([], asset_id=1) == []
        assert compute_log_returns([(D0, Decimal("1"))], asset_id=1) == []


def test_returns_to_series_is_date_indexed() -> None:
    prices = list(zip(_days(3), [Decimal("100"), Decimal("110"), Decimal("99")]))

    series = returns_to_series(compute_log_returns(prices, asset_id=1))

    assert list(series.index) == _days(3)[1:]
    assert series.dtype == float


def test_index_levels_follow_the_consecutive_day_rule() -> None:
    days = _days(5)
    levels = {
        days[0]: Decimal("100"),
        days[1]: Decimal("105"),
        days[3]: Decimal("110"),
        days[4]: Decimal("99"),
    }

    series = level_log_returns(levels)

    # No return for days[3]: days[2] has no level.
    assert list(series.index) == [days[1], days[4]]
    assert series[days[1]] == pytest.approx(math.log(1.05))
    assert series[days[4]] == pytest.approx(math.log(99 / 110))
