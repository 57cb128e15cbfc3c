"""RisqLab: Tests for the pure return statistics."""

from __future__ import annotations

import math
from datetime import date, timedelta

import numpy as np
import pandas as pd
import pytest

from risqlab.volatility import stats


def _two_asset_covariance() -> tuple[np.ndarray, np.ndarray]:
    """Weights [0.6, 0.4], daily vols [0.03, 0.04], correlation 0.7."""

    weights = np.array([0.6, 0.4])
    vols = np.array([0.03, 0.04])
    corr = np.array([[1.0, 0.7], [0.7, 1.0]])
    return weights, np.outer(vols, vols) * corr


class TestDispersion:
    def test_population_std_divides_by_n(self) -> None:
        values = [1.0, 2.0, 3.0, 4.0]

        assert stats.population_std(values) == pytest.approx(math.sqrt(1.25))

    def test_population_std_of_flat_series_is_zero(self) -> None:
        assert stats.population_std([0.01] * 10) == pytest.approx(0.0, abs=1e-15)

    def test_population_std_rejects_empty_input(self) -> None:
        with pytest.raises(ValueError):
            stats.population_std([])

    def test_annualize_uses_square_root_of_days(self) -> None:
        assert stats.annualize(0.02) == pytest.approx(0.02 * math.sqrt(365))
        assert stats.annualize(0.02, 252) == pytest.approx(0.02 * math.sqrt(252))


class TestRollingVolatility:
    def test_requires_full_window_of_consecutive_days(self) -> None:
        start = date(2025, 1, 1)
        days = [start + timedelta(days=i) for i in range(6)]
        # No return on days[2]; only the window ending on days[5] is complete.
        series = pd.Series(
            [0.01, -0.02, 0.03, 0.01, 0.02],
            index=[days[0], days[1], days[3], days[4], days[5]],
        )

        frame = stats.rolling_volatility(series, window_days=3)

        assert list(frame.index) == [days[5]]
        window = np.array([0.03, 0.01, 0.02])
        assert frame.loc[days[5], "daily_volatility"] == pytest.approx(window.std())
        assert frame.loc[days[5], "mean_return"] == pytest.approx(window.mean())
        assert frame.loc[days[5], "observation_count"] == 3

    def test_short_history_gives_no_rows(self) -> None:
        series = pd.Series([0.01, 0.02], index=[date(2025, 1, 1), date(2025, 1, 2)])

        assert stats.rolling_volatility(series, window_days=90).empty

    def test_empty_series_gives_no_rows(self) -> None:
        assert stats.rolling_volatility(pd.Series(dtype=float), window_days=3).empty


class TestPortfolioStatistics:
    def test_two_asset_daily_variance(self) -> None:
        weights, cov = _two_asset_covariance()

        variance = stats.portfolio_variance(weights, cov)

        assert variance == pytest.approx(0.0009832, rel=1e-9)
        assert round(variance, 6) == pytest.approx(0.000983)

    def test_two_asset_example_with_trading_day_annualisation(self) -> None:
        """With a 252-day year the example gives about 49.8% against a 54.0% average."""

        weights, cov = _two_asset_covariance()
        annual_vols = np.sqrt(np.diag(cov)) * math.sqrt(252)

        annual_p = stats.annualize(math.sqrt(stats.portfolio_variance(weights, cov)), 252)
        weighted_avg = float(weights @ annual_vols)

        assert annual_p == pytest.approx(0.4978, abs=1e-4)
        assert weighted_avg == pytest.approx(0.540, abs=5e-4)
        assert annual_p < weighted_avg

    def test_two_asset_example_with_calendar_annualisation(self) -> None:
        weights, cov = _two_asset_covariance()
        annual_vols = np.sqrt(np.diag(cov)) * math.sqrt(365)

        annual_p = stats.annualize(math.sqrt(stats.portfolio_variance(weights, cov)))
        weighted_avg = float(weights @ annual_vols)

        assert annual_p == pytest.approx(math.sqrt(0.0009832 * 365))
        assert weighted_avg == pytest.approx(0.034 * math.sqrt(365))
        assert annual_p < weighted_avg

    def test_variance_is_not_a_weighted_average(self) -> None:
        weights, cov = _two_asset_covariance()

        naive = float(weights @ np.sqrt(np.diag(cov))) ** 2

        assert stats.portfolio_variance(weights, cov) < naive

    def test_covariance_matrix_is_population_and_symmetric(self) -> None:
        rng = np.random.default_rng(7)
        returns = rng.normal(0.0, 0.02, size=(90, 4))

        cov = stats.covariance_matrix(returns)

        assert cov.shape == (4, 4)
        assert np.allclose(cov, cov.T)
        assert np.allclose(np.diag(cov), returns.var(axis=0, ddof=0))

    def test_covariance_matrix_single_asset(self) -> None:
        returns = np.array([[0.01], [0.03], [-0.01]])

        cov = stats.covariance_matrix(returns)

        assert cov.shape == (1, 1)
        assert cov[0, 0] == pytest.approx(np.var(returns[:, 0]))

    def test_portfolio_variance_rejects_mismatched_shapes(self) -> None:
        with pytest.raises(ValueError):
            stats.portfolio_variance([0.5, 0.5], np.eye(3))

    def test_diversification_benefit(self) -> None:
        absolute, pct = stats.diversification_benefit(0.54, 0.497)

        assert absolute == pytest.approx(0.043)
        assert pct == pytest.approx(0.043 / 0.54 * 100)

    def test_diversification_benefit_with_zero_average(self) -> None:
        assert stats.diversification_benefit(0.0, 0.0) == (0.0, 0.0)

    def test_risk_contributions_are_normalised(self) -> None:
        contrib, pct = stats.risk_contributions([0.6, 0.4], [0.5, 0.75])

        assert contrib == pytest.approx([0.3, 0.3])
        assert pct == pytest.approx([50.0, 50.0])

    def test_risk_contributions_all_zero(self) -> None:
        _, pct = stats.risk_contributions([0.6, 0.4], [0.0, 0.0])

        assert list(pct) == [0.0, 0.0]

    def test_component_contributions_sum_to_one_hundred(self) -> None:
        weights, cov = _two_asset_covariance()

        pct = stats.component_risk_contributions(weights, cov)

        assert pct.sum() == pytest.approx(100.0)
        # Asset 1: 0.6 * (0.6*0.0009 + 0.4*0.00084) / 0.0009832
        assert pct[0] == pytest.approx(0.6 * (0.6 * 0.0009 + 0.4 * 0.00084) / 0.0009832 * 100)

    def test_component_contributions_zero_variance(self) -> None:
        pct = stats.component_risk_contributions([0.5, 0.5], np.zeros((2, 2)))

        assert list(pct) == [0.0, 0.0]


class TestShapeStatistics:
    def test_skewness_matches_bias_corrected_formula(self) -> None:
        values = np.array([0.01, -0.02, 0.05, 0.00, -0.01, 0.03])
        n = values.size
        m2 = ((values - values.mean()) ** 2).mean()
        m3 = ((values - values.mean()) ** 3).mean()
        g1 = m3 / m2**1.5
        expected = g1 * math.sqrt(n * (n - 1)) / (n - 2)

        assert stats.skewness(values) == pytest.approx(expected)

    def test_kurtosis_is_excess_and_bias_corrected(self) -> None:
        values = np.array([0.01, -0.02, 0.05, 0.00, -0.01, 0.03, 0.02])
        n = values.size
        m2 = ((values - values.mean()) ** 2).mean()
        m4 = ((values - values.mean()) ** 4).mean()
        g2 = m4 / m2**2 - 3.0
        expected = ((n + 1) * g2 + 6) * (n - 1) / ((n - 2) * (n - 3))

        assert stats.excess_kurtosis(values) == pytest.approx(expected)

    def test_flat_series_has_zero_shape(self) -> None:
        assert stats.skewness([0.02] * 10) == 0.0
        assert stats.excess_kurtosis([0.02] * 10) == 0.0

    def test_too_few_observations(self) -> None:
        with pytest.raises(ValueError):
            stats.skewness([0.1, 0.2])
        with pytest.raises(ValueError):
            stats.excess_kurtosis([0.1, 0.2, 0.3])
