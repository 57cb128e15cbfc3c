"""RisqLab – Asset and portfolio risk calculations.

Pure functions built on :mod:`risqlab.volatility.stats`:

- :func:`compute_asset_volatility` – rolling volatility of one asset.
- :func:`compute_portfolio_risk` – covariance-based portfolio volatility
  of the index constituents on one date, with diversification benefit and
  per-constituent risk contributions.
- :func:`compute_distribution_stats` – skewness and excess kurtosis of
  one asset's rolling windows.
- :func:`compute_value_at_risk` – historical VaR and CVaR of one asset.
- :func:`compute_beta_stats` and :func:`compute_security_market_line` –
  one asset measured against the index returns.
"""

from __future__ import annotations

import math
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from risqlab.core.logging import get_logger
from risqlab.volatility import stats
from risqlab.volatility.returns import returns_to_series
from risqlab.volatility.types import (
    AssetVolatility,
    BetaStats,
    DistributionStats,
    LogReturn,
    PortfolioRiskInput,
    PortfolioRiskResult,
    PortfolioVolatilityConstituent,
    SecurityMarketLine,
    ValueAtRisk,
)


logger = get_logger(__name__)

ReturnsLike = Union[pd.Series, Iterable[LogReturn]]

# Relative and absolute slack allowed when checking portfolio volatility
# against the weighted average of constituent volatilities.
_REL_TOLERANCE = 1e-9
_ABS_TOLERANCE = 1e-12

# Fewest returns a VaR, beta or SML figure is computed from.
MIN_RISK_OBSERVATIONS = 7


class PortfolioRiskError(ArithmeticError):
    """Raised when a portfolio volatility result is mathematically inconsistent."""


def _as_series(returns: ReturnsLike) -> pd.Series:
    if isinstance(returns, pd.Series):
        return returns
    return returns_to_series(returns)


def compute_asset_volatility(
    asset_id: int,
    returns: ReturnsLike,
    window_days: int,
    annualization_days: int = stats.DEFAULT_ANNUALIZATION_DAYS,
) -> List[AssetVolatility]:
    """Return one volatility record per date with a complete window.

    Dates whose trailing ``window_days`` calendar days are not all covered
    by a log return produce no record.
    """

    frame = stats.rolling_volatility(_as_series(returns), window_days)
    scale = math.sqrt(annualization_days)

    return [
        AssetVolatility(
            asset_id=asset_id,
            date=as_of,
            window_days=window_days,
            daily_volatility=float(row.daily_volatility),
            annualized_volatility=float(row.daily_volatility) * scale,
            observation_count=int(row.observation_count),
            mean_return=float(row.mean_return),
        )
        for as_of, row in zip(frame.index, frame.itertuples(index=False))
    ]


def compute_distribution_stats(
    asset_id: int,
    returns: ReturnsLike,
    window_days: int,
) -> List[DistributionStats]:
    """Return skewness/kurtosis records per date with a complete window."""

    end_dates, windows = stats.complete_windows(_as_series(returns), window_days)
    return [
        DistributionStats(
            asset_id=asset_id,
            date=as_of,
            window_days=window_days,
            skewness=stats.skewness(window),
            kurtosis=stats.excess_kurtosis(window),
            mean_return=float(window.mean()),
            std_dev=stats.population_std(window),
            observation_count=window_days,
        )
        for as_of, window in zip(end_dates, windows)
    ]


def _aligned_window(returns: pd.Series, window_index: pd.DatetimeIndex) -> Optional[np.ndarray]:
    series = stats.to_daily_calendar(returns)
    aligned = series.reindex(window_index)
    if aligned.isna().any():
        return None
    return aligned.to_numpy(dtype=float)


def compute_portfolio_risk(
    inputs: Sequence[PortfolioRiskInput],
    window_days: int,
    annualization_days: int = stats.DEFAULT_ANNUALIZATION_DAYS,
    *,
    end_date: date,
) -> Optional[PortfolioRiskResult]:
    """Compute the covariance-based portfolio volatility on ``end_date``.

    Constituents without a log return on every one of the ``window_days``
    days ending on ``end_date`` (or with a non-positive market cap) are
    dropped and reported in ``excluded_asset_ids``; weights are
    re-normalised over the rest.

    Returns:
        The result, or None when no constituent has a complete window.

    Raises:
        PortfolioRiskError: If the portfolio volatility exceeds the
            weighted average of constituent volatilities.
    """

    window_index = pd.date_range(end=pd.Timestamp(end_date), periods=window_days, freq="D")

    included: List[PortfolioRiskInput] = []
    columns: List[np.ndarray] = []
    excluded: List[int] = []

    for item in inputs:
        aligned = _aligned_window(item.returns, window_index) if item.market_cap > 0 else None
        if aligned is None:
            logger.debug(
                "%s excluded from portfolio on %s: insufficient history",
                item.symbol or item.asset_id,
                end_date,
            )
            excluded.append(item.asset_id)
            continue
        included.append(item)
        columns.append(aligned)

    if not included:
        return None

    cov = stats.covariance_matrix(np.column_stack(columns))

    total_market_cap = sum((item.market_cap for item in included), Decimal("0"))
    weights = np.array([float(item.market_cap / total_market_cap) for item in included])

    daily_vols = np.sqrt(np.clip(np.diag(cov), 0.0, None))
    scale = math.sqrt(annualization_days)
    annual_vols = daily_vols * scale

    variance = stats.portfolio_variance(weights, cov)
    daily_p = math.sqrt(variance)
    annual_p = daily_p * scale

    weighted_avg = float(weights @ annual_vols)
    if annual_p > weighted_avg * (1.0 + _REL_TOLERANCE) + _ABS_TOLERANCE:
        raise PortfolioRiskError(
            f"Portfolio volatility {annual_p:.10f} exceeds weighted average {weighted_avg:.10f} on {end_date}"
        )

    benefit, benefit_pct = stats.diversification_benefit(weighted_avg, annual_p)
    contrib, contrib_pct = stats.risk_contributions(weights, annual_vols)
    component_pct = stats.component_risk_contributions(weights, cov)

    constituents = tuple(
        PortfolioVolatilityConstituent(
            asset_id=item.asset_id,
            symbol=item.symbol,
            weight=float(weights[i]),
            daily_volatility=float(daily_vols[i]),
            annualized_volatility=float(annual_vols[i]),
            market_cap=item.market_cap,
            risk_contribution=float(contrib[i]),
            risk_contribution_pct=float(contrib_pct[i]),
            component_risk_pct=float(component_pct[i]),
        )
        for i, item in enumerate(included)
    )

    return PortfolioRiskResult(
        date=end_date,
        window_days=window_days,
        daily_variance=variance,
        daily_volatility=daily_p,
        annualized_volatility=annual_p,
        weighted_avg_volatility=weighted_avg,
        diversification_benefit=benefit,
        diversification_benefit_pct=benefit_pct,
        total_market_cap=total_market_cap,
        constituents=constituents,
        excluded_asset_ids=tuple(excluded),
    )


def compute_value_at_risk(
    asset_id: int,
    returns: ReturnsLike,
    window_days: int,
) -> Optional[ValueAtRisk]:
    """Historical VaR/CVaR at 95% and 99% on the latest return date.

    Uses the returns within the ``window_days`` calendar days ending on
    the latest return. Returns None below
    :data:`MIN_RISK_OBSERVATIONS` returns in that window.
    """

    series = _as_series(returns).sort_index()
    if series.empty:
        return None

    as_of = series.index[-1]
    window = series[series.index > as_of - timedelta(days=window_days)]
    if len(window) < MIN_RISK_OBSERVATIONS:
        return None

    values = window.to_numpy(dtype=float)
    return ValueAtRisk(
        asset_id=asset_id,
        date=as_of,
        window_days=window_days,
        var_95=stats.historical_var(values, 0.95),
        var_99=stats.historical_var(values, 0.99),
        cvar_95=stats.conditional_var(values, 0.95),
        cvar_99=stats.conditional_var(values, 0.99),
        mean_return=float(values.mean()),
        std_dev=stats.population_std(values),
        min_return=float(values.min()),
        max_return=float(values.max()),
        observation_count=int(values.size),
    )


def compute_beta_stats(
    asset_id: int,
    returns: ReturnsLike,
    market_returns: pd.Series,
    max_window: int,
) -> List[BetaStats]:
    """Beta, alpha and correlation against the index on each common date.

    Windows run over dates where both the asset and the index have a
    return: they grow from :data:`MIN_RISK_OBSERVATIONS` dates up to
    ``max_window`` and then slide. ``window_days`` is the window length.
    """

    records: List[BetaStats] = []
    for as_of, asset, market in stats.aligned_windows(
        _as_series(returns), market_returns, max_window, MIN_RISK_OBSERVATIONS
    ):
        beta, alpha, r_squared, correlation = stats.beta_alpha(asset, market)
        records.append(
            BetaStats(
                asset_id=asset_id,
                date=as_of,
                window_days=int(asset.size),
                beta=beta,
                alpha=alpha,
                r_squared=r_squared,
                correlation=correlation,
                observation_count=int(asset.size),
            )
        )
    return records


def compute_security_market_line(
    asset_id: int,
    returns: ReturnsLike,
    market_returns: pd.Series,
    max_window: int,
    annualization_days: int = stats.DEFAULT_ANNUALIZATION_DAYS,
) -> List[SecurityMarketLine]:
    """CAPM expected versus realised annual return on each common date.

    Windows are those of :func:`compute_beta_stats`. Annual returns are
    ``mean * annualization_days`` and the risk-free rate is 0.
    """

    records: List[SecurityMarketLine] = []
    for as_of, asset, market in stats.aligned_windows(
        _as_series(returns), market_returns, max_window, MIN_RISK_OBSERVATIONS
    ):
        beta = stats.beta_alpha(asset, market)[0]
        actual = float(asset.mean()) * annualization_days
        market_return = float(market.mean()) * annualization_days
        expected = beta * market_return
        records.append(
            SecurityMarketLine(
                asset_id=asset_id,
                date=as_of,
                window_days=int(asset.size),
                beta=beta,
                expected_return=expected,
                actual_return=actual,
                alpha=actual - expected,
                is_overvalued=actual < expected,
                market_return=market_return,
                observation_count=int(asset.size),
            )
        )
    return records


__all__ = [
    "MIN_RISK_OBSERVATIONS",
    "PortfolioRiskError",
    "compute_asset_volatility",
    "compute_beta_stats",
    "compute_distribution_stats",
    "compute_portfolio_risk",
    "compute_security_market_line",
    "compute_value_at_risk",
]
