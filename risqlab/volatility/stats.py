"""RisqLab – Return statistics.

Pure numerical helpers on log returns. All dispersion measures are
*population* statistics (divisor ``n``), including the covariance
matrix, so the matrix diagonal equals the squared asset volatilities.
"""

from __future__ import annotations

import math
from datetime import date
from typing import Iterator, List, Sequence, Tuple

import numpy as np
import pandas as pd
from numpy.lib.stride_tricks import sliding_window_view
from scipy import stats as sp_stats


DEFAULT_ANNUALIZATION_DAYS = 365


def _as_array(values: Sequence[float]) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    if arr.ndim != 1 or arr.size == 0:
        raise ValueError("Expected a non-empty one-dimensional sequence")
    return arr


def population_std(values: Sequence[float]) -> float:
    """Return ``sqrt((1/n) * sum((x - mean)^2))``."""

    return float(np.std(_as_array(values), ddof=0))


def annualize(daily_volatility: float, annualization_days: int = DEFAULT_ANNUALIZATION_DAYS) -> float:
    """Scale a daily volatility by ``sqrt(annualization_days)``."""

    return float(daily_volatility) * math.sqrt(annualization_days)


def to_daily_calendar(returns: pd.Series) -> pd.Series:
    """Lay a date-indexed return series onto a gap-free daily calendar.

    Days without a return become NaN. Duplicate dates keep the last value.
    """

    series = returns.astype(float).copy()
    series.index = pd.DatetimeIndex(series.index)
    series = series[~series.index.duplicated(keep="last")].sort_index()
    if series.empty:
        return series
    return series.asfreq("D")


def complete_windows(returns: pd.Series, window_days: int) -> Tuple[List[date], np.ndarray]:
    """Return every complete trailing window of ``window_days`` returns.

    A window ending on day ``d`` is complete when a return exists on each
    of the ``window_days`` calendar days up to and including ``d``.

    Returns:
        (end_dates, windows) where ``windows`` has shape
        ``(len(end_dates), window_days)``.
    """

    if window_days < 1:
        raise ValueError(f"window_days must be positive, got {window_days}")

    values = to_daily_calendar(returns)
    if values.size < window_days:
        return [], np.empty((0, window_days), dtype=float)

    windows = sliding_window_view(values.to_numpy(), window_days)
    complete = ~np.isnan(windows).any(axis=1)
    end_dates = [ts.date() for ts in values.index[window_days - 1 :][complete]]
    return end_dates, windows[complete]


def rolling_volatility(returns: pd.Series, window_days: int) -> pd.DataFrame:
    """Rolling population volatility over calendar-day windows.

    Returns:
        DataFrame indexed by :class:`datetime.date` with columns
        ``mean_return``, ``daily_volatility`` and ``observation_count``,
        one row per date with a complete window.
    """

    end_dates, windows = complete_windows(returns, window_days)
    return pd.DataFrame(
        {
            "mean_return": windows.mean(axis=1),
            "daily_volatility": windows.std(axis=1, ddof=0),
            "observation_count": np.full(len(end_dates), window_days, dtype=int),
        },
        index=pd.Index(end_dates, name="date", dtype=object),
    )


def covariance_matrix(returns: np.ndarray) -> np.ndarray:
    """Population covariance of a ``T x n`` matrix of aligned returns."""

    matrix = np.asarray(returns, dtype=float)
    if matrix.ndim != 2 or matrix.shape[0] == 0 or matrix.shape[1] == 0:
        raise ValueError("Expected a non-empty T x n return matrix")
    return np.atleast_2d(np.cov(matrix, rowvar=False, bias=True))


def portfolio_variance(weights: Sequence[float], cov: np.ndarray) -> float:
    """Return ``w' Sigma w``, clamped at zero against rounding."""

    w = np.asarray(weights, dtype=float)
    sigma = np.asarray(cov, dtype=float)
    if sigma.shape != (w.size, w.size):
        raise ValueError(f"Covariance shape {sigma.shape} does not match {w.size} weights")
    return max(float(w @ sigma @ w), 0.0)


def diversification_benefit(weighted_avg_volatility: float, portfolio_volatility: float) -> Tuple[float, float]:
    """Return (absolute, percent) reduction of portfolio volatility.

    The percentage is 0 when the weighted average volatility is 0.
    """

    absolute = weighted_avg_volatility - portfolio_volatility
    if weighted_avg_volatility == 0:
        return absolute, 0.0
    return absolute, absolute / weighted_avg_volatility * 100.0


def risk_contributions(
    weights: Sequence[float],
    annualized_volatilities: Sequence[float],
) -> Tuple[np.ndarray, np.ndarray]:
    """Simplified risk contribution ``w_i * vol_i`` and its percent share.

    Shares are all 0 when every contribution is 0.
    """

    contrib = np.asarray(weights, dtype=float) * np.asarray(annualized_volatilities, dtype=float)
    total = float(contrib.sum())
    if total == 0:
        return contrib, np.zeros_like(contrib)
    return contrib, contrib / total * 100.0


def component_risk_contributions(weights: Sequence[float], cov: np.ndarray) -> np.ndarray:
    """Euler decomposition ``w_i (Sigma w)_i / (w' Sigma w)`` in percent.

    Shares sum to 100 when the portfolio variance is positive and are all
    0 otherwise.
    """

    w = np.asarray(weights, dtype=float)
    marginal = np.asarray(cov, dtype=float) @ w
    variance = float(w @ marginal)
    if variance <= 0:
        return np.zeros_like(w)
    return w * marginal / variance * 100.0


def skewness(values: Sequence[float]) -> float:
    """Bias-corrected sample skewness; 0 for a flat series."""

    arr = _as_array(values)
    if arr.size < 3:
        raise ValueError("Skewness needs at least 3 observations")
    if np.ptp(arr) == 0:
        return 0.0
    return float(sp_stats.skew(arr, bias=False))


def excess_kurtosis(values: Sequence[float]) -> float:
    """Bias-corrected sample excess kurtosis; 0 for a flat series."""

    arr = _as_array(values)
    if arr.size < 4:
        raise ValueError("Kurtosis needs at least 4 observations")
    if np.ptp(arr) == 0:
        return 0.0
    return float(sp_stats.kurtosis(arr, fisher=True, bias=False))


def _tail_index(size: int, confidence: float) -> int:
    if not 0 < confidence < 1:
        raise ValueError(f"confidence must be between 0 and 1, got {confidence}")
    # Rounded first so (1 - 0.9) * 10 lands on 1 rather than 0.999...
    return max(0, int(math.floor(round((1.0 - confidence) * size, 9))))


def historical_var(values: Sequence[float], confidence: float) -> float:
    """Historical value at risk as a positive loss.

    The loss is the negated return at position ``floor((1 - c) * n)`` of
    the ascending returns; 0 with fewer than two observations.
    """

    arr = np.sort(_as_array(values))
    if arr.size < 2:
        return 0.0
    return float(-arr[_tail_index(arr.size, confidence)])


def conditional_var(values: Sequence[float], confidence: float) -> float:
    """Expected shortfall: negated mean of the returns up to the VaR position."""

    arr = np.sort(_as_array(values))
    if arr.size < 2:
        return 0.0
    tail = arr[: _tail_index(arr.size, confidence) + 1]
    return float(-tail.mean())


def beta_alpha(asset_returns: Sequence[float], market_returns: Sequence[float]) -> Tuple[float, float, float, float]:
    """Return (beta, alpha, r_squared, correlation) of asset on market.

    All four are 0 when there are fewer than two observations or the
    market returns are flat. Correlation is 0 when the asset is flat.
    """

    asset = np.asarray(asset_returns, dtype=float)
    market = np.asarray(market_returns, dtype=float)
    if asset.shape != market.shape or asset.ndim != 1:
        raise ValueError(f"Return series differ in shape: {asset.shape} vs {market.shape}")
    if asset.size < 2 or np.ptp(market) == 0:
        return 0.0, 0.0, 0.0, 0.0

    cov = covariance_matrix(np.column_stack([asset, market]))
    var_asset, covariance, var_market = cov[0, 0], cov[0, 1], cov[1, 1]
    beta = float(covariance / var_market)
    alpha = float(asset.mean() - beta * market.mean())
    correlation = 0.0
    if np.ptp(asset) > 0:
        correlation = float(np.clip(covariance / math.sqrt(var_asset * var_market), -1.0, 1.0))
    return beta, alpha, correlation * correlation, correlation


def aligned_windows(
    asset_returns: pd.Series,
    market_returns: pd.Series,
    max_window: int,
    min_observations: int,
) -> Iterator[Tuple[date, np.ndarray, np.ndarray]]:
    """Yield trailing windows over the dates both series have a return.

    Windows grow from ``min_observations`` common dates up to
    ``max_window`` and then slide; each is yielded as (end date, asset
    returns, market returns).
    """

    if min_observations < 2 or max_window < min_observations:
        raise ValueError(f"Invalid window bounds: min {min_observations}, max {max_window}")

    common = sorted(set(asset_returns.index) & set(market_returns.index))
    asset = asset_returns.reindex(common).to_numpy(dtype=float)
    market = market_returns.reindex(common).to_numpy(dtype=float)

    for end in range(min_observations - 1, len(common)):
        start = max(0, end + 1 - max_window)
        yield common[end], asset[start : end + 1], market[start : end + 1]


__all__ = [
    "DEFAULT_ANNUALIZATION_DAYS",
    "aligned_windows",
    "annualize",
    "beta_alpha",
    "complete_windows",
    "conditional_var",
    "component_risk_contributions",
    "covariance_matrix",
    "diversification_benefit",
    "excess_kurtosis",
    "historical_var",
    "population_std",
    "portfolio_variance",
    "risk_contributions",
    "rolling_volatility",
    "skewness",
    "to_daily_calendar",
]
