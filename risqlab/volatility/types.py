"""RisqLab – Volatility core types.

Return and volatility statistics are plain floats; market caps keep the
:class:`~decimal.Decimal` type they have in the index tables.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

import pandas as pd


@dataclass(frozen=True)
class LogReturn:
    """Daily logarithmic return of one asset.

    Attributes:
        asset_id: Asset the return belongs to.
        date: Day of ``price_current``.
        log_return: ``ln(price_current / price_previous)``.
        price_current: Closing price on ``date``.
        price_previous: Closing price on the previous calendar day.
    """

    asset_id: int
    date: date
    log_return: float
    price_current: Decimal
    price_previous: Decimal


@dataclass(frozen=True)
class AssetVolatility:
    """Rolling-window volatility of one asset ending on ``date``."""

    asset_id: int
    date: date
    window_days: int
    daily_volatility: float
    annualized_volatility: float
    observation_count: int
    mean_return: float


@dataclass(frozen=True)
class PortfolioVolatilityConstituent:
    """Per-constituent breakdown of a portfolio volatility result.

    Attributes:
        asset_id: Constituent asset.
        symbol: Ticker, for reporting.
        weight: Market-cap weight as a fraction of the included universe.
        daily_volatility: Population std of the window's log returns.
        annualized_volatility: ``daily_volatility`` scaled by the
            annualisation factor.
        market_cap: Constituent market cap on the index result used.
        risk_contribution: ``weight * annualized_volatility``.
        risk_contribution_pct: ``risk_contribution`` as a share of the sum
            over constituents, in percent.
        component_risk_pct: Euler share of portfolio variance
            ``w_i (Sigma w)_i / sigma_p^2`` in percent.
    """

    asset_id: int
    symbol: str
    weight: float
    daily_volatility: float
    annualized_volatility: float
    market_cap: Decimal
    risk_contribution: float
    risk_contribution_pct: float
    component_risk_pct: float


@dataclass(eq=False)
class PortfolioRiskInput:
    """One candidate constituent for a portfolio risk computation.

    ``returns`` is a float Series of log returns indexed by date.
    """

    asset_id: int
    symbol: str
    market_cap: Decimal
    returns: pd.Series


@dataclass(frozen=True)
class PortfolioRiskResult:
    """Outcome of :func:`risqlab.volatility.calculator.compute_portfolio_risk`."""

    date: date
    window_days: int
    daily_variance: float
    daily_volatility: float
    annualized_volatility: float
    weighted_avg_volatility: float
    diversification_benefit: float
    diversification_benefit_pct: float
    total_market_cap: Decimal
    constituents: Tuple[PortfolioVolatilityConstituent, ...]
    excluded_asset_ids: Tuple[int, ...] = ()

    @property
    def constituent_count(self) -> int:
        return len(self.constituents)


@dataclass(frozen=True)
class PortfolioVolatility:
    """Persisted portfolio volatility of an index on one date."""

    index_config_id: str
    date: date
    window_days: int
    daily_volatility: float
    annualized_volatility: float
    constituent_count: int
    total_market_cap: Decimal
    weighted_avg_volatility: float
    diversification_benefit: float
    diversification_benefit_pct: float
    duration_ms: int
    constituents: Tuple[PortfolioVolatilityConstituent, ...] = ()
    portfolio_volatility_id: Optional[str] = None


@dataclass(frozen=True)
class DistributionStats:
    """Shape statistics of one asset's log returns over a window.

    ``skewness`` and ``kurtosis`` are bias-corrected; ``kurtosis`` is
    excess kurtosis (0 for a normal distribution).
    """

    asset_id: int
    date: date
    window_days: int
    skewness: float
    kurtosis: float
    mean_return: float
    std_dev: float
    observation_count: int


@dataclass(frozen=True)
class ValueAtRisk:
    """Historical value at risk of one asset's most recent log returns.

    VaR and CVaR are loss magnitudes: a positive value is a loss of that
    size in log-return units. ``window_days`` is the number of returns
    used, at most the configured VaR window.
    """

    asset_id: int
    date: date
    window_days: int
    var_95: float
    var_99: float
    cvar_95: float
    cvar_99: float
    mean_return: float
    std_dev: float
    min_return: float
    max_return: float
    observation_count: int


@dataclass(frozen=True)
class BetaStats:
    """Regression of an asset's log returns on the index log returns.

    Attributes:
        beta: ``Cov(asset, index) / Var(index)``.
        alpha: Daily intercept ``mean(asset) - beta * mean(index)``.
        r_squared: Square of ``correlation``.
        correlation: Pearson correlation of the two return series.
    """

    asset_id: int
    date: date
    window_days: int
    beta: float
    alpha: float
    r_squared: float
    correlation: float
    observation_count: int


@dataclass(frozen=True)
class SecurityMarketLine:
    """Position of an asset relative to the security market line.

    Returns are annualised fractions with a zero risk-free rate, so
    ``expected_return`` is ``beta * market_return``.
    """

    asset_id: int
    date: date
    window_days: int
    beta: float
    expected_return: float
    actual_return: float
    alpha: float
    is_overvalued: bool
    market_return: float
    observation_count: int


@dataclass
class RunSummary:
    """Counters reported by every volatility batch run."""

    name: str
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    rows_written: int = 0
    duration_ms: int = 0
    failures: List[str] = field(default_factory=list)
