"""RisqLab – Rolling volatility and portfolio risk package.

This package exposes the return/volatility types, the log-return and
risk calculators, the storage helper and the batch engines. Pure
statistics live in :mod:`risqlab.volatility.stats`.
"""

from risqlab.volatility.types import (
    AssetVolatility,
    BetaStats,
    DistributionStats,
    LogReturn,
    PortfolioRiskInput,
    PortfolioRiskResult,
    PortfolioVolatility,
    PortfolioVolatilityConstituent,
    RunSummary,
    SecurityMarketLine,
    ValueAtRisk,
)
from risqlab.volatility.returns import compute_log_returns, level_log_returns, returns_to_series
from risqlab.volatility.calculator import (
    MIN_RISK_OBSERVATIONS,
    PortfolioRiskError,
    compute_asset_volatility,
    compute_beta_stats,
    compute_distribution_stats,
    compute_portfolio_risk,
    compute_security_market_line,
    compute_value_at_risk,
)
from risqlab.volatility.storage import VOLATILITY_TABLES, VolatilityStorage
from risqlab.volatility.engine import (
    AssetVolatilityEngine,
    BetaStatsEngine,
    DistributionStatsEngine,
    LogReturnEngine,
    PortfolioVolatilityEngine,
    SecurityMarketLineEngine,
    ValueAtRiskEngine,
)
