"""RisqLab – Volatility engines.

Batch orchestration over the pure calculators:

- :class:`LogReturnEngine` – daily closing prices to ``asset_log_returns``.
- :class:`AssetVolatilityEngine` – rolling volatility per asset.
- :class:`PortfolioVolatilityEngine` – covariance-based volatility of the
  index constituents per index date.
- :class:`DistributionStatsEngine` – skewness / excess kurtosis per asset.
- :class:`ValueAtRiskEngine` – historical VaR and CVaR per asset.
- :class:`BetaStatsEngine` and :class:`SecurityMarketLineEngine` – each
  asset regressed on the daily index returns.

Each ``run`` processes its units (assets or dates) one at a time. A
failing unit is logged and counted and the run continues; the returned
:class:`RunSummary` reports the counts.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple, TypeVar

import pandas as pd

from risqlab.constituents.reader import SnapshotReader
from risqlab.core.config import VolatilitySettings
from risqlab.core.logging import get_logger
from risqlab.index.storage import IndexNotInitialisedError, IndexStorage
from risqlab.volatility.calculator import (
    MIN_RISK_OBSERVATIONS,
    compute_asset_volatility,
    compute_beta_stats,
    compute_distribution_stats,
    compute_portfolio_risk,
    compute_security_market_line,
    compute_value_at_risk,
)
from risqlab.volatility.returns import compute_log_returns, level_log_returns
from risqlab.volatility.storage import VolatilityStorage
from risqlab.volatility.types import (
    LogReturn,
    PortfolioRiskInput,
    PortfolioVolatility,
    RunSummary,
)


logger = get_logger(__name__)

# Bias-corrected kurtosis is undefined below four observations.
MIN_DISTRIBUTION_WINDOW = 4

_Dated = TypeVar("_Dated")


def _elapsed_ms(start: float) -> int:
    return int(round((time.perf_counter() - start) * 1000))


def _run_per_asset(
    name: str,
    assets: Iterable[Tuple[int, str]],
    process: Callable[[int, str], int],
) -> RunSummary:
    """Apply ``process`` to every asset and aggregate a summary.

    ``process`` returns the number of rows written; 0 counts as skipped.
    """

    summary = RunSummary(name=name)
    start = time.perf_counter()

    for asset_id, symbol in assets:
        summary.processed += 1
        try:
            written = process(asset_id, symbol)
        except Exception as exc:
            logger.error("%s failed for %s: %s", name, symbol, exc)
            summary.failed += 1
            summary.failures.append(symbol)
            continue

        if written:
            summary.succeeded += 1
            summary.rows_written += written
        else:
            summary.skipped += 1

    summary.duration_ms = _elapsed_ms(start)
    _log_summary(summary)
    return summary


def _log_summary(summary: RunSummary) -> None:
    logger.info(
        "%s complete: %d processed, %d succeeded, %d skipped, %d failed, %d rows written (%dms)",
        summary.name,
        summary.processed,
        summary.succeeded,
        summary.skipped,
        summary.failed,
        summary.rows_written,
        summary.duration_ms,
    )


def _price_changed(computed: LogReturn, stored: Optional[LogReturn]) -> bool:
    if stored is None:
        return True
    return (computed.price_current, computed.price_previous) != (stored.price_current, stored.price_previous)


def _pending(records: Sequence[_Dated], existing: Set[date]) -> List[_Dated]:
    """Return records not stored yet plus those on or after the latest stored date.

    The latest stored date may have been computed from a closing price
    that a later snapshot of the same day has since replaced.
    """

    if not existing:
        return list(records)
    latest = max(existing)
    return [r for r in records if r.date >= latest or r.date not in existing]


@dataclass
class LogReturnEngine:
    """Compute and store daily log returns for every priced asset.

    Without ``full_recompute`` only returns dated after an asset's last
    stored return are written, plus the last stored day itself when its
    closing price has moved since (a later snapshot of that day arrived).
    """

    reader: SnapshotReader
    storage: VolatilityStorage
    full_recompute: bool = False

    def _process(self, asset_id: int, symbol: str) -> int:
        prices = self.reader.get_daily_closing_prices(asset_id)
        returns = compute_log_returns(prices, asset_id=asset_id)

        if not self.full_recompute:
            last = self.storage.get_last_log_return_date(asset_id)
            if last is not None:
                stored = {r.date: r for r in self.storage.get_log_returns(asset_id, last, 1)}
                returns = [
                    r
                    for r in returns
                    if r.date > last or (r.date == last and _price_changed(r, stored.get(last)))
                ]

        if not returns:
            logger.debug("%s: no new log returns", symbol)
            return 0
        return self.storage.save_log_returns(returns)

    def run(self) -> RunSummary:
        assets = self.reader.get_assets_with_prices()
        logger.info("Calculating log returns for %d assets", len(assets))
        return _run_per_asset("Log returns", assets, self._process)


@dataclass
class AssetVolatilityEngine:
    """Compute and store rolling volatility for every asset with returns."""

    storage: VolatilityStorage
    settings: VolatilitySettings
    full_recompute: bool = False

    def _process(self, asset_id: int, symbol: str) -> int:
        series = self.storage.get_log_return_series(asset_id)
        records = compute_asset_volatility(
            asset_id,
            series,
            self.settings.window_days,
            self.settings.annualization_days,
        )
        if not records:
            logger.debug(
                "%s: insufficient history for a %d-day window (%d returns)",
                symbol,
                self.settings.window_days,
                len(series),
            )
            return 0

        if not self.full_recompute:
            records = _pending(records, self.storage.get_asset_volatility_dates(asset_id, self.settings.window_days))

        return self.storage.save_asset_volatility(records)

    def run(self) -> RunSummary:
        assets = self.storage.get_assets_with_log_returns()
        logger.info(
            "Calculating %d-day volatility for %d assets",
            self.settings.window_days,
            len(assets),
        )
        return _run_per_asset("Asset volatility", assets, self._process)


@dataclass
class DistributionStatsEngine:
    """Compute and store rolling skewness and excess kurtosis per asset."""

    storage: VolatilityStorage
    settings: VolatilitySettings
    full_recompute: bool = False

    def __post_init__(self) -> None:
        if self.settings.window_days < MIN_DISTRIBUTION_WINDOW:
            raise ValueError(
                f"Distribution statistics need a window of at least {MIN_DISTRIBUTION_WINDOW} days, "
                f"got {self.settings.window_days}"
            )

    def _process(self, asset_id: int, symbol: str) -> int:
        series = self.storage.get_log_return_series(asset_id)
        records = compute_distribution_stats(asset_id, series, self.settings.window_days)
        if not records:
            logger.debug("%s: insufficient history for distribution statistics", symbol)
            return 0

        if not self.full_recompute:
            records = _pending(records, self.storage.get_distribution_stats_dates(asset_id, self.settings.window_days))

        return self.storage.save_distribution_stats(records)

    def run(self) -> RunSummary:
        assets = self.storage.get_assets_with_log_returns()
        logger.info("Calculating distribution statistics for %d assets", len(assets))
        return _run_per_asset("Distribution statistics", assets, self._process)


@dataclass
class PortfolioVolatilityEngine:
    """Compute and store index portfolio volatility per index date.

    Weights come from the last index result of each date. Constituents
    without a complete return window on that date are dropped and the
    remaining weights re-normalised.

    Attributes:
        index_storage: Source of the active configuration and constituents.
        storage: Volatility persistence.
        index_name: Name of the index whose constituents are used.
        settings: Window, annualisation and minimum constituent count.
        full_recompute: Recompute dates that already have a result.
    """

    index_storage: IndexStorage
    storage: VolatilityStorage
    index_name: str
    settings: VolatilitySettings
    full_recompute: bool = False
    _series_cache: Dict[int, pd.Series] = field(default_factory=dict, init=False, repr=False)

    def _returns(self, asset_id: int) -> pd.Series:
        if asset_id not in self._series_cache:
            self._series_cache[asset_id] = self.storage.get_log_return_series(asset_id)
        return self._series_cache[asset_id]

    def _dates_to_process(self, config_id: str, available: Iterable[date]) -> List[date]:
        if self.full_recompute:
            return sorted(available)
        available_set = set(available)
        window_days = self.settings.window_days
        pending = set(self.storage.get_dates_missing_portfolio_volatility(config_id, window_days))
        # The latest stored date may rest on an intraday index result.
        latest = self.storage.get_last_portfolio_volatility_date(config_id, window_days)
        if latest is not None:
            pending.add(latest)
        return sorted(d for d in pending if d in available_set)

    def run(self) -> RunSummary:
        """Process every index date without a portfolio volatility row.

        The latest stored date is recomputed as well, since a later index
        result of that day replaces the weights it was built from.

        Raises:
            IndexNotInitialisedError: If the index has no initialised
                configuration.
        """

        config = self.index_storage.get_active_configuration(self.index_name)
        if config is None or not config.is_initialised:
            raise IndexNotInitialisedError(f"Index {self.index_name!r} has no initialised configuration")

        constituents_by_date = self.index_storage.get_latest_constituents_by_date(config.config_id)
        dates = self._dates_to_process(config.config_id, constituents_by_date.keys())
        logger.info(
            "Calculating %d-day portfolio volatility for %d dates",
            self.settings.window_days,
            len(dates),
        )

        summary = RunSummary(name="Portfolio volatility")
        start = time.perf_counter()
        self._series_cache.clear()

        for as_of in dates:
            summary.processed += 1
            unit_start = time.perf_counter()
            try:
                inputs = [
                    PortfolioRiskInput(
                        asset_id=c.asset_id,
                        symbol=c.symbol,
                        market_cap=c.market_cap,
                        returns=self._returns(c.asset_id),
                    )
                    for c in constituents_by_date[as_of]
                ]
                result = compute_portfolio_risk(
                    inputs,
                    self.settings.window_days,
                    self.settings.annualization_days,
                    end_date=as_of,
                )
                if result is None or result.constituent_count < self.settings.min_portfolio_constituents:
                    logger.debug(
                        "%s: %d constituents with full history, below minimum %d",
                        as_of,
                        0 if result is None else result.constituent_count,
                        self.settings.min_portfolio_constituents,
                    )
                    summary.skipped += 1
                    continue

                record = PortfolioVolatility(
                    index_config_id=config.config_id,
                    date=as_of,
                    window_days=result.window_days,
                    daily_volatility=result.daily_volatility,
                    annualized_volatility=result.annualized_volatility,
                    constituent_count=result.constituent_count,
                    total_market_cap=result.total_market_cap,
                    weighted_avg_volatility=result.weighted_avg_volatility,
                    diversification_benefit=result.diversification_benefit,
                    diversification_benefit_pct=result.diversification_benefit_pct,
                    duration_ms=_elapsed_ms(unit_start),
                    constituents=result.constituents,
                )
                self.storage.save_portfolio_volatility(record)
            except Exception as exc:
                logger.error("Portfolio volatility failed for %s: %s", as_of, exc)
                summary.failed += 1
                summary.failures.append(as_of.isoformat())
                continue

            summary.succeeded += 1
            summary.rows_written += 1 + record.constituent_count
            logger.info(
                "%s | Portfolio vol: %.2f%% | Weighted avg: %.2f%% | Diversification: %.2f%% | "
                "Constituents: %d (%d excluded)",
                as_of,
                result.annualized_volatility * 100,
                result.weighted_avg_volatility * 100,
                result.diversification_benefit_pct,
                result.constituent_count,
                len(result.excluded_asset_ids),
            )

        summary.duration_ms = _elapsed_ms(start)
        _log_summary(summary)
        return summary


@dataclass
class ValueAtRiskEngine:
    """Compute and store historical VaR/CVaR on each asset's latest return date.

    The latest date is always rewritten, so a run after a later snapshot
    of the same day replaces the figure.
    """

    storage: VolatilityStorage
    settings: VolatilitySettings

    def _process(self, asset_id: int, symbol: str) -> int:
        last = self.storage.get_last_log_return_date(asset_id)
        if last is None:
            return 0

        window = self.storage.get_log_returns(asset_id, last, self.settings.var_window_days)
        record = compute_value_at_risk(asset_id, window, self.settings.var_window_days)
        if record is None:
            logger.debug(
                "%s: %d returns in the last %d days, below minimum %d",
                symbol,
                len(window),
                self.settings.var_window_days,
                MIN_RISK_OBSERVATIONS,
            )
            return 0
        return self.storage.save_value_at_risk([record])

    def run(self) -> RunSummary:
        assets = self.storage.get_assets_with_log_returns()
        logger.info("Calculating value at risk for %d assets", len(assets))
        return _run_per_asset("Value at risk", assets, self._process)


def _market_returns(index_storage: IndexStorage, storage: VolatilityStorage, index_name: str) -> pd.Series:
    config = index_storage.get_active_configuration(index_name)
    if config is None or not config.is_initialised:
        raise IndexNotInitialisedError(f"Index {index_name!r} has no initialised configuration")
    return level_log_returns(storage.get_index_daily_levels(config.config_id))


@dataclass
class _MarketRiskEngine:
    """Shared driver for figures measured against the index returns.

    Attributes:
        index_storage: Source of the active index configuration.
        storage: Volatility persistence, also the source of index levels.
        index_name: Name of the index used as the market.
        settings: ``window_days`` is the largest regression window.
        full_recompute: Recompute dates that already have a result.
    """

    index_storage: IndexStorage
    storage: VolatilityStorage
    index_name: str
    settings: VolatilitySettings
    full_recompute: bool = False

    name = "Market risk"

    def __post_init__(self) -> None:
        if self.settings.window_days < MIN_RISK_OBSERVATIONS:
            raise ValueError(
                f"{self.name} needs a window of at least {MIN_RISK_OBSERVATIONS} days, got {self.settings.window_days}"
            )

    def _compute(self, asset_id: int, series: pd.Series, market: pd.Series) -> list:
        raise NotImplementedError

    def _stored_dates(self, asset_id: int) -> Set[date]:
        raise NotImplementedError

    def _save(self, records: list) -> int:
        raise NotImplementedError

    def run(self) -> RunSummary:
        """Process every asset with stored returns.

        Raises:
            IndexNotInitialisedError: If the index has no initialised
                configuration.
        """

        market = _market_returns(self.index_storage, self.storage, self.index_name)
        if len(market) < MIN_RISK_OBSERVATIONS:
            logger.warning(
                "%s: only %d index return days, at least %d needed",
                self.name,
                len(market),
                MIN_RISK_OBSERVATIONS,
            )
            return RunSummary(name=self.name)

        def process(asset_id: int, symbol: str) -> int:
            records = self._compute(asset_id, self.storage.get_log_return_series(asset_id), market)
            if not records:
                logger.debug("%s: fewer than %d dates in common with the index", symbol, MIN_RISK_OBSERVATIONS)
                return 0
            if not self.full_recompute:
                records = _pending(records, self._stored_dates(asset_id))
            return self._save(records)

        assets = self.storage.get_assets_with_log_returns()
        logger.info(
            "Calculating %s for %d assets against %d index returns",
            self.name.lower(),
            len(assets),
            len(market),
        )
        return _run_per_asset(self.name, assets, process)


@dataclass
class BetaStatsEngine(_MarketRiskEngine):
    """Compute and store beta, alpha and correlation against the index."""

    name = "Beta statistics"

    def _compute(self, asset_id: int, series: pd.Series, market: pd.Series) -> list:
        return compute_beta_stats(asset_id, series, market, self.settings.window_days)

    def _stored_dates(self, asset_id: int) -> Set[date]:
        return self.storage.get_beta_stats_dates(asset_id)

    def _save(self, records: list) -> int:
        return self.storage.save_beta_stats(records)


@dataclass
class SecurityMarketLineEngine(_MarketRiskEngine):
    """Compute and store each asset's position against the security market line."""

    name = "Security market line"

    def _compute(self, asset_id: int, series: pd.Series, market: pd.Series) -> list:
        return compute_security_market_line(
            asset_id,
            series,
            market,
            self.settings.window_days,
            self.settings.annualization_days,
        )

    def _stored_dates(self, asset_id: int) -> Set[date]:
        return self.storage.get_sml_stats_dates(asset_id)

    def _save(self, records: list) -> int:
        return self.storage.save_sml_stats(records)


__all__ = [
    "AssetVolatilityEngine",
    "BetaStatsEngine",
    "DistributionStatsEngine",
    "LogReturnEngine",
    "MIN_DISTRIBUTION_WINDOW",
    "PortfolioVolatilityEngine",
    "SecurityMarketLineEngine",
    "ValueAtRiskEngine",
]
