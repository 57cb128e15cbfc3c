"""RisqLab – Pipeline tasks.

Each task wires one engine to its storage from the loaded configuration
and runs it. The two pipelines chain the tasks in data-flow order:

    update_volatility: log returns -> asset volatility
                       -> portfolio volatility -> distribution stats
                       -> value at risk -> beta -> security market line
    update_all:        index backfill -> update_volatility

Per-unit failures are counted inside each step. An exception escaping a
step (no constituents to initialise the divisor, index not initialised,
database unavailable) aborts the pipeline.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import List, Optional, Union

from risqlab.constituents.reader import SnapshotReader
from risqlab.core.config import RisqlabConfig, get_config
from risqlab.core.database import DatabaseManager, get_db_manager
from risqlab.core.ids import generate_run_id
from risqlab.core.logging import get_logger
from risqlab.index.engine import IndexEngine
from risqlab.index.storage import IndexStorage
from risqlab.index.types import BackfillSummary
from risqlab.volatility.engine import (
    AssetVolatilityEngine,
    BetaStatsEngine,
    DistributionStatsEngine,
    LogReturnEngine,
    PortfolioVolatilityEngine,
    SecurityMarketLineEngine,
    ValueAtRiskEngine,
)
from risqlab.volatility.storage import VolatilityStorage
from risqlab.volatility.types import RunSummary


logger = get_logger(__name__)

StepSummary = Union[BackfillSummary, RunSummary]


@dataclass
class PipelineSummary:
    """Summaries of every step of a pipeline run."""

    run_id: str
    steps: List[StepSummary] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def failed(self) -> int:
        return sum(step.failed for step in self.steps)


def _resolve(
    db_manager: Optional[DatabaseManager],
    config: Optional[RisqlabConfig],
) -> tuple[DatabaseManager, RisqlabConfig]:
    return db_manager or get_db_manager(), config or get_config()


def build_index_engine(
    db_manager: Optional[DatabaseManager] = None,
    config: Optional[RisqlabConfig] = None,
) -> IndexEngine:
    db_manager, config = _resolve(db_manager, config)
    return IndexEngine(
        reader=SnapshotReader(db_manager=db_manager),
        storage=IndexStorage(db_manager=db_manager),
        settings=config.index,
    )


def run_index(
    db_manager: Optional[DatabaseManager] = None,
    config: Optional[RisqlabConfig] = None,
) -> BackfillSummary:
    return build_index_engine(db_manager, config).run()


def run_log_returns(
    db_manager: Optional[DatabaseManager] = None,
    *,
    full_recompute: bool = False,
) -> RunSummary:
    db_manager = db_manager or get_db_manager()
    engine = LogReturnEngine(
        reader=SnapshotReader(db_manager=db_manager),
        storage=VolatilityStorage(db_manager=db_manager),
        full_recompute=full_recompute,
    )
    return engine.run()


def run_asset_volatility(
    db_manager: Optional[DatabaseManager] = None,
    config: Optional[RisqlabConfig] = None,
    *,
    full_recompute: bool = False,
) -> RunSummary:
    db_manager, config = _resolve(db_manager, config)
    engine = AssetVolatilityEngine(
        storage=VolatilityStorage(db_manager=db_manager),
        settings=config.volatility,
        full_recompute=full_recompute,
    )
    return engine.run()


def run_portfolio_volatility(
    db_manager: Optional[DatabaseManager] = None,
    config: Optional[RisqlabConfig] = None,
    *,
    full_recompute: bool = False,
) -> RunSummary:
    db_manager, config = _resolve(db_manager, config)
    engine = PortfolioVolatilityEngine(
        index_storage=IndexStorage(db_manager=db_manager),
        storage=VolatilityStorage(db_manager=db_manager),
        index_name=config.index.name,
        settings=config.volatility,
        full_recompute=full_recompute,
    )
    return engine.run()


def run_distribution_stats(
    db_manager: Optional[DatabaseManager] = None,
    config: Optional[RisqlabConfig] = None,
    *,
    full_recompute: bool = False,
) -> RunSummary:
    db_manager, config = _resolve(db_manager, config)
    engine = DistributionStatsEngine(
        storage=VolatilityStorage(db_manager=db_manager),
        settings=config.volatility,
        full_recompute=full_recompute,
    )
    return engine.run()


def run_value_at_risk(
    db_manager: Optional[DatabaseManager] = None,
    config: Optional[RisqlabConfig] = None,
) -> RunSummary:
    db_manager, config = _resolve(db_manager, config)
    engine = ValueAtRiskEngine(
        storage=VolatilityStorage(db_manager=db_manager),
        settings=config.volatility,
    )
    return engine.run()


def run_beta_stats(
    db_manager: Optional[DatabaseManager] = None,
    config: Optional[RisqlabConfig] = None,
    *,
    full_recompute: bool = False,
) -> RunSummary:
    db_manager, config = _resolve(db_manager, config)
    engine = BetaStatsEngine(
        index_storage=IndexStorage(db_manager=db_manager),
        storage=VolatilityStorage(db_manager=db_manager),
        index_name=config.index.name,
        settings=config.volatility,
        full_recompute=full_recompute,
    )
    return engine.run()


def run_sml_stats(
    db_manager: Optional[DatabaseManager] = None,
    config: Optional[RisqlabConfig] = None,
    *,
    full_recompute: bool = False,
) -> RunSummary:
    db_manager, config = _resolve(db_manager, config)
    engine = SecurityMarketLineEngine(
        index_storage=IndexStorage(db_manager=db_manager),
        storage=VolatilityStorage(db_manager=db_manager),
        index_name=config.index.name,
        settings=config.volatility,
        full_recompute=full_recompute,
    )
    return engine.run()


def run_update_volatility(
    db_manager: Optional[DatabaseManager] = None,
    config: Optional[RisqlabConfig] = None,
    *,
    full_recompute: bool = False,
    run_id: Optional[str] = None,
) -> PipelineSummary:
    """Run the volatility and risk metric steps in order."""

    db_manager, config = _resolve(db_manager, config)
    summary = PipelineSummary(run_id=run_id or generate_run_id("volatility"))
    start = time.perf_counter()

    steps = (
        ("Log returns", lambda: run_log_returns(db_manager, full_recompute=full_recompute)),
        ("Asset volatility", lambda: run_asset_volatility(db_manager, config, full_recompute=full_recompute)),
        (
            "Portfolio volatility",
            lambda: run_portfolio_volatility(db_manager, config, full_recompute=full_recompute),
        ),
        (
            "Distribution statistics",
            lambda: run_distribution_stats(db_manager, config, full_recompute=full_recompute),
        ),
        ("Value at risk", lambda: run_value_at_risk(db_manager, config)),
        ("Beta statistics", lambda: run_beta_stats(db_manager, config, full_recompute=full_recompute)),
        ("Security market line", lambda: run_sml_stats(db_manager, config, full_recompute=full_recompute)),
    )

    for number, (name, step) in enumerate(steps, start=1):
        logger.info("[%s] Step %d/%d: %s", summary.run_id, number, len(steps), name)
        summary.steps.append(step())

    summary.duration_ms = int(round((time.perf_counter() - start) * 1000))
    logger.info(
        "[%s] Volatility update complete: %d steps, %d failed units (%dms)",
        summary.run_id,
        len(summary.steps),
        summary.failed,
        summary.duration_ms,
    )
    return summary


def run_update_all(
    db_manager: Optional[DatabaseManager] = None,
    config: Optional[RisqlabConfig] = None,
    *,
    full_recompute: bool = False,
) -> PipelineSummary:
    """Backfill the index, then run :func:`run_update_volatility`."""

    db_manager, config = _resolve(db_manager, config)
    run_id = generate_run_id("update")
    start = time.perf_counter()

    logger.info("[%s] Index backfill", run_id)
    index_summary = run_index(db_manager, config)

    volatility = run_update_volatility(db_manager, config, full_recompute=full_recompute, run_id=run_id)

    summary = PipelineSummary(run_id=run_id, steps=[index_summary, *volatility.steps])
    summary.duration_ms = int(round((time.perf_counter() - start) * 1000))
    logger.info(
        "[%s] Full update complete: %d failed units (%dms)",
        run_id,
        summary.failed,
        summary.duration_ms,
    )
    return summary


__all__ = [
    "PipelineSummary",
    "build_index_engine",
    "run_asset_volatility",
    "run_beta_stats",
    "run_distribution_stats",
    "run_index",
    "run_log_returns",
    "run_portfolio_volatility",
    "run_sml_stats",
    "run_update_all",
    "run_update_volatility",
    "run_value_at_risk",
]
