"""RisqLab – Index engine.

Computes the market-cap weighted index level for every snapshot
timestamp:

- ``ensure_configuration`` loads the active configuration and performs
  the one-time divisor initialisation from the most recent snapshot set.
- ``run`` fills every snapshot timestamp that has no result yet, oldest
  first, as an explicit work queue. A failure at one timestamp is logged
  and counted; the queue continues.
- ``recompute`` deletes and recomputes given timestamps.
- ``reset_divisor`` returns the configuration to its placeholder divisor
  so the next run re-initialises it.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Deque, Iterable, Optional

from risqlab.constituents.reader import SnapshotReader
from risqlab.constituents.selector import select_constituents
from risqlab.core.config import IndexSettings
from risqlab.core.logging import get_logger
from risqlab.index.calculator import (
    build_constituent_records,
    compute_divisor,
    compute_index_level,
    compute_total_market_cap,
)
from risqlab.index.storage import IndexStorage
from risqlab.index.types import (
    PLACEHOLDER_DIVISOR,
    BackfillSummary,
    IndexConfiguration,
    IndexResult,
)


logger = get_logger(__name__)

_BILLION = Decimal("1e9")


def _elapsed_ms(start: float) -> int:
    return int(round((time.perf_counter() - start) * 1000))


@dataclass
class IndexEngine:
    """Orchestrate divisor initialisation and index level backfill.

    Attributes:
        reader: Source of market snapshots.
        storage: Persistence for configuration and results.
        settings: Defaults used when the configuration row is created.
    """

    reader: SnapshotReader
    storage: IndexStorage
    settings: IndexSettings

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def ensure_configuration(self) -> IndexConfiguration:
        """Return the active configuration, initialising the divisor if needed.

        Raises:
            EmptyUniverseError: If the most recent snapshot set has no
                eligible constituent, so no divisor can be derived.
        """

        config = self.storage.get_active_configuration(self.settings.name)

        if config is not None and config.is_initialised:
            logger.info(
                "Using existing configuration for %s (divisor=%s, base_date=%s)",
                config.index_name,
                config.divisor,
                config.base_date,
            )
            return config

        snapshots = self.reader.get_most_recent_snapshots()
        max_constituents = config.max_constituents if config is not None else self.settings.max_constituents
        base_level = config.base_level if config is not None else self.settings.base_level

        constituents = select_constituents(snapshots, max_constituents)
        total = compute_total_market_cap(constituents)
        divisor = compute_divisor(total, base_level)
        base_date = constituents[0].timestamp

        if config is None:
            config = self.storage.create_configuration(
                index_name=self.settings.name,
                base_level=base_level,
                divisor=divisor,
                base_date=base_date,
                max_constituents=max_constituents,
            )
        else:
            self.storage.set_divisor(config.config_id, divisor, base_date)
            config = replace(config, divisor=divisor, base_date=base_date)

        logger.info(
            "Initialised %s: total market cap $%sB, divisor %s, base level %s, base date %s",
            config.index_name,
            (total / _BILLION).quantize(Decimal("0.01")),
            divisor,
            base_level,
            base_date,
        )
        return config

    def reset_divisor(self) -> Optional[IndexConfiguration]:
        """Reset the active configuration's divisor to the placeholder.

        Returns:
            The reset configuration, or None if no configuration exists.
        """

        config = self.storage.get_active_configuration(self.settings.name)
        if config is None:
            logger.warning("No active configuration for %s; nothing to reset", self.settings.name)
            return None

        self.storage.reset_divisor(config.config_id)
        logger.info(
            "Reset divisor of %s from %s to placeholder %s",
            config.index_name,
            config.divisor,
            PLACEHOLDER_DIVISOR,
        )
        return replace(config, divisor=PLACEHOLDER_DIVISOR, base_date=None)

    # ------------------------------------------------------------------
    # Per-timestamp calculation
    # ------------------------------------------------------------------

    def calculate_for_timestamp(
        self,
        config: IndexConfiguration,
        timestamp: datetime,
        verbose: bool = False,
    ) -> IndexResult:
        """Compute, persist and return the index result for ``timestamp``.

        Raises:
            EmptyUniverseError: If no snapshot at ``timestamp`` is eligible.
        """

        start = time.perf_counter()

        snapshots = self.reader.get_snapshots(timestamp)
        constituents = select_constituents(snapshots, config.max_constituents, verbose=verbose)
        total = compute_total_market_cap(constituents)
        level = compute_index_level(total, config.divisor)
        records = build_constituent_records(constituents, total)

        result = IndexResult(
            index_config_id=config.config_id,
            timestamp=timestamp,
            total_market_cap=total,
            index_level=level,
            divisor_used=config.divisor,
            constituent_count=len(records),
            duration_ms=_elapsed_ms(start),
            constituents=tuple(records),
        )
        result_id = self.storage.save_result(result)

        logger.info(
            "%s | Index Level: %s | Constituents: %d | Market Cap: $%sB (%dms)",
            timestamp,
            level.quantize(Decimal("0.0001")),
            len(records),
            (total / _BILLION).quantize(Decimal("0.01")),
            result.duration_ms,
        )

        if verbose:
            logger.info("Top 10 constituents:")
            for record in records[:10]:
                logger.info(
                    "  %2d. %-8s %6s%%  ($%sB)",
                    record.rank_position,
                    record.symbol,
                    record.weight_percent.quantize(Decimal("0.01")),
                    (record.market_cap / _BILLION).quantize(Decimal("0.01")),
                )

        return replace(result, index_result_id=result_id)

    # ------------------------------------------------------------------
    # Batch operations
    # ------------------------------------------------------------------

    def _process_queue(self, config: IndexConfiguration, queue: Deque[datetime]) -> BackfillSummary:
        summary = BackfillSummary(total=len(queue))
        start = time.perf_counter()

        while queue:
            timestamp = queue.popleft()
            # Only the last timestamp of the run is reported in detail.
            verbose = not queue
            try:
                summary.last_result = self.calculate_for_timestamp(config, timestamp, verbose=verbose)
                summary.succeeded += 1
            except Exception as exc:
                logger.error("Failed to calculate index for %s: %s", timestamp, exc)
                summary.failed += 1
                summary.failed_timestamps.append(timestamp)

        summary.duration_ms = _elapsed_ms(start)
        logger.info(
            "Index run complete: %d processed, %d succeeded, %d failed (%dms)",
            summary.total,
            summary.succeeded,
            summary.failed,
            summary.duration_ms,
        )
        return summary

    def run(self) -> BackfillSummary:
        """Compute every snapshot timestamp that has no result yet."""

        config = self.ensure_configuration()
        missing = self.storage.get_missing_timestamps(config.config_id)

        if not missing:
            logger.info("No missing timestamps for %s; index is up to date", config.index_name)
            return BackfillSummary()

        logger.info("Found %d timestamps without an index result", len(missing))
        return self._process_queue(config, deque(sorted(missing)))

    def recompute(self, timestamps: Iterable[datetime]) -> BackfillSummary:
        """Delete and recompute the results for ``timestamps``."""

        config = self.ensure_configuration()
        ordered = sorted(set(timestamps))
        if not ordered:
            return BackfillSummary()

        deleted = self.storage.delete_results(config.config_id, ordered)
        logger.info(
            "Recomputing %d timestamps for %s (%d existing results deleted)",
            len(ordered),
            config.index_name,
            deleted,
        )
        return self._process_queue(config, deque(ordered))


__all__ = ["IndexEngine"]
