"""RisqLab – Index Engine core types.

In-memory representations of the index configuration row, computed
index results and their constituent breakdowns. Monetary fields are
:class:`~decimal.Decimal`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple


# Divisor value of a configuration row that has not been initialised yet.
PLACEHOLDER_DIVISOR = Decimal("1")

# Scale of the persisted divisor column (NUMERIC(30, 8)).
DIVISOR_QUANTUM = Decimal("0.00000001")


@dataclass(frozen=True)
class IndexConfiguration:
    """Active configuration of a named index.

    The divisor is fixed by the one-time initialisation transition and is
    only changed again by an explicit reset.

    Attributes:
        config_id: Primary key of the ``index_config`` row.
        index_name: Unique index name (e.g. "RisqLab 80").
        base_level: Index level on the base date.
        divisor: Normalisation constant; ``PLACEHOLDER_DIVISOR`` until
            initialised.
        base_date: Timestamp of the snapshot set the divisor was derived
            from, or None before initialisation.
        max_constituents: Number of constituents kept after ranking.
        is_active: Whether this is the active configuration for the name.
    """

    config_id: str
    index_name: str
    base_level: Decimal
    divisor: Decimal
    base_date: Optional[datetime]
    max_constituents: int
    is_active: bool = True

    @property
    def is_initialised(self) -> bool:
        return self.divisor != PLACEHOLDER_DIVISOR


@dataclass(frozen=True)
class IndexConstituentRecord:
    """One constituent of an index result."""

    asset_id: int
    rank_position: int
    price: Decimal
    circulating_supply: Decimal
    weight_percent: Decimal
    symbol: str = ""
    market_data_id: Optional[int] = None
    index_result_id: Optional[str] = None

    @property
    def market_cap(self) -> Decimal:
        return self.price * self.circulating_supply


@dataclass(frozen=True)
class IndexResult:
    """Index level computed for one snapshot timestamp.

    Attributes:
        index_config_id: Configuration the result belongs to.
        timestamp: Snapshot timestamp.
        total_market_cap: Sum of constituent market caps.
        index_level: ``total_market_cap / divisor_used``.
        divisor_used: Divisor the level was computed with.
        constituent_count: Number of constituents.
        duration_ms: Wall-clock milliseconds spent computing the result.
        constituents: Constituent breakdown ordered by rank.
        index_result_id: Primary key once persisted.
    """

    index_config_id: str
    timestamp: datetime
    total_market_cap: Decimal
    index_level: Decimal
    divisor_used: Decimal
    constituent_count: int
    duration_ms: int
    constituents: Tuple[IndexConstituentRecord, ...] = ()
    index_result_id: Optional[str] = None


@dataclass
class BackfillSummary:
    """Outcome of one pass over a queue of timestamps."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    failed_timestamps: List[datetime] = field(default_factory=list)
    duration_ms: int = 0
    last_result: Optional[IndexResult] = None
