"""RisqLab – Divisor and index level arithmetic.

Pure functions, no database access. All quantities are
:class:`~decimal.Decimal`:

- ``total_market_cap = sum(price * supply)`` over selected constituents
- ``divisor = total_market_cap / base_level`` (once, at initialisation)
- ``index_level = total_market_cap / divisor``
- ``weight_percent = market_cap / total_market_cap * 100``
"""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence

from risqlab.constituents.types import MarketSnapshot
from risqlab.index.types import DIVISOR_QUANTUM, IndexConstituentRecord


_HUNDRED = Decimal("100")


def compute_total_market_cap(constituents: Sequence[MarketSnapshot]) -> Decimal:
    """Return the summed market cap of ``constituents``."""

    return sum((c.market_cap for c in constituents), Decimal("0"))


def compute_divisor(total_market_cap: Decimal, base_level: Decimal) -> Decimal:
    """Return the divisor that maps ``total_market_cap`` to ``base_level``.

    The result is quantised to the scale of the persisted column so that
    the value used in memory and the value read back later are identical.

    Raises:
        ValueError: If either argument is not strictly positive.
    """

    if total_market_cap <= 0:
        raise ValueError(f"Total market cap must be positive, got {total_market_cap}")
    if base_level <= 0:
        raise ValueError(f"Base level must be positive, got {base_level}")

    return (total_market_cap / base_level).quantize(DIVISOR_QUANTUM)


def compute_index_level(total_market_cap: Decimal, divisor: Decimal) -> Decimal:
    """Return ``total_market_cap / divisor``.

    Raises:
        ValueError: If ``divisor`` is not strictly positive.
    """

    if divisor <= 0:
        raise ValueError(f"Divisor must be positive, got {divisor}")
    return total_market_cap / divisor


def build_constituent_records(
    constituents: Sequence[MarketSnapshot],
    total_market_cap: Decimal,
) -> list[IndexConstituentRecord]:
    """Build ranked constituent records with market-cap weights in percent.

    ``constituents`` must already be ranked (rank 1 first).
    """

    if total_market_cap <= 0:
        raise ValueError(f"Total market cap must be positive, got {total_market_cap}")

    return [
        IndexConstituentRecord(
            asset_id=snap.asset_id,
            rank_position=rank,
            price=snap.price,
            circulating_supply=snap.circulating_supply,
            weight_percent=snap.market_cap / total_market_cap * _HUNDRED,
            symbol=snap.symbol,
            market_data_id=snap.market_data_id,
        )
        for rank, snap in enumerate(constituents, start=1)
    ]


__all__ = [
    "build_constituent_records",
    "compute_divisor",
    "compute_index_level",
    "compute_total_market_cap",
]
