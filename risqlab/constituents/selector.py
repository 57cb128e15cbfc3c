"""RisqLab – Constituent selection.

Filters one timestamp's market snapshots down to the eligible index
universe:

1. Drop snapshots with a non-positive market cap.
2. Drop stablecoins, wrapped tokens and liquid-staking derivatives
   (metadata flags first, static symbol list as fallback).
3. Rank by market cap, largest first.
4. Keep the top ``max_constituents``.
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from risqlab.constituents.types import EXCLUDED_SYMBOLS, MarketSnapshot
from risqlab.core.logging import get_logger


logger = get_logger(__name__)

DEFAULT_MAX_CONSTITUENTS = 80


class EmptyUniverseError(ValueError):
    """Raised when no snapshot survives constituent selection."""


def is_excluded(snapshot: MarketSnapshot) -> bool:
    """Return True if ``snapshot`` must not enter the index.

    Metadata flags are authoritative when present. Only when an asset has
    no metadata at all do we fall back to the static symbol list, matched
    case-insensitively.
    """

    if snapshot.has_metadata:
        return bool(snapshot.is_stablecoin or snapshot.is_wrapped or snapshot.is_liquid_staking)

    return (snapshot.symbol or "").upper() in EXCLUDED_SYMBOLS


def exclusion_reason(snapshot: MarketSnapshot) -> Optional[str]:
    """Return a human-readable exclusion reason, or None if eligible."""

    reasons: list[str] = []
    if snapshot.is_stablecoin:
        reasons.append("Stablecoin")
    if snapshot.is_wrapped:
        reasons.append("Wrapped Token")
    if snapshot.is_liquid_staking:
        reasons.append("Liquid Staking")

    if not reasons and not snapshot.has_metadata and (snapshot.symbol or "").upper() in EXCLUDED_SYMBOLS:
        reasons.append("Static List")

    return ", ".join(reasons) if reasons else None


def select_constituents(
    snapshots: Iterable[MarketSnapshot],
    max_constituents: int = DEFAULT_MAX_CONSTITUENTS,
    *,
    verbose: bool = False,
) -> list[MarketSnapshot]:
    """Return the ranked index universe for one snapshot set.

    Args:
        snapshots: All snapshots of a single timestamp.
        max_constituents: Number of assets to keep after ranking.
        verbose: When True, log how many snapshots were excluded and a few
            examples at DEBUG level.

    Returns:
        Snapshots ordered by descending market cap; element 0 is rank 1.

    Raises:
        EmptyUniverseError: If no snapshot is eligible.
    """

    priced = [s for s in snapshots if s.market_cap > 0]
    eligible = [s for s in priced if not is_excluded(s)]

    if verbose:
        excluded: Sequence[MarketSnapshot] = [s for s in priced if is_excluded(s)]
        logger.info(
            "Filtered out %d excluded assets (stablecoins, wrapped, liquid staking)",
            len(excluded),
        )
        for snap in excluded[:10]:
            logger.debug("  - %s: %s", snap.symbol, exclusion_reason(snap))

    # Equal market caps rank by asset_id.
    ranked = sorted(eligible, key=lambda s: (-s.market_cap, s.asset_id))
    selected = ranked[:max_constituents]

    if not selected:
        raise EmptyUniverseError("No eligible constituents in snapshot set")

    return selected


__all__ = [
    "DEFAULT_MAX_CONSTITUENTS",
    "EmptyUniverseError",
    "exclusion_reason",
    "is_excluded",
    "select_constituents",
]
