"""RisqLab – Constituent selection package.

This package exposes the market snapshot type, the exclusion rules, the
Constituent Selector and the snapshot reader.
"""

from risqlab.constituents.types import (
    EXCLUDED_SYMBOLS,
    STABLECOINS,
    WRAPPER_TOKENS,
    MarketSnapshot,
)
from risqlab.constituents.selector import (
    DEFAULT_MAX_CONSTITUENTS,
    EmptyUniverseError,
    exclusion_reason,
    is_excluded,
    select_constituents,
)
from risqlab.constituents.reader import SnapshotReader
