"""RisqLab – Index construction package.

This package exposes the index types, the divisor/level arithmetic, the
storage helper and the :class:`IndexEngine`.
"""

from risqlab.index.types import (
    DIVISOR_QUANTUM,
    PLACEHOLDER_DIVISOR,
    BackfillSummary,
    IndexConfiguration,
    IndexConstituentRecord,
    IndexResult,
)
from risqlab.index.calculator import (
    build_constituent_records,
    compute_divisor,
    compute_index_level,
    compute_total_market_cap,
)
from risqlab.index.storage import IndexNotInitialisedError, IndexStorage
from risqlab.index.engine import IndexEngine
