"""Delete all derived volatility data.

Clears portfolio volatility (and its constituents), security market line,
beta, value at risk and distribution statistics, asset volatility and log
returns. Index results are kept.

Example
-------

    python -m risqlab.scripts.clean_volatility_data --yes
"""

from __future__ import annotations

import argparse
from typing import Optional

from risqlab.core.database import get_db_manager
from risqlab.core.logging import get_logger
from risqlab.volatility.storage import VolatilityStorage


logger = get_logger(__name__)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Delete all derived volatility data")
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm the deletion",
    )

    args = parser.parse_args(argv)

    if not args.yes:
        parser.error("This deletes every log return and volatility row; pass --yes to confirm")

    storage = VolatilityStorage(db_manager=get_db_manager())
    counts = storage.clean_all()
    logger.info("Volatility data cleaned: %d rows deleted", sum(counts.values()))


if __name__ == "__main__":  # pragma: no cover - manual CLI entry
    main()
