"""Compute the index portfolio volatility for every index date.

Weights come from the last index result of each date. Requires an
initialised index (run ``calculate_index`` first) and stored log returns.

Examples
--------

    python -m risqlab.scripts.calculate_portfolio_volatility
    python -m risqlab.scripts.calculate_portfolio_volatility --full
"""

from __future__ import annotations

import argparse
from typing import Optional

from risqlab.core.logging import get_logger
from risqlab.pipeline.tasks import run_portfolio_volatility


logger = get_logger(__name__)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Compute covariance-based index portfolio volatility")
    parser.add_argument(
        "--full",
        action="store_true",
        help="Recompute dates that already have a portfolio volatility row",
    )

    args = parser.parse_args(argv)

    summary = run_portfolio_volatility(full_recompute=args.full)
    if summary.failed:
        logger.warning("Portfolio volatility failed for dates: %s", ", ".join(summary.failures))
        raise SystemExit(1)


if __name__ == "__main__":  # pragma: no cover - manual CLI entry
    main()
