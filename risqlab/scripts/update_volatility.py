"""Run the full volatility pipeline.

Steps, in order: log returns, asset volatility, portfolio volatility,
distribution statistics, value at risk, beta and the security market
line. A step that cannot run at all (for example an
index without a divisor) aborts the pipeline.

Example
-------

    python -m risqlab.scripts.update_volatility
"""

from __future__ import annotations

import argparse
from typing import Optional

from risqlab.core.logging import get_logger
from risqlab.pipeline.tasks import run_update_volatility


logger = get_logger(__name__)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Update log returns, volatility and per-asset risk statistics")
    parser.add_argument(
        "--full",
        action="store_true",
        help="Recompute every step from scratch instead of filling gaps",
    )

    args = parser.parse_args(argv)

    summary = run_update_volatility(full_recompute=args.full)
    if summary.failed:
        logger.warning("Volatility update finished with %d failed units", summary.failed)
        raise SystemExit(1)


if __name__ == "__main__":  # pragma: no cover - manual CLI entry
    main()
