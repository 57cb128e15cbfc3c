"""Compute daily log returns into ``asset_log_returns``.

One closing price per UTC day is taken from ``market_data`` (the latest
snapshot of the day). Only returns dated after an asset's last stored
return are written unless ``--full`` is given.

Examples
--------

    python -m risqlab.scripts.calculate_log_returns
    python -m risqlab.scripts.calculate_log_returns --full
"""

from __future__ import annotations

import argparse
from typing import Optional

from risqlab.core.logging import get_logger
from risqlab.pipeline.tasks import run_log_returns


logger = get_logger(__name__)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Compute daily log returns for every priced asset")
    parser.add_argument(
        "--full",
        action="store_true",
        help="Recompute every return instead of only those after the last stored date",
    )

    args = parser.parse_args(argv)

    summary = run_log_returns(full_recompute=args.full)
    if summary.failed:
        logger.warning("Log returns failed for: %s", ", ".join(summary.failures))
        raise SystemExit(1)


if __name__ == "__main__":  # pragma: no cover - manual CLI entry
    main()
