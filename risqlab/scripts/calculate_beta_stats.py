"""Regress each asset's log returns on the daily index returns.

Requires an initialised index with history (run ``calculate_index``
first) and stored log returns.

Examples
--------

    python -m risqlab.scripts.calculate_beta_stats
    python -m risqlab.scripts.calculate_beta_stats --full
"""

from __future__ import annotations

import argparse
from typing import Optional

from risqlab.core.logging import get_logger
from risqlab.pipeline.tasks import run_beta_stats


logger = get_logger(__name__)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Compute beta, alpha and correlation against the index")
    parser.add_argument(
        "--full",
        action="store_true",
        help="Recompute dates that already have beta statistics",
    )

    args = parser.parse_args(argv)

    summary = run_beta_stats(full_recompute=args.full)
    if summary.failed:
        logger.warning("Beta statistics failed for: %s", ", ".join(summary.failures))
        raise SystemExit(1)


if __name__ == "__main__":  # pragma: no cover - manual CLI entry
    main()
