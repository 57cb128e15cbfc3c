"""Compute rolling skewness and excess kurtosis per asset."""

from __future__ import annotations

import argparse
from typing import Optional

from risqlab.core.logging import get_logger
from risqlab.pipeline.tasks import run_distribution_stats


logger = get_logger(__name__)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Compute return distribution statistics per asset")
    parser.add_argument(
        "--full",
        action="store_true",
        help="Recompute dates that already have distribution statistics",
    )

    args = parser.parse_args(argv)

    summary = run_distribution_stats(full_recompute=args.full)
    if summary.failed:
        logger.warning("Distribution statistics failed for: %s", ", ".join(summary.failures))
        raise SystemExit(1)


if __name__ == "__main__":  # pragma: no cover - manual CLI entry
    main()
