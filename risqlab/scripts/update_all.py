"""Backfill the index, then run the volatility pipeline."""

from __future__ import annotations

import argparse
from typing import Optional

from risqlab.core.logging import get_logger
from risqlab.pipeline.tasks import run_update_all


logger = get_logger(__name__)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Update the index and all volatility data")
    parser.add_argument(
        "--full",
        action="store_true",
        help="Recompute volatility steps from scratch instead of filling gaps",
    )

    args = parser.parse_args(argv)

    summary = run_update_all(full_recompute=args.full)
    if summary.failed:
        logger.warning("Update finished with %d failed units", summary.failed)
        raise SystemExit(1)


if __name__ == "__main__":  # pragma: no cover - manual CLI entry
    main()
