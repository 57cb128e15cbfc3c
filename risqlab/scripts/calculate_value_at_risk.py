"""Compute historical VaR and CVaR on each asset's latest return date.

Uses the stored log returns of the last ``VAR_WINDOW_DAYS`` days
(365 by default). Run ``calculate_log_returns`` first.
"""

from __future__ import annotations

import argparse
from typing import Optional

from risqlab.core.logging import get_logger
from risqlab.pipeline.tasks import run_value_at_risk


logger = get_logger(__name__)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Compute historical value at risk per asset")
    parser.parse_args(argv)

    summary = run_value_at_risk()
    if summary.failed:
        logger.warning("Value at risk failed for: %s", ", ".join(summary.failures))
        raise SystemExit(1)


if __name__ == "__main__":  # pragma: no cover - manual CLI entry
    main()
