"""Compute rolling per-asset volatility into ``asset_volatility``.

The window length and annualisation factor come from
``VOLATILITY_WINDOW_DAYS`` and ``ANNUALIZATION_DAYS``. Assets without a
complete window are skipped.
"""

from __future__ import annotations

import argparse
from typing import Optional

from risqlab.core.logging import get_logger
from risqlab.pipeline.tasks import run_asset_volatility


logger = get_logger(__name__)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Compute rolling volatility for every asset with log returns")
    parser.add_argument(
        "--full",
        action="store_true",
        help="Recompute dates that already have a volatility row",
    )

    args = parser.parse_args(argv)

    summary = run_asset_volatility(full_recompute=args.full)
    if summary.failed:
        logger.warning("Asset volatility failed for: %s", ", ".join(summary.failures))
        raise SystemExit(1)


if __name__ == "__main__":  # pragma: no cover - manual CLI entry
    main()
