"""Place each asset against the security market line of the index."""

from __future__ import annotations

import argparse
from typing import Optional

from risqlab.core.logging import get_logger
from risqlab.pipeline.tasks import run_sml_stats


logger = get_logger(__name__)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Compute CAPM expected versus realised returns per asset")
    parser.add_argument(
        "--full",
        action="store_true",
        help="Recompute dates that already have security market line statistics",
    )

    args = parser.parse_args(argv)

    summary = run_sml_stats(full_recompute=args.full)
    if summary.failed:
        logger.warning("Security market line failed for: %s", ", ".join(summary.failures))
        raise SystemExit(1)


if __name__ == "__main__":  # pragma: no cover - manual CLI entry
    main()
