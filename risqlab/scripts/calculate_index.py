"""Calculate the index level for every snapshot without a result.

On the first run (or after a divisor reset) the divisor is initialised
from the most recent snapshot set. Every snapshot timestamp lacking an
index result is then processed oldest first.

Examples
--------

    # Backfill all missing timestamps
    python -m risqlab.scripts.calculate_index

    # Force recomputation of specific timestamps
    python -m risqlab.scripts.calculate_index \
        --recompute 2025-01-15T00:00:00+00:00 2025-01-16T00:00:00+00:00
"""

from __future__ import annotations

import argparse
from datetime import datetime, timezone
from typing import Optional

from risqlab.core.logging import get_logger
from risqlab.index.types import BackfillSummary
from risqlab.pipeline.tasks import build_index_engine


logger = get_logger(__name__)


def _parse_timestamp(value: str) -> datetime:
    try:
        ts = datetime.fromisoformat(value)
    except ValueError as exc:  # pragma: no cover - CLI validation
        raise argparse.ArgumentTypeError(f"Invalid timestamp {value!r}, expected ISO 8601") from exc
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Calculate index levels for missing snapshot timestamps")
    parser.add_argument(
        "--recompute",
        nargs="+",
        type=_parse_timestamp,
        metavar="TIMESTAMP",
        help="Delete and recompute the given timestamps (ISO 8601, UTC if no offset)",
    )

    args = parser.parse_args(argv)

    engine = build_index_engine()

    summary: BackfillSummary
    if args.recompute:
        summary = engine.recompute(args.recompute)
    else:
        summary = engine.run()

    if summary.failed:
        logger.warning(
            "%d timestamps failed: %s",
            summary.failed,
            ", ".join(ts.isoformat() for ts in summary.failed_timestamps),
        )
        raise SystemExit(1)


if __name__ == "__main__":  # pragma: no cover - manual CLI entry
    main()
