"""Reset the index divisor so the next run re-initialises it.

The reset puts the active configuration back to the placeholder divisor.
Existing index results are left untouched; recompute them afterwards if
they should be expressed against the new divisor.

Example
-------

    python -m risqlab.scripts.reset_index_divisor --yes
"""

from __future__ import annotations

import argparse
from typing import Optional

from risqlab.core.logging import get_logger
from risqlab.pipeline.tasks import build_index_engine


logger = get_logger(__name__)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Reset the active index divisor to its placeholder")
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm the reset",
    )
    parser.add_argument(
        "--reinitialise",
        action="store_true",
        help="Initialise a new divisor from the most recent snapshots right away",
    )

    args = parser.parse_args(argv)

    if not args.yes:
        parser.error("Resetting the divisor changes every future index level; pass --yes to confirm")

    engine = build_index_engine()
    if engine.reset_divisor() is None:
        return

    if args.reinitialise:
        config = engine.ensure_configuration()
        logger.info("New divisor: %s (base date %s)", config.divisor, config.base_date)


if __name__ == "__main__":  # pragma: no cover - manual CLI entry
    main()
