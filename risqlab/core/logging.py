"""RisqLab – Logging setup.

Every module logs through :func:`get_logger`, which places its logger
under the ``risqlab`` namespace and configures the root logger on first
use. Output goes to stdout and, unless ``LOG_FILE`` is empty, to a log
file whose parent directory is created on demand.

Batch engines log one line per processed unit at INFO and per-unit
failures at ERROR; detailed exclusion and skip reasons are DEBUG.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import List, Optional

from risqlab.core.config import RisqlabConfig, get_config


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are noisy at INFO during migrations.
_QUIET_LOGGERS = ("alembic.runtime.migration", "sqlalchemy.engine")


def _build_handlers(config: RisqlabConfig) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if config.log_file:
        path = Path(config.log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(config: Optional[RisqlabConfig] = None) -> None:
    """Configure the root and ``risqlab`` loggers once per process.

    Does nothing when the root logger already has handlers, so scripts,
    tests and library callers can all call it freely.

    Args:
        config: Configuration to read ``LOG_LEVEL`` and ``LOG_FILE`` from;
            the global configuration when omitted.
    """

    root = logging.getLogger()
    if root.handlers:
        return

    config = config or get_config()
    level = logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    for handler in _build_handlers(config):
        root.addHandler(handler)
    root.setLevel(level)
    logging.getLogger("risqlab").setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """Return the ``risqlab.<name>`` logger, configuring logging if needed.

    Module names that already start with ``risqlab`` are used as is.
    """

    setup_logging()
    if name == "risqlab" or name.startswith("risqlab."):
        return logging.getLogger(name)
    return logging.getLogger(f"risqlab.{name}")
