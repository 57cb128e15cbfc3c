"""RisqLab – Identifier helpers.

Rows written by the index and volatility engines use UUID4 strings as
primary keys. Batch runs get a readable identifier that sorts by start
time, for example ``volatility_20250115T060000Z_1a2b3c4d``, so that log
lines of one run can be grepped together.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional


def generate_uuid() -> str:
    """Return a random UUID4 string."""

    return str(uuid.uuid4())


def generate_run_id(prefix: Optional[str] = None, started_at: Optional[datetime] = None) -> str:
    """Return an identifier for one batch run.

    Args:
        prefix: Name of the batch, e.g. ``"index"`` or ``"volatility"``.
        started_at: Timezone-aware start time; defaults to now (UTC).

    Returns:
        ``[prefix_]YYYYMMDDTHHMMSSZ_<8 hex chars>``.
    """

    started = (started_at or datetime.now(timezone.utc)).astimezone(timezone.utc)
    parts = [started.strftime("%Y%m%dT%H%M%SZ"), uuid.uuid4().hex[:8]]
    if prefix:
        parts.insert(0, prefix)
    return "_".join(parts)
