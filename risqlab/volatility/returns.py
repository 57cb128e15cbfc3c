"""RisqLab – Log-return calculator.

Turns one asset's daily closing prices into daily log returns. A return
is only produced between two *consecutive* calendar days with positive
prices; gaps and non-positive prices are skipped silently.
"""

from __future__ import annotations

import math
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, List, Mapping, Sequence, Tuple, Union

import pandas as pd

from risqlab.core.logging import get_logger
from risqlab.volatility.types import LogReturn


logger = get_logger(__name__)

PriceSeries = Union[Mapping[date, Decimal], Sequence[Tuple[date, Decimal]]]

_ONE_DAY = timedelta(days=1)


def compute_log_returns(prices_by_date: PriceSeries, *, asset_id: int) -> List[LogReturn]:
    """Compute daily log returns for one asset.

    Args:
        prices_by_date: One closing price per day, as a mapping or as
            (date, price) pairs in any order.
        asset_id: Asset the prices belong to.

    Returns:
        Log returns ordered by date.
    """

    items = sorted(dict(prices_by_date).items())
    returns: List[LogReturn] = []

    for (prev_date, prev_price), (cur_date, cur_price) in zip(items, items[1:]):
        if cur_date - prev_date != _ONE_DAY:
            logger.debug(
                "Asset %s: gap between %s and %s, no return computed",
                asset_id,
                prev_date,
                cur_date,
            )
            continue
        if prev_price <= 0 or cur_price <= 0:
            logger.debug(
                "Asset %s: non-positive price on %s or %s, no return computed",
                asset_id,
                prev_date,
                cur_date,
            )
            continue

        returns.append(
            LogReturn(
                asset_id=asset_id,
                date=cur_date,
                log_return=math.log(float(cur_price) / float(prev_price)),
                price_current=Decimal(str(cur_price)),
                price_previous=Decimal(str(prev_price)),
            )
        )

    return returns


def returns_to_series(returns: Iterable[LogReturn]) -> pd.Series:
    """Return ``log_return`` values as a float Series indexed by date."""

    rows = [(r.date, r.log_return) for r in returns]
    if not rows:
        return pd.Series(dtype=float, name="log_return")
    dates, values = zip(*rows)
    return pd.Series(list(values), index=list(dates), dtype=float, name="log_return").sort_index()


def level_log_returns(levels_by_date: PriceSeries) -> pd.Series:
    """Daily log returns of a level series such as the index.

    Follows the same consecutive-day rule as :func:`compute_log_returns`.
    Returns a float Series indexed by date.
    """

    items = sorted(dict(levels_by_date).items())
    rows = [
        (cur_date, math.log(float(cur_level) / float(prev_level)))
        for (prev_date, prev_level), (cur_date, cur_level) in zip(items, items[1:])
        if cur_date - prev_date == _ONE_DAY and prev_level > 0 and cur_level > 0
    ]
    if not rows:
        return pd.Series(dtype=float, name="log_return")
    dates, values = zip(*rows)
    return pd.Series(list(values), index=list(dates), dtype=float, name="log_return")


__all__ = ["compute_log_returns", "level_log_returns", "returns_to_series"]
