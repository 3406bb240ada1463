"""Trailing time-window view over a candle series."""

from __future__ import annotations

from bisect import bisect_left
from typing import Sequence, Tuple

from .models import Candle

__all__ = ["query"]


def query(series: Sequence[Candle], now: int, window: int) -> Tuple[Candle, ...]:
    """Return the suffix of *series* with ``now - time_bucket <= window``.

    *series* must be ordered by ``time_bucket``; the result keeps that order
    and *series* is left untouched.

    Example
    -------
    >>> query(series, now=3000, window=1500)  # buckets 1000, 2000, 3000
    (Candle(time_bucket=2000, ...), Candle(time_bucket=3000, ...))
    """
    start = bisect_left(series, now - window, key=lambda c: c.time_bucket)
    return tuple(series[start:])
