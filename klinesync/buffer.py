"""Bounded, time-ordered candle series and the merge rules that feed them.

Every series is an immutable ``tuple`` whose ``time_bucket`` values strictly
increase.  :func:`merge` folds one live tick into a series and
:func:`merge_snapshot` reconciles a historical batch with whatever live data
is already held.  :class:`CandleBuffer` keeps one series per
``(symbol, interval)`` and swaps it atomically on every update.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Tuple

from .constants import DEFAULT_MAX_LENGTH
from .logging_utils import TRACE_LEVEL, trace
from .models import Candle

__all__ = ["Series", "merge", "merge_snapshot", "CandleBuffer"]

logger = logging.getLogger(__name__)

Series = Tuple[Candle, ...]
SeriesKey = Tuple[str, str]


def merge(series: Series, tick: Candle, max_length: int = DEFAULT_MAX_LENGTH) -> Series:
    """Return *series* with *tick* applied.

    A newer bucket is appended (evicting the oldest entry past
    *max_length*), the current bucket is replaced, an older bucket is dropped.
    """
    if not series or tick.time_bucket > series[-1].time_bucket:
        merged = series + (tick,)
        return merged[-max_length:]
    if tick.time_bucket == series[-1].time_bucket:
        return series[:-1] + (tick,)
    return series


def merge_snapshot(
    series: Series, snapshot: Iterable[Candle], max_length: int = DEFAULT_MAX_LENGTH
) -> Series:
    """Return the union of *series* and *snapshot*, trimmed to *max_length*.

    The snapshot is deduplicated keeping the last candle per bucket.  For a
    bucket held on both sides the snapshot wins unless the bucket is already
    closed in *series*, i.e. anything before its last entry.  Buckets newer
    than the snapshot are never touched.
    """
    latest: Dict[int, Candle] = {}
    for candle in sorted(snapshot, key=lambda c: c.time_bucket):
        latest[candle.time_bucket] = candle

    combined: Dict[int, Candle] = {c.time_bucket: c for c in series}
    forming = series[-1].time_bucket if series else None
    for bucket, candle in latest.items():
        if bucket not in combined or bucket == forming:
            combined[bucket] = candle

    ordered = tuple(combined[b] for b in sorted(combined))
    return ordered[-max_length:]


class CandleBuffer:
    """Per-target store of bounded candle series.

    Only :meth:`apply_tick` and :meth:`apply_snapshot` replace a series; both
    compute the new tuple first and publish it with a single assignment.
    """

    def __init__(self, max_length: int = DEFAULT_MAX_LENGTH) -> None:
        if max_length <= 0:
            raise ValueError("max_length must be positive")
        self._max_length = max_length
        self._series: Dict[SeriesKey, Series] = {}

    def series(self, symbol: str, interval: str) -> Series:
        return self._series.get((symbol, interval), ())

    def apply_tick(self, symbol: str, interval: str, tick: Candle) -> Series:
        key = (symbol, interval)
        current = self._series.get(key, ())
        updated = merge(current, tick, self._max_length)
        if updated is current:
            logger.log(
                TRACE_LEVEL,
                "drop out-of-order tick %s for %s %s",
                tick.time_bucket,
                symbol,
                interval,
                extra={"code_path": f"{__name__}.CandleBuffer.apply_tick"},
            )
        self._series[key] = updated
        return updated

    @trace
    def apply_snapshot(self, symbol: str, interval: str, snapshot: Iterable[Candle]) -> Series:
        key = (symbol, interval)
        updated = merge_snapshot(self._series.get(key, ()), snapshot, self._max_length)
        self._series[key] = updated
        logger.debug(
            "Merged snapshot into %s %s (%d candles held)",
            symbol,
            interval,
            len(updated),
            extra={"code_path": f"{__name__}.CandleBuffer.apply_snapshot"},
        )
        return updated

