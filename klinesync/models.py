from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from .exceptions import ParseError

__all__ = ["Candle", "Subscription"]


@dataclass(frozen=True)
class Candle:
    """OHLC state of one interval keyed by its bucket start (epoch ms)."""

    time_bucket: int
    open: float
    high: float
    low: float
    close: float

    @classmethod
    def from_rest_row(cls, row: Sequence[Any]) -> "Candle":
        """Return a :class:`Candle` built from a ``/klines`` row.

        Only the first five positions (open time, open, high, low, close) are
        read; volume and the other trailing fields are ignored.
        """
        if isinstance(row, (str, bytes)) or not isinstance(row, Sequence) or len(row) < 5:
            raise ParseError(f"invalid kline row: {row!r}")
        return cls._build(row[0], row[1], row[2], row[3], row[4])

    @classmethod
    def from_kline(cls, record: Mapping[str, Any]) -> "Candle":
        """Return a :class:`Candle` from the ``k`` record of a stream event."""
        if not isinstance(record, Mapping):
            raise ParseError(f"invalid kline record: {record!r}")
        try:
            return cls._build(record["t"], record["o"], record["h"], record["l"], record["c"])
        except KeyError as exc:
            raise ParseError(f"kline record missing field {exc.args[0]!r}") from exc

    @classmethod
    def _build(cls, ts: Any, open_: Any, high: Any, low: Any, close: Any) -> "Candle":
        # Bucket times are whole milliseconds; floats are only accepted when integral.
        if isinstance(ts, bool) or (isinstance(ts, float) and not ts.is_integer()):
            raise ParseError(f"invalid bucket time: {ts!r}")
        try:
            bucket = int(ts)
            prices = [float(v) for v in (open_, high, low, close)]
        except (TypeError, ValueError, OverflowError) as exc:
            raise ParseError(f"non-numeric candle field: {exc}") from exc
        if not all(math.isfinite(p) for p in prices):
            raise ParseError(f"non-finite price in candle at {bucket}")
        return cls(bucket, *prices)


@dataclass(frozen=True)
class Subscription:
    """Live target of the supervisor; replaced, never mutated, on each switch."""

    symbol: str  # exchange symbol, e.g. ETHUSDT
    interval: str  # exchange interval code, e.g. 1m
    generation: int

    @property
    def key(self) -> tuple[str, str]:
        return (self.symbol, self.interval)

    @property
    def stream_name(self) -> str:
        return f"{self.symbol.lower()}@kline_{self.interval}"
