from __future__ import annotations

import json
from typing import Any

from .exceptions import ParseError
from .models import Candle

__all__ = ["decode_kline_message", "decode_snapshot"]


def decode_kline_message(raw: str | bytes) -> Candle:
    """Return the candle carried by a Binance kline stream message.

    Accepts both the raw-stream payload and the combined-stream envelope.

    Example
    -------
    >>> decode_kline_message('{"e":"kline","k":{"t":1000,"o":"1","h":"2","l":"0.5","c":"1.5"}}')
    Candle(time_bucket=1000, open=1.0, high=2.0, low=0.5, close=1.5)
    """
    try:
        message = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ParseError(f"stream payload is not JSON: {exc}") from exc
    if not isinstance(message, dict):
        raise ParseError("stream payload is not an object")
    if isinstance(message.get("data"), dict):
        message = message["data"]
    record = message.get("k")
    if record is None:
        raise ParseError("stream payload carries no kline record")
    return Candle.from_kline(record)


def decode_snapshot(payload: Any) -> list[Candle]:
    """Map a decoded ``/klines`` body to candles, preserving order."""
    if not isinstance(payload, list):
        raise ParseError(f"kline snapshot must be a list, got {type(payload).__name__}")
    return [Candle.from_rest_row(row) for row in payload]
