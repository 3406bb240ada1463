"""Interval utilities for Binance kline resolutions.

``validate()`` normalises user input such as ``" 5M "`` to the exchange code
``"5m"`` and rejects anything the exchange (or an optional narrower whitelist)
does not accept.
"""

from __future__ import annotations

from typing import FrozenSet, Iterable

__all__ = ["validate", "EXCHANGE_INTERVALS"]

EXCHANGE_INTERVALS: FrozenSet[str] = frozenset(
    {"1m", "3m", "5m", "15m", "30m", "1h", "2h", "4h", "6h", "8h", "12h", "1d", "3d", "1w", "1M"}
)


def validate(raw: str, allowed: Iterable[str] | None = None) -> str:
    """Return the exchange interval code for *raw*.

    Only the monthly code keeps an upper-case ``M``; every other unit is
    lower-cased so ``"5M"`` means five minutes.  Raises ``ValueError`` for
    unknown codes and for codes outside *allowed* when given.
    """

    cleaned = raw.strip()
    if cleaned != "1M":
        cleaned = cleaned.lower()
    if cleaned not in EXCHANGE_INTERVALS:
        raise ValueError(f"Unsupported interval: {raw}")
    if allowed is not None and cleaned not in set(allowed):
        raise ValueError(f"Interval not enabled: {raw}")
    return cleaned
