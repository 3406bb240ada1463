from __future__ import annotations

import dataclasses
import enum
import json
from typing import Any


def to_json(obj: Any) -> str:
    """Return compact JSON with dataclasses as objects and enums as their values.

    >>> to_json(Candle(time_bucket=1000, open=1.0, high=2.0, low=0.5, close=1.5))
    '{"time_bucket":1000,"open":1.0,"high":2.0,"low":0.5,"close":1.5}'
    """

    def _encoder(o: Any) -> Any:  # noqa: D401
        if dataclasses.is_dataclass(o) and not isinstance(o, type):
            return dataclasses.asdict(o)
        if isinstance(o, enum.Enum):
            return o.value
        if isinstance(o, BaseException):
            return f"{type(o).__name__}: {o}"
        raise TypeError(f"Object of type {type(o).__name__} is not JSON serialisable")

    return json.dumps(obj, default=_encoder, separators=(",", ":"))
