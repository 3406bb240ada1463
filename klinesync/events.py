"""
Typed events exchanged between kline streams, the supervisor and listeners.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .exceptions import KlineSyncError
from .models import Candle, Subscription

__all__ = [
    "TickReceived",
    "StreamError",
    "StreamClosed",
    "TargetSwitched",
    "StreamEvent",
    "SupervisorEvent",
]


@dataclass(frozen=True)
class TickReceived:
    """One kline update delivered by the stream bound to *subscription*."""

    subscription: Subscription
    candle: Candle


@dataclass(frozen=True)
class StreamError:
    """Non-fatal stream problem: a dropped payload or a lost connection."""

    subscription: Subscription
    error: KlineSyncError


@dataclass(frozen=True)
class StreamClosed:
    """The stream stopped; *expected* is False when nobody asked it to."""

    subscription: Subscription
    expected: bool
    reason: str = ""


@dataclass(frozen=True)
class TargetSwitched:
    """A switch completed: snapshot merged and the stream is live."""

    subscription: Subscription
    snapshot_size: int


StreamEvent = Union[TickReceived, StreamError, StreamClosed]
SupervisorEvent = Union[TargetSwitched, StreamError, StreamClosed]
