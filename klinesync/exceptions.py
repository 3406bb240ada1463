"""Custom exceptions used across :mod:`klinesync`."""

from __future__ import annotations

__all__ = [
    "KlineSyncError",
    "NetworkError",
    "ParseError",
    "StreamConnectionError",
    "SupervisorClosedError",
]


class KlineSyncError(Exception):
    """Base class for every error raised by the engine."""


class NetworkError(KlineSyncError):
    """Snapshot request failed at the transport level or returned non-2xx."""


class ParseError(KlineSyncError, ValueError):
    """A snapshot row or stream message could not be turned into a candle."""


class StreamConnectionError(KlineSyncError):
    """The kline stream failed to open or terminated unexpectedly."""


class SupervisorClosedError(KlineSyncError):
    """Raised when a target switch is requested after ``shutdown()``."""
