"""Target-switch orchestration for the candle engine.

:class:`StreamSupervisor` owns the live :class:`~klinesync.models.Subscription`
and serialises everything a switch involves: closing the old stream,
fetching a snapshot, merging it and opening the new stream.  Each switch
bumps ``generation``; results and ticks tagged with an older generation are
dropped on arrival rather than aborted, so overlapping switches never block
the caller and the latest request always wins.

All stream events funnel through one memory stream into :meth:`_pump`,
which is the only place ticks reach the buffer.
"""

from __future__ import annotations

import enum
import logging
import math
from typing import Callable, Optional

import anyio
from anyio.abc import TaskGroup
from anyio.streams.memory import (
    MemoryObjectReceiveStream,
    MemoryObjectSendStream,
)

from .buffer import CandleBuffer
from .connection import KlineStream
from .constants import DEFAULT_WINDOW_MS
from .events import (
    StreamClosed,
    StreamError,
    StreamEvent,
    SupervisorEvent,
    TargetSwitched,
    TickReceived,
)
from .exceptions import (
    NetworkError,
    ParseError,
    StreamConnectionError,
    SupervisorClosedError,
)
from .historic import HistoricalFetcher
from .hub import EventHub
from .intervals import validate
from .logging_utils import trace
from .models import Subscription

__all__ = ["StreamSupervisor", "SupervisorState", "StreamFactory"]

logger = logging.getLogger(__name__)

StreamFactory = Callable[[Subscription, MemoryObjectSendStream[StreamEvent]], KlineStream]


class SupervisorState(str, enum.Enum):
    IDLE = "idle"
    SWITCHING = "switching"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    DISCONNECTED = "disconnected"
    CLOSED = "closed"


class StreamSupervisor:
    """Own the single active subscription and the buffer it feeds.

    Example
    -------
    >>> async with StreamSupervisor(CandleBuffer(), HistoricalFetcher()) as sup:
    ...     await sup.switch_target("BNBUSDT", "5m")
    ...     sup.buffer.series("BNBUSDT", "5m")
    """

    def __init__(
        self,
        buffer: CandleBuffer,
        fetcher: HistoricalFetcher,
        *,
        stream_factory: StreamFactory | None = None,
        snapshot_window_ms: int = DEFAULT_WINDOW_MS,
        hub: EventHub | None = None,
    ) -> None:
        self._buffer = buffer
        self._fetcher = fetcher
        self._stream_factory: StreamFactory = stream_factory or KlineStream
        self._snapshot_window_ms = snapshot_window_ms
        self._hub = hub or EventHub()

        self._state = SupervisorState.IDLE
        self._generation = 0
        self._subscription: Optional[Subscription] = None
        self._stream: Optional[KlineStream] = None

        self._tg: TaskGroup | None = None
        self._inbox_send: MemoryObjectSendStream[StreamEvent] | None = None
        self._inbox_recv: MemoryObjectReceiveStream[StreamEvent] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> "StreamSupervisor":
        self._inbox_send, self._inbox_recv = anyio.create_memory_object_stream[StreamEvent](
            math.inf
        )
        self._tg = anyio.create_task_group()
        await self._tg.__aenter__()
        self._tg.start_soon(self._pump, self._inbox_recv)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        assert self._tg is not None
        await self.shutdown()
        self._tg.cancel_scope.cancel()
        await self._tg.__aexit__(exc_type, exc, tb)

    async def shutdown(self) -> None:
        """Close the active stream and enter the terminal ``CLOSED`` state."""
        if self._state is SupervisorState.CLOSED:
            return
        self._generation += 1
        self._state = SupervisorState.CLOSED
        stream, self._stream = self._stream, None
        if stream is not None:
            await stream.aclose()
        if self._inbox_send is not None:
            self._inbox_send.close()
        self._hub.close()
        logger.info("Supervisor closed", extra={"code_path": f"{__name__}.shutdown"})

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def subscription(self) -> Optional[Subscription]:
        return self._subscription

    @property
    def buffer(self) -> CandleBuffer:
        return self._buffer

    def events(self) -> MemoryObjectReceiveStream[SupervisorEvent]:
        """Return a receive stream of switch and connection events."""
        return self._hub.subscribe()

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self._state is not SupervisorState.CLOSED

    # ------------------------------------------------------------------
    # Switching
    # ------------------------------------------------------------------

    @trace
    async def switch_target(self, symbol: str, interval: str) -> bool:
        """Move the live subscription to ``(symbol, interval)``.

        Returns ``True`` once the snapshot is merged and the new stream is
        live, ``False`` when a newer switch superseded this one or the stream
        could not be opened.

        Raises:
            SupervisorClosedError: after :meth:`shutdown`.
            NetworkError, ParseError: the snapshot failed for the current
                generation; the buffer keeps its previous contents.
        """
        if self._state is SupervisorState.CLOSED:
            raise SupervisorClosedError("supervisor is shut down")
        if self._tg is None or self._inbox_send is None:
            raise RuntimeError("supervisor must be entered with 'async with' first")

        subscription = Subscription(symbol.upper(), validate(interval), self._generation + 1)
        self._generation = subscription.generation
        self._subscription = subscription
        self._state = SupervisorState.SWITCHING
        extra = {"code_path": f"{__name__}.switch_target", "generation": subscription.generation}
        logger.info(
            "Switching to %s %s [generation=%d]",
            subscription.symbol,
            subscription.interval,
            subscription.generation,
            extra=extra,
        )

        old, self._stream = self._stream, None
        if old is not None:
            await old.aclose()

        try:
            snapshot = await self._fetcher.fetch_snapshot(
                subscription.symbol,
                subscription.interval,
                self._snapshot_window_ms,
                subscription.generation,
            )
        except (NetworkError, ParseError) as exc:
            if not self._is_current(subscription.generation):
                logger.info("Ignoring failure of superseded switch: %s", exc, extra=extra)
                return False
            self._state = SupervisorState.DISCONNECTED
            logger.error("Snapshot failed; keeping previous buffer: %s", exc, extra=extra)
            raise

        if not self._is_current(subscription.generation):
            logger.info("Discarding stale snapshot", extra=extra)
            return False

        self._buffer.apply_snapshot(subscription.symbol, subscription.interval, snapshot)

        stream = self._stream_factory(subscription, self._inbox_send.clone())
        self._stream = stream
        self._state = SupervisorState.CONNECTING
        try:
            await stream.open()
        except StreamConnectionError as exc:
            await stream.aclose()
            if not self._is_current(subscription.generation):
                return False
            self._stream = None
            self._state = SupervisorState.DISCONNECTED
            logger.error("Stream failed to open: %s", exc, extra=extra)
            self._hub.publish(StreamError(subscription, exc))
            return False

        if not self._is_current(subscription.generation):
            await stream.aclose()
            return False

        self._tg.start_soon(stream.run)
        self._state = SupervisorState.STREAMING
        self._hub.publish(TargetSwitched(subscription, len(snapshot)))
        return True

    # ------------------------------------------------------------------
    # Event pump
    # ------------------------------------------------------------------

    async def _pump(self, inbox: MemoryObjectReceiveStream[StreamEvent]) -> None:
        async with inbox:
            async for event in inbox:
                self._handle(event)

    def _handle(self, event: StreamEvent) -> None:
        subscription = event.subscription
        if subscription != self._subscription or not self._is_current(subscription.generation):
            return

        if isinstance(event, TickReceived):
            self._buffer.apply_tick(subscription.symbol, subscription.interval, event.candle)
        elif isinstance(event, StreamError):
            if isinstance(event.error, ParseError):
                return
            self._hub.publish(event)
        elif isinstance(event, StreamClosed):
            if event.expected:
                return
            self._stream = None
            self._state = SupervisorState.DISCONNECTED
            logger.warning(
                "Stream for %s %s dropped; serving last known candles",
                subscription.symbol,
                subscription.interval,
                extra={"code_path": f"{__name__}._handle", "generation": subscription.generation},
            )
            self._hub.publish(event)
