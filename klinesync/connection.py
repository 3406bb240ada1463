"""Live kline subscription over the exchange WebSocket.

A :class:`KlineStream` is one handle for one :class:`~klinesync.models.Subscription`.
It opens a single socket, forwards every decoded update as a
:class:`~klinesync.events.TickReceived` into the receiver stream handed to it
and reports problems as events instead of raising them.  It never reconnects
on its own.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Awaitable, Callable

import anyio
import websockets
from anyio.streams.memory import MemoryObjectSendStream
from websockets.exceptions import WebSocketException

from .constants import DEFAULT_WS_URL
from .decoder import decode_kline_message
from .events import StreamClosed, StreamError, StreamEvent, TickReceived
from .exceptions import ParseError, StreamConnectionError
from .logging_utils import TRACE_LEVEL
from .models import Subscription

__all__ = ["KlineStream", "Connector"]

logger = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[Any]]

_default_connect: Connector = functools.partial(
    websockets.connect, ping_interval=20, ping_timeout=20
)


class KlineStream:
    """Single kline WebSocket subscription.

    Example
    -------
    >>> send, recv = anyio.create_memory_object_stream[StreamEvent](math.inf)
    >>> stream = KlineStream(Subscription("ETHUSDT", "1m", 1), send)
    >>> await stream.open()
    >>> task_group.start_soon(stream.run)
    >>> ...
    >>> await stream.aclose()
    """

    def __init__(
        self,
        subscription: Subscription,
        sink: MemoryObjectSendStream[StreamEvent],
        *,
        base_url: str = DEFAULT_WS_URL,
        connect: Connector | None = None,
        open_timeout: float = 10.0,
    ) -> None:
        self._subscription = subscription
        self._sink = sink
        self._base_url = base_url.rstrip("/")
        self._connect = connect or _default_connect
        self._open_timeout = open_timeout
        self._ws: Any = None
        self._opened = False
        self._closed = False
        self._scope = anyio.CancelScope()

    @property
    def subscription(self) -> Subscription:
        return self._subscription

    @property
    def url(self) -> str:
        return f"{self._base_url}/{self._subscription.stream_name}"

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self) -> None:
        """Establish the socket.

        Raises:
            RuntimeError: the handle was already opened or closed.
            StreamConnectionError: the socket could not be established.
        """
        if self._opened or self._closed:
            raise RuntimeError("stream already opened")
        self._opened = True
        try:
            with anyio.fail_after(self._open_timeout):
                ws = await self._connect(self.url)
        except (OSError, TimeoutError, WebSocketException) as exc:
            raise StreamConnectionError(f"cannot open {self.url}: {exc}") from exc

        if self._closed:
            # aclose() ran while the handshake was in flight.
            await ws.close()
            return
        self._ws = ws
        logger.info(
            "Connected to kline stream %s [generation=%d]",
            self.url,
            self._subscription.generation,
            extra={"code_path": f"{__name__}.KlineStream.open"},
        )

    async def run(self) -> None:
        """Forward updates until the socket ends or :meth:`aclose` is called."""
        ws = self._ws
        if ws is None:
            if self._closed:
                return
            raise RuntimeError("stream not opened")

        reason = "remote closed the stream"
        with self._scope:
            try:
                async for raw in ws:
                    await self._dispatch(raw)
            except (OSError, WebSocketException) as exc:
                reason = f"connection lost: {exc}"

        if self._closed:
            return
        self._closed = True
        self._ws = None
        logger.warning(
            "Kline stream %s terminated: %s",
            self.url,
            reason,
            extra={"code_path": f"{__name__}.KlineStream.run"},
        )
        await ws.close()
        await self._emit(StreamError(self._subscription, StreamConnectionError(reason)))
        await self._emit(StreamClosed(self._subscription, expected=False, reason=reason))
        self._sink.close()

    async def _dispatch(self, raw: str | bytes) -> None:
        try:
            candle = decode_kline_message(raw)
        except ParseError as exc:
            logger.warning(
                "Dropping malformed payload on %s: %s",
                self._subscription.stream_name,
                exc,
                extra={"code_path": f"{__name__}.KlineStream._dispatch"},
            )
            await self._emit(StreamError(self._subscription, exc))
            return
        logger.log(
            TRACE_LEVEL,
            "tick %s close=%s",
            candle.time_bucket,
            candle.close,
            extra={"code_path": f"{__name__}.KlineStream._dispatch"},
        )
        await self._emit(TickReceived(self._subscription, candle))

    async def _emit(self, event: StreamEvent) -> None:
        try:
            await self._sink.send(event)
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            logger.debug(
                "Receiver gone; stopping %s",
                self._subscription.stream_name,
                extra={"code_path": f"{__name__}.KlineStream._emit"},
            )
            self._scope.cancel()

    async def aclose(self) -> None:
        """Terminate the subscription. Calling it again is a no-op."""
        if self._closed:
            return
        self._closed = True
        self._scope.cancel()
        ws, self._ws = self._ws, None
        if ws is not None:
            with anyio.CancelScope(shield=True):
                await ws.close()
        try:
            self._sink.send_nowait(
                StreamClosed(self._subscription, expected=True, reason="closed on request")
            )
        except (anyio.BrokenResourceError, anyio.ClosedResourceError, anyio.WouldBlock):
            logger.debug(
                "Close event for %s not delivered",
                self._subscription.stream_name,
                extra={"code_path": f"{__name__}.KlineStream.aclose"},
            )
        self._sink.close()
        logger.info(
            "Closed kline stream %s [generation=%d]",
            self.url,
            self._subscription.generation,
            extra={"code_path": f"{__name__}.KlineStream.aclose"},
        )
