"""
Global test fixtures: logging isolation plus fake sockets, streams and
fetchers shared by the async tests.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

import anyio
import pytest

from klinesync.exceptions import StreamConnectionError
from klinesync.models import Candle


@pytest.fixture(autouse=True)
def disable_logging() -> None:
    """Clear and close all logging handlers before and after each test."""
    root = logging.getLogger()
    for h in root.handlers:
        h.close()
    root.handlers.clear()
    root.setLevel(logging.CRITICAL)
    yield
    for h in root.handlers:
        h.close()
    root.handlers.clear()


@pytest.fixture
def anyio_backend() -> str:
    # websockets only runs on asyncio.
    return "asyncio"


def candle(ts: int, close: float = 1.0) -> Candle:
    return Candle(time_bucket=ts, open=1.0, high=max(2.0, close), low=0.5, close=close)


def kline_message(ts: int, close: float = 1.0) -> str:
    return json.dumps(
        {
            "e": "kline",
            "s": "ETHUSDT",
            "k": {"t": ts, "o": "1", "h": str(max(2.0, close)), "l": "0.5", "c": str(close)},
        }
    )


async def wait_until(cond: Callable[[], bool], timeout: float = 2.0) -> None:
    with anyio.fail_after(timeout):
        while not cond():
            await anyio.sleep(0.001)


class FakeSocket:
    """Async-iterable stand-in for a websockets connection."""

    def __init__(self) -> None:
        self._send, self._recv = anyio.create_memory_object_stream[Any](100)
        self.closed = False

    def push(self, raw: Any) -> None:
        self._send.send_nowait(raw)

    def hang_up(self) -> None:
        """End the message iterator as a remote close would."""
        self._send.close()

    def __aiter__(self) -> "FakeSocket":
        return self

    async def __anext__(self) -> Any:
        try:
            item = await self._recv.receive()
        except anyio.EndOfStream:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True
        self._send.close()


class FakeConnector:
    """Records requested URLs and hands out :class:`FakeSocket` objects."""

    def __init__(self) -> None:
        self.urls: list[str] = []
        self.sockets: list[FakeSocket] = []
        self.fail: BaseException | None = None

    async def __call__(self, url: str) -> FakeSocket:
        self.urls.append(url)
        if self.fail is not None:
            raise self.fail
        sock = FakeSocket()
        self.sockets.append(sock)
        return sock


class FakeStream:
    """Stream handle that only emits what the test tells it to."""

    def __init__(self, subscription, sink, *, fail_open: bool = False) -> None:
        self.subscription = subscription
        self.sink = sink
        self.fail_open = fail_open
        self.opened = False
        self.closed = False

    async def open(self) -> None:
        if self.fail_open:
            raise StreamConnectionError("refused")
        self.opened = True

    async def run(self) -> None:
        await anyio.sleep_forever()

    async def aclose(self) -> None:
        self.closed = True

    async def emit(self, event) -> None:
        await self.sink.send(event)


class FakeStreamFactory:
    def __init__(self) -> None:
        self.streams: list[FakeStream] = []
        self.fail_open = False

    def __call__(self, subscription, sink) -> FakeStream:
        stream = FakeStream(subscription, sink, fail_open=self.fail_open)
        self.streams.append(stream)
        return stream


class FakeFetcher:
    """Snapshot source whose results and timing are scripted per symbol."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, int, int]] = []
        self.results: dict[str, Any] = {}
        self.gates: dict[str, anyio.Event] = {}
        self.closed = False

    async def fetch_snapshot(self, symbol: str, interval: str, window_ms: int, generation: int):
        self.calls.append((symbol, interval, window_ms, generation))
        gate = self.gates.get(symbol)
        if gate is not None:
            await gate.wait()
        result = self.results.get(symbol, [])
        if isinstance(result, BaseException):
            raise result
        return list(result)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def stream_factory() -> FakeStreamFactory:
    return FakeStreamFactory()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()
