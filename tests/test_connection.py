from __future__ import annotations

import math

import anyio
import pytest
from websockets.exceptions import InvalidURI

from klinesync.connection import KlineStream
from klinesync.events import StreamClosed, StreamError, TickReceived
from klinesync.exceptions import ParseError, StreamConnectionError
from klinesync.models import Subscription

from conftest import candle, kline_message

SUB = Subscription("ETHUSDT", "1m", 1)


def _stream(connector, **kw):
    send, recv = anyio.create_memory_object_stream(math.inf)
    stream = KlineStream(SUB, send, base_url="wss://stream.test/ws/", connect=connector, **kw)
    return stream, recv


async def _drain(recv, n: int) -> list:
    out = []
    with anyio.fail_after(2):
        for _ in range(n):
            out.append(await recv.receive())
    return out


@pytest.mark.anyio
async def test_ticks_forwarded_in_order(connector) -> None:
    stream, recv = _stream(connector)
    await stream.open()
    assert connector.urls == ["wss://stream.test/ws/ethusdt@kline_1m"]
    sock = connector.sockets[0]
    for ts, close in [(1000, 1.0), (1000, 1.2), (2000, 2.0)]:
        sock.push(kline_message(ts, close))

    async with anyio.create_task_group() as tg:
        tg.start_soon(stream.run)
        events = await _drain(recv, 3)
        await stream.aclose()

    assert all(isinstance(e, TickReceived) for e in events)
    assert [e.candle for e in events] == [candle(1000, 1.0), candle(1000, 1.2), candle(2000, 2.0)]
    assert all(e.subscription == SUB for e in events)


@pytest.mark.anyio
async def test_malformed_payload_is_reported_and_skipped(connector) -> None:
    stream, recv = _stream(connector)
    await stream.open()
    sock = connector.sockets[0]
    sock.push("{broken")
    sock.push(kline_message(1000))

    async with anyio.create_task_group() as tg:
        tg.start_soon(stream.run)
        error, tick = await _drain(recv, 2)
        assert not stream.closed
        await stream.aclose()

    assert isinstance(error, StreamError)
    assert isinstance(error.error, ParseError)
    assert isinstance(tick, TickReceived)


@pytest.mark.anyio
async def test_unexpected_termination(connector) -> None:
    stream, recv = _stream(connector)
    await stream.open()
    sock = connector.sockets[0]
    sock.push(kline_message(1000))
    sock.hang_up()

    await stream.run()

    events = [e async for e in recv]
    assert isinstance(events[0], TickReceived)
    assert isinstance(events[1], StreamError)
    assert isinstance(events[1].error, StreamConnectionError)
    assert events[2] == StreamClosed(SUB, expected=False, reason="remote closed the stream")
    assert stream.closed
    assert sock.closed


@pytest.mark.anyio
async def test_transport_error_while_reading(connector) -> None:
    stream, recv = _stream(connector)
    await stream.open()
    connector.sockets[0].push(ConnectionResetError("reset by peer"))

    await stream.run()

    events = [e async for e in recv]
    assert isinstance(events[0].error, StreamConnectionError)
    assert "reset by peer" in events[1].reason
    assert events[1].expected is False


@pytest.mark.anyio
async def test_close_is_idempotent_and_reported(connector) -> None:
    stream, recv = _stream(connector)
    await stream.open()
    sock = connector.sockets[0]

    async with anyio.create_task_group() as tg:
        tg.start_soon(stream.run)
        await anyio.sleep(0)
        await stream.aclose()
        await stream.aclose()

    events = [e async for e in recv]
    assert events == [StreamClosed(SUB, expected=True, reason="closed on request")]
    assert sock.closed


@pytest.mark.anyio
async def test_open_twice_rejected(connector) -> None:
    stream, _ = _stream(connector)
    await stream.open()
    with pytest.raises(RuntimeError):
        await stream.open()
    await stream.aclose()
    assert len(connector.sockets) == 1


@pytest.mark.anyio
@pytest.mark.parametrize("exc", [OSError("refused"), InvalidURI("bad://", "scheme")])
async def test_open_failure(connector, exc) -> None:
    connector.fail = exc
    stream, _ = _stream(connector)
    with pytest.raises(StreamConnectionError):
        await stream.open()


@pytest.mark.anyio
async def test_open_timeout() -> None:
    async def never(url: str):
        await anyio.sleep_forever()

    stream, _ = _stream(never, open_timeout=0.01)
    with pytest.raises(StreamConnectionError):
        await stream.open()


@pytest.mark.anyio
async def test_run_after_close_returns(connector) -> None:
    stream, _ = _stream(connector)
    await stream.aclose()
    await stream.run()
    with pytest.raises(RuntimeError):
        await stream.open()
