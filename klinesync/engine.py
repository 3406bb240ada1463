"""Query surface handed to presentation code."""

from __future__ import annotations

import functools
import time
from typing import Callable, Optional

from anyio.streams.memory import MemoryObjectReceiveStream

from .buffer import CandleBuffer, Series
from .connection import Connector, KlineStream
from .events import SupervisorEvent
from .historic import HistoricalFetcher
from .models import Subscription
from .settings import EngineSettings
from .supervisor import StreamFactory, StreamSupervisor, SupervisorState
from .window import query

__all__ = ["CandleSyncEngine"]


class CandleSyncEngine:
    """Wire buffer, fetcher, streams and supervisor from :class:`EngineSettings`.

    Presentation code forwards user selections to :meth:`select_target` and
    polls :meth:`get_visible_candles` at whatever rate it renders.

    Example
    -------
    >>> async with CandleSyncEngine() as engine:
    ...     await engine.select_target("ETH", "1m")
    ...     candles = engine.get_visible_candles()
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        *,
        fetcher: HistoricalFetcher | None = None,
        stream_factory: StreamFactory | None = None,
        connect: Connector | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings or EngineSettings()
        self._clock = clock
        self._buffer = CandleBuffer(self._settings.max_length)
        self._fetcher = fetcher or HistoricalFetcher(
            base_url=self._settings.rest_url,
            limit=self._settings.snapshot_limit,
            timeout=self._settings.request_timeout,
            clock=clock,
        )
        if stream_factory is None:
            stream_factory = functools.partial(
                KlineStream,
                base_url=self._settings.ws_url,
                connect=connect,
                open_timeout=self._settings.open_timeout,
            )
        self._supervisor = StreamSupervisor(
            self._buffer,
            self._fetcher,
            stream_factory=stream_factory,
            snapshot_window_ms=self._settings.snapshot_window_ms,
        )

    async def __aenter__(self) -> "CandleSyncEngine":
        await self._supervisor.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await self._supervisor.__aexit__(exc_type, exc, tb)
        finally:
            await self._fetcher.aclose()

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def state(self) -> SupervisorState:
        return self._supervisor.state

    @property
    def subscription(self) -> Optional[Subscription]:
        return self._supervisor.subscription

    def events(self) -> MemoryObjectReceiveStream[SupervisorEvent]:
        return self._supervisor.events()

    async def select_target(self, symbol: str, interval: str) -> bool:
        """Switch to a whitelisted target; ``ValueError`` for anything else."""
        resolved_symbol = self._settings.resolve_symbol(symbol)
        resolved_interval = self._settings.resolve_interval(interval)
        return await self._supervisor.switch_target(resolved_symbol, resolved_interval)

    def get_visible_candles(self, now: int | None = None) -> Series:
        """Return the current target's candles inside the display window.

        *now* is epoch milliseconds and defaults to the engine clock.
        """
        subscription = self._supervisor.subscription
        if subscription is None:
            return ()
        if now is None:
            now = int(self._clock() * 1000)
        series = self._buffer.series(subscription.symbol, subscription.interval)
        return query(series, now, self._settings.window_ms)

    async def shutdown(self) -> None:
        await self._supervisor.shutdown()
