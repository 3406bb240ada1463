"""Historical kline snapshots over the exchange REST API."""

from __future__ import annotations

import logging
import time
from typing import Callable

import httpx

from .constants import DEFAULT_REST_URL, DEFAULT_SNAPSHOT_LIMIT, MAX_SNAPSHOT_LIMIT
from .decoder import decode_snapshot
from .exceptions import NetworkError, ParseError
from .intervals import validate
from .models import Candle

__all__ = ["HistoricalFetcher"]

logger = logging.getLogger(__name__)


class HistoricalFetcher:
    """Fetch the trailing window of candles for one ``(symbol, interval)``.

    The fetcher never touches shared state; whoever awaits
    :meth:`fetch_snapshot` decides whether the result is still wanted.

    Example
    -------
    >>> async with HistoricalFetcher() as fetcher:
    ...     candles = await fetcher.fetch_snapshot("ETHUSDT", "1m", 20 * 60_000, 1)
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_REST_URL,
        limit: int = DEFAULT_SNAPSHOT_LIMIT,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not 0 < limit <= MAX_SNAPSHOT_LIMIT:
            raise ValueError(f"limit must be in 1..{MAX_SNAPSHOT_LIMIT}")
        self._base_url = base_url.rstrip("/")
        self._limit = limit
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._clock = clock

    async def __aenter__(self) -> "HistoricalFetcher":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        await self.aclose()

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        """Release the HTTP client if this fetcher created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch_snapshot(
        self, symbol: str, interval: str, window_ms: int, generation: int
    ) -> list[Candle]:
        """Return candles opened within the last *window_ms*, oldest first.

        Raises:
            NetworkError: transport failure or non-success HTTP status.
            ParseError: the body or one of its rows is not a kline array.
        """
        end = int(self._clock() * 1000)
        params = {
            "symbol": symbol.upper(),
            "interval": validate(interval),
            "startTime": end - window_ms,
            "endTime": end,
            "limit": self._limit,
        }
        extra = {"code_path": f"{__name__}.HistoricalFetcher", "generation": generation}
        logger.debug("GET klines %s", params, extra=extra)

        try:
            response = await self._http().get(f"{self._base_url}/klines", params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NetworkError(
                f"klines request for {symbol} {interval} returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"klines request for {symbol} {interval} failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise ParseError(f"klines body for {symbol} {interval} is not JSON") from exc

        candles = decode_snapshot(payload)
        logger.info(
            "Fetched %d candles for %s %s [generation=%d]",
            len(candles),
            symbol,
            interval,
            generation,
            extra=extra,
        )
        return candles
