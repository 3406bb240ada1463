"""Project-wide defaults for Binance market-data access."""

# Spot REST API root; ``/klines`` is appended by the fetcher.
DEFAULT_REST_URL = "https://api.binance.com/api/v3"

# Raw stream endpoint; one ``<symbol>@kline_<interval>`` stream per socket.
DEFAULT_WS_URL = "wss://stream.binance.com:9443/ws"

DEFAULT_MAX_LENGTH = 200
DEFAULT_WINDOW_MS = 20 * 60 * 1000
DEFAULT_SNAPSHOT_LIMIT = 200

# Binance rejects ``limit`` above this value on /klines.
MAX_SNAPSHOT_LIMIT = 1000

__all__ = [
    "DEFAULT_REST_URL",
    "DEFAULT_WS_URL",
    "DEFAULT_MAX_LENGTH",
    "DEFAULT_WINDOW_MS",
    "DEFAULT_SNAPSHOT_LIMIT",
    "MAX_SNAPSHOT_LIMIT",
]
