"""klinesync package.

Real-time candle synchronisation: a bounded, ordered in-memory candle series
for one exchange target, seeded from a REST snapshot and kept current from a
kline WebSocket stream.

Public API
----------
* ``CandleSyncEngine``  – query surface for presentation code
  (``select_target`` / ``get_visible_candles`` / ``shutdown``).
* ``StreamSupervisor``  – target-switch state machine with generation tagging.
* ``CandleBuffer``, ``merge``, ``merge_snapshot`` – the merge rules.
* ``HistoricalFetcher`` – REST snapshot client.
* ``KlineStream``       – one live kline subscription.
* ``query``             – trailing window view.
* ``EngineSettings``, ``load_settings`` – configuration.
* ``configure_logging``, ``trace`` – logging helpers.

Anything else is internal and may change without notice.
"""

import logging as _logging
from importlib import metadata as _metadata

from .logging_utils import configure_logging, trace
from .buffer import CandleBuffer, merge, merge_snapshot
from .connection import KlineStream
from .engine import CandleSyncEngine
from .exceptions import (
    KlineSyncError,
    NetworkError,
    ParseError,
    StreamConnectionError,
    SupervisorClosedError,
)
from .historic import HistoricalFetcher
from .models import Candle, Subscription
from .settings import EngineSettings, load_settings
from .supervisor import StreamSupervisor, SupervisorState
from .window import query

__all__ = [
    "Candle",
    "Subscription",
    "CandleBuffer",
    "merge",
    "merge_snapshot",
    "HistoricalFetcher",
    "KlineStream",
    "StreamSupervisor",
    "SupervisorState",
    "CandleSyncEngine",
    "query",
    "EngineSettings",
    "load_settings",
    "KlineSyncError",
    "NetworkError",
    "ParseError",
    "StreamConnectionError",
    "SupervisorClosedError",
    "configure_logging",
    "trace",
]

# Library code logs through module loggers; the host application (or the
# CLI) decides where records go.
_logging.getLogger(__name__).addHandler(_logging.NullHandler())

# Single-source versioning: installed metadata first, pyproject.toml for
# source checkouts.
try:
    __version__: str = _metadata.version(__name__)
except _metadata.PackageNotFoundError:  # pragma: no cover – dev environment only
    import pathlib as _pl
    import tomllib as _tomllib

    _toml_path = _pl.Path(__file__).resolve().parents[1] / "pyproject.toml"
    if _toml_path.exists():
        with _toml_path.open("rb") as _fp:
            __version__ = _tomllib.load(_fp)["project"]["version"]
    else:
        __version__ = "0.0.0.dev0"
