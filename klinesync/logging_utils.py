"""klinesync.logging_utils – project-wide logging helpers.

* A custom **TRACE** level (numeric value 5) for per-tick chatter.
* :func:`configure_logging` installing three handlers on the root logger:
  a :class:`rich.logging.RichHandler` console, a timestamped human-readable
  file ``logs/klinesync-YYYYMMDD-HHMMSS.log`` and a :class:`JsonLinesHandler`
  mirror in the matching ``.jsonl`` file.
* :func:`trace`, a decorator logging entry/exit of sync and async callables
  at TRACE level.

Every record carries a ``code_path`` attribute; call sites pass one through
``extra={"code_path": ...}`` and a filter fills it in otherwise.
"""

from __future__ import annotations

import functools
import inspect
import json
import logging
import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Tuple, TypeVar

from rich.console import Console
from rich.logging import RichHandler

__all__ = ["TRACE_LEVEL", "JsonLinesHandler", "configure_logging", "trace"]

TRACE_LEVEL = 5

logging.addLevelName(TRACE_LEVEL, "TRACE")

LOG_PREFIX = "klinesync"
LEVEL_ENV = "KLINESYNC_LOG_LEVEL"


class _EnsureCodePathFilter(logging.Filter):
    """Default ``record.code_path`` to the emitting file."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401 – logging callback
        if not hasattr(record, "code_path"):
            record.code_path = record.pathname  # type: ignore[attr-defined]
        return True


class JsonLinesHandler(logging.Handler):
    """Write one JSON object per record."""

    def __init__(self, file_path: Path) -> None:
        super().__init__(level=logging.NOTSET)
        self._fp = open(file_path, "a", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        try:
            payload: Dict[str, Any] = {
                "ts_epoch": record.created,
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
                "code_path": getattr(record, "code_path", record.pathname),
            }
            generation = getattr(record, "generation", None)
            if generation is not None:
                payload["generation"] = generation
            if record.exc_info:
                exc_type, exc_value, tb = record.exc_info
                payload["exc_type"] = exc_type.__name__ if exc_type else None
                payload["exc_msg"] = str(exc_value) if exc_value else None
                payload["exc_trace"] = "".join(
                    traceback.format_exception(exc_type, exc_value, tb)
                ).rstrip()
            self._fp.write(json.dumps(payload, separators=(",", ":"), ensure_ascii=False) + "\n")
            self._fp.flush()
        except Exception:  # noqa: BLE001 – logging must never raise
            self.handleError(record)

    def close(self) -> None:
        try:
            self._fp.close()
        finally:
            super().close()


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")


def _prune(log_dir: Path, keep: int) -> None:
    """Keep the newest *keep* ``.log``/``.jsonl`` pairs."""

    runs = sorted(
        log_dir.glob(f"{LOG_PREFIX}-*.log"), key=lambda p: p.stat().st_mtime, reverse=True
    )
    for stale in runs[keep:]:
        stale.unlink(missing_ok=True)
        stale.with_suffix(".jsonl").unlink(missing_ok=True)


def _point_latest(link: Path, target: Path) -> None:
    if link.exists() or link.is_symlink():
        link.unlink()
    try:
        link.symlink_to(target.name)
    except OSError:
        # No symlink support (e.g. restricted Windows accounts).
        link.write_bytes(target.read_bytes())


def configure_logging(
    *,
    debug: bool = False,
    log_dir: Path | str = "logs",
    keep: int = 10,
) -> Tuple[Path, Path]:
    """Install console, file and JSONL handlers on the root logger.

    Returns
    -------
    tuple(Path, Path)
        Paths of the ``.log`` and ``.jsonl`` files of this run.
    """

    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)

    stamp = _timestamp()
    log_path = directory / f"{LOG_PREFIX}-{stamp}.log"
    json_path = directory / f"{LOG_PREFIX}-{stamp}.jsonl"
    log_path.touch()
    json_path.touch()
    _prune(directory, keep)
    _point_latest(directory / "latest.log", log_path)
    _point_latest(directory / "latest.jsonl", json_path)

    if os.getenv(LEVEL_ENV, "").upper() == "TRACE" or debug:
        level = TRACE_LEVEL
    else:
        level = logging.INFO

    # stdout carries the CLI JSON lines.
    console = RichHandler(
        level=level,
        console=Console(stderr=True),
        rich_tracebacks=False,
        omit_repeated_times=False,
    )

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d - %(message)s"
        )
    )

    root = logging.getLogger()
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()
    root.setLevel(level)
    for handler in (console, file_handler, JsonLinesHandler(json_path)):
        handler.addFilter(_EnsureCodePathFilter())
        root.addHandler(handler)

    return log_path, json_path


F = TypeVar("F", bound=Callable[..., Any])


def trace(func: F) -> F:
    """Log entry / exit of *func* at TRACE level."""

    logger = logging.getLogger(func.__module__)
    extra = {"code_path": func.__code__.co_filename}

    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def _async_wrapper(*args: Any, **kwargs: Any) -> Any:
            logger.log(TRACE_LEVEL, "→ %s()", func.__qualname__, extra=extra)
            try:
                return await func(*args, **kwargs)
            finally:
                logger.log(TRACE_LEVEL, "← %s()", func.__qualname__, extra=extra)

        return _async_wrapper  # type: ignore[return-value]

    @functools.wraps(func)
    def _wrapper(*args: Any, **kwargs: Any) -> Any:
        logger.log(TRACE_LEVEL, "→ %s()", func.__qualname__, extra=extra)
        try:
            return func(*args, **kwargs)
        finally:
            logger.log(TRACE_LEVEL, "← %s()", func.__qualname__, extra=extra)

    return _wrapper  # type: ignore[return-value]
