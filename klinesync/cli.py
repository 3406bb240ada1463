"""klinesync.cli – Typer-powered command-line interface.

``snapshot`` prints the historical candles a target switch would merge;
``watch`` runs the full engine and prints the visible window periodically.
Output is JSON lines on stdout; logs go to the console handler and ``logs/``.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Optional

import anyio
import typer

import klinesync
from klinesync.exceptions import KlineSyncError
from klinesync.json_utils import to_json
from klinesync.logging_utils import configure_logging
from klinesync.settings import EngineSettings, load_settings

app = typer.Typer(add_completion=False, pretty_exceptions_enable=False)


def _settings(ctx: typer.Context) -> EngineSettings:
    if not isinstance(ctx.obj, EngineSettings):
        ctx.obj = load_settings()
    return ctx.obj


def _check_symbol(ctx: typer.Context, value: Optional[str]) -> str:
    settings = _settings(ctx)
    try:
        return settings.resolve_symbol(value or settings.default_symbol)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _check_interval(ctx: typer.Context, value: Optional[str]) -> str:
    settings = _settings(ctx)
    try:
        return settings.resolve_interval(value or settings.default_interval)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None, "-c", "--config", help="TOML settings file (default: config/klinesync.toml)"
    ),
    debug: bool = typer.Option(False, "-d", "--debug", help="Log at TRACE level"),
    log_dir: Path = typer.Option(Path("logs"), "--log-dir", help="Directory for log files"),
) -> None:
    """Synchronise exchange candles for one symbol/interval target."""

    configure_logging(debug=debug, log_dir=log_dir)
    try:
        ctx.obj = load_settings(config)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="'-c' / '--config'") from exc


@app.command()
def snapshot(
    ctx: typer.Context,
    symbol: Optional[str] = typer.Option(
        None, "-s", "--symbol", callback=_check_symbol, help="Alias (ETH) or exchange symbol"
    ),
    interval: Optional[str] = typer.Option(
        None, "-i", "--interval", callback=_check_interval, help="Kline interval, e.g. 1m"
    ),
) -> None:
    """Fetch the historical snapshot for a target and print it."""

    settings = _settings(ctx)

    async def _fetch() -> list:
        async with klinesync.HistoricalFetcher(
            base_url=settings.rest_url,
            limit=settings.snapshot_limit,
            timeout=settings.request_timeout,
        ) as fetcher:
            return await fetcher.fetch_snapshot(symbol, interval, settings.snapshot_window_ms, 0)

    try:
        candles = anyio.run(_fetch)
    except KlineSyncError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(1) from exc

    for candle in candles:
        typer.echo(to_json(candle))


@app.command()
def watch(
    ctx: typer.Context,
    symbol: Optional[str] = typer.Option(
        None, "-s", "--symbol", callback=_check_symbol, help="Alias (ETH) or exchange symbol"
    ),
    interval: Optional[str] = typer.Option(
        None, "-i", "--interval", callback=_check_interval, help="Kline interval, e.g. 1m"
    ),
    refresh: float = typer.Option(5.0, "-r", "--refresh", min=0.0, help="Seconds between prints"),
    iterations: int = typer.Option(
        0, "-n", "--iterations", min=0, help="Stop after N prints (0 = until interrupted)"
    ),
) -> None:
    """Stream a target and print the visible window as JSON lines."""

    settings = _settings(ctx)

    async def _watch() -> None:
        async with klinesync.CandleSyncEngine(settings) as engine:
            await engine.select_target(symbol, interval)
            printed = 0
            while True:
                now = int(time.time() * 1000)
                typer.echo(
                    to_json(
                        {
                            "now": now,
                            "state": engine.state,
                            "candles": engine.get_visible_candles(now),
                        }
                    )
                )
                printed += 1
                if iterations and printed >= iterations:
                    break
                await anyio.sleep(refresh)

    try:
        anyio.run(_watch)
    except KlineSyncError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(1) from exc
    except KeyboardInterrupt:
        raise typer.Exit(0)


def run() -> None:
    """Console-script entrypoint for the ``klinesync`` command."""

    app()
