#!/usr/bin/env python3
"""Demo script: stream one target and print the visible window."""

import sys

import anyio

from klinesync import CandleSyncEngine, configure_logging
from klinesync.events import StreamClosed, StreamError, TargetSwitched


async def report(engine: CandleSyncEngine) -> None:
    """Print supervisor events as they happen."""
    async for event in engine.events():
        if isinstance(event, TargetSwitched):
            print(f"[switch] {event.subscription.stream_name} snapshot={event.snapshot_size}")
        elif isinstance(event, StreamError):
            print(f"[error ] {event.error}")
        elif isinstance(event, StreamClosed):
            print(f"[closed] {event.reason}")


async def main(symbol: str, interval: str) -> None:
    """Main entry point for the demo script."""
    async with CandleSyncEngine() as engine:
        async with anyio.create_task_group() as tg:
            tg.start_soon(report, engine)
            await engine.select_target(symbol, interval)
            for _ in range(6):
                await anyio.sleep(5)
                candles = engine.get_visible_candles()
                if candles:
                    last = candles[-1]
                    print(
                        f"[view  ] {len(candles)} candles, last t={last.time_bucket} "
                        f"o={last.open} h={last.high} l={last.low} c={last.close}"
                    )
            await engine.shutdown()


if __name__ == "__main__":
    configure_logging()
    args = sys.argv[1:] or ["ETH", "1m"]
    anyio.run(main, *args)
