"""In-memory broadcast of supervisor events.

``EventHub`` hands every listener its own ``anyio`` memory stream so a slow
consumer never stalls the engine.  ``publish`` never blocks: an event is
dropped for a listener whose backlog is full and a TRACE log records it.
"""

from __future__ import annotations

import logging
from typing import Set

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from .events import SupervisorEvent
from .logging_utils import TRACE_LEVEL

__all__ = ["EventHub"]

logger = logging.getLogger(__name__)


class EventHub:
    """Fan-out of :data:`~klinesync.events.SupervisorEvent` values.

    Example
    -------
    >>> hub = EventHub(maxsize=10)
    >>> recv = hub.subscribe()
    >>> hub.publish(event)
    >>> await recv.receive()
    """

    def __init__(self, maxsize: int = 100) -> None:
        self._maxsize = maxsize
        self._subs: Set[MemoryObjectSendStream[SupervisorEvent]] = set()
        self._closed = False

    def subscribe(self) -> MemoryObjectReceiveStream[SupervisorEvent]:
        """Return a receive stream for events published from now on.

        After :meth:`close` the stream is already at end-of-stream.
        """
        send, recv = anyio.create_memory_object_stream[SupervisorEvent](self._maxsize)
        if self._closed:
            send.close()
        else:
            self._subs.add(send)
        return recv

    def publish(self, event: SupervisorEvent) -> None:
        for send in list(self._subs):
            try:
                send.send_nowait(event)
            except anyio.WouldBlock:
                logger.log(
                    TRACE_LEVEL,
                    "drop event: listener backlog full",
                    extra={"code_path": f"{__name__}.EventHub.publish"},
                )
            except (anyio.BrokenResourceError, anyio.ClosedResourceError):
                # Listener closed its receive side.
                self._subs.discard(send)
                send.close()

    def close(self) -> None:
        """Close every listener stream; receivers then see end-of-stream."""
        self._closed = True
        for send in list(self._subs):
            send.close()
        self._subs.clear()

