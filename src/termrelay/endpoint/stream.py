"""Server-sent event stream of one terminal session.

Each viewer connection gets its own queue registered as a listener on
the session's broadcaster. The connection first receives the buffered
output (replay) and the current status, then live events, with a
comment-line heartbeat whenever the session has been quiet for a while.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, AsyncIterator

from termrelay.domain.models import OutputEvent, StatusEvent
from termrelay.terminal.errors import TransportClosedError

if TYPE_CHECKING:
    from fastapi import Request

    from termrelay.terminal.session import TerminalSession

logger = logging.getLogger(__name__)

HEARTBEAT_FRAME = ": heartbeat\n\n"
DEFAULT_HEARTBEAT_INTERVAL = 15.0
# A viewer this far behind is treated as gone.
MAX_PENDING_EVENTS = 10_000

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_event(event: OutputEvent | StatusEvent) -> str:
    return f"data: {event.model_dump_json()}\n\n"


class QueueListener:
    """Broadcaster listener that hands events to one connection's queue."""

    def __init__(self, maxsize: int = MAX_PENDING_EVENTS) -> None:
        self._queue: asyncio.Queue[OutputEvent | StatusEvent] = asyncio.Queue(maxsize)
        self._closed = False

    def __call__(self, event: OutputEvent | StatusEvent) -> None:
        if self._closed:
            raise TransportClosedError("Viewer connection closed")
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull as e:
            self._closed = True
            raise TransportClosedError("Viewer fell too far behind") from e

    @property
    def closed(self) -> bool:
        return self._closed

    async def get(self) -> OutputEvent | StatusEvent:
        return await self._queue.get()

    def close(self) -> None:
        self._closed = True


async def event_stream(
    session: TerminalSession,
    request: Request | None = None,
    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
) -> AsyncIterator[str]:
    """Yield SSE frames for ``session`` until it ends or the viewer leaves."""
    listener = QueueListener()
    # Snapshot and subscribe with no await in between so no event is
    # lost or duplicated between the replay and the live stream.
    replay = session.buffer.replay()
    alive = session.alive
    if alive:
        session.subscribe(listener)
    logger.debug("Viewer attached to session %s (replay=%d chars)", session.id, len(replay))

    try:
        if replay:
            yield format_event(OutputEvent(text=replay))
        yield format_event(StatusEvent(alive=alive))
        if not alive:
            return

        while not listener.closed:
            try:
                event = await asyncio.wait_for(listener.get(), timeout=heartbeat_interval)
            except asyncio.TimeoutError:
                if request is not None and await request.is_disconnected():
                    break
                yield HEARTBEAT_FRAME
                continue
            yield format_event(event)
            if isinstance(event, StatusEvent) and not event.alive:
                break
    finally:
        listener.close()
        session.unsubscribe(listener)
        logger.debug("Viewer detached from session %s", session.id)
