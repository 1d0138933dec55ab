"""Fan-out of session events to registered listeners."""

from __future__ import annotations

import logging
from typing import Callable

from termrelay.domain.models import OutputEvent, StatusEvent

logger = logging.getLogger(__name__)

Listener = Callable[[OutputEvent | StatusEvent], None]


class Broadcaster:
    """Delivers each published event to every registered listener.

    Listeners are called synchronously, in registration order. One that
    raises is dropped; delivery to the rest continues.
    """

    def __init__(self, name: str = "") -> None:
        self._name = name
        # dict keeps insertion order and makes register idempotent
        self._listeners: dict[Listener, None] = {}

    def register(self, listener: Listener) -> None:
        self._listeners[listener] = None

    def unregister(self, listener: Listener) -> None:
        self._listeners.pop(listener, None)

    def publish(self, event: OutputEvent | StatusEvent) -> int:
        """Deliver ``event``; returns the number of listeners reached."""
        delivered = 0
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.debug("Dropping listener on %s: %s", self._name or "session", e)
                self.unregister(listener)
            else:
                delivered += 1
        return delivered

    def clear(self) -> None:
        self._listeners.clear()

    def __contains__(self, listener: object) -> bool:
        return listener in self._listeners

    def __len__(self) -> int:
        return len(self._listeners)
