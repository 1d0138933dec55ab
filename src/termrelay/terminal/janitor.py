"""Janitor -- periodic reclamation of abandoned terminal sessions."""

from __future__ import annotations

import asyncio
import logging

from termrelay.terminal.registry import SessionRegistry

logger = logging.getLogger(__name__)


class Janitor:
    """Runs ``registry.sweep()`` on a fixed interval in a background task.

    The task is owned by whoever calls ``start()``/``stop()`` (the server
    lifespan), never left free-floating.
    """

    def __init__(self, registry: SessionRegistry, interval: float = 120.0) -> None:
        self._registry = registry
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="terminal-janitor")
        logger.info("Janitor started (interval=%.0fs)", self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Janitor stopped")

    def sweep_once(self) -> list[str]:
        removed = self._registry.sweep()
        if removed:
            logger.info("Janitor reclaimed %d session(s)", len(removed))
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self.sweep_once()
            except Exception:
                logger.exception("Janitor sweep failed")
