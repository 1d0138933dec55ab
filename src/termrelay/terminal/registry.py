"""Session registry -- the process-wide owner of all terminal sessions."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

from termrelay.domain.models import SessionInfo
from termrelay.terminal.session import (
    TerminalSession,
    bridge_environment,
    new_session_id,
)
from termrelay.terminal.errors import SessionNotFoundError

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Creates, tracks and reclaims terminal sessions.

    The registry is mutated only from the event loop (request handlers
    and the janitor), so the plain dict needs no lock. Session records
    that end on their own stay registered, dead, until the next sweep so
    late viewers can still replay their final output.
    """

    def __init__(
        self,
        cwd: str | None = None,
        buffer_max_chars: int = 200_000,
        idle_timeout: float = 3600.0,
        max_age: float = 4 * 3600.0,
        env: dict[str, str] | None = None,
        session_factory: Callable[..., TerminalSession] = TerminalSession,
    ) -> None:
        self._sessions: dict[str, TerminalSession] = {}
        self._cwd = cwd
        self._buffer_max_chars = buffer_max_chars
        self._idle_timeout = idle_timeout
        self._max_age = max_age
        self._env = env
        self._session_factory = session_factory
        self._running = False

    @classmethod
    def from_settings(cls, settings: Any) -> SessionRegistry:
        t = settings.terminal
        return cls(
            cwd=t.cwd,
            buffer_max_chars=t.buffer_max_chars,
            idle_timeout=settings.janitor.idle_timeout,
            max_age=settings.janitor.max_age,
            env=bridge_environment(
                term=t.term, colorterm=t.colorterm, lang=t.lang, shell=t.shell
            ),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        self._running = True
        logger.info("Session registry started")

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Terminate every session and wait for the bridges to exit.

        Called on server shutdown.
        """
        self._running = False
        sessions = list(self._sessions.values())
        for session in sessions:
            self.destroy(session.id)
        for session in sessions:
            try:
                await session.wait_closed(timeout)
            except asyncio.TimeoutError:
                logger.warning("Session %s did not exit within %.0fs", session.id, timeout)
        logger.info("All terminal sessions cleaned up")

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def create(self, cols: int = 80, rows: int = 24) -> str:
        """Spawn a session with the given initial size; returns its id.

        Raises:
            ProcessSpawnError: If the bridge process cannot be started.
        """
        session_id = new_session_id()
        while session_id in self._sessions:
            session_id = new_session_id()
        session = self._session_factory(
            session_id=session_id,
            cols=cols,
            rows=rows,
            cwd=self._cwd,
            env=self._env,
            buffer_max_chars=self._buffer_max_chars,
        )
        await session.start()
        self._sessions[session.id] = session
        return session.id

    def get(self, session_id: str) -> TerminalSession | None:
        return self._sessions.get(session_id)

    def require(self, session_id: str | None, alive: bool = False) -> TerminalSession:
        """Look up a session, raising SessionNotFoundError if absent (or dead)."""
        session = self._sessions.get(session_id or "")
        if session is None or (alive and not session.alive):
            raise SessionNotFoundError(
                "Session not found or dead" if alive else "Invalid session",
                session_id=session_id,
            )
        return session

    def list(self) -> list[SessionInfo]:
        return [s.info() for s in self._sessions.values()]

    def destroy(self, session_id: str) -> bool:
        """Signal the session's process and forget it. Returns False if unknown."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.terminate()
        return True

    def sweep(self, now: float | None = None) -> list[str]:
        """Reclaim dead, idle and overaged sessions. Returns the removed ids."""
        now = time.monotonic() if now is None else now
        removed = []
        for session_id, session in list(self._sessions.items()):
            if not session.alive:
                reason = "dead"
            elif session.idle_seconds(now) > self._idle_timeout:
                reason = "idle"
            elif session.age_seconds(now) > self._max_age:
                reason = "max age"
            else:
                continue
            if self.destroy(session_id):
                logger.info("Swept terminal session %s (%s)", session_id, reason)
                removed.append(session_id)
        return removed

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
