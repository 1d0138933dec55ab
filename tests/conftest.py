"""Shared test fixtures for the termrelay test suite.

Provides stand-in child commands for sessions (so most tests never need
a real pty), a process-free session double for registry tests, and
small polling helpers.
"""

from __future__ import annotations

import asyncio
import sys
import time

import pytest

from termrelay.domain.models import SessionInfo, SessionState
from termrelay.terminal.errors import SessionNotFoundError

# Echoes each stdin line back prefixed with "echo:".
ECHO_SCRIPT = (
    "import sys\n"
    "while True:\n"
    "    line = sys.stdin.readline()\n"
    "    if not line:\n"
    "        break\n"
    "    sys.stdout.write('echo:' + line)\n"
    "    sys.stdout.flush()\n"
)

# Echoes a single line, then exits.
ECHO_ONCE_SCRIPT = (
    "import sys\n"
    "sys.stdout.write('echo:' + sys.stdin.readline())\n"
    "sys.stdout.flush()\n"
)


# ---------------------------------------------------------------------------
# Child commands
# ---------------------------------------------------------------------------


@pytest.fixture
def echo_command() -> list[str]:
    return [sys.executable, "-u", "-c", ECHO_SCRIPT]


@pytest.fixture
def echo_once_command() -> list[str]:
    return [sys.executable, "-u", "-c", ECHO_ONCE_SCRIPT]


# ---------------------------------------------------------------------------
# Session double
# ---------------------------------------------------------------------------


class FakeSession:
    """Process-free stand-in for TerminalSession, for registry tests."""

    def __init__(
        self,
        session_id: str,
        cols: int = 80,
        rows: int = 24,
        cwd: str | None = None,
        env: dict | None = None,
        buffer_max_chars: int = 0,
    ) -> None:
        self.id = session_id
        self.cols = cols
        self.rows = rows
        self.cwd = cwd or "/tmp"
        self.state = SessionState.CREATED
        self.terminated = False
        self.writes: list[str] = []
        now = time.monotonic()
        self.created_monotonic = now
        self.last_activity = now

    async def start(self) -> None:
        self.state = SessionState.RUNNING

    @property
    def alive(self) -> bool:
        return self.state is SessionState.RUNNING

    def write(self, data: str) -> None:
        if not self.alive:
            raise SessionNotFoundError("dead", session_id=self.id)
        self.writes.append(data)

    def terminate(self) -> None:
        self.terminated = True
        if not self.state.is_terminal:
            self.state = SessionState.KILLED

    def end(self) -> None:
        self.state = SessionState.ENDED

    async def wait_closed(self, timeout: float | None = None) -> None:
        return None

    def idle_seconds(self, now: float | None = None) -> float:
        return (time.monotonic() if now is None else now) - self.last_activity

    def age_seconds(self, now: float | None = None) -> float:
        return (time.monotonic() if now is None else now) - self.created_monotonic

    def info(self) -> SessionInfo:
        return SessionInfo(
            id=self.id,
            alive=self.alive,
            state=self.state,
            created_at=0.0,
            age_seconds=0,
            cwd=self.cwd,
        )


@pytest.fixture
def fake_session_factory() -> type[FakeSession]:
    return FakeSession


# ---------------------------------------------------------------------------
# Polling helpers
# ---------------------------------------------------------------------------


async def wait_until(predicate, timeout: float = 10.0, interval: float = 0.02) -> None:
    """Await until ``predicate()`` is truthy or fail after ``timeout``."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


def wait_until_sync(predicate, timeout: float = 10.0, interval: float = 0.02) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() >= deadline:
            raise AssertionError("condition not met before timeout")
        time.sleep(interval)
