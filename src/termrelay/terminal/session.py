"""Terminal session -- one bridge process and everything viewers need from it.

A session owns the bridge subprocess, a rolling buffer of its output for
late joiners, and the broadcaster that pushes events to live viewers.
All methods run on the server's event loop; none of them block on the
child.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import sys
import time
import uuid
from pathlib import Path

from termrelay.domain.models import (
    OutputEvent,
    SessionInfo,
    SessionState,
    StatusEvent,
)
from termrelay.terminal.bridge import encode_resize, size_in_bounds
from termrelay.terminal.broadcaster import Broadcaster, Listener
from termrelay.terminal.buffer import DEFAULT_MAX_CHARS, OutputBuffer
from termrelay.terminal.errors import (
    InvalidArgumentError,
    ProcessSpawnError,
    SessionNotFoundError,
)

logger = logging.getLogger(__name__)

BRIDGE_SCRIPT = Path(__file__).with_name("bridge.py")
READ_SIZE = 16384

SESSION_ENDED_TEXT = "\r\n\x1b[90m[Session ended]\x1b[0m\r\n"


def error_text(message: str) -> str:
    return f"\r\n\x1b[31m[Error: {message}]\x1b[0m\r\n"


def new_session_id() -> str:
    return uuid.uuid4().hex[:8]


def bridge_environment(
    term: str = "xterm-256color",
    colorterm: str = "truecolor",
    lang: str | None = None,
    shell: str | None = None,
) -> dict[str, str]:
    """Environment for the bridge: the server's own, tuned for color output."""
    env = os.environ.copy()
    env.update(
        {
            "TERM": term,
            "COLORTERM": colorterm,
            "FORCE_COLOR": "3",
            "LANG": os.environ.get("LANG") or lang or "en_US.UTF-8",
            "HOME": os.environ.get("HOME") or "/tmp",
            "CLICOLOR": "1",
            "CLICOLOR_FORCE": "1",
        }
    )
    if shell:
        env["TERMRELAY_SHELL"] = shell
    return env


class TerminalSession:
    """A pty-backed shell reachable by any number of viewers.

    State machine: CREATED -> RUNNING -> {ENDED | KILLED}. Both end states
    set ``alive`` to False and publish a final ``StatusEvent(alive=False)``
    exactly once; nothing is published after that.
    """

    def __init__(
        self,
        cols: int = 80,
        rows: int = 24,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        buffer_max_chars: int = DEFAULT_MAX_CHARS,
        session_id: str | None = None,
        command: list[str] | None = None,
    ) -> None:
        self.id = session_id or new_session_id()
        self.cols = cols
        self.rows = rows
        self.cwd = cwd or os.path.expanduser("~")
        self.buffer = OutputBuffer(max_chars=buffer_max_chars)
        self.broadcaster = Broadcaster(name=self.id)
        self.created_at = time.time()
        self.created_monotonic = time.monotonic()
        self.last_activity = self.created_monotonic
        self._env = env if env is not None else bridge_environment()
        self._command = command or [
            sys.executable, "-u", str(BRIDGE_SCRIPT), str(cols), str(rows),
        ]
        self._state = SessionState.CREATED
        self._process: asyncio.subprocess.Process | None = None
        self._supervisor: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Spawn the bridge process and begin relaying its output."""
        if self._state is not SessionState.CREATED:
            raise RuntimeError(f"Session {self.id} already started")
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self._command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
                env=self._env,
                start_new_session=True,
            )
        except OSError as e:
            self._finish(SessionState.ENDED, error_text(str(e)))
            raise ProcessSpawnError(
                f"Failed to start terminal bridge: {e}", session_id=self.id
            ) from e

        self._state = SessionState.RUNNING
        self._supervisor = asyncio.create_task(
            self._supervise(), name=f"terminal-session-{self.id}"
        )
        logger.info(
            "Terminal session %s started: pid=%d size=%dx%d cwd=%s",
            self.id, self._process.pid, self.cols, self.rows, self.cwd,
        )

    async def _supervise(self) -> None:
        assert self._process is not None
        await asyncio.gather(
            self._read_stream(self._process.stdout),
            self._read_stream(self._process.stderr),
        )
        exit_code = await self._process.wait()
        logger.info("Terminal session %s bridge exited (code=%s)", self.id, exit_code)
        self._finish(SessionState.ENDED, SESSION_ENDED_TEXT)

    async def _read_stream(self, stream: asyncio.StreamReader | None) -> None:
        if stream is None:
            return
        # Multi-byte characters may straddle reads.
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                data = await stream.read(READ_SIZE)
                if not data:
                    break
                text = decoder.decode(data)
                if text:
                    self._emit_output(text)
        except (OSError, ValueError) as e:
            logger.debug("Reader for session %s failed: %s", self.id, e)
        tail = decoder.decode(b"", final=True)
        if tail:
            self._emit_output(tail)

    def terminate(self) -> None:
        """Signal the bridge to stop without waiting for it to exit."""
        if self._process is not None and self._process.returncode is None:
            try:
                self._process.terminate()
            except ProcessLookupError:
                pass
        if not self._state.is_terminal:
            logger.info("Terminal session %s killed", self.id)
        self._finish(SessionState.KILLED, SESSION_ENDED_TEXT)

    async def wait_closed(self, timeout: float | None = None) -> None:
        """Wait until the bridge's output has closed and the process is reaped."""
        if self._supervisor is not None:
            await asyncio.wait_for(asyncio.shield(self._supervisor), timeout)

    def _finish(self, state: SessionState, final_text: str) -> None:
        if self._state.is_terminal:
            return
        # Publish while still alive so the final line is not suppressed.
        self._emit_output(final_text)
        self._state = state
        self._publish(StatusEvent(alive=False))

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _emit_output(self, text: str) -> None:
        if self._state.is_terminal:
            return
        self.buffer.append(text)
        self._publish(OutputEvent(text=text))

    def _publish(self, event: OutputEvent | StatusEvent) -> None:
        self.last_activity = time.monotonic()
        self.broadcaster.publish(event)

    def subscribe(self, listener: Listener) -> None:
        self.broadcaster.register(listener)

    def unsubscribe(self, listener: Listener) -> None:
        self.broadcaster.unregister(listener)

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def write(self, data: str) -> None:
        """Forward raw input to the bridge's stdin. Does not wait for the child."""
        stdin = self._writable_stdin()
        self.last_activity = time.monotonic()
        stdin.write(data.encode("utf-8"))

    def resize(self, cols: int, rows: int) -> None:
        """Ask the bridge to resize the pty via the inline resize command."""
        stdin = self._writable_stdin()
        if not size_in_bounds(cols, rows):
            raise InvalidArgumentError(
                f"Invalid cols/rows: {cols}x{rows}", session_id=self.id
            )
        self.last_activity = time.monotonic()
        stdin.write(encode_resize(cols, rows))
        self.cols, self.rows = cols, rows

    def _writable_stdin(self) -> asyncio.StreamWriter:
        if (
            not self.alive
            or self._process is None
            or self._process.stdin is None
            or self._process.stdin.is_closing()
        ):
            raise SessionNotFoundError(
                f"Session {self.id} not found or dead", session_id=self.id
            )
        return self._process.stdin

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def alive(self) -> bool:
        return self._state is SessionState.RUNNING

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    def idle_seconds(self, now: float | None = None) -> float:
        return (time.monotonic() if now is None else now) - self.last_activity

    def age_seconds(self, now: float | None = None) -> float:
        return (time.monotonic() if now is None else now) - self.created_monotonic

    def info(self) -> SessionInfo:
        return SessionInfo(
            id=self.id,
            alive=self.alive,
            state=self._state,
            created_at=self.created_at,
            age_seconds=max(0, round(self.age_seconds())),
            cwd=self.cwd,
            listeners=len(self.broadcaster),
        )
