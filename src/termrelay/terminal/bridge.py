"""PTY bridge process.

Runs as a child of the server (``python -u bridge.py COLS ROWS``, by file
path, so it imports nothing from the package). It allocates a
pseudo-terminal, execs the user's login shell on it, and relays bytes
between its own stdio and the pty:

    stdin  -> raw keystrokes forwarded to the shell, EXCEPT inline
              ``__RESIZE__:<cols>:<rows>\\n`` commands, which are applied
              to the pty with TIOCSWINSZ + SIGWINCH
    stdout <- raw pty output, unmodified

Nothing in this module may write diagnostics to stdout: it is the data
channel back to the server.
"""

from __future__ import annotations

import errno
import fcntl
import os
import pty
import select
import signal
import struct
import sys
import termios
import time
from collections import deque
from typing import NamedTuple

RESIZE_PREFIX = b"__RESIZE__:"
# Longest body accepted after the prefix before the match is abandoned.
MAX_RESIZE_BODY = 24

MIN_COLS, MAX_COLS = 2, 500
MIN_ROWS, MAX_ROWS = 2, 200
DEFAULT_COLS, DEFAULT_ROWS = 80, 24

READ_SIZE = 16384
SELECT_TIMEOUT = 1.0
# Shorter wait used while a possible split marker is held back.
PARTIAL_FLUSH_TIMEOUT = 0.05
REAP_TIMEOUT = 2.0
# Stdin is not read while this much input is waiting for the shell.
MAX_INPUT_BACKLOG = 65536

SHELL_CANDIDATES = ("/bin/zsh", "/bin/bash", "/bin/sh")


class WindowSize(NamedTuple):
    cols: int
    rows: int


def encode_resize(cols: int, rows: int) -> bytes:
    """Serialize an inline resize command."""
    return RESIZE_PREFIX + f"{cols}:{rows}\n".encode("ascii")


def size_in_bounds(cols: int, rows: int) -> bool:
    return MIN_COLS <= cols <= MAX_COLS and MIN_ROWS <= rows <= MAX_ROWS


def _parse_resize_body(body: bytes) -> WindowSize | None:
    try:
        parts = body.split(b":")
        cols, rows = int(parts[0]), int(parts[1])
    except (IndexError, ValueError):
        return None
    if not size_in_bounds(cols, rows):
        return None
    return WindowSize(cols, rows)


class ResizeFilter:
    """Incremental filter separating resize commands from keystrokes.

    ``feed()`` returns, in stream order, the byte runs to forward to the
    pty interleaved with the window sizes to apply. A marker split across
    reads is held back until it completes; malformed or out-of-range
    commands are dropped without output.
    """

    def __init__(self) -> None:
        self._pending = b""

    @property
    def pending(self) -> bytes:
        return self._pending

    @property
    def flushable(self) -> bool:
        """True when a partial marker is held that ``flush()`` would release."""
        return bool(self._pending) and not self._pending.startswith(RESIZE_PREFIX)

    def feed(self, data: bytes) -> list[bytes | WindowSize]:
        buf = self._pending + data
        self._pending = b""
        out: list[bytes | WindowSize] = []

        while buf:
            idx = buf.find(RESIZE_PREFIX)
            if idx == -1:
                keep = self._partial_prefix_len(buf)
                if len(buf) > keep:
                    out.append(buf[: len(buf) - keep])
                self._pending = buf[len(buf) - keep:]
                break

            if idx > 0:
                out.append(buf[:idx])
            start = idx + len(RESIZE_PREFIX)
            nl = buf.find(b"\n", start)
            if nl == -1:
                if len(buf) - start > MAX_RESIZE_BODY:
                    # Too long to be a command: pass the marker through.
                    out.append(buf[idx:start])
                    buf = buf[start:]
                    continue
                self._pending = buf[idx:]
                break
            if nl - start > MAX_RESIZE_BODY:
                out.append(buf[idx:start])
                buf = buf[start:]
                continue

            size = _parse_resize_body(buf[start:nl])
            if size is not None:
                out.append(size)
            buf = buf[nl + 1:]

        return self._coalesce(out)

    def flush(self) -> bytes:
        """Release a held-back partial marker as ordinary input.

        A complete prefix still waiting for its newline stays held.
        """
        if self._pending.startswith(RESIZE_PREFIX):
            return b""
        data, self._pending = self._pending, b""
        return data

    @staticmethod
    def _partial_prefix_len(buf: bytes) -> int:
        for n in range(min(len(RESIZE_PREFIX) - 1, len(buf)), 0, -1):
            if RESIZE_PREFIX.startswith(buf[-n:]):
                return n
        return 0

    @staticmethod
    def _coalesce(items: list[bytes | WindowSize]) -> list[bytes | WindowSize]:
        merged: list[bytes | WindowSize] = []
        for item in items:
            if isinstance(item, bytes) and merged and isinstance(merged[-1], bytes):
                merged[-1] = merged[-1] + item
            else:
                merged.append(item)
        return merged


def resolve_shell(preferred: str | None = None) -> str:
    """Pick the shell to exec: explicit, then $SHELL, then common paths."""
    for candidate in (preferred, os.environ.get("SHELL")):
        if candidate and os.path.exists(candidate):
            return candidate
    for candidate in SHELL_CANDIDATES:
        if os.path.exists(candidate):
            return candidate
    return "/bin/sh"


def parse_size(args: list[str]) -> WindowSize:
    """Initial size from argv, falling back to 80x24."""
    try:
        cols = int(args[0]) if len(args) > 0 else DEFAULT_COLS
        rows = int(args[1]) if len(args) > 1 else DEFAULT_ROWS
    except ValueError:
        return WindowSize(DEFAULT_COLS, DEFAULT_ROWS)
    if not size_in_bounds(cols, rows):
        return WindowSize(DEFAULT_COLS, DEFAULT_ROWS)
    return WindowSize(cols, rows)


def _write_all(fd: int, data: bytes) -> None:
    view = memoryview(data)
    while view:
        written = os.write(fd, view)
        view = view[written:]


def _set_nonblocking(fd: int) -> None:
    flags = fcntl.fcntl(fd, fcntl.F_GETFL)
    fcntl.fcntl(fd, fcntl.F_SETFL, flags | os.O_NONBLOCK)


class PtyBridge:
    """Relays between this process's stdio and a shell on a pty.

    The pty master is non-blocking. Input the shell is not yet reading
    waits in an ordered backlog (bytes and resizes together) that is
    drained whenever the master becomes writable, so a stalled shell can
    never stop output from being relayed. Stdin is not read while the
    backlog is above ``MAX_INPUT_BACKLOG``.
    """

    def __init__(
        self,
        shell: str,
        size: WindowSize,
        stdin_fd: int = 0,
        stdout_fd: int = 1,
    ) -> None:
        self._shell = shell
        self._size = size
        self._stdin_fd = stdin_fd
        self._stdout_fd = stdout_fd
        self._filter = ResizeFilter()
        self._backlog: deque[bytes | WindowSize] = deque()
        self._backlog_bytes = 0
        self._pid = 0
        self._master_fd = -1
        self._stopping = False

    @property
    def size(self) -> WindowSize:
        return self._size

    @property
    def backlog_bytes(self) -> int:
        """Input bytes accepted from stdin but not yet written to the pty."""
        return self._backlog_bytes

    def spawn(self) -> None:
        pid, master_fd = pty.fork()
        if pid == 0:
            try:
                os.execvp(self._shell, [self._shell, "-l"])
            except OSError as e:
                os.write(2, f"exec {self._shell} failed: {e}\r\n".encode())
            os._exit(127)
        self._pid = pid
        self._master_fd = master_fd
        _set_nonblocking(master_fd)
        self.set_size(self._size)

    def set_size(self, size: WindowSize) -> None:
        winsize = struct.pack("HHHH", size.rows, size.cols, 0, 0)
        try:
            fcntl.ioctl(self._master_fd, termios.TIOCSWINSZ, winsize)
            os.kill(self._pid, signal.SIGWINCH)
        except OSError:
            return
        self._size = size

    def install_signal_handlers(self) -> None:
        signal.signal(signal.SIGTERM, self._on_terminate)
        signal.signal(signal.SIGHUP, self._on_terminate)

    def _on_terminate(self, signum: int, _frame: object) -> None:
        self._stopping = True
        try:
            os.kill(self._pid, signum)
        except OSError:
            pass

    def select_sets(self) -> tuple[list[int], list[int]]:
        """File descriptors to wait on for reading and for writing."""
        readable = [self._master_fd]
        if self._backlog_bytes < MAX_INPUT_BACKLOG:
            readable.append(self._stdin_fd)
        writable = [self._master_fd] if self._backlog else []
        return readable, writable

    def run(self) -> None:
        """Pump bytes until the shell exits, stdin closes, or we are told to stop."""
        try:
            while not self._stopping:
                timeout = PARTIAL_FLUSH_TIMEOUT if self._filter.flushable else SELECT_TIMEOUT
                rfds, wfds = self.select_sets()
                try:
                    readable, writable, _ = select.select(rfds, wfds, [], timeout)
                except InterruptedError:
                    continue
                except (OSError, ValueError):
                    break

                if not readable and not writable:
                    held = self._filter.flush()
                    if held:
                        self.queue_input([held])
                        if not self.drain_input():
                            break
                    continue

                if self._master_fd in readable and not self._pump_output():
                    break
                if self._master_fd in writable and not self.drain_input():
                    break
                if self._stdin_fd in readable and not self._pump_input():
                    break
        finally:
            self.close()

    def _pump_output(self) -> bool:
        try:
            data = os.read(self._master_fd, READ_SIZE)
        except BlockingIOError:
            return True
        except OSError as e:
            if e.errno == errno.EIO:
                return False  # Child exited
            raise
        if not data:
            return False
        try:
            _write_all(self._stdout_fd, data)
        except BrokenPipeError:
            return False
        return True

    def _pump_input(self) -> bool:
        try:
            data = os.read(self._stdin_fd, READ_SIZE)
        except OSError:
            return False
        if not data:
            return False
        self.queue_input(self._filter.feed(data))
        return self.drain_input()

    def queue_input(self, items: list[bytes | WindowSize]) -> None:
        for item in items:
            if isinstance(item, WindowSize):
                self._backlog.append(item)
            elif item:
                self._backlog.append(item)
                self._backlog_bytes += len(item)

    def drain_input(self) -> bool:
        """Write as much backlog as the pty takes now. False once the pty is gone."""
        while self._backlog:
            item = self._backlog[0]
            if isinstance(item, WindowSize):
                self._backlog.popleft()
                self.set_size(item)
                continue
            try:
                written = os.write(self._master_fd, item)
            except BlockingIOError:
                return True
            except OSError as e:
                if e.errno == errno.EIO:
                    return False
                raise
            self._backlog_bytes -= written
            if written < len(item):
                self._backlog[0] = item[written:]
                return True
            self._backlog.popleft()
        return True

    def close(self) -> int | None:
        """Close the pty and reap the shell. Returns its exit status if reaped."""
        if self._master_fd >= 0:
            try:
                os.close(self._master_fd)
            except OSError:
                pass
            self._master_fd = -1
        if not self._pid:
            return None
        deadline = time.monotonic() + REAP_TIMEOUT
        try:
            while True:
                pid, status = os.waitpid(self._pid, os.WNOHANG)
                if pid:
                    return os.waitstatus_to_exitcode(status)
                if time.monotonic() >= deadline:
                    # Closing the master sent SIGHUP; the shell ignored it.
                    os.kill(self._pid, signal.SIGKILL)
                    _, status = os.waitpid(self._pid, 0)
                    return os.waitstatus_to_exitcode(status)
                time.sleep(0.05)
        except (ChildProcessError, ProcessLookupError):
            return None


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    bridge = PtyBridge(shell=resolve_shell(os.environ.get("TERMRELAY_SHELL")), size=parse_size(args))
    bridge.spawn()
    bridge.install_signal_handlers()
    bridge.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
