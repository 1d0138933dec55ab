"""Terminal session subsystem.

Spawns pty-backed login shells through a bridge subprocess, buffers
their output for replay, and fans events out to viewers.

Public API:
    SessionRegistry -- Owner of all sessions (create/get/list/destroy/sweep)
    TerminalSession -- One bridge process plus buffer and listeners
    Janitor -- Background sweep of idle and dead sessions
"""

from termrelay.terminal.broadcaster import Broadcaster
from termrelay.terminal.buffer import OutputBuffer
from termrelay.terminal.errors import (
    InvalidArgumentError,
    ProcessSpawnError,
    SessionNotFoundError,
    TerminalError,
    TransportClosedError,
)
from termrelay.terminal.janitor import Janitor
from termrelay.terminal.registry import SessionRegistry
from termrelay.terminal.session import TerminalSession

__all__ = [
    "Broadcaster",
    "InvalidArgumentError",
    "Janitor",
    "OutputBuffer",
    "ProcessSpawnError",
    "SessionNotFoundError",
    "SessionRegistry",
    "TerminalError",
    "TerminalSession",
    "TransportClosedError",
]
