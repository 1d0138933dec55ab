"""Error taxonomy for terminal sessions.

Every failure the session layer reports derives from TerminalError so
the HTTP layer can map it to a status code in one place.
"""

from __future__ import annotations


class TerminalError(Exception):
    """Base error for terminal session operations."""

    status_code = 500

    def __init__(self, message: str, session_id: str | None = None) -> None:
        super().__init__(message)
        self.session_id = session_id


class SessionNotFoundError(TerminalError):
    """The session id is unknown, or the session is no longer alive."""

    status_code = 404


class InvalidArgumentError(TerminalError):
    """A request carried an out-of-range or malformed argument."""

    status_code = 400


class ProcessSpawnError(TerminalError):
    """The bridge process could not be started."""

    status_code = 500


class TransportClosedError(TerminalError):
    """A listener's connection went away; raised to the broadcaster."""
