"""Domain models for termrelay.

This package contains the events streamed to viewers and the session
snapshot used for diagnostics. All models use Pydantic v2 for
validation and serialization.
"""

from termrelay.domain.models import (
    OutputEvent,
    SessionInfo,
    SessionState,
    StatusEvent,
    TerminalEvent,
)

__all__ = [
    "OutputEvent",
    "SessionInfo",
    "SessionState",
    "StatusEvent",
    "TerminalEvent",
]
