"""Core domain models for the termrelay system.

These models represent the data flowing out of a terminal session: the
events pushed to viewers and the diagnostic snapshot of a session.
"""

from __future__ import annotations

import enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class SessionState(str, enum.Enum):
    """Lifecycle state of a terminal session.

    ENDED and KILLED are terminal: no transition leaves them.
    """

    CREATED = "created"
    RUNNING = "running"
    ENDED = "ended"  # Bridge output closed or errored
    KILLED = "killed"  # Explicit destroy or janitor sweep

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.ENDED, SessionState.KILLED)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class OutputEvent(BaseModel):
    """A chunk of raw terminal output, escape sequences untouched."""

    model_config = ConfigDict(frozen=True)

    type: Literal["output"] = "output"
    text: str


class StatusEvent(BaseModel):
    """Liveness of the session's shell process."""

    model_config = ConfigDict(frozen=True)

    type: Literal["status"] = "status"
    alive: bool


TerminalEvent = Annotated[
    Union[OutputEvent, StatusEvent],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


class SessionInfo(BaseModel):
    """Diagnostic snapshot of one session, as returned by ``list``.

    Serialized with ``by_alias=True`` on the wire (``createdAt``,
    ``ageSeconds``); either spelling is accepted when parsing.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(description="Opaque session identifier")
    alive: bool
    state: SessionState
    created_at: float = Field(
        alias="createdAt", description="Creation time, seconds since the epoch"
    )
    age_seconds: int = Field(alias="ageSeconds", ge=0)
    cwd: str
    listeners: int = Field(default=0, ge=0)
