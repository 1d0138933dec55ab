"""FastAPI HTTP server for terminal sessions.

    GET  {prefix}?action=list                -> {"sessions": [...]}
    GET  {prefix}?action=stream&session=ID   -> text/event-stream
    POST {prefix}  <- {"action": "create", "cols": 80, "rows": 24}
    POST {prefix}  <- {"action": "input", "session": ID, "data": "ls\\n"}
    POST {prefix}  <- {"action": "resize", "session": ID, "cols": 120, "rows": 40}
    POST {prefix}  <- {"action": "kill", "session": ID}
    GET  /health                             -> {"status": "ok", ...}

Failures come back as ``{"error": ...}`` with 404 for unknown or dead
sessions and 400 for bad arguments.
"""

from __future__ import annotations

import json
import logging
import math
from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field, ValidationError

from termrelay.config.settings import Settings
from termrelay.endpoint.stream import SSE_HEADERS, event_stream
from termrelay.terminal.bridge import MAX_COLS, MAX_ROWS, MIN_COLS, MIN_ROWS
from termrelay.terminal.errors import InvalidArgumentError, TerminalError
from termrelay.terminal.janitor import Janitor
from termrelay.terminal.registry import SessionRegistry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class ControlRequest(BaseModel):
    action: str = Field(description="create, input, resize or kill")
    session: str | None = Field(default=None, description="Target session id")
    data: str | None = Field(default=None, description="Raw input for 'input'")
    cols: float | None = Field(default=None)
    rows: float | None = Field(default=None)


class HealthResponse(BaseModel):
    status: str = "ok"
    sessions: int = 0
    janitor_running: bool = False


def _size_arg(value: float | None, name: str) -> int:
    """Validate a resize dimension: finite, integral, at least 2."""
    if value is None or not math.isfinite(value) or value != int(value):
        raise InvalidArgumentError(f"Invalid cols/rows: {name}={value}")
    return int(value)


def _initial_size(value: float | None, default: int, low: int, high: int) -> int:
    """Initial size for 'create': missing or zero means default, else clamped."""
    if not value or not math.isfinite(value):
        return default
    return max(low, min(high, int(value)))


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    settings: Settings | None = None,
    registry: SessionRegistry | None = None,
    enable_janitor: bool = True,
) -> FastAPI:
    """Create the terminal server application.

    Args:
        settings: Loaded settings. Defaults are used if None.
        registry: Optional pre-configured SessionRegistry (for testing).
        enable_janitor: Whether the lifespan starts the background sweep.
    """
    settings = settings or Settings()
    prefix = settings.server.route_prefix
    term = settings.terminal

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        reg: SessionRegistry = app.state.registry
        await reg.start()
        janitor = Janitor(reg, interval=settings.janitor.interval)
        app.state.janitor = janitor
        if enable_janitor:
            janitor.start()
        logger.info("Terminal server started (prefix=%s)", prefix)
        yield
        await janitor.stop()
        await reg.shutdown()
        logger.info("Terminal server stopped")

    app = FastAPI(
        title="termrelay",
        description="Pty-backed shell sessions over HTTP and server-sent events",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.registry = registry or SessionRegistry.from_settings(settings)
    app.state.janitor = None

    @app.exception_handler(TerminalError)
    async def terminal_error_handler(request: Request, exc: TerminalError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code)

    @app.get("/health")
    async def health_check() -> HealthResponse:
        janitor: Janitor | None = app.state.janitor
        return HealthResponse(
            status="ok",
            sessions=len(app.state.registry),
            janitor_running=janitor.is_running if janitor else False,
        )

    # -------------------------------------------------------------------
    # Streaming endpoint
    # -------------------------------------------------------------------

    @app.get(prefix)
    async def terminal_get(request: Request, action: str = "stream", session: str = ""):
        reg: SessionRegistry = app.state.registry

        if action == "list":
            sessions = [info.model_dump(mode="json", by_alias=True) for info in reg.list()]
            return {"sessions": sessions}
        if action != "stream":
            raise InvalidArgumentError(f"Unknown action: {action}")

        s = reg.require(session)
        return StreamingResponse(
            event_stream(s, request, heartbeat_interval=settings.stream.heartbeat_interval),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    # -------------------------------------------------------------------
    # Control endpoint
    # -------------------------------------------------------------------

    @app.post(prefix)
    async def terminal_post(request: Request) -> dict:
        try:
            body = ControlRequest.model_validate(await request.json())
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            raise InvalidArgumentError(f"Malformed request body: {e}") from e

        reg: SessionRegistry = app.state.registry

        if body.action == "create":
            cols = _initial_size(body.cols, term.default_cols, MIN_COLS, MAX_COLS)
            rows = _initial_size(body.rows, term.default_rows, MIN_ROWS, MAX_ROWS)
            session_id = await reg.create(cols, rows)
            return {"ok": True, "session": session_id}

        if body.action == "input":
            s = reg.require(body.session, alive=True)
            if body.data is None:
                raise InvalidArgumentError("Missing data", session_id=s.id)
            s.write(body.data)
            return {"ok": True}

        if body.action == "resize":
            s = reg.require(body.session, alive=True)
            s.resize(_size_arg(body.cols, "cols"), _size_arg(body.rows, "rows"))
            return {"ok": True}

        if body.action == "kill":
            if body.session:
                reg.destroy(body.session)
            return {"ok": True}

        raise InvalidArgumentError(f"Unknown action: {body.action}")

    return app


# ---------------------------------------------------------------------------
# Standalone entry point
# ---------------------------------------------------------------------------

def main(settings: Settings | None = None) -> None:
    """Run the terminal server."""
    settings = settings or Settings()
    app = create_app(settings)
    uvicorn.run(app, host=settings.server.host, port=settings.server.port)


if __name__ == "__main__":
    main()
