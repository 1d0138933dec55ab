"""HTTP client for a running termrelay server.

Wraps the control endpoint and parses the event stream back into
domain events.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

import httpx
from pydantic import TypeAdapter

from termrelay.domain.models import OutputEvent, SessionInfo, StatusEvent, TerminalEvent

logger = logging.getLogger(__name__)

_event_adapter: TypeAdapter[OutputEvent | StatusEvent] = TypeAdapter(TerminalEvent)


class TerminalClientError(Exception):
    """Raised when a request to the terminal server fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TerminalClient:
    """Async client for the terminal control and stream endpoints.

    Example usage::

        async with TerminalClient("http://localhost:8090") as client:
            session = await client.create(cols=120, rows=40)
            await client.send_input(session, "ls\\n")
            async for event in client.stream(session):
                ...
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8090",
        route_prefix: str = "/api/terminal",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._prefix = route_prefix
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> TerminalClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    async def create(self, cols: int | None = None, rows: int | None = None) -> str:
        payload: dict[str, Any] = {"action": "create"}
        if cols is not None:
            payload["cols"] = cols
        if rows is not None:
            payload["rows"] = rows
        data = await self._post(payload)
        return data["session"]

    async def send_input(self, session: str, data: str) -> None:
        await self._post({"action": "input", "session": session, "data": data})

    async def resize(self, session: str, cols: int, rows: int) -> None:
        await self._post({"action": "resize", "session": session, "cols": cols, "rows": rows})

    async def kill(self, session: str) -> None:
        await self._post({"action": "kill", "session": session})

    async def list_sessions(self) -> list[SessionInfo]:
        resp = await self._request("GET", params={"action": "list"})
        return [SessionInfo.model_validate(s) for s in resp.json()["sessions"]]

    # ------------------------------------------------------------------
    # Stream
    # ------------------------------------------------------------------

    async def stream(self, session: str) -> AsyncIterator[OutputEvent | StatusEvent]:
        """Yield events from the session until it ends or the server closes."""
        client = self._require_client()
        params = {"action": "stream", "session": session}
        # Heartbeats keep the read timeout from firing on a quiet session.
        timeout = httpx.Timeout(self._timeout, read=None)
        try:
            async with client.stream("GET", self._prefix, params=params, timeout=timeout) as resp:
                if resp.status_code >= 400:
                    await resp.aread()
                    raise TerminalClientError(_error_message(resp), status_code=resp.status_code)
                async for line in resp.aiter_lines():
                    event = parse_sse_line(line)
                    if event is not None:
                        yield event
        except httpx.HTTPError as e:
            raise TerminalClientError(f"Stream for session {session} failed: {e}") from e

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        resp = await self._request("POST", json=payload)
        return resp.json()

    async def _request(self, method: str, **kwargs: Any) -> httpx.Response:
        client = self._require_client()
        try:
            resp = await client.request(method, self._prefix, **kwargs)
        except httpx.HTTPError as e:
            raise TerminalClientError(f"{method} {self._prefix} failed: {e}") from e
        if resp.status_code >= 400:
            raise TerminalClientError(_error_message(resp), status_code=resp.status_code)
        return resp

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise TerminalClientError("Not connected to terminal server")
        return self._client


def parse_sse_line(line: str) -> OutputEvent | StatusEvent | None:
    """Parse one ``data:`` line; heartbeats, blanks and junk give None."""
    if not line.startswith("data:"):
        return None
    try:
        return _event_adapter.validate_json(line[5:].strip())
    except ValueError:
        logger.debug("Ignoring unparseable event line: %s", line[:80])
        return None


def _error_message(resp: httpx.Response) -> str:
    try:
        return str(resp.json().get("error", resp.text))
    except (json.JSONDecodeError, AttributeError):
        return resp.text or f"HTTP {resp.status_code}"
