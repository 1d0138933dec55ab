"""Tests for termrelay.client.TerminalClient against a mocked transport."""

from __future__ import annotations

import json

import httpx
import pytest

from termrelay.client import TerminalClient, TerminalClientError, parse_sse_line
from termrelay.domain.models import OutputEvent, SessionState, StatusEvent


class FakeServer:
    """Records requests and answers like the terminal endpoint."""

    def __init__(self) -> None:
        self.posts: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/terminal"
        if request.method == "POST":
            body = json.loads(request.content)
            self.posts.append(body)
            if body["action"] == "create":
                return httpx.Response(200, json={"ok": True, "session": "abc12345"})
            if body.get("session") == "missing":
                return httpx.Response(404, json={"error": "Session not found or dead"})
            return httpx.Response(200, json={"ok": True})

        action = request.url.params.get("action")
        if action == "list":
            return httpx.Response(200, json={"sessions": [{
                "id": "abc12345", "alive": True, "state": "running",
                "createdAt": 1700000000.0, "ageSeconds": 12,
                "cwd": "/home/user", "listeners": 2,
            }]})
        if request.url.params.get("session") == "missing":
            return httpx.Response(404, json={"error": "Invalid session"})
        body = (
            'data: {"type":"output","text":"hello"}\n\n'
            'data: {"type":"status","alive":true}\n\n'
            ": heartbeat\n\n"
            'data: {"type":"status","alive":false}\n\n'
        )
        return httpx.Response(
            200, content=body.encode(), headers={"Content-Type": "text/event-stream"}
        )


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


def _client(server: FakeServer) -> TerminalClient:
    return TerminalClient("http://terminal.test", transport=httpx.MockTransport(server))


class TestControl:
    @pytest.mark.asyncio
    async def test_create(self, server: FakeServer) -> None:
        async with _client(server) as client:
            assert await client.create(cols=120, rows=40) == "abc12345"
        assert server.posts == [{"action": "create", "cols": 120, "rows": 40}]

    @pytest.mark.asyncio
    async def test_create_without_size(self, server: FakeServer) -> None:
        async with _client(server) as client:
            await client.create()
        assert server.posts == [{"action": "create"}]

    @pytest.mark.asyncio
    async def test_input_resize_kill(self, server: FakeServer) -> None:
        async with _client(server) as client:
            await client.send_input("abc12345", "ls\n")
            await client.resize("abc12345", 100, 30)
            await client.kill("abc12345")
        assert server.posts == [
            {"action": "input", "session": "abc12345", "data": "ls\n"},
            {"action": "resize", "session": "abc12345", "cols": 100, "rows": 30},
            {"action": "kill", "session": "abc12345"},
        ]

    @pytest.mark.asyncio
    async def test_list_sessions(self, server: FakeServer) -> None:
        async with _client(server) as client:
            sessions = await client.list_sessions()
        assert len(sessions) == 1
        assert sessions[0].id == "abc12345"
        assert sessions[0].state is SessionState.RUNNING
        assert sessions[0].listeners == 2
        assert sessions[0].age_seconds == 12
        assert sessions[0].created_at == 1700000000.0

    @pytest.mark.asyncio
    async def test_error_status_raises(self, server: FakeServer) -> None:
        async with _client(server) as client:
            with pytest.raises(TerminalClientError) as exc_info:
                await client.send_input("missing", "x")
        assert exc_info.value.status_code == 404
        assert str(exc_info.value) == "Session not found or dead"

    @pytest.mark.asyncio
    async def test_not_connected(self) -> None:
        client = TerminalClient()
        with pytest.raises(TerminalClientError, match="Not connected"):
            await client.create()

    @pytest.mark.asyncio
    async def test_transport_error_wrapped(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with TerminalClient(transport=httpx.MockTransport(refuse)) as client:
            with pytest.raises(TerminalClientError) as exc_info:
                await client.list_sessions()
        assert exc_info.value.status_code is None


class TestStream:
    @pytest.mark.asyncio
    async def test_stream_yields_events_and_skips_heartbeats(self, server: FakeServer) -> None:
        async with _client(server) as client:
            events = [e async for e in client.stream("abc12345")]
        assert events == [
            OutputEvent(text="hello"),
            StatusEvent(alive=True),
            StatusEvent(alive=False),
        ]

    @pytest.mark.asyncio
    async def test_stream_unknown_session(self, server: FakeServer) -> None:
        async with _client(server) as client:
            with pytest.raises(TerminalClientError) as exc_info:
                async for _ in client.stream("missing"):
                    pass
        assert exc_info.value.status_code == 404
        assert str(exc_info.value) == "Invalid session"


class TestParseSseLine:
    def test_output(self) -> None:
        assert parse_sse_line('data: {"type":"output","text":"x"}') == OutputEvent(text="x")

    def test_status(self) -> None:
        assert parse_sse_line('data: {"type":"status","alive":false}') == StatusEvent(alive=False)

    @pytest.mark.parametrize("line", [
        "",
        ": heartbeat",
        "event: message",
        "data: not-json",
        'data: {"type":"unknown"}',
    ])
    def test_ignored(self, line: str) -> None:
        assert parse_sse_line(line) is None
