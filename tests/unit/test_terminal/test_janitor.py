"""Tests for termrelay.terminal.janitor.Janitor."""

from __future__ import annotations

import pytest

from conftest import FakeSession, wait_until
from termrelay.terminal.janitor import Janitor
from termrelay.terminal.registry import SessionRegistry


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry(idle_timeout=3600.0, session_factory=FakeSession)


class TestJanitor:
    @pytest.mark.asyncio
    async def test_sweep_once(self, registry: SessionRegistry) -> None:
        dead = await registry.create()
        live = await registry.create()
        registry.get(dead).end()
        janitor = Janitor(registry)
        assert janitor.sweep_once() == [dead]
        assert live in registry

    @pytest.mark.asyncio
    async def test_background_sweep(self, registry: SessionRegistry) -> None:
        session_id = await registry.create()
        s = registry.get(session_id)
        s.last_activity -= 7200  # idle for two hours
        janitor = Janitor(registry, interval=0.01)
        janitor.start()
        try:
            assert janitor.is_running
            await wait_until(lambda: session_id not in registry, timeout=5)
            assert s.terminated
        finally:
            await janitor.stop()
        assert not janitor.is_running

    @pytest.mark.asyncio
    async def test_start_is_idempotent_and_stop_safe(self, registry: SessionRegistry) -> None:
        janitor = Janitor(registry, interval=60)
        await janitor.stop()  # never started
        janitor.start()
        task = janitor._task
        janitor.start()
        assert janitor._task is task
        await janitor.stop()
        assert task.cancelled()

    @pytest.mark.asyncio
    async def test_sweep_error_does_not_kill_loop(
        self, registry: SessionRegistry, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        calls = []

        def flaky(now=None):
            calls.append(now)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return []

        monkeypatch.setattr(registry, "sweep", flaky)
        janitor = Janitor(registry, interval=0.01)
        janitor.start()
        try:
            await wait_until(lambda: len(calls) >= 3, timeout=5)
        finally:
            await janitor.stop()
