# conftest.py -- Shared test fixtures

from __future__ import annotations

import asyncio
from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from chat_relay.history import HistoryLog
from chat_relay.relay import BroadcastRelay


class FakeWebSocket:
    """Minimal mock for fastapi.WebSocket as seen by the relay."""

    def __init__(
        self,
        *,
        fail_on_send: bool = False,
        block_on_send: bool = False,
        send_error: Exception | None = None,
    ) -> None:
        self.messages: list[str] = []
        self.close_code: int | None = None
        self._fail_on_send = fail_on_send
        self._block_on_send = block_on_send
        self._send_error = send_error

    async def send_text(self, data: str) -> None:
        if self._fail_on_send:
            raise RuntimeError("connection closed")
        if self._send_error is not None:
            raise self._send_error
        if self._block_on_send:
            await asyncio.Event().wait()
        self.messages.append(data)

    async def close(self, code: int = 1000) -> None:
        self.close_code = code


async def settle() -> None:
    """Let writer tasks drain their outboxes."""
    await asyncio.sleep(0.05)


@pytest.fixture
def relay() -> BroadcastRelay:
    return BroadcastRelay(HistoryLog(), send_timeout=1.0, queue_size=16)


@pytest.fixture
def test_client() -> Iterator[TestClient]:
    """TestClient with lifespan running, so relay and project store are fresh."""
    from chat_relay.app import app

    with TestClient(app) as client:
        yield client
