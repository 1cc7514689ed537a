"""Shared pytest fixtures for backend tests."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Iterator

import pytest
from fastapi.testclient import TestClient
from fastapi.websockets import WebSocketState

ROOT_DIR = Path(__file__).resolve().parents[1]
for path in (ROOT_DIR, ROOT_DIR / "src"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from app.main import app
from app.monitoring.metrics import (
    realtime_delivery_failures_total,
    realtime_dropped_messages_total,
    realtime_events_total,
)
from geocall.realtime.managers import get_presence_registry


class DummyWebSocket:
    """Stand-in for an accepted websocket that records what it was sent."""

    def __init__(self, *, fail: bool = False) -> None:
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[dict[str, Any]] = []
        self.fail = fail

    async def send_json(self, payload: dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("socket is closed")
        self.sent.append(payload)

    async def close(self, code: int = 1000) -> None:
        self.application_state = WebSocketState.DISCONNECTED
        self.close_code = code

    def of_type(self, kind: str) -> list[dict[str, Any]]:
        return [payload for payload in self.sent if payload.get("type") == kind]


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_presence() -> Iterator[None]:
    """Start every test with an empty shared registry and fresh counters."""

    registry = get_presence_registry()
    registry.clear()
    for metric in (
        realtime_events_total,
        realtime_dropped_messages_total,
        realtime_delivery_failures_total,
    ):
        metric.clear()
    yield
    registry.clear()


@pytest.fixture()
def client() -> Iterator[TestClient]:
    """Yield a FastAPI TestClient bound to the application."""

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def make_socket():
    """Factory for :class:`DummyWebSocket` instances."""

    def factory(*, fail: bool = False) -> DummyWebSocket:
        return DummyWebSocket(fail=fail)

    return factory
