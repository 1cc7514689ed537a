"""Websocket connection tracking and identity lookup."""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Iterator

from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from app.monitoring.metrics import realtime_connections, realtime_delivery_failures_total

logger = logging.getLogger(__name__)

_connection_ids = itertools.count(1)


async def safe_send_json(websocket: WebSocket, data: dict[str, Any]) -> bool:
    """Safely send JSON data through websocket, handling disconnections gracefully.

    Returns True if message was sent successfully, False otherwise.
    """
    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, RuntimeError, OSError) as e:
        logger.debug("Failed to send websocket message: %s", e)
        return False


@dataclass(frozen=True, slots=True)
class Unidentified:
    """A connection that has not reported a position yet."""


@dataclass(frozen=True, slots=True)
class Identified:
    """A connection bound to the identity of its last position message."""

    identity: str


ConnectionState = Unidentified | Identified

UNIDENTIFIED = Unidentified()


@dataclass(eq=False)
class Connection:
    websocket: WebSocket
    state: ConnectionState = UNIDENTIFIED
    id: int = field(default_factory=lambda: next(_connection_ids))

    @property
    def identity(self) -> str | None:
        if isinstance(self.state, Identified):
            return self.state.identity
        return None

    @property
    def is_identified(self) -> bool:
        return isinstance(self.state, Identified)

    @property
    def is_open(self) -> bool:
        return self.websocket.application_state == WebSocketState.CONNECTED

    def identify(self, identity: str) -> None:
        # A connection keeps answering to the most recent username it reported.
        self.state = Identified(identity)

    async def send(self, payload: dict[str, Any], *, topic: str = "presence") -> bool:
        delivered = await safe_send_json(self.websocket, payload)
        if not delivered:
            realtime_delivery_failures_total.labels(topic).inc()
        return delivered


class ConnectionDirectory:
    """Track open websocket sessions and the identity each one claimed.

    There is no identity index: lookups scan every open connection, which is
    fine for the handful of participants a single process serves.
    """

    def __init__(self) -> None:
        self._connections: dict[int, Connection] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> Connection:
        connection = Connection(websocket=websocket)
        async with self._lock:
            self._connections[connection.id] = connection
        realtime_connections.labels("relay").inc()
        return connection

    async def disconnect(self, connection: Connection) -> bool:
        async with self._lock:
            removed = self._connections.pop(connection.id, None) is not None
        if removed:
            realtime_connections.labels("relay").dec()
        return removed

    def connections(self) -> list[Connection]:
        """Return a stable copy of the tracked connections in arrival order."""

        return list(self._connections.values())

    def open_connections(self) -> list[Connection]:
        return [connection for connection in self.connections() if connection.is_open]

    def find_by_identity(self, identity: str) -> Connection | None:
        """Return the connection bound to *identity*.

        When several connections claimed the same identity the last one found
        wins; callers must resolve the target once per relayed message.
        """

        found: Connection | None = None
        for connection in self.connections():
            if connection.identity == identity:
                found = connection
        return found

    def __iter__(self) -> Iterator[Connection]:
        return iter(self.connections())

    def __len__(self) -> int:
        return len(self._connections)


__all__ = [
    "Connection",
    "ConnectionDirectory",
    "ConnectionState",
    "Identified",
    "UNIDENTIFIED",
    "Unidentified",
    "safe_send_json",
]
