"""Fan-out of presence snapshots to every open connection."""

from __future__ import annotations

import logging
from typing import Any

from app.monitoring.metrics import presence_records, realtime_events_total

from ..presence.registry import PresenceRegistry
from .connections import Connection, ConnectionDirectory

logger = logging.getLogger(__name__)

POSITION_EVENT = "position"
INIT_EVENT = "init"


def build_snapshot(registry: PresenceRegistry, event: str = POSITION_EVENT) -> dict[str, Any]:
    return {"type": event, "users": registry.snapshot()}


class PresenceBroadcaster:
    """Push the full presence list to all connected participants."""

    def __init__(self, registry: PresenceRegistry, directory: ConnectionDirectory) -> None:
        self._registry = registry
        self._directory = directory

    async def broadcast(self) -> int:
        """Deliver one ``position`` snapshot to every open connection.

        The payload is composed before the first send so every recipient sees
        the same snapshot. Returns the number of connections reached; failed
        sends are skipped.
        """

        payload = build_snapshot(self._registry)
        recipients = self._directory.open_connections()
        presence_records.set(len(payload["users"]))
        delivered = 0
        for connection in recipients:
            if await connection.send(payload):
                delivered += 1
            else:
                logger.debug(
                    "Skipped presence broadcast to closed connection %s", connection.id
                )
        realtime_events_total.labels("presence", "out", "broadcast").inc()
        return delivered

    async def send_snapshot(self, connection: Connection, *, event: str = POSITION_EVENT) -> bool:
        """Send the current snapshot to a single connection."""

        delivered = await connection.send(build_snapshot(self._registry, event))
        if delivered:
            realtime_events_total.labels("presence", "out", event).inc()
        return delivered


__all__ = ["INIT_EVENT", "POSITION_EVENT", "PresenceBroadcaster", "build_snapshot"]
