"""Process wide realtime components and their lifecycle helpers."""

from __future__ import annotations

import contextlib
import logging

from fastapi import status

from app.monitoring.metrics import presence_records

from ..presence.registry import PresenceRegistry
from ..signaling.relay import SignalingRelay
from .broadcast import PresenceBroadcaster
from .connections import ConnectionDirectory

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Module level singletons
# ---------------------------------------------------------------------------


presence_registry = PresenceRegistry()
connection_directory = ConnectionDirectory()
presence_broadcaster = PresenceBroadcaster(presence_registry, connection_directory)
signaling_relay = SignalingRelay(presence_registry, connection_directory, presence_broadcaster)


async def startup_realtime() -> None:
    presence_records.set(len(presence_registry))
    logger.info("Presence relay ready")


async def shutdown_realtime() -> None:
    connections = connection_directory.open_connections()
    for connection in connections:
        with contextlib.suppress(RuntimeError, OSError):
            await connection.websocket.close(code=status.WS_1001_GOING_AWAY)
    if connections:
        logger.info("Closed %d realtime connection(s) on shutdown", len(connections))


# Convenience accessors exposed to the FastAPI layer ----------------------


def get_presence_registry() -> PresenceRegistry:
    return presence_registry


def get_connection_directory() -> ConnectionDirectory:
    return connection_directory


def get_presence_broadcaster() -> PresenceBroadcaster:
    return presence_broadcaster


def get_signaling_relay() -> SignalingRelay:
    return signaling_relay


__all__ = [
    "get_connection_directory",
    "get_presence_broadcaster",
    "get_presence_registry",
    "get_signaling_relay",
    "shutdown_realtime",
    "startup_realtime",
]
