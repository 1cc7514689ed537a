"""Dispatch inbound websocket frames to presence updates or call relays."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict

from fastapi.websockets import WebSocket

from app.monitoring.metrics import realtime_dropped_messages_total, realtime_events_total

from ..presence.registry import PresenceRegistry
from ..realtime.broadcast import INIT_EVENT, PresenceBroadcaster
from ..realtime.connections import Connection, ConnectionDirectory
from .messages import (
    PING,
    PONG,
    POSITION,
    RELAY_RULES,
    REQUEST_POSITIONS,
    SENDER_FROM_CONNECTION,
    SENDER_FROM_PAYLOAD,
    MalformedMessageError,
    build_relay_envelope,
    decode_frame,
    message_type,
    require_identity,
    resolve_position,
)

logger = logging.getLogger(__name__)

Handler = Callable[[Connection, str, Dict[str, Any]], Awaitable[None]]


class SignalingRelay:
    """Route presence and call-control messages between participants.

    ``position`` frames (and any frame with a missing or unknown ``type``)
    claim an identity for the connection, replace its presence record and
    trigger a broadcast. Call-control frames are forwarded to the connection
    bound to ``target`` and silently dropped when nobody answers to it.
    """

    def __init__(
        self,
        registry: PresenceRegistry,
        directory: ConnectionDirectory,
        broadcaster: PresenceBroadcaster | None = None,
    ) -> None:
        self._registry = registry
        self._directory = directory
        self._broadcaster = broadcaster or PresenceBroadcaster(registry, directory)
        self._handlers: Dict[str, Handler] = {
            POSITION: self._handle_position,
            REQUEST_POSITIONS: self._handle_request_positions,
        }
        for kind in RELAY_RULES:
            self._handlers[kind] = self._handle_relay

    @property
    def registry(self) -> PresenceRegistry:
        return self._registry

    @property
    def directory(self) -> ConnectionDirectory:
        return self._directory

    @property
    def broadcaster(self) -> PresenceBroadcaster:
        return self._broadcaster

    async def open(self, websocket: WebSocket) -> Connection:
        """Register an accepted websocket and greet it with the current snapshot."""

        connection = await self._directory.connect(websocket)
        logger.info("Connection %s opened", connection.id)
        await self._broadcaster.send_snapshot(connection, event=INIT_EVENT)
        await self._broadcaster.broadcast()
        return connection

    async def close(self, connection: Connection) -> None:
        """Forget a closed connection and the presence record it owned."""

        await self._directory.disconnect(connection)
        identity = connection.identity
        logger.info("Connection %s closed (identity=%s)", connection.id, identity)
        if identity is None:
            return
        self._registry.remove(identity)
        await self._broadcaster.broadcast()

    async def handle(self, connection: Connection, raw: str | bytes | bytearray) -> None:
        """Process one inbound frame to completion."""

        try:
            payload = decode_frame(raw)
        except MalformedMessageError as exc:
            self._drop(connection, "malformed", str(exc))
            return

        kind = message_type(payload)
        # Keepalive frames carry no username; with one they are position updates.
        if kind in (PING, PONG) and "username" not in payload:
            if kind == PING:
                await connection.send({"type": PONG}, topic="keepalive")
            return

        handler = self._handlers.get(kind) if kind is not None else None
        if handler is None:
            handler = self._handle_position
        action = kind if kind in self._handlers else "fallback"
        realtime_events_total.labels("signal", "in", action).inc()

        try:
            await handler(connection, kind or POSITION, payload)
        except MalformedMessageError as exc:
            self._drop(connection, "malformed", str(exc))

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------
    async def _handle_position(
        self, connection: Connection, kind: str, payload: Dict[str, Any]
    ) -> None:
        username = require_identity(payload, "username")
        connection.identify(username)
        self._registry.upsert(username, resolve_position(payload))
        await self._broadcaster.broadcast()

    async def _handle_request_positions(
        self, connection: Connection, kind: str, payload: Dict[str, Any]
    ) -> None:
        await self._broadcaster.send_snapshot(connection)
        await self._broadcaster.broadcast()

    async def _handle_relay(
        self, connection: Connection, kind: str, payload: Dict[str, Any]
    ) -> None:
        target_identity = require_identity(payload, "target")
        target = self._directory.find_by_identity(target_identity)
        if target is None:
            logger.debug(
                "Dropped %s from connection %s: no connection for %r",
                kind,
                connection.id,
                target_identity,
            )
            realtime_dropped_messages_total.labels("unknown_target").inc()
            return

        envelope = build_relay_envelope(kind, payload, sender=self._sender(connection, kind, payload))
        if await target.send(envelope, topic="signal"):
            realtime_events_total.labels("signal", "out", kind).inc()

    @staticmethod
    def _sender(connection: Connection, kind: str, payload: Dict[str, Any]) -> str | None:
        source = RELAY_RULES[kind].sender
        if source == SENDER_FROM_CONNECTION:
            return connection.identity
        if source == SENDER_FROM_PAYLOAD:
            username = payload.get("username")
            return username if isinstance(username, str) else None
        return None

    @staticmethod
    def _drop(connection: Connection, reason: str, detail: str) -> None:
        logger.warning("Discarded message from connection %s: %s", connection.id, detail)
        realtime_dropped_messages_total.labels(reason).inc()


__all__ = ["SignalingRelay"]
