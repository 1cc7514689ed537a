"""Shared dependencies for API routes."""

from __future__ import annotations

from geocall.presence.registry import PresenceRegistry
from geocall.realtime.broadcast import PresenceBroadcaster
from geocall.realtime.managers import get_presence_broadcaster, get_presence_registry


def get_registry() -> PresenceRegistry:
    """Return the registry shared with the websocket relay."""

    return get_presence_registry()


def get_broadcaster() -> PresenceBroadcaster:
    return get_presence_broadcaster()
