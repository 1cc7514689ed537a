"""Presence registry shared by the websocket relay and the HTTP API."""

from .registry import PresenceRecord, PresenceRegistry, coerce_coordinate

__all__ = ["PresenceRecord", "PresenceRegistry", "coerce_coordinate"]
