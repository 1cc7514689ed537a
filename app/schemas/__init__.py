"""Pydantic schemas for API payloads."""

from .presence import PositionPayload, PositionUpdate, PresenceRead

__all__ = [
    "PositionPayload",
    "PositionUpdate",
    "PresenceRead",
]
