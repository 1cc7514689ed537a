"""Realtime helpers for presence fan-out over websockets.

Process wide instances and lifecycle hooks live in
:mod:`geocall.realtime.managers`.
"""

from .broadcast import PresenceBroadcaster  # noqa: F401
from .connections import (  # noqa: F401
    Connection,
    ConnectionDirectory,
    Identified,
    Unidentified,
    safe_send_json,
)

__all__ = [
    "Connection",
    "ConnectionDirectory",
    "Identified",
    "Unidentified",
    "PresenceBroadcaster",
    "safe_send_json",
]
