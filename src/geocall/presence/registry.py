"""In-memory registry of the last known position of every participant."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, Mapping

POSITION_FIELDS = ("latitude", "longitude", "speed")


def coerce_coordinate(value: Any) -> float:
    """Return *value* as a float, falling back to ``0.0`` for anything unusable."""

    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return 0.0
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


@dataclass(slots=True)
class PresenceRecord:
    """Last known position reported by a single identity."""

    username: str
    latitude: float
    longitude: float
    speed: float
    last_update: datetime

    def to_public(self) -> dict[str, Any]:
        return {
            "username": self.username,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "speed": self.speed,
            "lastUpdate": self.last_update.isoformat(),
        }


class PresenceRegistry:
    """Process wide mapping from identity to :class:`PresenceRecord`.

    Every write replaces the whole record: fields missing from an update are
    stored as ``0`` instead of keeping their previous value. Access is guarded
    by a mutex so the HTTP layer and the websocket relay observe the same
    state even when they run on different threads.
    """

    def __init__(self) -> None:
        self._records: Dict[str, PresenceRecord] = {}
        self._lock = Lock()

    def list(self) -> list[PresenceRecord]:
        with self._lock:
            return list(self._records.values())

    def get(self, username: str) -> PresenceRecord | None:
        with self._lock:
            return self._records.get(username)

    def upsert(self, username: str, position: Mapping[str, Any] | None = None) -> PresenceRecord:
        position = position or {}
        values = {name: coerce_coordinate(position.get(name)) for name in POSITION_FIELDS}
        record = PresenceRecord(
            username=username,
            last_update=datetime.now(timezone.utc),
            **values,
        )
        with self._lock:
            self._records[username] = record
        return record

    def remove(self, username: str) -> bool:
        with self._lock:
            return self._records.pop(username, None) is not None

    def snapshot(self) -> list[dict[str, Any]]:
        """Return the public representation of every record."""

        return [record.to_public() for record in self.list()]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, username: object) -> bool:
        with self._lock:
            return username in self._records


__all__ = ["POSITION_FIELDS", "PresenceRecord", "PresenceRegistry", "coerce_coordinate"]
