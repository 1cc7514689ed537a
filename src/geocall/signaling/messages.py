"""Helpers for the presence and call-control wire messages.

Frames are flat JSON objects tagged by ``type``. Decoding and envelope
construction live here so the relay only deals with routing.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping

POSITION = "position"
REQUEST_POSITIONS = "request_positions"
CALL_OFFER = "call_offer"
CALL_ANSWER = "call_answer"
CALL_REJECTED = "call_rejected"
ICE_CANDIDATE = "ice_candidate"
CALL_ENDED = "call_ended"

# Transport keepalive frames, answered before dispatch.
PING = "ping"
PONG = "pong"

SENDER_FROM_CONNECTION = "connection"
SENDER_FROM_PAYLOAD = "payload"


class MalformedMessageError(ValueError):
    """Raised when an inbound frame cannot be interpreted."""


@dataclass(frozen=True, slots=True)
class RelayRule:
    """Describe how a call-control message is forwarded to its target."""

    fields: tuple[str, ...] = ()
    sender: str | None = None


RELAY_RULES: Dict[str, RelayRule] = {
    CALL_OFFER: RelayRule(fields=("offer",), sender=SENDER_FROM_CONNECTION),
    CALL_ANSWER: RelayRule(fields=("answer",)),
    CALL_REJECTED: RelayRule(),
    ICE_CANDIDATE: RelayRule(fields=("candidate",), sender=SENDER_FROM_PAYLOAD),
    CALL_ENDED: RelayRule(),
}


def decode_frame(raw: str | bytes | bytearray) -> dict[str, Any]:
    """Parse a websocket frame into a message object."""

    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedMessageError("Binary frame is not valid UTF-8") from exc
    try:
        payload = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as exc:
        raise MalformedMessageError("Frame is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise MalformedMessageError("Message payload must be a JSON object")
    return payload


def message_type(payload: Mapping[str, Any]) -> str | None:
    value = payload.get("type")
    if isinstance(value, str) and value:
        return value
    return None


def require_identity(payload: Mapping[str, Any], key: str) -> str:
    """Return the non-empty string stored under *key* or raise."""

    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise MalformedMessageError(f"Message field '{key}' must be a non-empty string")
    return value


def resolve_position(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Extract latitude, longitude and speed from a position message.

    ``latitude``/``longitude`` win over the legacy ``position: {x, y}`` shape
    where ``y`` carries the latitude and ``x`` the longitude. Values are
    returned raw; the registry coerces anything missing or unusable to ``0``.
    """

    legacy = payload.get("position")
    if not isinstance(legacy, Mapping):
        legacy = {}
    latitude = payload["latitude"] if "latitude" in payload else legacy.get("y")
    longitude = payload["longitude"] if "longitude" in payload else legacy.get("x")
    return {
        "latitude": latitude,
        "longitude": longitude,
        "speed": payload.get("speed"),
    }


def build_relay_envelope(
    kind: str, payload: Mapping[str, Any], *, sender: str | None = None
) -> dict[str, Any]:
    """Build the message delivered to the target of a call-control frame.

    Only the fields the rule names are copied; absent fields and an unknown
    sender are left out of the envelope entirely.
    """

    rule = RELAY_RULES[kind]
    body: dict[str, Any] = {"type": kind}
    for key in rule.fields:
        if key in payload:
            body[key] = payload[key]
    if sender is not None:
        body["from"] = sender
    return body


__all__ = [
    "CALL_ANSWER",
    "CALL_ENDED",
    "CALL_OFFER",
    "CALL_REJECTED",
    "ICE_CANDIDATE",
    "MalformedMessageError",
    "PING",
    "PONG",
    "POSITION",
    "RELAY_RULES",
    "REQUEST_POSITIONS",
    "RelayRule",
    "build_relay_envelope",
    "decode_frame",
    "message_type",
    "require_identity",
    "resolve_position",
]
