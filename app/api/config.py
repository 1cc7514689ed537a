"""Configuration endpoints for exposing runtime options to the frontend."""

from __future__ import annotations

from fastapi import APIRouter

from app.config import get_settings

router = APIRouter(prefix="/config", tags=["config"])


@router.get("/webrtc")
def read_webrtc_config() -> dict[str, object]:
    """Expose the ICE servers peers should use when placing a call."""

    settings = get_settings()
    return {
        "iceServers": settings.webrtc_ice_servers_payload,
        "keepalive": {
            "timeout": settings.websocket_keepalive_timeout_seconds,
            "pingInterval": settings.websocket_keepalive_ping_interval_seconds,
        },
    }
