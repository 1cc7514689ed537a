"""HTTP access to the presence registry."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Response, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from app.api.deps import get_broadcaster, get_registry
from app.schemas import PositionUpdate, PresenceRead
from geocall.presence.registry import PresenceRegistry
from geocall.realtime.broadcast import PresenceBroadcaster

router = APIRouter(prefix="/users", tags=["users"])

logger = logging.getLogger(__name__)


@router.get("", response_model=list[PresenceRead])
async def list_users(registry: PresenceRegistry = Depends(get_registry)) -> list[PresenceRead]:
    """Return every participant currently on the map."""

    return [PresenceRead.model_validate(record) for record in registry.list()]


@router.get("/{username}", response_model=PresenceRead)
async def read_user(
    username: str, registry: PresenceRegistry = Depends(get_registry)
) -> PresenceRead:
    record = registry.get(username)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return PresenceRead.model_validate(record)


@router.put("/{username}/position", response_model=PresenceRead)
async def update_position(
    username: str,
    body: Any = Body(default=None),
    registry: PresenceRegistry = Depends(get_registry),
    broadcaster: PresenceBroadcaster = Depends(get_broadcaster),
) -> PresenceRead:
    """Replace the position of *username*, creating the participant if needed."""

    if not isinstance(body, dict) or body.get("position") is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Position is required")
    try:
        payload = PositionUpdate.model_validate(body)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(), body=body) from exc
    record = registry.upsert(username, payload.position.model_dump())
    logger.debug("Position of %s replaced over HTTP", username)
    await broadcaster.broadcast()
    return PresenceRead.model_validate(record)


@router.delete("/{username}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    username: str,
    registry: PresenceRegistry = Depends(get_registry),
    broadcaster: PresenceBroadcaster = Depends(get_broadcaster),
) -> Response:
    if not registry.remove(username):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    await broadcaster.broadcast()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
