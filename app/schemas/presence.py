"""Schemas describing participant presence over HTTP."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class PresenceRead(BaseModel):
    """Last known position of a participant."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    username: str
    latitude: float
    longitude: float
    speed: float
    last_update: datetime = Field(alias="lastUpdate")


class PositionPayload(BaseModel):
    """Coordinates sent with a position update; missing values are stored as zero."""

    model_config = ConfigDict(extra="ignore")

    latitude: float | None = None
    longitude: float | None = None
    speed: float | None = None


class PositionUpdate(BaseModel):
    """Body of ``PUT /api/users/{username}/position``."""

    position: PositionPayload | None = Field(
        default=None,
        description="New coordinates. Fields left out are reset to zero.",
    )
