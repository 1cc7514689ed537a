"""Prometheus-compatible metrics endpoint."""

from fastapi import APIRouter, Depends, Response

from app.api.deps import get_registry
from app.monitoring.metrics import presence_records
from app.monitoring.registry import registry
from geocall.presence.registry import PresenceRegistry


router = APIRouter(tags=["metrics"])


@router.get("/metrics", response_class=Response)
def export_metrics(presence: PresenceRegistry = Depends(get_registry)) -> Response:
    """Expose relay counters and the current registry size for Prometheus scraping."""

    presence_records.set(len(presence))
    return Response(content=registry.render(), media_type="text/plain; version=0.0.4")
