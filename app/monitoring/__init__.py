"""Monitoring helpers and metric registry for the relay."""

from . import metrics, registry

__all__ = ["metrics", "registry"]
