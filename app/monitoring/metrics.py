"""Metric definitions for the presence and signalling relay."""

from __future__ import annotations

from .registry import registry


realtime_events_total = registry.counter(
    "realtime_events_total",
    "Count of realtime messages processed by the websocket relay.",
    label_names=("topic", "direction", "action"),
)

realtime_connections = registry.gauge(
    "realtime_active_connections",
    "Number of active websocket connections handled locally.",
    label_names=("scope",),
)

realtime_dropped_messages_total = registry.counter(
    "realtime_dropped_messages_total",
    "Inbound websocket messages that were discarded without effect.",
    label_names=("reason",),
)

realtime_delivery_failures_total = registry.counter(
    "realtime_delivery_failures_total",
    "Outbound websocket sends that could not be delivered.",
    label_names=("topic",),
)

presence_records = registry.gauge(
    "presence_records",
    "Number of participants currently present in the registry.",
)
