"""Tracing and observability data models."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class TraceEvent:
    """A single diagnostic event (run lifecycle, viewer health, dropped lines)."""

    id: str
    event_type: str  # e.g. "run_started", "viewer_unsubscribed"
    actor: str  # who created this event
    data: dict  # full self-contained data for display
    timestamp: datetime
