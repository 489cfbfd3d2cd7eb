"""Core data models for research-stream."""

from .charts import ChartSeries, ChartSpec
from .events import (
    Event,
    EventType,
    InsightEvent,
    LaggedNotice,
    MetadataEvent,
    Notice,
    NoticeType,
    ResyncNotice,
    StatusEvent,
    StreamItem,
    ThoughtEvent,
    event_from_dict,
)
from .runs import Run, RunConfig, RunStatus
from .snapshot import AgentSnapshot, InsightCard, InsightRailEntry, ThoughtItem
from .tracing import TraceEvent

__all__ = [
    # Charts
    "ChartSeries",
    "ChartSpec",
    # Events
    "Event",
    "EventType",
    "ThoughtEvent",
    "InsightEvent",
    "StatusEvent",
    "MetadataEvent",
    "Notice",
    "NoticeType",
    "ResyncNotice",
    "LaggedNotice",
    "StreamItem",
    "event_from_dict",
    # Runs
    "Run",
    "RunConfig",
    "RunStatus",
    # Snapshots
    "AgentSnapshot",
    "ThoughtItem",
    "InsightCard",
    "InsightRailEntry",
    # Tracing
    "TraceEvent",
]
