"""research-stream: live event streaming from research-agent processes to viewers."""

from .app import Application, IApplication
from .hub import BroadcastHub, HubCapacityError, IBroadcastHub, Registry, Subscription
from .models import (
    AgentSnapshot,
    ChartSeries,
    ChartSpec,
    Event,
    InsightEvent,
    InsightRailEntry,
    LaggedNotice,
    MetadataEvent,
    ResyncNotice,
    Run,
    RunConfig,
    RunStatus,
    StatusEvent,
    ThoughtEvent,
    TraceEvent,
)
from .normalizer import Normalizer
from .projections import AppearanceTracker, project_chart, project_rail
from .storage import IStorage, Storage
from .store import ClientStateStore
from .supervisor import IRunManager, RunManager, RunSupervisor, UnknownRunError
from .tracker import ITracker, Tracker

__all__ = [
    # Application
    "Application",
    "IApplication",
    # Models
    "AgentSnapshot",
    "ChartSeries",
    "ChartSpec",
    "Event",
    "ThoughtEvent",
    "InsightEvent",
    "StatusEvent",
    "MetadataEvent",
    "ResyncNotice",
    "LaggedNotice",
    "InsightRailEntry",
    "Run",
    "RunConfig",
    "RunStatus",
    "TraceEvent",
    # Components
    "Normalizer",
    "IRunManager",
    "RunManager",
    "RunSupervisor",
    "UnknownRunError",
    "IBroadcastHub",
    "BroadcastHub",
    "HubCapacityError",
    "Registry",
    "Subscription",
    "ClientStateStore",
    "IStorage",
    "Storage",
    "ITracker",
    "Tracker",
    # Projections
    "AppearanceTracker",
    "project_chart",
    "project_rail",
]
