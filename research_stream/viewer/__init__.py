"""Viewer-side client and view model."""

from .client import SSEFrame, ViewerClient, parse_sse_frames
from .dashboard import AgentView, Dashboard, DashboardView, RailCard, TimelineItem

__all__ = [
    "AgentView",
    "Dashboard",
    "DashboardView",
    "RailCard",
    "SSEFrame",
    "TimelineItem",
    "ViewerClient",
    "parse_sse_frames",
]
