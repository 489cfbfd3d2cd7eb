"""Viewer-side projections: insight rail, chart geometry, appearance signal."""

from .chart import (
    AxisTick,
    Bar,
    ChartGeometry,
    Padding,
    Point,
    ValueTick,
    format_value,
    project_chart,
)
from .presenter import APPEARANCE_DELAY, AppearanceTracker, BlockState
from .rail import RAIL_LIMIT, project_rail

__all__ = [
    # Rail
    "RAIL_LIMIT",
    "project_rail",
    # Chart
    "AxisTick",
    "Bar",
    "ChartGeometry",
    "Padding",
    "Point",
    "ValueTick",
    "format_value",
    "project_chart",
    # Presenter
    "APPEARANCE_DELAY",
    "AppearanceTracker",
    "BlockState",
]
