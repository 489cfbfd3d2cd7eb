"""API routes."""

from .observability import create_observability_router
from .runs import create_runs_router
from .stream import create_stream_router

__all__ = [
    "create_observability_router",
    "create_runs_router",
    "create_stream_router",
]
