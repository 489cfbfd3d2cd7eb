"""Observability API routes: run/viewer diagnostics and health."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from ...app import Application
from ...logging_config import get_logger
from ...tracker import run_actor, viewer_actor

logger = get_logger(__name__)


class TraceEventResponse(BaseModel):
    """Response model for trace event."""

    id: str
    event_type: str
    actor: str
    data: dict[str, Any]
    timestamp: datetime


class HealthResponse(BaseModel):
    """Liveness plus hub and run counters."""

    status: str
    runs: int
    active_runs: int
    viewers: int


def _actor_filter(run_id: str | None, viewer_id: str | None, actor: str | None) -> str | None:
    if run_id and viewer_id:
        raise HTTPException(status_code=400, detail="Filter by run_id or viewer_id, not both")
    if run_id:
        return run_actor(run_id)
    if viewer_id:
        return viewer_actor(viewer_id)
    return actor


def create_observability_router(app: Application) -> APIRouter:
    """Create observability router."""
    router = APIRouter(prefix="/api", tags=["observability"])

    @router.get("/trace-events", response_model=list[TraceEventResponse])
    async def get_trace_events(
        after: datetime | None = Query(None, description="Only events after this ISO time"),
        limit: int = Query(100, ge=1, le=1000),
        event_type: list[str] | None = Query(None, description="Repeatable type filter"),
        run_id: str | None = Query(None, description="Events of one run"),
        viewer_id: str | None = Query(None, description="Events of one viewer"),
        actor: str | None = Query(None, description="Raw actor filter"),
    ) -> list[TraceEventResponse]:
        """Diagnostics newest first: run lifecycle, malformed lines, viewer churn."""
        actor = _actor_filter(run_id, viewer_id, actor)
        try:
            events = await app.storage.get_trace_events(
                after=after, event_types=event_type, actor=actor, limit=limit
            )
        except Exception as e:
            logger.exception("Trace event query failed")
            raise HTTPException(status_code=500, detail=str(e))
        return [
            TraceEventResponse(
                id=e.id,
                event_type=e.event_type,
                actor=e.actor,
                data=e.data,
                timestamp=e.timestamp,
            )
            for e in events
        ]

    @router.get("/health", response_model=HealthResponse)
    async def health() -> dict:
        """Liveness plus hub and run counters."""
        runs = app.runs.list_runs()
        return {
            "status": "ok",
            "runs": len(runs),
            "active_runs": sum(1 for r in runs if not r.status.is_terminal),
            "viewers": app.hub.viewer_count,
        }

    return router
