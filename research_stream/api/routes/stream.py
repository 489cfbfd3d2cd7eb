"""Server-Sent Events stream of run events."""

import asyncio
import json
import uuid

from fastapi import APIRouter, Header, HTTPException, Query
from fastapi.responses import StreamingResponse

from ...app import Application
from ...hub import HubCapacityError, Subscription
from ...logging_config import get_logger
from ...models import StreamItem

logger = get_logger(__name__)

HEARTBEAT_SECONDS = 15.0


def format_sse_event(item: StreamItem) -> str:
    """Format an event or notice as one SSE frame.

    Events carry ``id: <runId>:<seq>`` so a reconnecting client can resume
    with Last-Event-ID; notices carry no id.
    """
    data = item.to_dict()
    lines = []
    if "seq" in data:
        lines.append(f"id: {data['runId']}:{data['seq']}")
    lines.append(f"event: {data['type']}")
    lines.append(f"data: {json.dumps(data, ensure_ascii=False, allow_nan=False)}")
    return "\n".join(lines) + "\n\n"


def parse_last_event_id(value: str | None, run_id: str | None) -> int | None:
    """Extract the seq from a ``<runId>:<seq>`` Last-Event-ID for ``run_id``."""
    if not value or run_id is None:
        return None
    event_run, _, seq = value.rpartition(":")
    if event_run != run_id:
        return None
    try:
        return int(seq)
    except ValueError:
        return None


async def _frames(app: Application, subscription: Subscription, heartbeat: float):
    try:
        yield ": connected\n\n"
        iterator = subscription.__aiter__()
        while True:
            try:
                item = await asyncio.wait_for(iterator.__anext__(), heartbeat)
            except asyncio.TimeoutError:
                yield ": heartbeat\n\n"
                continue
            except StopAsyncIteration:
                return
            yield format_sse_event(item)
    finally:
        await app.hub.unsubscribe(subscription)


def create_stream_router(app: Application, heartbeat: float = HEARTBEAT_SECONDS) -> APIRouter:
    """Create SSE stream router."""
    router = APIRouter(prefix="/api", tags=["stream"])

    @router.get("/stream")
    async def stream_events(
        run_id: str | None = Query(None, description="Restrict to one run"),
        viewer_id: str | None = Query(None, description="Viewer identity"),
        last_seq: int | None = Query(None, description="Highest seq already held"),
        last_event_id: str | None = Header(None, alias="Last-Event-ID"),
    ) -> StreamingResponse:
        """Stream backlog then live events as Server-Sent Events."""
        if run_id is not None and not app.runs.has_run(run_id):
            raise HTTPException(status_code=404, detail=f"Unknown run: {run_id}")

        resume_seq = parse_last_event_id(last_event_id, run_id)
        if resume_seq is None:
            resume_seq = last_seq

        try:
            subscription = await app.hub.subscribe(
                viewer_id or str(uuid.uuid4()), run_id=run_id, last_seq=resume_seq
            )
        except HubCapacityError as e:
            raise HTTPException(status_code=503, detail=str(e))

        return StreamingResponse(
            _frames(app, subscription, heartbeat),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    return router
