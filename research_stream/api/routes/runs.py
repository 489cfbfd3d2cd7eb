"""Run control API routes."""

from datetime import datetime

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ...app import Application
from ...models import AgentSnapshot, Run, RunConfig
from ...supervisor import UnknownRunError


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StartRunRequest(_CamelModel):
    """Request model for starting a run. argv defaults to AGENT_COMMAND."""

    argv: list[str] | None = None
    label: str | None = None
    cwd: str | None = None
    env: dict[str, str] | None = None


class StartRunResponse(_CamelModel):
    """Response model for a started run."""

    run_id: str


class StatusResponse(BaseModel):
    """Response model for status."""

    status: str


class RunResponse(_CamelModel):
    """Response model for a run record."""

    id: str
    label: str | None
    argv: list[str]
    status: str
    started_at: datetime | None
    ended_at: datetime | None
    exit_code: int | None
    failure_reason: str | None
    malformed_lines: int
    stderr_tail: list[str] = []


def _run_response(run: Run) -> RunResponse:
    return RunResponse.model_validate(run.to_dict())


def create_runs_router(app: Application) -> APIRouter:
    """Create run control router."""
    router = APIRouter(prefix="/api/runs", tags=["runs"])

    @router.post("", response_model=StartRunResponse, status_code=201)
    async def start_run(request: StartRunRequest) -> StartRunResponse:
        """Start a run of the external research process."""
        argv = request.argv or app.settings.agent_command
        try:
            run_id = await app.runs.start(
                RunConfig(argv=argv, label=request.label, cwd=request.cwd, env=request.env)
            )
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        return StartRunResponse(run_id=run_id)

    @router.get("", response_model=list[RunResponse])
    async def list_runs() -> list[RunResponse]:
        """List runs held in the registry (active and recently finished)."""
        return [_run_response(run) for run in app.runs.list_runs()]

    @router.get("/history", response_model=list[RunResponse])
    async def list_run_history(
        limit: int = Query(default=100, ge=1, le=1000),
    ) -> list[RunResponse]:
        """Persisted run records, newest first, including removed runs."""
        return [_run_response(run) for run in await app.storage.get_runs(limit=limit)]

    @router.get("/history/{run_id}", response_model=RunResponse)
    async def get_run_history(run_id: str) -> RunResponse:
        """One persisted run record."""
        run = await app.storage.get_run(run_id)
        if run is None:
            raise HTTPException(status_code=404, detail=f"Unknown run: {run_id}")
        return _run_response(run)

    @router.get("/{run_id}", response_model=RunResponse)
    async def get_run(run_id: str) -> RunResponse:
        """Get a run record with diagnostics."""
        try:
            return _run_response(app.runs.get_run(run_id))
        except UnknownRunError:
            raise HTTPException(status_code=404, detail=f"Unknown run: {run_id}")

    @router.post("/{run_id}/stop", response_model=StatusResponse)
    async def stop_run(run_id: str) -> dict:
        """Request termination of a run. Stopping a stopped run is a no-op."""
        try:
            await app.runs.stop(run_id)
        except UnknownRunError:
            raise HTTPException(status_code=404, detail=f"Unknown run: {run_id}")
        return {"status": "ok"}

    @router.delete("/{run_id}", response_model=StatusResponse)
    async def remove_run(run_id: str) -> dict:
        """Forget a finished run and its replay buffer."""
        try:
            await app.runs.remove(run_id)
        except UnknownRunError:
            raise HTTPException(status_code=404, detail=f"Unknown run: {run_id}")
        except RuntimeError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return {"status": "ok"}

    @router.get("/{run_id}/backlog")
    async def get_backlog(run_id: str) -> dict:
        """Buffered recent events of a run."""
        try:
            app.runs.get_run(run_id)
        except UnknownRunError:
            raise HTTPException(status_code=404, detail=f"Unknown run: {run_id}")
        return {
            "runId": run_id,
            "events": [event.to_dict() for event in app.hub.backlog(run_id)],
        }

    @router.get("/{run_id}/snapshot")
    async def get_snapshot(run_id: str) -> dict:
        """Current folded AgentSnapshot of a run, for (re)connecting viewers."""
        snapshot = await app.snapshot(run_id)
        if snapshot is None and app.runs.has_run(run_id):
            snapshot = AgentSnapshot(id=run_id)
        if snapshot is None:
            raise HTTPException(status_code=404, detail=f"No snapshot for run: {run_id}")
        return snapshot.to_dict()

    return router
