"""RunManager: control surface for starting, stopping and listing runs."""

import asyncio
import uuid
from typing import Callable, Protocol

from ..hub import IBroadcastHub, Registry
from ..logging_config import get_logger
from ..models import Run, RunConfig
from ..storage import IStorage
from ..tracker import ITracker
from .supervisor import RunSupervisor

logger = get_logger(__name__)


class UnknownRunError(KeyError):
    """No run registered under the given id."""


class IRunManager(Protocol):
    """Starting, stopping and listing runs."""

    async def start(self, config: RunConfig) -> str:
        """Spawn a supervised run and return its id."""
        ...

    async def stop(self, run_id: str) -> None:
        """Request termination of a run (idempotent)."""
        ...

    def list_runs(self) -> list[Run]:
        """Runs currently held in the registry."""
        ...

    def get_run(self, run_id: str) -> Run:
        """Get one run record."""
        ...


class RunManager:
    """Creates one RunSupervisor per run and registers it."""

    def __init__(
        self,
        registry: Registry,
        hub: IBroadcastHub,
        tracker: ITracker | None = None,
        storage: IStorage | None = None,
        stop_grace_seconds: float = 5.0,
        clock: Callable[[], float] | None = None,
    ):
        self._registry = registry
        self._hub = hub
        self._tracker = tracker
        self._storage = storage
        self._stop_grace_seconds = stop_grace_seconds
        self._clock = clock

    async def start(self, config: RunConfig) -> str:
        """Spawn a supervised run and return its id."""
        run_id = str(uuid.uuid4())
        run = Run(id=run_id, argv=list(config.argv), label=config.label)
        supervisor = RunSupervisor(
            run=run,
            config=config,
            hub=self._hub,
            tracker=self._tracker,
            storage=self._storage,
            stop_grace_seconds=self._stop_grace_seconds,
            clock=self._clock,
        )
        self._registry.register_run(run_id, supervisor)
        if self._storage:
            await self._storage.save_run(run)
        await supervisor.start()
        logger.info("Run %s registered (%s)", run_id, config.label or config.argv[0])
        return run_id

    async def stop(self, run_id: str) -> None:
        """Request termination of a run (idempotent)."""
        await self.supervisor(run_id).stop()

    async def wait(self, run_id: str) -> Run:
        """Wait until a run reaches a terminal status."""
        return await self.supervisor(run_id).wait()

    def supervisor(self, run_id: str) -> RunSupervisor:
        supervisor = self._registry.get_run(run_id)
        if supervisor is None:
            raise UnknownRunError(run_id)
        return supervisor

    def has_run(self, run_id: str) -> bool:
        return self._registry.get_run(run_id) is not None

    def list_runs(self) -> list[Run]:
        """Runs currently held in the registry."""
        return [supervisor.run for supervisor in self._registry.runs()]

    def get_run(self, run_id: str) -> Run:
        """Get one run record."""
        return self.supervisor(run_id).run

    async def remove(self, run_id: str) -> None:
        """Deregister a finished run and drop its replay buffer."""
        supervisor = self.supervisor(run_id)
        if not supervisor.done:
            raise RuntimeError(f"Run {run_id} is still active")
        self._registry.deregister_run(run_id)
        self._hub.forget(run_id)

    async def shutdown(self) -> None:
        """Stop every active run."""
        active = [s for s in self._registry.runs() if not s.done]
        if active:
            logger.info("Stopping %s active run(s)", len(active))
            await asyncio.gather(*[s.stop() for s in active], return_exceptions=True)
