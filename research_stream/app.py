"""Application bootstrap and lifecycle management."""

from typing import Protocol

from .config import Settings
from .hub import BroadcastHub, Registry
from .logging_config import get_logger
from .models import AgentSnapshot, Event, RunStatus, StatusEvent
from .storage import IStorage, Storage
from .store import ClientStateStore
from .supervisor import RunManager
from .tracker import ITracker, Tracker

logger = get_logger(__name__)


class IApplication(Protocol):
    """Bootstrap and lifecycle."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        ...


class Application:
    """Main application bootstrap."""

    def __init__(self, settings: Settings | None = None):
        self._settings = settings or Settings.from_env()

        # Components (will be initialized in start())
        self._storage: IStorage | None = None
        self._tracker: ITracker | None = None
        self._registry: Registry | None = None
        self._hub: BroadcastHub | None = None
        self._snapshots: ClientStateStore | None = None
        self._runs: RunManager | None = None

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting application")

        # 1. Storage (no dependencies)
        self._storage = Storage(self._settings.database_url)
        await self._storage.init()
        logger.info("Storage initialized")

        # 2. Tracker (depends on Storage)
        self._tracker = Tracker(self._storage)

        # 3. Registry + Hub (hub depends on Registry and Tracker)
        self._registry = Registry()
        self._hub = BroadcastHub(
            registry=self._registry,
            replay_capacity=self._settings.replay_capacity,
            queue_size=self._settings.subscriber_queue_size,
            max_subscribers=self._settings.max_subscribers,
            retention_seconds=self._settings.retention_seconds,
            tracker=self._tracker,
        )
        self._hub.add_listener(self._tracker.handle_event)
        await self._hub.start()
        logger.info("BroadcastHub started")

        # 4. Server-side snapshots for (re)connecting viewers
        self._snapshots = ClientStateStore()
        self._hub.add_listener(self._mirror_event)
        # Evicted or removed runs are served from their checkpoint
        self._hub.add_drop_listener(self._snapshots.forget)

        # 5. RunManager (depends on Registry, Hub, Tracker, Storage)
        self._runs = RunManager(
            registry=self._registry,
            hub=self._hub,
            tracker=self._tracker,
            storage=self._storage,
            stop_grace_seconds=self._settings.stop_grace_seconds,
        )
        logger.info("All components initialized successfully")

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        if self._runs:
            await self._runs.shutdown()
        if self._hub:
            await self._hub.stop()
            logger.info("BroadcastHub stopped")
        if self._storage:
            await self._storage.close()
            logger.info("Storage closed")

    async def _mirror_event(self, event: Event) -> None:
        """Hub listener: fold into server snapshots, checkpoint on terminal status."""
        agents = self.snapshots.apply(event)
        if isinstance(event, StatusEvent) and RunStatus(event.status).is_terminal:
            await self.storage.save_snapshot(agents[event.run_id])

    async def snapshot(self, run_id: str) -> AgentSnapshot | None:
        """Current snapshot of a run, falling back to the last checkpoint."""
        current = self.snapshots.snapshot(run_id)
        if current is not None:
            return current
        return await self.storage.get_snapshot(run_id)

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def storage(self) -> IStorage:
        """Get storage instance."""
        if not self._storage:
            raise RuntimeError("Application not started")
        return self._storage

    @property
    def hub(self) -> BroadcastHub:
        """Get broadcast hub instance."""
        if not self._hub:
            raise RuntimeError("Application not started")
        return self._hub

    @property
    def runs(self) -> RunManager:
        """Get run manager instance."""
        if not self._runs:
            raise RuntimeError("Application not started")
        return self._runs

    @property
    def snapshots(self) -> ClientStateStore:
        """Get the server-side snapshot store."""
        if not self._snapshots:
            raise RuntimeError("Application not started")
        return self._snapshots
