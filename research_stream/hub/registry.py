"""Registry of active runs and connected viewers."""

from typing import Any


class Registry:
    """Explicitly owned registry shared by the run manager and the hub.

    Runs are keyed by run id (values are RunSupervisors); viewers are keyed by
    subscription key (values are Subscriptions).
    """

    def __init__(self) -> None:
        self._runs: dict[str, Any] = {}
        self._viewers: dict[str, Any] = {}

    def register_run(self, run_id: str, supervisor: Any) -> None:
        """Register a run; ids are unique for the process lifetime."""
        if run_id in self._runs:
            raise ValueError(f"Run already registered: {run_id}")
        self._runs[run_id] = supervisor

    def deregister_run(self, run_id: str) -> Any | None:
        """Remove a run, returning what was registered (or None)."""
        return self._runs.pop(run_id, None)

    def get_run(self, run_id: str) -> Any | None:
        return self._runs.get(run_id)

    def runs(self) -> list[Any]:
        return list(self._runs.values())

    def register_viewer(self, key: str, subscription: Any) -> None:
        self._viewers[key] = subscription

    def deregister_viewer(self, key: str) -> Any | None:
        return self._viewers.pop(key, None)

    def viewers(self) -> list[Any]:
        return list(self._viewers.values())

    @property
    def viewer_count(self) -> int:
        return len(self._viewers)
