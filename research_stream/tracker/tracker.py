"""Tracker: turns run and viewer occurrences into stored TraceEvents."""

import uuid
from datetime import datetime, timezone
from typing import Protocol

from ..models import Event, StatusEvent, TraceEvent
from ..storage import IStorage


def run_actor(run_id: str) -> str:
    return f"run:{run_id}"


def viewer_actor(viewer_id: str) -> str:
    return f"viewer:{viewer_id}"


class ITracker(Protocol):
    """Diagnostics sink. Fed by the hub listener and by direct track() calls."""

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        """Create TraceEvent and save to Storage."""
        ...


class Tracker:
    """Records status transitions seen on the hub plus explicit track() calls.

    Thoughts, insights and metadata are not traced; they already live in the
    replay buffer and the snapshots.
    """

    def __init__(self, storage: IStorage):
        self._storage = storage

    async def handle_event(self, event: Event) -> None:
        """Hub listener for published events."""
        if isinstance(event, StatusEvent):
            await self.track(
                "status_published",
                run_actor(event.run_id),
                {"seq": event.seq, "status": event.status, "reason": event.reason},
            )

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        """Create TraceEvent and save to Storage."""
        await self._storage.save_trace_event(
            TraceEvent(
                id=str(uuid.uuid4()),
                event_type=event_type,
                actor=actor,
                data=data,
                timestamp=datetime.now(timezone.utc),
            )
        )
