"""ClientStateStore: folds the event stream into per-agent snapshots."""

from dataclasses import replace
from typing import Iterable

from ..models import (
    AgentSnapshot,
    Event,
    InsightCard,
    InsightEvent,
    MetadataEvent,
    RunStatus,
    StatusEvent,
    ThoughtEvent,
    ThoughtItem,
)

DEFAULT_MAX_THOUGHTS = 256
DEFAULT_MAX_INSIGHTS = 24


def _bounded(items: tuple, limit: int) -> tuple:
    return items[-limit:] if len(items) > limit else items


def fold_event(
    snapshot: AgentSnapshot,
    event: Event,
    max_thoughts: int = DEFAULT_MAX_THOUGHTS,
    max_insights: int = DEFAULT_MAX_INSIGHTS,
) -> AgentSnapshot:
    """Apply one event to a snapshot, returning a new snapshot.

    Events at or below ``last_seq_applied`` return the snapshot unchanged.
    """
    if event.seq <= snapshot.last_seq_applied:
        return snapshot

    if isinstance(event, ThoughtEvent):
        slot = event.slot_key
        item = ThoughtItem(slot=slot, text=event.text, seq=event.seq, timestamp=event.timestamp)
        existing = [i for i, t in enumerate(snapshot.thoughts) if t.slot == slot]
        if existing:
            idx = existing[0]
            thoughts = snapshot.thoughts[:idx] + (item,) + snapshot.thoughts[idx + 1 :]
        else:
            thoughts = _bounded(snapshot.thoughts + (item,), max_thoughts)
        return replace(snapshot, thoughts=thoughts, last_seq_applied=event.seq)

    if isinstance(event, InsightEvent):
        card = InsightCard(
            id=event.id,
            run_id=event.run_id,
            seq=event.seq,
            summary=event.summary,
            timestamp=event.timestamp,
            chart=event.chart,
        )
        insights = _bounded(snapshot.insights + (card,), max_insights)
        return replace(snapshot, insights=insights, last_seq_applied=event.seq)

    if isinstance(event, StatusEvent):
        return replace(
            snapshot,
            status=RunStatus(event.status),
            status_reason=event.reason,
            last_seq_applied=event.seq,
        )

    if isinstance(event, MetadataEvent):
        metadata = dict(snapshot.metadata)
        metadata[event.key] = event.value
        return replace(
            snapshot,
            metadata=tuple(sorted(metadata.items())),
            last_seq_applied=event.seq,
        )

    return snapshot


class ClientStateStore:
    """Per-viewer reducer keyed by run id.

    Deterministic: the same ordered events always produce the same snapshots,
    and re-applying an already-applied seq is a no-op.
    """

    def __init__(
        self,
        max_thoughts: int = DEFAULT_MAX_THOUGHTS,
        max_insights: int = DEFAULT_MAX_INSIGHTS,
    ):
        self._max_thoughts = max_thoughts
        self._max_insights = max_insights
        self._agents: dict[str, AgentSnapshot] = {}

    def apply(self, event: Event) -> dict[str, AgentSnapshot]:
        """Fold one event and return the updated snapshot map."""
        current = self._agents.get(event.run_id) or AgentSnapshot(id=event.run_id)
        self._agents[event.run_id] = fold_event(
            current, event, self._max_thoughts, self._max_insights
        )
        return self.agents()

    def apply_all(self, events: Iterable[Event]) -> dict[str, AgentSnapshot]:
        for event in events:
            self.apply(event)
        return self.agents()

    def restore(self, snapshot: AgentSnapshot) -> None:
        """Install a server snapshot (after a resync), unless ours is newer."""
        current = self._agents.get(snapshot.id)
        if current is not None and current.last_seq_applied > snapshot.last_seq_applied:
            return
        self._agents[snapshot.id] = snapshot

    def snapshot(self, run_id: str) -> AgentSnapshot | None:
        return self._agents.get(run_id)

    def last_seq(self, run_id: str) -> int:
        snapshot = self._agents.get(run_id)
        return snapshot.last_seq_applied if snapshot else -1

    def agents(self) -> dict[str, AgentSnapshot]:
        return dict(self._agents)

    def forget(self, run_id: str) -> None:
        self._agents.pop(run_id, None)
