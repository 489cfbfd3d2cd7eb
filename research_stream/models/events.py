"""Stream event data models.

Events are immutable and ordered per run by ``seq``. Notices are hub-level
control messages (resync, lagged) that carry no ``seq`` of their own.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from .charts import ChartSpec


class EventType(str, Enum):
    """Closed set of event variants."""

    THOUGHT = "thought"
    INSIGHT = "insight"
    STATUS = "status"
    METADATA = "metadata"


class NoticeType(str, Enum):
    """Hub control notices."""

    RESYNC = "resync"
    LAGGED = "lagged"


@dataclass(frozen=True)
class ThoughtEvent:
    """Incremental narrative text; a known ``slot`` means an update."""

    run_id: str
    seq: int
    text: str
    timestamp: float
    slot: str | None = None
    type: EventType = field(default=EventType.THOUGHT, init=False)

    @property
    def slot_key(self) -> str:
        return self.slot if self.slot is not None else str(self.seq)

    def to_dict(self) -> dict:
        data = {
            "type": self.type.value,
            "runId": self.run_id,
            "seq": self.seq,
            "text": self.text,
            "timestamp": self.timestamp,
        }
        if self.slot is not None:
            data["slot"] = self.slot
        return data


@dataclass(frozen=True)
class InsightEvent:
    """A terminal insight card, optionally carrying a chart."""

    run_id: str
    seq: int
    id: str
    summary: str
    timestamp: float
    chart: ChartSpec | None = None
    type: EventType = field(default=EventType.INSIGHT, init=False)

    def to_dict(self) -> dict:
        data = {
            "type": self.type.value,
            "runId": self.run_id,
            "seq": self.seq,
            "id": self.id,
            "summary": self.summary,
            "timestamp": self.timestamp,
        }
        if self.chart is not None:
            data["chart"] = self.chart.to_dict()
        return data


@dataclass(frozen=True)
class StatusEvent:
    """Run status transition."""

    run_id: str
    seq: int
    status: str
    reason: str | None = None
    type: EventType = field(default=EventType.STATUS, init=False)

    def to_dict(self) -> dict:
        data = {
            "type": self.type.value,
            "runId": self.run_id,
            "seq": self.seq,
            "status": self.status,
        }
        if self.reason is not None:
            data["reason"] = self.reason
        return data


@dataclass(frozen=True)
class MetadataEvent:
    """Side-channel attribute merged into agent state (e.g. gpu)."""

    run_id: str
    seq: int
    key: str
    value: Any
    type: EventType = field(default=EventType.METADATA, init=False)

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "runId": self.run_id,
            "seq": self.seq,
            "key": self.key,
            "value": self.value,
        }


Event = Union[ThoughtEvent, InsightEvent, StatusEvent, MetadataEvent]


@dataclass(frozen=True)
class ResyncNotice:
    """Tells a joiner that backlog before ``from_seq`` was evicted."""

    run_id: str
    from_seq: int
    reason: str = "backlog_evicted"
    type: NoticeType = field(default=NoticeType.RESYNC, init=False)

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "runId": self.run_id,
            "fromSeq": self.from_seq,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class LaggedNotice:
    """Tells a subscriber that events were dropped from its queue."""

    dropped: int
    run_ids: tuple[str, ...] = ()
    type: NoticeType = field(default=NoticeType.LAGGED, init=False)

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "dropped": self.dropped,
            "runIds": list(self.run_ids),
        }


Notice = Union[ResyncNotice, LaggedNotice]
StreamItem = Union[Event, Notice]


def event_from_dict(data: dict) -> StreamItem:
    """Rebuild an event or notice from its wire form.

    Raises:
        ValueError: on unknown ``type`` or missing fields.
    """
    kind = data.get("type")
    try:
        if kind == EventType.THOUGHT.value:
            return ThoughtEvent(
                run_id=data["runId"],
                seq=int(data["seq"]),
                text=data["text"],
                timestamp=float(data["timestamp"]),
                slot=data.get("slot"),
            )
        if kind == EventType.INSIGHT.value:
            chart = data.get("chart")
            return InsightEvent(
                run_id=data["runId"],
                seq=int(data["seq"]),
                id=data["id"],
                summary=data["summary"],
                timestamp=float(data["timestamp"]),
                chart=ChartSpec.from_dict(chart) if chart else None,
            )
        if kind == EventType.STATUS.value:
            return StatusEvent(
                run_id=data["runId"],
                seq=int(data["seq"]),
                status=data["status"],
                reason=data.get("reason"),
            )
        if kind == EventType.METADATA.value:
            return MetadataEvent(
                run_id=data["runId"],
                seq=int(data["seq"]),
                key=data["key"],
                value=data.get("value"),
            )
        if kind == NoticeType.RESYNC.value:
            return ResyncNotice(
                run_id=data["runId"],
                from_seq=int(data["fromSeq"]),
                reason=data.get("reason", "backlog_evicted"),
            )
        if kind == NoticeType.LAGGED.value:
            return LaggedNotice(
                dropped=int(data["dropped"]),
                run_ids=tuple(data.get("runIds", ())),
            )
    except KeyError as e:
        raise ValueError(f"Missing field {e} for {kind!r}") from e
    raise ValueError(f"Unknown stream item type: {kind!r}")
