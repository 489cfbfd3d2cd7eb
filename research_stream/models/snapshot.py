"""Viewer-side derived state models."""

import json
from dataclasses import dataclass
from typing import Any

from .charts import ChartSpec
from .runs import RunStatus


@dataclass(frozen=True)
class ThoughtItem:
    """One timeline entry; ``slot`` is its stable identity."""

    slot: str
    text: str
    seq: int
    timestamp: float

    def to_dict(self) -> dict:
        return {
            "slot": self.slot,
            "text": self.text,
            "seq": self.seq,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class InsightCard:
    """An immutable insight as held in a snapshot."""

    id: str
    run_id: str
    seq: int
    summary: str
    timestamp: float
    chart: ChartSpec | None = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "runId": self.run_id,
            "seq": self.seq,
            "summary": self.summary,
            "timestamp": self.timestamp,
        }
        if self.chart is not None:
            data["chart"] = self.chart.to_dict()
        return data


@dataclass(frozen=True)
class AgentSnapshot:
    """Per-agent state rebuilt by folding a run's events in seq order."""

    id: str
    status: RunStatus = RunStatus.PENDING
    thoughts: tuple[ThoughtItem, ...] = ()
    insights: tuple[InsightCard, ...] = ()
    metadata: tuple[tuple[str, Any], ...] = ()
    last_seq_applied: int = -1
    status_reason: str | None = None

    @property
    def gpu(self) -> Any:
        return dict(self.metadata).get("gpu")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "gpu": self.gpu,
            "status": self.status.value,
            "statusReason": self.status_reason,
            "thoughts": [t.to_dict() for t in self.thoughts],
            "insights": [i.to_dict() for i in self.insights],
            "metadata": dict(self.metadata),
            "lastSeqApplied": self.last_seq_applied,
        }

    def to_json(self) -> str:
        """Canonical JSON; equal snapshots serialize byte-identically."""
        return json.dumps(
            self.to_dict(), sort_keys=True, separators=(",", ":"), allow_nan=False
        )

    @classmethod
    def from_dict(cls, data: dict) -> "AgentSnapshot":
        return cls(
            id=data["id"],
            status=RunStatus(data.get("status", RunStatus.PENDING.value)),
            status_reason=data.get("statusReason"),
            thoughts=tuple(
                ThoughtItem(
                    slot=t["slot"],
                    text=t["text"],
                    seq=int(t["seq"]),
                    timestamp=float(t["timestamp"]),
                )
                for t in data.get("thoughts", ())
            ),
            insights=tuple(
                InsightCard(
                    id=i["id"],
                    run_id=i.get("runId", data["id"]),
                    seq=int(i["seq"]),
                    summary=i["summary"],
                    timestamp=float(i["timestamp"]),
                    chart=ChartSpec.from_dict(i["chart"]) if i.get("chart") else None,
                )
                for i in data.get("insights", ())
            ),
            metadata=tuple(sorted(data.get("metadata", {}).items())),
            last_seq_applied=int(data.get("lastSeqApplied", -1)),
        )


@dataclass(frozen=True)
class InsightRailEntry:
    """An insight paired with the agent it came from."""

    insight: InsightCard
    agent_id: str
    gpu: Any = None

    def to_dict(self) -> dict:
        return {
            "insight": self.insight.to_dict(),
            "agentId": self.agent_id,
            "gpu": self.gpu,
        }
