"""Render-agnostic view model built from the client store."""

from dataclasses import dataclass
from typing import Any

from ..models import InsightRailEntry, RunStatus
from ..projections import (
    RAIL_LIMIT,
    AppearanceTracker,
    ChartGeometry,
    project_chart,
    project_rail,
)
from ..store import ClientStateStore


@dataclass(frozen=True)
class TimelineItem:
    identity: str
    text: str
    appearing: bool


@dataclass(frozen=True)
class AgentView:
    id: str
    status: RunStatus
    gpu: Any
    thoughts: tuple[TimelineItem, ...]


@dataclass(frozen=True)
class RailCard:
    entry: InsightRailEntry
    chart: ChartGeometry | None
    appearing: bool


@dataclass(frozen=True)
class DashboardView:
    agents: tuple[AgentView, ...]
    rail: tuple[RailCard, ...]


class Dashboard:
    """Combines store, rail, chart projector and appearance tracker."""

    def __init__(
        self,
        store: ClientStateStore,
        presenter: AppearanceTracker | None = None,
        rail_limit: int = RAIL_LIMIT,
    ):
        self._store = store
        self._presenter = presenter or AppearanceTracker()
        self._rail_limit = rail_limit
        self._seen: set[str] = set()

    def _appearing(self, identity: str, text: str, now: float | None) -> bool:
        self._seen.add(identity)
        fired = self._presenter.observe(identity, text, now)
        return fired or self._presenter.is_appearing(identity, now)

    def build(self, now: float | None = None) -> DashboardView:
        self._seen = set()
        agents = self._store.agents()

        agent_views = []
        for run_id in sorted(agents):
            agent = agents[run_id]
            thoughts = []
            for thought in agent.thoughts:
                identity = f"thought:{run_id}:{thought.slot}"
                thoughts.append(
                    TimelineItem(
                        identity=identity,
                        text=thought.text,
                        appearing=self._appearing(identity, thought.text, now),
                    )
                )
            agent_views.append(
                AgentView(
                    id=run_id,
                    status=agent.status,
                    gpu=agent.gpu,
                    thoughts=tuple(thoughts),
                )
            )

        cards = []
        for entry in project_rail(agents, self._rail_limit):
            identity = f"insight:{entry.agent_id}:{entry.insight.id}"
            chart = entry.insight.chart
            cards.append(
                RailCard(
                    entry=entry,
                    chart=project_chart(chart) if chart is not None else None,
                    appearing=self._appearing(identity, entry.insight.summary, now),
                )
            )

        # Blocks that left the view start over if they ever return
        for identity in self._presenter.tracked() - self._seen:
            self._presenter.forget(identity)

        return DashboardView(agents=tuple(agent_views), rail=tuple(cards))
