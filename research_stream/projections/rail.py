"""Insight rail: cross-agent, recency-ordered, capped feed."""

from typing import Mapping

from ..models import AgentSnapshot, InsightRailEntry

RAIL_LIMIT = 24


def project_rail(
    agents: Mapping[str, AgentSnapshot], limit: int = RAIL_LIMIT
) -> list[InsightRailEntry]:
    """Most recent insights across all agents, newest first.

    Ties on timestamp are broken by (run_id, seq) descending.
    """
    entries = [
        InsightRailEntry(insight=insight, agent_id=agent.id, gpu=agent.gpu)
        for agent in agents.values()
        for insight in agent.insights
    ]
    entries.sort(
        key=lambda e: (e.insight.timestamp, e.insight.run_id, e.insight.seq),
        reverse=True,
    )
    return entries[:limit]
