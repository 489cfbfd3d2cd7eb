"""Tests for the insight rail projection."""

from research_stream.models import AgentSnapshot, InsightCard
from research_stream.projections import RAIL_LIMIT, project_rail


def card(run_id: str, seq: int, timestamp: float) -> InsightCard:
    return InsightCard(
        id=f"{run_id}-{seq}", run_id=run_id, seq=seq, summary="s", timestamp=timestamp
    )


def agent(run_id: str, cards, gpu=None) -> AgentSnapshot:
    metadata = (("gpu", gpu),) if gpu is not None else ()
    return AgentSnapshot(id=run_id, insights=tuple(cards), metadata=metadata)


class TestProjectRail:
    """Tests for project_rail()."""

    def test_newest_first_across_agents(self):
        """Test that insights from all agents are merged by recency."""
        agents = {
            run_id: agent(run_id, [card(run_id, 0, ts)])
            for run_id, ts in zip("abcd", [100, 50, 300, 200])
        }

        rail = project_rail(agents)

        assert [e.insight.timestamp for e in rail] == [300, 200, 100, 50]
        assert [e.agent_id for e in rail] == ["c", "d", "a", "b"]

    def test_capped(self):
        """Test that the rail keeps only the newest entries."""
        agents = {"a": agent("a", [card("a", s, float(s)) for s in range(30)])}

        rail = project_rail(agents)

        assert len(rail) == RAIL_LIMIT == 24
        assert rail[0].insight.seq == 29
        assert rail[-1].insight.seq == 6

    def test_ties_broken_by_run_and_seq(self):
        """Test a stable order for equal timestamps."""
        agents = {
            "a": agent("a", [card("a", 0, 5), card("a", 1, 5)]),
            "b": agent("b", [card("b", 0, 5)]),
        }

        rail = project_rail(agents)

        assert [(e.agent_id, e.insight.seq) for e in rail] == [
            ("b", 0),
            ("a", 1),
            ("a", 0),
        ]

    def test_entries_carry_gpu(self):
        """Test that the agent's gpu travels with its insights."""
        agents = {"a": agent("a", [card("a", 0, 1)], gpu="H100")}

        assert project_rail(agents)[0].gpu == "H100"

    def test_empty(self):
        """Test that no insights means an empty rail."""
        assert project_rail({}) == []
        assert project_rail({"a": agent("a", [])}) == []
