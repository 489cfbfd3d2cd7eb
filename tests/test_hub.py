"""Tests for BroadcastHub."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from conftest import drain, take
from research_stream.hub import BroadcastHub, HubCapacityError, Registry
from research_stream.models import (
    LaggedNotice,
    ResyncNotice,
    StatusEvent,
    ThoughtEvent,
)


def thought(run_id: str, seq: int) -> ThoughtEvent:
    return ThoughtEvent(run_id=run_id, seq=seq, text=f"t{seq}", timestamp=float(seq))


def make_hub(**kwargs) -> BroadcastHub:
    return BroadcastHub(registry=Registry(), **kwargs)


class TestHubDelivery:
    """Tests for live delivery."""

    async def test_events_delivered_in_order(self, hub):
        """Test that a viewer sees a run's events in seq order."""
        sub = await hub.subscribe("v1", run_id="r1")
        for seq in range(3):
            await hub.publish(thought("r1", seq))

        items = await take(sub, 3)
        assert [i.seq for i in items] == [0, 1, 2]

    async def test_all_runs_subscription(self, hub):
        """Test that a viewer without run filter sees every run."""
        sub = await hub.subscribe("v1")
        await hub.publish(thought("r1", 0))
        await hub.publish(thought("r2", 0))
        await hub.publish(thought("r1", 1))

        items = await take(sub, 3)
        assert [(i.run_id, i.seq) for i in items] == [("r1", 0), ("r2", 0), ("r1", 1)]

    async def test_run_filter(self, hub):
        """Test that a run-scoped viewer does not see other runs."""
        sub = await hub.subscribe("v1", run_id="r1")
        await hub.publish(thought("r2", 0))
        await hub.publish(thought("r1", 0))

        items = await take(sub, 1)
        assert items[0].run_id == "r1"
        assert sub.pending == 0

    async def test_out_of_order_publish_ignored(self, hub):
        """Test that a seq below the run's next seq is not buffered."""
        await hub.publish(thought("r1", 0))
        await hub.publish(thought("r1", 1))
        await hub.publish(thought("r1", 1))

        assert [e.seq for e in hub.backlog("r1")] == [0, 1]

    async def test_run_subscription_ends_after_terminal_status(self, hub):
        """Test that a run-scoped stream ends with the terminal status."""
        sub = await hub.subscribe("v1", run_id="r1")
        await hub.publish(thought("r1", 0))
        await hub.publish(StatusEvent(run_id="r1", seq=1, status="completed"))

        items = await drain(sub)
        assert [i.seq for i in items] == [0, 1]


class TestHubBacklog:
    """Tests for late joiners and replay."""

    async def test_late_joiner_gets_backlog_then_live(self, hub):
        """Test that backlog precedes live events without gaps."""
        for seq in range(3):
            await hub.publish(thought("r1", seq))

        sub = await hub.subscribe("late", run_id="r1")
        await hub.publish(thought("r1", 3))

        items = await take(sub, 4)
        assert [i.seq for i in items] == [0, 1, 2, 3]

    async def test_resume_from_last_seq(self, hub):
        """Test that last_seq skips what the viewer already holds."""
        for seq in range(4):
            await hub.publish(thought("r1", seq))

        sub = await hub.subscribe("v1", run_id="r1", last_seq=1)

        items = await take(sub, 2)
        assert [i.seq for i in items] == [2, 3]

    async def test_evicted_backlog_yields_resync_first(self):
        """Test that a joiner missing evicted events gets a ResyncNotice."""
        hub = make_hub(replay_capacity=4)
        for seq in range(6):
            await hub.publish(thought("r1", seq))

        sub = await hub.subscribe("v1", run_id="r1")

        items = await take(sub, 5)
        assert items[0] == ResyncNotice(run_id="r1", from_seq=2)
        assert [i.seq for i in items[1:]] == [2, 3, 4, 5]

    async def test_resume_inside_buffer_has_no_resync(self):
        """Test that resuming within the buffer needs no resync."""
        hub = make_hub(replay_capacity=4)
        for seq in range(6):
            await hub.publish(thought("r1", seq))

        sub = await hub.subscribe("v1", run_id="r1", last_seq=3)

        items = await take(sub, 2)
        assert [i.seq for i in items] == [4, 5]

    async def test_backlog_of_unknown_run_is_empty(self, hub):
        """Test backlog() for a run never published."""
        assert hub.backlog("nope") == []


class TestHubBackpressure:
    """Tests for slow-viewer isolation."""

    async def test_slow_viewer_does_not_block_fast_viewer(self):
        """Test that overflow drops only the slow viewer's oldest events."""
        hub = make_hub(queue_size=2)
        fast = await hub.subscribe("fast", run_id="r1")
        slow = await hub.subscribe("slow", run_id="r1")

        received = []
        for seq in range(5):
            await hub.publish(thought("r1", seq))
            received.extend(await take(fast, 1))

        assert [i.seq for i in received] == [0, 1, 2, 3, 4]

        items = await take(slow, 3)
        assert items[0] == LaggedNotice(dropped=3, run_ids=("r1",))
        assert [i.seq for i in items[1:]] == [3, 4]
        assert slow.total_dropped == 3

    async def test_publish_never_waits_for_viewers(self):
        """Test that publishing completes while nobody reads."""
        hub = make_hub(queue_size=1)
        await hub.subscribe("idle")

        await asyncio.wait_for(
            asyncio.gather(*[hub.publish(thought("r1", s)) for s in range(50)]),
            timeout=1.0,
        )
        assert len(hub.backlog("r1")) == 50


class TestHubSubscribers:
    """Tests for subscriber bookkeeping."""

    async def test_capacity_limit(self):
        """Test that subscribing past the limit raises."""
        hub = make_hub(max_subscribers=2)
        first = await hub.subscribe("a")
        await hub.subscribe("b")

        with pytest.raises(HubCapacityError):
            await hub.subscribe("c")

        await hub.unsubscribe(first)
        await hub.subscribe("c")
        assert hub.viewer_count == 2

    async def test_unsubscribe_is_idempotent(self, hub, tracker, storage):
        """Test that unsubscribing twice tracks once."""
        sub = await hub.subscribe("v1")
        await hub.unsubscribe(sub)
        await hub.unsubscribe(sub)

        assert hub.viewer_count == 0
        events = await storage.get_trace_events(event_types=["viewer_unsubscribed"])
        assert len(events) == 1
        assert events[0].actor == "viewer:v1"

    async def test_closed_subscription_stops_iteration(self, hub):
        """Test that iteration ends once the subscription is closed."""
        sub = await hub.subscribe("v1")
        await hub.unsubscribe(sub)

        assert await drain(sub) == []

    async def test_stop_closes_subscriptions(self, hub):
        """Test that stopping the hub releases every viewer."""
        sub = await hub.subscribe("v1")
        await hub.start()
        await hub.stop()

        assert sub.closed
        assert hub.viewer_count == 0

    async def test_subscribe_tracked(self):
        """Test that subscriptions are recorded with the tracker."""
        tracker = Mock()
        tracker.track = AsyncMock()
        hub = make_hub(tracker=tracker)

        await hub.subscribe("v1", run_id="r1", last_seq=4)

        tracker.track.assert_awaited_once_with(
            "viewer_subscribed",
            "viewer:v1",
            {"run_id": "r1", "backlog": 0, "last_seq": 4},
        )


class TestHubRetention:
    """Tests for replay-buffer retention."""

    async def test_finished_run_evicted_after_retention(self):
        """Test that a finished run's buffer expires."""
        now = [0.0]
        hub = make_hub(retention_seconds=10, clock=lambda: now[0])
        await hub.publish(thought("r1", 0))
        await hub.publish(StatusEvent(run_id="r1", seq=1, status="completed"))

        assert hub.evict_expired(now=5.0) == []
        assert hub.evict_expired(now=10.0) == ["r1"]
        assert hub.backlog("r1") == []

    async def test_running_run_never_evicted(self):
        """Test that runs without a terminal status keep their buffer."""
        hub = make_hub(retention_seconds=1, clock=lambda: 0.0)
        await hub.publish(thought("r1", 0))

        assert hub.evict_expired(now=1000.0) == []
        assert len(hub.backlog("r1")) == 1

    async def test_joiner_after_expiry_gets_resync_and_ends(self):
        """Test that an expired run answers with a resync notice."""
        hub = make_hub(retention_seconds=10, clock=lambda: 0.0)
        await hub.publish(thought("r1", 0))
        await hub.publish(StatusEvent(run_id="r1", seq=1, status="failed"))
        hub.evict_expired(now=20.0)

        sub = await hub.subscribe("v1", run_id="r1")

        items = await drain(sub)
        assert items == [
            ResyncNotice(run_id="r1", from_seq=2, reason="backlog_expired")
        ]

    async def test_all_runs_joiner_told_of_expired_runs(self):
        """Test that an all-runs joiner gets a resync for every evicted run."""
        hub = make_hub(retention_seconds=10, clock=lambda: 0.0)
        await hub.publish(thought("r1", 0))
        await hub.publish(StatusEvent(run_id="r1", seq=1, status="completed"))
        await hub.publish(thought("r2", 0))
        hub.evict_expired(now=20.0)

        sub = await hub.subscribe("v1")

        items = await take(sub, 2)
        assert items == [
            ResyncNotice(run_id="r1", from_seq=2, reason="backlog_expired"),
            thought("r2", 0),
        ]

    async def test_forget_drops_run(self, hub):
        """Test that forget removes the buffer."""
        await hub.publish(thought("r1", 0))
        hub.forget("r1")

        assert hub.backlog("r1") == []

    async def test_drop_listeners_notified(self):
        """Test that eviction and forget report the dropped run."""
        hub = make_hub(retention_seconds=10, clock=lambda: 0.0)
        dropped = []
        hub.add_drop_listener(dropped.append)
        await hub.publish(StatusEvent(run_id="r1", seq=0, status="completed"))
        await hub.publish(thought("r2", 0))

        hub.evict_expired(now=20.0)
        hub.forget("r2")

        assert dropped == ["r1", "r2"]


class TestHubListeners:
    """Tests for in-process listeners."""

    async def test_listener_receives_events(self, hub):
        """Test that listeners see each published event."""
        seen = []

        async def listener(event):
            seen.append(event.seq)

        hub.add_listener(listener)
        await hub.publish(thought("r1", 0))
        await hub.publish(thought("r1", 1))

        assert seen == [0, 1]

    async def test_listener_error_does_not_break_publish(self, hub):
        """Test that a failing listener is logged, not raised."""
        seen = []

        async def broken(event):
            raise RuntimeError("boom")

        async def working(event):
            seen.append(event.seq)

        hub.add_listener(broken)
        hub.add_listener(working)
        await hub.publish(thought("r1", 0))

        assert seen == [0]
        assert len(hub.backlog("r1")) == 1
