"""BroadcastHub: fan-in of run events, fan-out to viewer subscriptions."""

import asyncio
import time
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

from ..logging_config import get_logger, log_context
from ..models import (
    Event,
    LaggedNotice,
    ResyncNotice,
    RunStatus,
    StatusEvent,
    StreamItem,
)
from ..tracker import ITracker, viewer_actor
from .registry import Registry

logger = get_logger(__name__)


EventHandler = Callable[[Event], Awaitable[None]]
DropHandler = Callable[[str], None]


class HubCapacityError(RuntimeError):
    """No room for another subscriber queue."""


def _is_terminal(item: StreamItem) -> bool:
    return isinstance(item, StatusEvent) and RunStatus(item.status).is_terminal


@dataclass
class _RunBuffer:
    """Bounded replay buffer for one run."""

    run_id: str
    events: deque
    next_seq: int = 0
    finished_at: float | None = None

    @property
    def first_seq(self) -> int:
        return self.events[0].seq if self.events else self.next_seq


class Subscription:
    """One viewer connection: backlog first, then live events.

    The live queue is bounded; on overflow the oldest queued event is dropped
    and a LaggedNotice is yielded before the next event.
    """

    def __init__(
        self,
        key: str,
        viewer_id: str,
        run_id: str | None,
        queue_size: int,
        backlog: list[StreamItem],
        on_close: Callable[["Subscription"], None],
        finished: bool = False,
    ):
        self.key = key
        self.viewer_id = viewer_id
        self.run_id = run_id
        self._queue_size = queue_size
        self._backlog: deque[StreamItem] = deque(backlog)
        self._queue: deque[Event] = deque()
        self._wakeup = asyncio.Event()
        self._on_close = on_close
        self._dropped = 0
        self._dropped_runs: set[str] = set()
        self._closed = False
        self._finished = finished
        self.total_dropped = 0

    def wants(self, run_id: str) -> bool:
        return self.run_id is None or self.run_id == run_id

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return len(self._backlog) + len(self._queue)

    def offer(self, event: Event) -> bool:
        """Enqueue without blocking. Returns False if an older event was dropped."""
        if self._closed or self._finished:
            return True
        dropped = False
        if len(self._queue) >= self._queue_size:
            oldest = self._queue.popleft()
            self._dropped += 1
            self.total_dropped += 1
            self._dropped_runs.add(oldest.run_id)
            dropped = True
        self._queue.append(event)
        self._wakeup.set()
        return not dropped

    def close(self) -> None:
        """Stop delivery and release the queue. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._backlog.clear()
        self._queue.clear()
        self._wakeup.set()
        self._on_close(self)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> StreamItem:
        while True:
            if self._closed:
                raise StopAsyncIteration
            if self._backlog:
                return self._track(self._backlog.popleft())
            if self._dropped:
                notice = LaggedNotice(
                    dropped=self._dropped, run_ids=tuple(sorted(self._dropped_runs))
                )
                self._dropped = 0
                self._dropped_runs.clear()
                return notice
            if self._queue:
                return self._track(self._queue.popleft())
            if self._finished:
                raise StopAsyncIteration
            self._wakeup.clear()
            await self._wakeup.wait()

    def _track(self, item: StreamItem) -> StreamItem:
        # Run-scoped streams end once the run's terminal status is delivered
        if self.run_id is not None and _is_terminal(item):
            self._finished = True
        return item


class IBroadcastHub(Protocol):
    """Fan-out of run events to viewers with per-run replay."""

    async def publish(self, event: Event) -> None:
        """Buffer the event and offer it to every interested subscriber."""
        ...

    async def subscribe(
        self, viewer_id: str, run_id: str | None = None, last_seq: int | None = None
    ) -> Subscription:
        """Register a viewer; backlog delivery is part of subscribing."""
        ...

    async def unsubscribe(self, subscription: Subscription) -> None:
        """Release a viewer's queue."""
        ...

    def backlog(self, run_id: str) -> list[Event]:
        """Buffered recent events of a run."""
        ...

    def forget(self, run_id: str) -> None:
        """Drop everything known about a run."""
        ...


class BroadcastHub:
    """In-memory hub with bounded per-run replay buffers."""

    def __init__(
        self,
        registry: Registry,
        replay_capacity: int = 512,
        queue_size: int = 256,
        max_subscribers: int = 1024,
        retention_seconds: float = 600.0,
        tracker: ITracker | None = None,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float = 5.0,
    ):
        self._registry = registry
        self._replay_capacity = replay_capacity
        self._queue_size = queue_size
        self._max_subscribers = max_subscribers
        self._retention_seconds = retention_seconds
        self._tracker = tracker
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._buffers: dict[str, _RunBuffer] = {}
        self._expired: dict[str, int] = {}  # run_id -> next_seq at eviction
        self._listeners: list[EventHandler] = []
        self._drop_listeners: list[DropHandler] = []
        self._sweeper: asyncio.Task | None = None

    @property
    def viewer_count(self) -> int:
        return self._registry.viewer_count

    def add_listener(self, handler: EventHandler) -> None:
        """Register an in-process consumer of every published event."""
        self._listeners.append(handler)

    def add_drop_listener(self, handler: DropHandler) -> None:
        """Register a callback run with the id of each evicted or forgotten run."""
        self._drop_listeners.append(handler)

    async def start(self) -> None:
        """Start the retention sweeper."""
        if self._sweeper is None:
            self._sweeper = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Stop the sweeper and close every subscription."""
        if self._sweeper:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        for subscription in self._registry.viewers():
            subscription.close()

    async def publish(self, event: Event) -> None:
        """Buffer the event and offer it to every interested subscriber."""
        buffer = self._buffers.get(event.run_id)
        if buffer is None:
            buffer = _RunBuffer(
                run_id=event.run_id, events=deque(maxlen=self._replay_capacity)
            )
            self._buffers[event.run_id] = buffer
            self._expired.pop(event.run_id, None)

        if event.seq < buffer.next_seq:
            logger.warning(
                "Ignoring out-of-order event seq=%s for run %s (next=%s)",
                event.seq,
                event.run_id,
                buffer.next_seq,
            )
            return

        buffer.events.append(event)
        buffer.next_seq = event.seq + 1
        if _is_terminal(event):
            buffer.finished_at = self._clock()

        for subscription in self._registry.viewers():
            if subscription.wants(event.run_id) and not subscription.offer(event):
                logger.debug(
                    "Viewer %s fell behind on run %s",
                    subscription.viewer_id,
                    event.run_id,
                )

        if self._listeners:
            results = await asyncio.gather(
                *[handler(event) for handler in self._listeners],
                return_exceptions=True,
            )
            for i, result in enumerate(results):
                if isinstance(result, Exception):
                    logger.error("Error in hub listener %s: %s", i, result)

    async def subscribe(
        self, viewer_id: str, run_id: str | None = None, last_seq: int | None = None
    ) -> Subscription:
        """Register a viewer and hand it the backlog before live events.

        Args:
            viewer_id: Caller-chosen viewer identity.
            run_id: Restrict to one run; None subscribes to all runs.
            last_seq: Highest seq the viewer already holds for ``run_id``.

        Raises:
            HubCapacityError: if the subscriber limit is reached.
        """
        if self._registry.viewer_count >= self._max_subscribers:
            logger.error(
                "Subscriber limit reached (%s); rejecting viewer %s",
                self._max_subscribers,
                viewer_id,
            )
            raise HubCapacityError(
                f"Cannot allocate subscriber queue: limit {self._max_subscribers} reached"
            )

        # Backlog snapshot and registration happen without yielding to the loop
        backlog = self._collect_backlog(run_id, last_seq)
        subscription = Subscription(
            key=f"{viewer_id}:{uuid.uuid4().hex[:8]}",
            viewer_id=viewer_id,
            run_id=run_id,
            queue_size=self._queue_size,
            backlog=backlog,
            on_close=self._release,
            finished=run_id is not None and run_id in self._expired,
        )
        self._registry.register_viewer(subscription.key, subscription)
        logger.info(
            "Viewer %s subscribed (run=%s, backlog=%s)",
            viewer_id,
            run_id or "*",
            len(backlog),
            extra=log_context(viewer_id=viewer_id, run_id=run_id),
        )

        if self._tracker:
            await self._tracker.track(
                "viewer_subscribed",
                viewer_actor(viewer_id),
                {"run_id": run_id, "backlog": len(backlog), "last_seq": last_seq},
            )
        return subscription

    async def unsubscribe(self, subscription: Subscription) -> None:
        """Release a viewer's queue; other viewers and runs are unaffected."""
        already_closed = subscription.closed
        subscription.close()
        if already_closed:
            return
        logger.info(
            "Viewer %s unsubscribed (dropped=%s)",
            subscription.viewer_id,
            subscription.total_dropped,
            extra=log_context(viewer_id=subscription.viewer_id, run_id=subscription.run_id),
        )
        if self._tracker:
            await self._tracker.track(
                "viewer_unsubscribed",
                viewer_actor(subscription.viewer_id),
                {"run_id": subscription.run_id, "dropped": subscription.total_dropped},
            )

    def backlog(self, run_id: str) -> list[Event]:
        """Buffered recent events of a run (empty if none or evicted)."""
        buffer = self._buffers.get(run_id)
        return list(buffer.events) if buffer else []

    def evict_expired(self, now: float | None = None) -> list[str]:
        """Drop replay buffers of runs finished longer than the retention window."""
        now = self._clock() if now is None else now
        evicted = [
            run_id
            for run_id, buffer in self._buffers.items()
            if buffer.finished_at is not None
            and now - buffer.finished_at >= self._retention_seconds
        ]
        for run_id in evicted:
            buffer = self._buffers.pop(run_id)
            self._expired[run_id] = buffer.next_seq
            logger.info("Evicted replay buffer for run %s", run_id)
            self._notify_dropped(run_id)
        return evicted

    def forget(self, run_id: str) -> None:
        """Drop everything the hub knows about a run."""
        self._buffers.pop(run_id, None)
        self._expired.pop(run_id, None)
        self._notify_dropped(run_id)

    def _notify_dropped(self, run_id: str) -> None:
        for handler in self._drop_listeners:
            handler(run_id)

    def _collect_backlog(
        self, run_id: str | None, last_seq: int | None
    ) -> list[StreamItem]:
        if run_id is None:
            items: list[StreamItem] = []
            # Evicted runs contribute a backlog_expired resync
            for rid in sorted(self._buffers.keys() | self._expired.keys()):
                items.extend(self._run_backlog(rid, None))
            return items
        return self._run_backlog(run_id, last_seq)

    def _run_backlog(self, run_id: str, last_seq: int | None) -> list[StreamItem]:
        wanted_from = 0 if last_seq is None else last_seq + 1
        buffer = self._buffers.get(run_id)
        if buffer is None:
            expired_next = self._expired.get(run_id)
            if expired_next is not None and wanted_from < expired_next:
                return [
                    ResyncNotice(
                        run_id=run_id, from_seq=expired_next, reason="backlog_expired"
                    )
                ]
            return []

        items: list[StreamItem] = []
        if buffer.first_seq > wanted_from:
            items.append(ResyncNotice(run_id=run_id, from_seq=buffer.first_seq))
        items.extend(e for e in buffer.events if e.seq >= wanted_from)
        return items

    def _release(self, subscription: Subscription) -> None:
        self._registry.deregister_viewer(subscription.key)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.evict_expired()
