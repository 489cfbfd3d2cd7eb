"""ViewerClient: consumes the SSE stream and keeps a ClientStateStore current."""

import asyncio
import json
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable

import httpx

from ..logging_config import get_logger
from ..models import (
    AgentSnapshot,
    LaggedNotice,
    ResyncNotice,
    StreamItem,
    event_from_dict,
)
from ..store import ClientStateStore

logger = get_logger(__name__)


UpdateHandler = Callable[[dict[str, AgentSnapshot]], Awaitable[None]]


@dataclass
class SSEFrame:
    """One parsed Server-Sent Events frame."""

    event: str | None
    data: str
    id: str | None = None


async def parse_sse_frames(lines: AsyncIterator[str]) -> AsyncIterator[SSEFrame]:
    """Group SSE lines into frames; comment lines are skipped."""
    event: str | None = None
    event_id: str | None = None
    data: list[str] = []
    async for line in lines:
        if line == "":
            if data:
                yield SSEFrame(event=event, data="\n".join(data), id=event_id)
            event, event_id, data = None, None, []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if name == "event":
            event = value
        elif name == "data":
            data.append(value)
        elif name == "id":
            event_id = value
    if data:
        yield SSEFrame(event=event, data="\n".join(data), id=event_id)


class ViewerClient:
    """Folds a run stream (or all runs) into a local snapshot map.

    Resync and lagged notices trigger a snapshot fetch for the affected runs;
    reconnects resume with Last-Event-ID.
    """

    def __init__(
        self,
        base_url: str,
        viewer_id: str = "viewer",
        run_id: str | None = None,
        store: ClientStateStore | None = None,
        client: httpx.AsyncClient | None = None,
        on_update: UpdateHandler | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._viewer_id = viewer_id
        self._run_id = run_id
        self.store = store or ClientStateStore()
        self._client = client
        self._owns_client = client is None
        self._on_update = on_update
        self._last_event_id: str | None = None

    async def __aenter__(self) -> "ViewerClient":
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(10.0, read=None))
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("ViewerClient not opened")
        return self._client

    async def consume(self) -> None:
        """Read the stream once until the server ends it."""
        params = {"viewer_id": self._viewer_id}
        if self._run_id is not None:
            params["run_id"] = self._run_id
        headers = {"Accept": "text/event-stream"}
        if self._last_event_id:
            headers["Last-Event-ID"] = self._last_event_id

        async with self.client.stream(
            "GET", f"{self._base_url}/api/stream", params=params, headers=headers
        ) as response:
            response.raise_for_status()
            async for frame in parse_sse_frames(response.aiter_lines()):
                try:
                    item = event_from_dict(json.loads(frame.data))
                except ValueError as e:
                    logger.warning("Skipping unreadable frame: %s", e)
                    continue
                if frame.id:
                    self._last_event_id = frame.id
                await self.handle(item)

    async def run(self, retries: int = 3, backoff: float = 1.0) -> None:
        """Consume with reconnects on transport errors."""
        attempt = 0
        while True:
            try:
                await self.consume()
                return
            except httpx.TransportError as e:
                attempt += 1
                if attempt > retries:
                    raise
                logger.warning(
                    "Stream dropped (%s); reconnecting %s/%s", e, attempt, retries
                )
                await asyncio.sleep(backoff * attempt)

    async def handle(self, item: StreamItem) -> None:
        """Apply one stream item to the store."""
        if isinstance(item, ResyncNotice):
            logger.info("Resync for run %s from seq %s", item.run_id, item.from_seq)
            await self.resync(item.run_id)
        elif isinstance(item, LaggedNotice):
            logger.warning("Fell behind: %s event(s) dropped", item.dropped)
            run_ids = item.run_ids or tuple(self.store.agents())
            for run_id in run_ids:
                await self.resync(run_id)
        else:
            self.store.apply(item)

        if self._on_update is not None:
            await self._on_update(self.store.agents())

    async def resync(self, run_id: str) -> AgentSnapshot | None:
        """Fetch the server snapshot of a run and install it."""
        response = await self.client.get(f"{self._base_url}/api/runs/{run_id}/snapshot")
        if response.status_code == 404:
            logger.warning("No snapshot available for run %s", run_id)
            return None
        response.raise_for_status()
        snapshot = AgentSnapshot.from_dict(response.json())
        self.store.restore(snapshot)
        return snapshot
