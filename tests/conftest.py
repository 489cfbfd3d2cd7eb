"""Pytest configuration and fixtures."""

import asyncio
import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))


@pytest_asyncio.fixture
async def storage():
    """Create in-memory storage for testing."""
    from research_stream.storage import Storage

    st = Storage(":memory:")
    await st.init()
    yield st
    await st.close()


@pytest.fixture
def tracker(storage):
    """Create Tracker with storage."""
    from research_stream.tracker import Tracker

    return Tracker(storage)


@pytest.fixture
def registry():
    """Create an empty Registry."""
    from research_stream.hub import Registry

    return Registry()


@pytest.fixture
def hub(registry, tracker):
    """Create BroadcastHub. The sweeper is not started; tests evict explicitly."""
    from research_stream.hub import BroadcastHub

    return BroadcastHub(registry=registry, tracker=tracker)


@pytest_asyncio.fixture
async def manager(registry, hub, tracker, storage):
    """Create RunManager; active runs are stopped on teardown."""
    from research_stream.supervisor import RunManager

    rm = RunManager(
        registry=registry,
        hub=hub,
        tracker=tracker,
        storage=storage,
        stop_grace_seconds=2.0,
    )
    yield rm
    await rm.shutdown()


@pytest.fixture
def python_argv():
    """Build argv running a Python snippet in a child interpreter."""

    def build(code: str) -> list[str]:
        return [sys.executable, "-c", code]

    return build


async def take(subscription, count: int, timeout: float = 2.0) -> list:
    """Read ``count`` items from a subscription."""

    async def collect():
        items = []
        async for item in subscription:
            items.append(item)
            if len(items) == count:
                break
        return items

    return await asyncio.wait_for(collect(), timeout)


async def drain(subscription, timeout: float = 2.0) -> list:
    """Read a subscription until it ends."""

    async def collect():
        return [item async for item in subscription]

    return await asyncio.wait_for(collect(), timeout)
