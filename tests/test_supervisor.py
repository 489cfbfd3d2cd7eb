"""Tests for RunSupervisor and RunManager against real child processes."""

import asyncio
import json
import os
import sys

import pytest

from research_stream.config import PROJECT_ROOT
from research_stream.models import (
    InsightEvent,
    MetadataEvent,
    RunConfig,
    RunStatus,
    StatusEvent,
    ThoughtEvent,
)
from research_stream.store import ClientStateStore
from research_stream.supervisor import STOPPED_REASON, RunManager, UnknownRunError
from research_stream.tracker import Tracker

INSIGHT = json.dumps(
    {
        "type": "insight",
        "id": "f1",
        "summary": "loss flattens",
        "chart": {"series": [{"values": [3, 2, 1]}]},
    }
)

TIMEOUT = 15.0


async def wait_for_backlog(hub, run_id: str, count: int) -> None:
    async def poll():
        while len(hub.backlog(run_id)) < count:
            await asyncio.sleep(0.05)

    await asyncio.wait_for(poll(), TIMEOUT)


class TestRunLifecycle:
    """Tests for runs that end on their own."""

    async def test_completed_run(self, manager, hub, python_argv):
        """Test that stdout lines become ordered events ending in completed."""
        code = (
            "print('[gpu] A100')\n"
            "print('warming up')\n"
            "print('[thought] hi')\n"
            f"print({INSIGHT!r})\n"
        )
        run_id = await manager.start(RunConfig(argv=python_argv(code), label="demo"))

        run = await asyncio.wait_for(manager.wait(run_id), TIMEOUT)

        assert run.status is RunStatus.COMPLETED
        assert run.exit_code == 0
        assert run.failure_reason is None
        events = hub.backlog(run_id)
        assert [e.seq for e in events] == list(range(5))
        assert [type(e) for e in events] == [
            StatusEvent,
            MetadataEvent,
            ThoughtEvent,
            InsightEvent,
            StatusEvent,
        ]
        assert events[0].status == "running"
        assert events[-1].status == "completed"

    async def test_non_zero_exit_fails_with_reason(self, manager, hub, python_argv):
        """Test that the exit code and stderr tail explain the failure."""
        code = "import sys\nprint('oops', file=sys.stderr)\nsys.exit(3)\n"
        run_id = await manager.start(RunConfig(argv=python_argv(code)))

        run = await asyncio.wait_for(manager.wait(run_id), TIMEOUT)

        assert run.status is RunStatus.FAILED
        assert run.exit_code == 3
        assert run.failure_reason == "exited with code 3: oops"
        assert run.stderr_tail == ["oops"]
        last = hub.backlog(run_id)[-1]
        assert (last.status, last.reason) == ("failed", run.failure_reason)

    async def test_spawn_failure(self, manager, hub):
        """Test that a missing executable fails the run instead of raising."""
        run_id = await manager.start(RunConfig(argv=["/nonexistent/research-agent"]))

        run = await asyncio.wait_for(manager.wait(run_id), TIMEOUT)

        assert run.status is RunStatus.FAILED
        assert run.failure_reason.startswith("spawn failed")
        events = hub.backlog(run_id)
        assert len(events) == 1
        assert events[0].status == "failed"

    async def test_malformed_lines_counted(self, manager, storage, python_argv):
        """Test that malformed lines are counted and traced, not fatal."""
        code = "print('[thought]')\nprint('{not json')\nprint('[thought] ok')\n"
        run_id = await manager.start(RunConfig(argv=python_argv(code)))

        run = await asyncio.wait_for(manager.wait(run_id), TIMEOUT)

        assert run.status is RunStatus.COMPLETED
        assert run.malformed_lines == 2
        traced = await storage.get_trace_events(event_types=["line_malformed"])
        assert len(traced) == 2

    async def test_run_persisted_and_traced(self, manager, storage, python_argv):
        """Test the diagnostic record of a finished run."""
        run_id = await manager.start(RunConfig(argv=python_argv("print('[thought] x')")))
        await asyncio.wait_for(manager.wait(run_id), TIMEOUT)

        stored = await storage.get_run(run_id)
        assert stored.status is RunStatus.COMPLETED
        assert stored.started_at is not None
        types = {e.event_type for e in await storage.get_trace_events(actor=f"run:{run_id}")}
        assert {"run_started", "run_finished"} <= types

    async def test_runs_are_isolated(self, manager, hub, python_argv):
        """Test that one failing run does not affect another."""
        good = await manager.start(RunConfig(argv=python_argv("print('[thought] fine')")))
        bad = await manager.start(RunConfig(argv=python_argv("raise SystemExit(1)")))

        good_run, bad_run = await asyncio.wait_for(
            asyncio.gather(manager.wait(good), manager.wait(bad)), TIMEOUT
        )

        assert good_run.status is RunStatus.COMPLETED
        assert bad_run.status is RunStatus.FAILED
        assert all(e.run_id == good for e in hub.backlog(good))


class FailingTracker(Tracker):
    """Tracker whose storage fails when a malformed line is traced."""

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        if event_type == "line_malformed":
            raise OSError("disk I/O error")
        await super().track(event_type, actor, data)


class TestSupervisorError:
    """Tests for internal failures while a process is running."""

    async def test_error_kills_process(self, registry, hub, storage, python_argv):
        """Test that a supervisor error fails the run and kills its process."""
        manager = RunManager(
            registry=registry,
            hub=hub,
            tracker=FailingTracker(storage),
            storage=storage,
            stop_grace_seconds=2.0,
        )
        code = "import time\nprint('{bad json', flush=True)\ntime.sleep(30)\n"
        run_id = await manager.start(RunConfig(argv=python_argv(code)))

        run = await asyncio.wait_for(manager.wait(run_id), TIMEOUT)

        assert run.status is RunStatus.FAILED
        assert run.failure_reason == "supervisor error: disk I/O error"
        assert run.exit_code is not None
        assert manager.supervisor(run_id)._process.returncode is not None
        last = hub.backlog(run_id)[-1]
        assert (last.status, last.reason) == ("failed", run.failure_reason)

    async def test_error_while_finishing_still_settles(
        self, registry, hub, storage, tracker, python_argv
    ):
        """Test that waiters are released when saving the final record fails."""

        class BrokenStorage:
            def __getattr__(self, name):
                return getattr(storage, name)

            async def save_run(self, run):
                if run.status.is_terminal:
                    raise OSError("disk full")
                await storage.save_run(run)

        manager = RunManager(
            registry=registry, hub=hub, tracker=tracker, storage=BrokenStorage()
        )
        run_id = await manager.start(RunConfig(argv=python_argv("pass")))

        run = await asyncio.wait_for(manager.wait(run_id), TIMEOUT)

        assert run.status is RunStatus.COMPLETED


class TestRunStop:
    """Tests for stopping runs."""

    async def test_stop_running_process(self, manager, hub, python_argv):
        """Test that stop ends a run as failed with a stop reason."""
        code = "import time\nprint('[thought] working', flush=True)\ntime.sleep(30)\n"
        run_id = await manager.start(RunConfig(argv=python_argv(code)))
        await wait_for_backlog(hub, run_id, 2)

        await asyncio.wait_for(manager.stop(run_id), TIMEOUT)

        run = manager.get_run(run_id)
        assert run.status is RunStatus.FAILED
        assert run.failure_reason == STOPPED_REASON

    async def test_stop_is_idempotent(self, manager, hub, python_argv):
        """Test that repeated stops publish a single terminal status."""
        code = "import time\nprint('[thought] working', flush=True)\ntime.sleep(30)\n"
        run_id = await manager.start(RunConfig(argv=python_argv(code)))
        await wait_for_backlog(hub, run_id, 2)

        await asyncio.wait_for(
            asyncio.gather(manager.stop(run_id), manager.stop(run_id)), TIMEOUT
        )
        await manager.stop(run_id)

        statuses = [e.status for e in hub.backlog(run_id) if isinstance(e, StatusEvent)]
        assert statuses == ["running", "failed"]

    async def test_stop_finished_run_is_noop(self, manager, python_argv):
        """Test that stopping a completed run keeps its outcome."""
        run_id = await manager.start(RunConfig(argv=python_argv("pass")))
        await asyncio.wait_for(manager.wait(run_id), TIMEOUT)

        await manager.stop(run_id)

        assert manager.get_run(run_id).status is RunStatus.COMPLETED

    async def test_unknown_run(self, manager):
        """Test that unknown ids raise UnknownRunError."""
        with pytest.raises(UnknownRunError):
            await manager.stop("nope")
        with pytest.raises(UnknownRunError):
            manager.get_run("nope")


class TestRunManagerRegistry:
    """Tests for listing and removing runs."""

    async def test_list_and_remove(self, manager, hub, python_argv):
        """Test that finished runs can be removed with their backlog."""
        run_id = await manager.start(RunConfig(argv=python_argv("pass")))
        assert [r.id for r in manager.list_runs()] == [run_id]
        await asyncio.wait_for(manager.wait(run_id), TIMEOUT)

        await manager.remove(run_id)

        assert not manager.has_run(run_id)
        assert hub.backlog(run_id) == []

    async def test_remove_active_run_refused(self, manager, python_argv):
        """Test that an active run cannot be removed."""
        run_id = await manager.start(
            RunConfig(argv=python_argv("import time\ntime.sleep(30)"))
        )

        with pytest.raises(RuntimeError):
            await manager.remove(run_id)

    async def test_shutdown_stops_active_runs(self, manager, python_argv):
        """Test that shutdown leaves no run active."""
        ids = [
            await manager.start(RunConfig(argv=python_argv("import time\ntime.sleep(30)")))
            for _ in range(2)
        ]

        await asyncio.wait_for(manager.shutdown(), TIMEOUT)

        assert all(manager.get_run(i).status.is_terminal for i in ids)


class TestSimProcess:
    """Tests for the bundled scripted research agent."""

    async def test_sim_run_folds_into_snapshot(self, manager, hub):
        """Test a full run of ``python -m sim``."""
        env = {**os.environ, "SIM_STEPS": "2", "SIM_DELAY": "0", "SIM_SEED": "1"}
        run_id = await manager.start(
            RunConfig(argv=[sys.executable, "-m", "sim"], cwd=str(PROJECT_ROOT), env=env)
        )

        run = await asyncio.wait_for(manager.wait(run_id), TIMEOUT)

        assert run.status is RunStatus.COMPLETED
        agent = ClientStateStore().apply_all(hub.backlog(run_id))[run_id]
        assert agent.gpu == "H100"
        assert [t.slot for t in agent.thoughts] == ["step-0", "step-1"]
        assert agent.thoughts[0].text == "Reading the benchmark configuration"
        assert [i.id for i in agent.insights] == ["finding-0", "finding-1"]
        assert agent.insights[0].chart.series[0].name == "metric"
