"""RunSupervisor: owns one external research process and its event stream."""

import asyncio
import signal
from collections import deque
from datetime import datetime, timezone
from typing import AsyncIterator, Callable

from ..hub import IBroadcastHub
from ..logging_config import get_logger, log_context
from ..models import Event, Run, RunConfig, RunStatus
from ..normalizer import Normalizer
from ..storage import IStorage
from ..tracker import ITracker, run_actor

logger = get_logger(__name__)

STREAM_LIMIT = 1024 * 1024  # longest accepted stdout line, bytes
STDERR_TAIL = 20
STOPPED_REASON = "stopped by request"


def _exit_reason(code: int) -> str:
    if code < 0:
        try:
            name = signal.Signals(-code).name
        except ValueError:
            name = str(-code)
        return f"terminated by signal {name}"
    return f"exited with code {code}"


class RunSupervisor:
    """Spawns one process, normalizes its stdout, publishes events, tracks exit.

    Supervisors share no mutable state; they talk to the rest of the system
    only by publishing events to the hub.
    """

    def __init__(
        self,
        run: Run,
        config: RunConfig,
        hub: IBroadcastHub,
        tracker: ITracker | None = None,
        storage: IStorage | None = None,
        stop_grace_seconds: float = 5.0,
        clock: Callable[[], float] | None = None,
    ):
        self._run = run
        self._config = config
        self._hub = hub
        self._tracker = tracker
        self._storage = storage
        self._stop_grace_seconds = stop_grace_seconds
        self._normalizer = Normalizer(run.id, clock)
        self._process: asyncio.subprocess.Process | None = None
        self._task: asyncio.Task | None = None
        self._stderr_task: asyncio.Task | None = None
        self._stderr: deque[str] = deque(maxlen=STDERR_TAIL)
        self._stop_requested = False
        self._finishing = False
        self._done = asyncio.Event()

    @property
    def run(self) -> Run:
        return self._run

    @property
    def done(self) -> bool:
        return self._done.is_set()

    async def start(self) -> None:
        """Begin supervising in a background task."""
        if self._task is None:
            self._task = asyncio.create_task(self._supervise())

    async def wait(self) -> Run:
        """Wait until the run reached a terminal status."""
        await self._done.wait()
        return self._run

    async def stop(self) -> None:
        """Request termination. A no-op if already stopping or finished."""
        if self._stop_requested or self._finishing:
            return
        if self._process is not None and self._process.returncode is not None:
            # Already exited on its own; let the supervisor record why
            await self.wait()
            return
        self._stop_requested = True
        logger.info("Stopping run %s", self._run.id)

        if self._process is not None:
            await self._terminate()
        elif self._task is None:
            await self._finish(RunStatus.FAILED, STOPPED_REASON)
        await self.wait()

    async def _terminate(self) -> None:
        process = self._process
        if process is None or process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), self._stop_grace_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Run %s ignored SIGTERM for %.1fs; killing",
                self._run.id,
                self._stop_grace_seconds,
            )
            try:
                process.kill()
            except ProcessLookupError:
                pass

    async def _supervise(self) -> None:
        try:
            await self._run_process()
        except asyncio.CancelledError:
            self._cancel_stderr()
            if self._process is not None and self._process.returncode is None:
                self._process.kill()
            raise
        except Exception as e:
            logger.exception("Supervisor for run %s crashed", self._run.id)
            await self._reap()
            if not self._finishing:
                await self._finish(RunStatus.FAILED, f"supervisor error: {e}")

    def _cancel_stderr(self) -> None:
        if self._stderr_task is not None and not self._stderr_task.done():
            self._stderr_task.cancel()

    async def _reap(self) -> None:
        """Kill the process and stop reading it once nothing consumes its output."""
        self._cancel_stderr()
        process = self._process
        if process is None or process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            pass
        self._run.exit_code = await process.wait()

    async def _run_process(self) -> None:
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self._config.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self._config.cwd,
                env=self._config.env,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            logger.error("Run %s failed to spawn: %s", self._run.id, e)
            await self._finish(RunStatus.FAILED, f"spawn failed: {e}")
            return

        self._run.status = RunStatus.RUNNING
        self._run.started_at = datetime.now(timezone.utc)
        logger.info(
            "Run %s started (pid=%s)",
            self._run.id,
            self._process.pid,
            extra=log_context(run_id=self._run.id, argv=self._config.argv),
        )
        await self._publish(self._normalizer.status(RunStatus.RUNNING))
        if self._tracker:
            await self._tracker.track(
                "run_started",
                run_actor(self._run.id),
                {"pid": self._process.pid, "argv": self._config.argv},
            )
        if self._stop_requested:
            await self._terminate()

        self._stderr_task = asyncio.create_task(self._drain_stderr())
        async for line in self.lines():
            await self._handle_line(line)
        code = await self._process.wait()
        await self._stderr_task

        self._run.exit_code = code
        if self._stop_requested:
            await self._finish(RunStatus.FAILED, STOPPED_REASON)
        elif code == 0:
            await self._finish(RunStatus.COMPLETED, None)
        else:
            reason = _exit_reason(code)
            if self._stderr:
                reason = f"{reason}: {self._stderr[-1]}"
            await self._finish(RunStatus.FAILED, reason)

    async def lines(self) -> AsyncIterator[bytes]:
        """Lazily yield stdout lines until EOF; cancelling stops the reads."""
        if self._process is None or self._process.stdout is None:
            return
        stream = self._process.stdout
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                # Line longer than STREAM_LIMIT; the reader has discarded it
                self._normalizer.malformed_count += 1
                continue
            if not raw:
                return
            yield raw

    async def _handle_line(self, line: bytes) -> None:
        before = self._normalizer.malformed_count
        event = self._normalizer.normalize(line)
        if self._normalizer.malformed_count != before:
            self._run.malformed_lines = self._normalizer.malformed_count
            if self._tracker:
                await self._tracker.track(
                    "line_malformed",
                    run_actor(self._run.id),
                    {"line": line[:200].decode("utf-8", errors="replace")},
                )
        if event is not None:
            await self._publish(event)

    async def _drain_stderr(self) -> None:
        if self._process is None or self._process.stderr is None:
            return
        while True:
            try:
                raw = await self._process.stderr.readline()
            except ValueError:
                continue
            if not raw:
                return
            text = raw.decode("utf-8", errors="replace").rstrip()
            if text:
                self._stderr.append(text)
                logger.debug("Run %s stderr: %s", self._run.id, text)

    async def _publish(self, event: Event) -> None:
        await self._hub.publish(event)

    async def _finish(self, status: RunStatus, reason: str | None) -> None:
        if self._finishing:
            return
        self._finishing = True
        self._run.status = status
        self._run.ended_at = datetime.now(timezone.utc)
        self._run.failure_reason = reason
        self._run.malformed_lines = self._normalizer.malformed_count
        self._run.stderr_tail = list(self._stderr)

        log = logger.info if status is RunStatus.COMPLETED else logger.warning
        log(
            "Run %s %s%s",
            self._run.id,
            status.value,
            f" ({reason})" if reason else "",
            extra=log_context(run_id=self._run.id, exit_code=self._run.exit_code),
        )

        try:
            await self._publish(self._normalizer.status(status, reason))
            if self._storage:
                await self._storage.save_run(self._run)
            if self._tracker:
                await self._tracker.track(
                    "run_finished",
                    run_actor(self._run.id),
                    {
                        "status": status.value,
                        "reason": reason,
                        "exit_code": self._run.exit_code,
                        "malformed_lines": self._run.malformed_lines,
                    },
                )
        finally:
            self._done.set()
