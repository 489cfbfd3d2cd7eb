"""Run-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class RunStatus(str, Enum):
    """Lifecycle states of a run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)


@dataclass
class RunConfig:
    """How to launch one external research process."""

    argv: list[str]
    label: str | None = None
    cwd: str | None = None
    env: dict[str, str] | None = None


@dataclass
class Run:
    """One external-process execution, owned by its RunSupervisor."""

    id: str
    argv: list[str]
    status: RunStatus = RunStatus.PENDING
    label: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    exit_code: int | None = None
    failure_reason: str | None = None
    malformed_lines: int = 0
    stderr_tail: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "argv": list(self.argv),
            "status": self.status.value,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "endedAt": self.ended_at.isoformat() if self.ended_at else None,
            "exitCode": self.exit_code,
            "failureReason": self.failure_reason,
            "malformedLines": self.malformed_lines,
            "stderrTail": list(self.stderr_tail),
        }
