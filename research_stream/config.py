"""Project-level configuration and path helpers."""

import os
import shlex
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"
LOGS_DIR = PROJECT_ROOT / "logs"
DEFAULT_LOG_PATH = LOGS_DIR / "app.log"


PathLike = Union[str, Path]


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve DATABASE_URL; relative paths land under data/, default is in-memory."""
    if not env_value or str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value)
    path = candidate if candidate.is_absolute() else DATA_DIR / candidate
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclass
class Settings:
    """Runtime knobs for the hub and run supervisors."""

    api_host: str = "localhost"
    api_port: int = 8000
    database_url: str = ":memory:"
    replay_capacity: int = 512
    subscriber_queue_size: int = 256
    max_subscribers: int = 1024
    retention_seconds: float = 600.0
    stop_grace_seconds: float = 5.0
    agent_command: list[str] = field(default_factory=lambda: [sys.executable, "-m", "sim"])

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        command = os.getenv("AGENT_COMMAND")
        return cls(
            api_host=os.getenv("API_HOST", "localhost"),
            api_port=_env_int("API_PORT", 8000),
            database_url=os.getenv("DATABASE_URL", ":memory:"),
            replay_capacity=_env_int("REPLAY_CAPACITY", 512),
            subscriber_queue_size=_env_int("SUBSCRIBER_QUEUE_SIZE", 256),
            max_subscribers=_env_int("MAX_SUBSCRIBERS", 1024),
            retention_seconds=_env_float("RETENTION_SECONDS", 600.0),
            stop_grace_seconds=_env_float("STOP_GRACE_SECONDS", 5.0),
            agent_command=(
                shlex.split(command) if command else [sys.executable, "-m", "sim"]
            ),
        )
