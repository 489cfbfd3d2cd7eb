"""Run supervision module."""

from .manager import IRunManager, RunManager, UnknownRunError
from .supervisor import STOPPED_REASON, RunSupervisor

__all__ = [
    "IRunManager",
    "RunManager",
    "RunSupervisor",
    "STOPPED_REASON",
    "UnknownRunError",
]
