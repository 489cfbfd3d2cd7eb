"""Client state store module."""

from .store import ClientStateStore, fold_event

__all__ = ["ClientStateStore", "fold_event"]
