"""Broadcast hub module."""

from .hub import BroadcastHub, EventHandler, HubCapacityError, IBroadcastHub, Subscription
from .registry import Registry

__all__ = [
    "BroadcastHub",
    "EventHandler",
    "HubCapacityError",
    "IBroadcastHub",
    "Registry",
    "Subscription",
]
