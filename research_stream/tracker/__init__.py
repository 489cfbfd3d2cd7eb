"""Tracker module."""

from .tracker import ITracker, Tracker, run_actor, viewer_actor

__all__ = ["ITracker", "Tracker", "run_actor", "viewer_actor"]
