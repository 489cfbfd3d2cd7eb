"""Scripted research agent used as the external process."""

from .sim import ISim, Sim

__all__ = ["ISim", "Sim"]
