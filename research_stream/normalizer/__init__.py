"""Event normalizer module."""

from .normalizer import EVENT_TYPES, Normalizer

__all__ = ["EVENT_TYPES", "Normalizer"]
