"""Appearance signalling for streamed text blocks."""

import time
from enum import Enum
from typing import Callable

APPEARANCE_DELAY = 0.42


class BlockState(str, Enum):
    IDLE = "idle"
    JUST_APPEARED = "just_appeared"


class AppearanceTracker:
    """Per-identity ``idle -> just_appeared -> idle`` state machine.

    The appearance signal fires once per identity, the first time its text is
    non-empty; later growth or edits of the same identity never re-fire it.
    """

    def __init__(
        self,
        delay: float = APPEARANCE_DELAY,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._delay = delay
        self._clock = clock
        self._appeared: set[str] = set()
        self._active_until: dict[str, float] = {}

    def observe(self, identity: str, text: str, now: float | None = None) -> bool:
        """Record the current text of a block. Returns True if the signal fired."""
        now = self._clock() if now is None else now
        if identity in self._appeared or not text:
            return False
        self._appeared.add(identity)
        self._active_until[identity] = now + self._delay
        return True

    def state(self, identity: str, now: float | None = None) -> BlockState:
        now = self._clock() if now is None else now
        until = self._active_until.get(identity)
        if until is None:
            return BlockState.IDLE
        if now >= until:
            del self._active_until[identity]
            return BlockState.IDLE
        return BlockState.JUST_APPEARED

    def is_appearing(self, identity: str, now: float | None = None) -> bool:
        return self.state(identity, now) is BlockState.JUST_APPEARED

    def tracked(self) -> frozenset[str]:
        """Identities whose appearance has fired."""
        return frozenset(self._appeared)

    def forget(self, identity: str) -> None:
        self._appeared.discard(identity)
        self._active_until.pop(identity, None)
