"""
Clock capability injected into the registry.
"""

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> int:
        """Current time in unix seconds."""
        ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> int:
        return int(time.time())


class FixedClock:
    """
    Manually driven clock for tests and simulations.
    """

    def __init__(self, start: int = 1_700_000_000) -> None:
        self._now = int(start)

    def now(self) -> int:
        return self._now

    def set(self, timestamp: int) -> None:
        self._now = int(timestamp)

    def advance(self, seconds: int) -> int:
        self._now += int(seconds)
        return self._now
