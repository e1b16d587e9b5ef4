"""
Time sources for the auction engine.

The engine never calls time.time() directly; it asks a Clock once per
operation. SystemClock is used by real hosts, ManualClock by tests and the
demo, which advance time explicitly the way a local test chain does.
"""

import time
from typing import Optional


class Clock:
    """Source of the current Unix timestamp in whole seconds."""

    def now(self) -> int:
        raise NotImplementedError


class SystemClock(Clock):
    """Wall-clock time."""

    def now(self) -> int:
        return int(time.time())

    def __repr__(self) -> str:
        return "SystemClock()"


class ManualClock(Clock):
    """
    A clock that only moves when told to.

    Time never goes backwards: set() rejects earlier timestamps and
    increase() rejects negative deltas.
    """

    def __init__(self, start: Optional[int] = None):
        self._now = int(time.time()) if start is None else int(start)

    def now(self) -> int:
        return self._now

    def latest(self) -> int:
        """Alias for now(), named after the test-network helper."""
        return self._now

    def increase(self, seconds: int) -> int:
        """Advance by a number of seconds and return the new time."""
        if seconds < 0:
            raise ValueError(f"Cannot move clock backwards by {-seconds}s")
        self._now += int(seconds)
        return self._now

    def set(self, timestamp: int) -> int:
        """Jump to an absolute timestamp."""
        if timestamp < self._now:
            raise ValueError(f"Cannot set clock to {timestamp}, already at {self._now}")
        self._now = int(timestamp)
        return self._now

    def __repr__(self) -> str:
        return f"ManualClock(now={self._now})"
