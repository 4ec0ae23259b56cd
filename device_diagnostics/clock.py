from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Monotonic clock abstraction.

    Engines and the suite runner depend on this interface rather than calling
    real time directly, so every window and countdown can be driven by a fake.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class WallClock(Protocol):
    """Epoch clock used only for stamping outbound messages and stored runs."""

    def time(self) -> float:
        """Return seconds since the epoch."""


class RealClock:
    """Production clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


class SystemWallClock:
    def time(self) -> float:
        return time.time()


def to_ms(seconds: float) -> int:
    return int(round(float(seconds) * 1000.0))
