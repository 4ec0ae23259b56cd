from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable


class Phase(str, Enum):
    READY = "ready"
    COUNTDOWN = "countdown"
    RUNNING = "running"
    RESULTS = "results"


@dataclass(frozen=True, slots=True)
class TestSnapshot:
    """View model for the presentation layer (pure data)."""

    __test__ = False

    title: str
    phase: Phase
    prompt: str
    time_remaining_s: float | None
    payload: object | None = None


@runtime_checkable
class TouchSink(Protocol):
    """Receiver of contact events from the capture surface.

    Coordinates are surface pixels. ``dispatched_at_s`` is the clock time at
    which the platform dispatched the event, when the capture layer knows it.
    """

    def touch_begin(self, contact_id: int, x: float, y: float, *, dispatched_at_s: float | None = None) -> None:
        ...

    def touch_move(self, contact_id: int, x: float, y: float) -> None:
        ...

    def touch_end(self, contact_id: int) -> None:
        ...


@runtime_checkable
class EarlyFinish(Protocol):
    """Engine whose current timed stage can be closed before its window runs out."""

    def finish_stage(self) -> bool:
        ...


class StepEngine(Protocol):
    """One diagnostic test as driven by the suite runner."""

    @property
    def phase(self) -> Phase:
        ...

    def start(self) -> None:
        ...

    def update(self) -> None:
        ...

    def result(self) -> object | None:
        """Return the finished result, or None while the test is still going."""
        ...

    def snapshot(self) -> TestSnapshot:
        ...


class TimedWindow:
    """Deadline bookkeeping for a fixed-length phase.

    Holds only the start time; callers compare against their own clock, so a
    window never fires on its own.
    """

    def __init__(self, duration_s: float) -> None:
        if duration_s <= 0.0:
            raise ValueError("duration_s must be > 0")
        self._duration_s = float(duration_s)
        self._started_at_s: float | None = None

    @property
    def duration_s(self) -> float:
        return self._duration_s

    @property
    def started_at_s(self) -> float | None:
        return self._started_at_s

    def open(self, now_s: float) -> None:
        self._started_at_s = float(now_s)

    def close(self) -> None:
        self._started_at_s = None

    def elapsed_s(self, now_s: float) -> float:
        if self._started_at_s is None:
            return 0.0
        return max(0.0, now_s - self._started_at_s)

    def remaining_s(self, now_s: float) -> float | None:
        if self._started_at_s is None:
            return None
        return max(0.0, self._duration_s - (now_s - self._started_at_s))

    def expired(self, now_s: float) -> bool:
        remaining = self.remaining_s(now_s)
        return remaining is not None and remaining <= 0.0


def clamp(x: float, lo: float, hi: float) -> float:
    return lo if x <= lo else hi if x >= hi else float(x)


def round_half_up(x: float) -> int:
    # Ties round towards +inf, also for negative values.
    return int(math.floor(x + 0.5))
