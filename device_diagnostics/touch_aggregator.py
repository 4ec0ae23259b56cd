from __future__ import annotations

from dataclasses import dataclass

from .clock import Clock, to_ms
from .diagnostic_core import Phase, TestSnapshot, TimedWindow
from .results import TouchPoint, TouchTestResult


class TouchAggregator:
    """Folds touch-begin/touch-end events into multi-touch statistics.

    Tracks the currently active contact per id (removed on touch-end) and a
    running maximum of simultaneously active contacts.  Timestamps are integer
    milliseconds supplied by the caller.
    """

    def __init__(self) -> None:
        self._active: dict[int, TouchPoint] = {}
        self._recorded: list[TouchPoint] = []
        self._latencies_ms: list[float] = []
        self._max_concurrent = 0

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def total_touches(self) -> int:
        return len(self._recorded)

    def touch_begin(
        self,
        contact_id: int,
        x: float,
        y: float,
        *,
        timestamp_ms: int,
        recorded_at_ms: int | None = None,
    ) -> TouchPoint:
        """Record a new contact.

        ``timestamp_ms`` is when the platform dispatched the event and
        ``recorded_at_ms`` when it reached us; their difference is the
        per-touch latency (0 when the capture layer cannot tell them apart).
        A begin for an id that is still active replaces it and counts again.
        """

        point = TouchPoint(contact_id=int(contact_id), x=float(x), y=float(y), timestamp_ms=int(timestamp_ms))
        self._active[point.contact_id] = point
        self._recorded.append(point)
        recorded = timestamp_ms if recorded_at_ms is None else recorded_at_ms
        self._latencies_ms.append(float(max(0, recorded - timestamp_ms)))
        self._max_concurrent = max(self._max_concurrent, len(self._active))
        return point

    def touch_end(self, contact_id: int) -> None:
        self._active.pop(int(contact_id), None)

    def finalize(self, *, duration_ms: int) -> TouchTestResult:
        n = len(self._latencies_ms)
        mean_latency = 0.0 if n == 0 else sum(self._latencies_ms) / n
        return TouchTestResult(
            multi_touch_supported=self._max_concurrent > 1,
            max_simultaneous_touches=self._max_concurrent,
            average_response_time_ms=mean_latency,
            total_touches=len(self._recorded),
            test_duration_ms=int(duration_ms),
            touch_points=tuple(self._recorded),
        )


@dataclass(frozen=True, slots=True)
class TouchTestConfig:
    window_s: float = 10.0


@dataclass(frozen=True, slots=True)
class TouchTestPayload:
    active_touches: int
    total_touches: int
    max_simultaneous: int


class TouchTest:
    """Fixed-window touch test driven by an injected clock.

    The result is produced when the window elapses (``update``) or when the
    caller finalises early (``finish``); it is produced even if no touch
    arrived, so the suite always gets a definitive answer.
    """

    def __init__(self, *, clock: Clock, config: TouchTestConfig | None = None) -> None:
        cfg = config if config is not None else TouchTestConfig()
        self._clock = clock
        self._cfg = cfg
        self._window = TimedWindow(cfg.window_s)
        self._phase = Phase.READY
        self._agg = TouchAggregator()
        self._result: TouchTestResult | None = None

    @property
    def phase(self) -> Phase:
        return self._phase

    def start(self) -> None:
        if self._phase is not Phase.READY:
            raise RuntimeError("Test already started")
        self._agg = TouchAggregator()
        self._window.open(self._clock.now())
        self._phase = Phase.RUNNING

    def update(self) -> None:
        if self._phase is Phase.RUNNING and self._window.expired(self._clock.now()):
            self._close(to_ms(self._window.duration_s))

    def finish(self) -> None:
        if self._phase is Phase.RESULTS:
            return
        if self._phase is not Phase.RUNNING:
            raise RuntimeError("Test has not started")
        self._close(to_ms(self._window.elapsed_s(self._clock.now())))

    def time_remaining_s(self) -> float | None:
        if self._phase is not Phase.RUNNING:
            return None
        return self._window.remaining_s(self._clock.now())

    def touch_begin(self, contact_id: int, x: float, y: float, *, dispatched_at_s: float | None = None) -> None:
        if self._phase is not Phase.RUNNING:
            return
        now_ms = to_ms(self._clock.now())
        dispatched_ms = now_ms if dispatched_at_s is None else to_ms(dispatched_at_s)
        self._agg.touch_begin(contact_id, x, y, timestamp_ms=dispatched_ms, recorded_at_ms=now_ms)

    def touch_move(self, contact_id: int, x: float, y: float) -> None:
        # Movement does not change concurrency or latency statistics.
        return

    def touch_end(self, contact_id: int) -> None:
        if self._phase is not Phase.RUNNING:
            return
        self._agg.touch_end(contact_id)

    def result(self) -> TouchTestResult | None:
        return self._result

    def snapshot(self) -> TestSnapshot:
        if self._phase is Phase.READY:
            prompt = f"Use single and multi-touch gestures for {self._cfg.window_s:.0f} seconds."
        elif self._phase is Phase.RESULTS:
            assert self._result is not None
            prompt = (
                f"Touches: {self._result.total_touches}\n"
                f"Max simultaneous: {self._result.max_simultaneous_touches}"
            )
        else:
            prompt = "Try single and multi-touch gestures"
        return TestSnapshot(
            title="Touch Screen Test",
            phase=self._phase,
            prompt=prompt,
            time_remaining_s=self.time_remaining_s(),
            payload=TouchTestPayload(
                active_touches=self._agg.active_count,
                total_touches=self._agg.total_touches,
                max_simultaneous=self._agg.max_concurrent,
            ),
        )

    def _close(self, duration_ms: int) -> None:
        self._result = self._agg.finalize(duration_ms=duration_ms)
        self._window.close()
        self._phase = Phase.RESULTS
