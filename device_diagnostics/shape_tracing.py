from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .clock import Clock, to_ms
from .diagnostic_core import Phase, TestSnapshot, TimedWindow, clamp, round_half_up
from .geometry import Point, Shape, nearest_distance, path_length, sample_ideal_shape
from .results import ShapeTracingResult, TracePoint

# Reference shape size the absolute pixel constants were tuned for.
_REFERENCE_SIZE = 200.0


@dataclass(frozen=True, slots=True)
class ShapeTracingConfig:
    shape_size: float = _REFERENCE_SIZE
    center: Point = Point(200.0, 200.0)
    sample_count: int = 100
    # Trace points farther than this from the outline are excursions and are ignored.
    acceptance_radius: float = 50.0
    # Mean deviation at which accuracy reaches 0.
    max_acceptable_deviation: float = 30.0
    start_delay_s: float = 1.0
    trace_duration_s: float = 15.0

    @classmethod
    def for_shape_size(cls, shape_size: float, *, center: Point | None = None, **overrides: float) -> ShapeTracingConfig:
        """Config whose radii scale with the shape instead of staying absolute pixels."""

        scale = float(shape_size) / _REFERENCE_SIZE
        c = center if center is not None else Point(shape_size, shape_size)
        return cls(
            shape_size=float(shape_size),
            center=c,
            acceptance_radius=50.0 * scale,
            max_acceptable_deviation=30.0 * scale,
            **overrides,
        )


@dataclass(frozen=True, slots=True)
class ShapeScore:
    accuracy: int
    total_distance: float
    valid_points: int
    mean_deviation: float | None


def score_trace(
    trace: Sequence[TracePoint] | Sequence[Point],
    shape: Shape,
    *,
    center: Point,
    size: float,
    sample_count: int = 100,
    acceptance_radius: float = 50.0,
    max_acceptable_deviation: float = 30.0,
) -> ShapeScore:
    """Score a recorded trace against the ideal outline of ``shape``.

    Every trace point is matched to its nearest ideal sample.  Points beyond
    ``acceptance_radius`` neither reward nor penalise; the mean deviation of
    the rest maps linearly onto 100..0, reaching 0 at
    ``max_acceptable_deviation``.  ``total_distance`` is the raw path length.
    """

    if max_acceptable_deviation <= 0:
        raise ValueError("max_acceptable_deviation must be > 0")

    points = [Point(float(p.x), float(p.y)) for p in trace]
    total_distance = path_length(points)
    if not points:
        return ShapeScore(accuracy=0, total_distance=0.0, valid_points=0, mean_deviation=None)

    ideal = sample_ideal_shape(shape, center=center, size=size, sample_count=sample_count)

    deviations = [d for d in (nearest_distance(p, ideal) for p in points) if d <= acceptance_radius]
    if not deviations:
        return ShapeScore(accuracy=0, total_distance=total_distance, valid_points=0, mean_deviation=None)

    mean_dev = sum(deviations) / len(deviations)
    raw = max(0.0, 100.0 - (mean_dev / max_acceptable_deviation) * 100.0)
    accuracy = int(clamp(round_half_up(raw), 0, 100))
    return ShapeScore(
        accuracy=accuracy,
        total_distance=total_distance,
        valid_points=len(deviations),
        mean_deviation=mean_dev,
    )


@dataclass(frozen=True, slots=True)
class ShapeTracingPayload:
    shape: Shape
    center: Point
    size: float
    tracing: bool
    trace: tuple[TracePoint, ...]


class ShapeTracingTest:
    """Trace one shape: short lead-in, timed tracing window, then scoring.

    A touch-begin starts a new stroke and replaces whatever was traced before;
    only the last continuous stroke is scored.  Contacts other than the one
    that started the stroke are ignored.
    """

    def __init__(self, *, shape: Shape, clock: Clock, config: ShapeTracingConfig | None = None) -> None:
        cfg = config if config is not None else ShapeTracingConfig()
        if cfg.shape_size <= 0:
            raise ValueError("shape_size must be > 0")
        if cfg.sample_count < 1:
            raise ValueError("sample_count must be >= 1")
        if cfg.acceptance_radius <= 0:
            raise ValueError("acceptance_radius must be > 0")
        if cfg.max_acceptable_deviation <= 0:
            raise ValueError("max_acceptable_deviation must be > 0")
        if cfg.start_delay_s < 0:
            raise ValueError("start_delay_s must be >= 0")

        self._shape = Shape(shape)
        self._clock = clock
        self._cfg = cfg

        self._phase = Phase.READY
        self._countdown_started_at_s: float | None = None
        self._window = TimedWindow(cfg.trace_duration_s)

        self._trace: list[TracePoint] = []
        self._stroke_contact: int | None = None
        self._result: ShapeTracingResult | None = None

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def shape(self) -> Shape:
        return self._shape

    @property
    def tracing(self) -> bool:
        return self._stroke_contact is not None

    def trace_points(self) -> tuple[TracePoint, ...]:
        return tuple(self._trace)

    def start(self) -> None:
        if self._phase is not Phase.READY:
            raise RuntimeError("Test already started")
        self._countdown_started_at_s = self._clock.now()
        self._phase = Phase.COUNTDOWN
        self.update()

    def update(self) -> None:
        now = self._clock.now()
        if self._phase is Phase.COUNTDOWN:
            assert self._countdown_started_at_s is not None
            if now - self._countdown_started_at_s >= self._cfg.start_delay_s:
                self._phase = Phase.RUNNING
                self._window.open(now)
                self._trace = []
                self._stroke_contact = None
            return
        if self._phase is Phase.RUNNING and self._window.expired(now):
            self.finish()

    def time_remaining_s(self) -> float | None:
        if self._phase is not Phase.RUNNING:
            return None
        return self._window.remaining_s(self._clock.now())

    def touch_begin(self, contact_id: int, x: float, y: float, *, dispatched_at_s: float | None = None) -> None:
        if self._phase is not Phase.RUNNING or self._stroke_contact is not None:
            return
        self._stroke_contact = int(contact_id)
        self._trace = [self._point(x, y)]

    def touch_move(self, contact_id: int, x: float, y: float) -> None:
        if self._phase is not Phase.RUNNING or self._stroke_contact != contact_id:
            return
        self._trace.append(self._point(x, y))

    def touch_end(self, contact_id: int) -> None:
        if self._stroke_contact == contact_id:
            self._stroke_contact = None

    def finish(self) -> None:
        """Close the tracing window now and score what was traced."""

        if self._phase is Phase.RESULTS:
            return
        if self._phase is not Phase.RUNNING:
            raise RuntimeError("Tracing has not begun")
        now = self._clock.now()
        started = self._window.started_at_s
        assert started is not None
        cfg = self._cfg
        score = score_trace(
            self._trace,
            self._shape,
            center=cfg.center,
            size=cfg.shape_size,
            sample_count=cfg.sample_count,
            acceptance_radius=cfg.acceptance_radius,
            max_acceptable_deviation=cfg.max_acceptable_deviation,
        )
        self._result = ShapeTracingResult(
            shape=self._shape,
            accuracy=score.accuracy,
            completion_time_ms=to_ms(now - started),
            trace_points=tuple(self._trace),
            total_distance=score.total_distance,
            deviation_score=score.accuracy,
        )
        self._stroke_contact = None
        self._window.close()
        self._phase = Phase.RESULTS

    def reset(self) -> None:
        self._phase = Phase.READY
        self._countdown_started_at_s = None
        self._window.close()
        self._trace = []
        self._stroke_contact = None
        self._result = None

    def result(self) -> ShapeTracingResult | None:
        return self._result

    def snapshot(self) -> TestSnapshot:
        return TestSnapshot(
            title=f"{self._shape.value.capitalize()} Tracing",
            phase=self._phase,
            prompt=self._prompt_text(),
            time_remaining_s=self.time_remaining_s(),
            payload=ShapeTracingPayload(
                shape=self._shape,
                center=self._cfg.center,
                size=self._cfg.shape_size,
                tracing=self.tracing,
                trace=tuple(self._trace),
            ),
        )

    def _prompt_text(self) -> str:
        if self._phase is Phase.READY:
            return f"Trace the {self._shape.value} outline from the START marker."
        if self._phase is Phase.COUNTDOWN:
            return "Get ready..."
        if self._phase is Phase.RESULTS:
            assert self._result is not None
            return f"Accuracy: {self._result.accuracy}%"
        return f"Trace the {self._shape.value}"

    def _point(self, x: float, y: float) -> TracePoint:
        return TracePoint(x=float(x), y=float(y), timestamp_ms=to_ms(self._clock.now()))
