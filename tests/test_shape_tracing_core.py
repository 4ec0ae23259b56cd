from __future__ import annotations

from dataclasses import dataclass

import pytest

from device_diagnostics.diagnostic_core import Phase
from device_diagnostics.geometry import Point, Shape, sample_ideal_shape
from device_diagnostics.shape_tracing import ShapeTracingConfig, ShapeTracingTest, score_trace


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


CENTER = Point(200.0, 200.0)


def _top_edge() -> list[Point]:
    return list(sample_ideal_shape(Shape.SQUARE, center=CENTER, size=200.0)[:25])


def test_perfect_trace_scores_100() -> None:
    ideal = sample_ideal_shape(Shape.SQUARE, center=CENTER, size=200.0)
    score = score_trace(ideal, Shape.SQUARE, center=CENTER, size=200.0)
    assert score.accuracy == 100
    assert score.valid_points == 100
    assert score.mean_deviation == pytest.approx(0.0)
    # Open path over the samples: one 8 px gap short of the closed 800 px outline.
    assert score.total_distance == pytest.approx(800.0, rel=0.02)


def test_constant_offset_maps_linearly() -> None:
    # 15 px off with a 30 px limit halves the score.
    trace = [Point(p.x, p.y - 15.0) for p in _top_edge()]
    score = score_trace(trace, Shape.SQUARE, center=CENTER, size=200.0)
    assert score.mean_deviation == pytest.approx(15.0)
    assert score.accuracy == 50
    assert score.total_distance == pytest.approx(192.0)


def test_accuracy_never_increases_as_deviation_grows() -> None:
    accuracies = []
    for offset in range(0, 51):
        trace = [Point(p.x, p.y - float(offset)) for p in _top_edge()]
        accuracies.append(score_trace(trace, Shape.SQUARE, center=CENTER, size=200.0).accuracy)
    assert accuracies[0] == 100
    assert accuracies[-1] == 0
    assert all(later <= earlier for earlier, later in zip(accuracies, accuracies[1:]))


def test_points_outside_acceptance_radius_are_ignored() -> None:
    trace = [Point(p.x, p.y - 15.0) for p in _top_edge()] + [Point(900.0, 900.0)]
    score = score_trace(trace, Shape.SQUARE, center=CENTER, size=200.0)
    assert score.accuracy == 50
    assert score.valid_points == 25


def test_acceptance_radius_is_inclusive() -> None:
    trace = [Point(100.0, 50.0)]
    score = score_trace(trace, Shape.SQUARE, center=CENTER, size=200.0, max_acceptable_deviation=100.0)
    assert score.valid_points == 1
    assert score.accuracy == 50


def test_trace_with_no_valid_points_scores_zero() -> None:
    far = [Point(900.0, 900.0), Point(950.0, 900.0)]
    score = score_trace(far, Shape.SQUARE, center=CENTER, size=200.0)
    assert score.accuracy == 0
    assert score.valid_points == 0
    assert score.total_distance == pytest.approx(50.0)

    empty = score_trace([], Shape.SQUARE, center=CENTER, size=200.0)
    assert empty.accuracy == 0
    assert empty.total_distance == 0.0


def test_deviation_beyond_limit_floors_at_zero() -> None:
    trace = [Point(p.x, p.y - 40.0) for p in _top_edge()]
    score = score_trace(trace, Shape.SQUARE, center=CENTER, size=200.0)
    assert score.accuracy == 0


def test_for_shape_size_scales_radii() -> None:
    cfg = ShapeTracingConfig.for_shape_size(100.0)
    assert cfg.shape_size == 100.0
    assert cfg.center == Point(100.0, 100.0)
    assert cfg.acceptance_radius == pytest.approx(25.0)
    assert cfg.max_acceptable_deviation == pytest.approx(15.0)

    custom = ShapeTracingConfig.for_shape_size(400.0, center=Point(480.0, 270.0), trace_duration_s=5.0)
    assert custom.center == Point(480.0, 270.0)
    assert custom.acceptance_radius == pytest.approx(100.0)
    assert custom.trace_duration_s == 5.0


def test_lifecycle_lead_in_then_window_then_results() -> None:
    clock = FakeClock()
    test = ShapeTracingTest(shape=Shape.SQUARE, clock=clock)
    assert test.phase is Phase.READY

    test.start()
    assert test.phase is Phase.COUNTDOWN
    # Touches during the lead-in are ignored.
    test.touch_begin(1, 100.0, 100.0)
    assert test.trace_points() == ()

    clock.advance(1.0)
    test.update()
    assert test.phase is Phase.RUNNING
    assert test.time_remaining_s() == pytest.approx(15.0)

    edge = _top_edge()
    test.touch_begin(1, edge[0].x, edge[0].y)
    assert test.tracing is True
    for p in edge[1:]:
        clock.advance(0.1)
        test.touch_move(1, p.x, p.y)
    test.touch_end(1)
    assert test.tracing is False
    assert len(test.trace_points()) == 25

    clock.t = 16.0
    test.update()
    assert test.phase is Phase.RESULTS
    result = test.result()
    assert result is not None
    assert result.accuracy == 100
    assert result.deviation_score == 100
    assert result.completion_time_ms == 15000
    assert len(result.trace_points) == 25
    assert result.trace_points[0].timestamp_ms == 1000


def test_new_stroke_replaces_previous_trace() -> None:
    clock = FakeClock()
    test = ShapeTracingTest(shape=Shape.SQUARE, clock=clock)
    test.start()
    clock.advance(1.0)
    test.update()

    test.touch_begin(1, 100.0, 100.0)
    test.touch_move(1, 120.0, 100.0)
    test.touch_end(1)
    test.touch_begin(2, 300.0, 300.0)
    assert [(p.x, p.y) for p in test.trace_points()] == [(300.0, 300.0)]


def test_second_contact_is_ignored_while_stroke_active() -> None:
    clock = FakeClock()
    test = ShapeTracingTest(shape=Shape.SQUARE, clock=clock)
    test.start()
    clock.advance(1.0)
    test.update()

    test.touch_begin(1, 100.0, 100.0)
    test.touch_begin(2, 300.0, 300.0)
    test.touch_move(2, 310.0, 300.0)
    test.touch_move(1, 110.0, 100.0)
    assert [(p.x, p.y) for p in test.trace_points()] == [(100.0, 100.0), (110.0, 100.0)]


def test_early_finish_and_misuse() -> None:
    clock = FakeClock()
    test = ShapeTracingTest(shape=Shape.DIAMOND, clock=clock)
    with pytest.raises(RuntimeError):
        test.finish()

    test.start()
    with pytest.raises(RuntimeError):
        test.start()

    clock.advance(1.0)
    test.update()
    clock.advance(4.0)
    test.finish()
    result = test.result()
    assert result is not None
    assert result.completion_time_ms == 4000
    assert result.accuracy == 0
    # Finishing again is a no-op.
    test.finish()
    assert test.result() is result


def test_reset_returns_to_ready() -> None:
    clock = FakeClock()
    test = ShapeTracingTest(shape=Shape.CIRCLE, clock=clock)
    test.start()
    clock.advance(1.0)
    test.update()
    test.touch_begin(1, 300.0, 200.0)
    test.reset()
    assert test.phase is Phase.READY
    assert test.trace_points() == ()
    assert test.result() is None


def test_invalid_config_is_rejected() -> None:
    clock = FakeClock()
    with pytest.raises(ValueError):
        ShapeTracingTest(shape=Shape.SQUARE, clock=clock, config=ShapeTracingConfig(shape_size=0.0))
    with pytest.raises(ValueError):
        ShapeTracingTest(shape=Shape.SQUARE, clock=clock, config=ShapeTracingConfig(acceptance_radius=0.0))
