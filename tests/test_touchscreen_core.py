from __future__ import annotations

from dataclasses import dataclass

import pytest

from device_diagnostics.diagnostic_core import Phase
from device_diagnostics.geometry import Point, Shape, sample_ideal_shape
from device_diagnostics.touchscreen import CompositeTouchConfig, CompositeTouchTest, TouchStage


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


def _trace_outline(test: CompositeTouchTest, shape: Shape) -> None:
    pts = sample_ideal_shape(shape, center=Point(200.0, 200.0), size=200.0)
    test.touch_begin(1, pts[0].x, pts[0].y)
    for p in pts[1:]:
        test.touch_move(1, p.x, p.y)
    test.touch_end(1)


def test_second_shape_must_not_be_square() -> None:
    with pytest.raises(ValueError):
        CompositeTouchTest(clock=FakeClock(), config=CompositeTouchConfig(second_shape=Shape.SQUARE))


def test_full_sequence_scores_mean_of_tracings_only() -> None:
    clock = FakeClock()
    test = CompositeTouchTest(clock=clock)
    assert test.stages() == (
        TouchStage.BASIC_TOUCH,
        TouchStage.SQUARE_TRACING,
        TouchStage.SECOND_SHAPE_TRACING,
    )

    test.start()
    assert test.stage is TouchStage.BASIC_TOUCH
    test.touch_begin(1, 10.0, 10.0)
    test.touch_begin(2, 50.0, 10.0)
    test.touch_end(1)
    test.touch_end(2)

    clock.advance(10.0)
    test.update()
    assert test.stage is TouchStage.SQUARE_TRACING
    assert test.snapshot().phase is Phase.RUNNING

    clock.advance(1.0)
    test.update()
    _trace_outline(test, Shape.SQUARE)
    clock.advance(15.0)
    test.update()
    assert test.stage is TouchStage.SECOND_SHAPE_TRACING

    # Nothing traced on the diamond.
    clock.advance(1.0)
    test.update()
    clock.advance(15.0)
    test.update()

    assert test.phase is Phase.RESULTS
    assert test.stage is None
    result = test.result()
    assert result is not None
    assert result.basic_touch.multi_touch_supported is True
    assert result.square_tracing.accuracy == 100
    assert result.second_shape_tracing.shape is Shape.DIAMOND
    assert result.second_shape_tracing.accuracy == 0
    assert result.overall_score == 50
    assert "50%" in test.snapshot().prompt


def test_basic_touch_can_be_left_out() -> None:
    clock = FakeClock()
    cfg = CompositeTouchConfig(second_shape=Shape.CIRCLE, include_basic_touch=False)
    test = CompositeTouchTest(clock=clock, config=cfg)
    assert test.stages() == (TouchStage.SQUARE_TRACING, TouchStage.SECOND_SHAPE_TRACING)

    test.start()
    clock.advance(1.0)
    test.update()
    clock.advance(15.0)
    test.update()
    clock.advance(1.0)
    test.update()
    _trace_outline(test, Shape.CIRCLE)
    clock.advance(15.0)
    test.update()

    result = test.result()
    assert result is not None
    assert result.basic_touch.total_touches == 0
    assert result.basic_touch.test_duration_ms == 10_000
    assert result.second_shape_tracing.accuracy == 100
    assert result.overall_score == 50


def test_touches_route_to_active_stage_only() -> None:
    clock = FakeClock()
    test = CompositeTouchTest(clock=clock)
    test.touch_begin(1, 0.0, 0.0)  # not started: dropped
    test.start()
    test.touch_begin(1, 0.0, 0.0)
    snap = test.snapshot()
    assert snap.payload.total_touches == 1
    assert snap.title.endswith("(1/3)")

    with pytest.raises(RuntimeError):
        test.start()


def test_finish_stage_skips_the_rest_of_each_window() -> None:
    clock = FakeClock()
    test = CompositeTouchTest(clock=clock)
    assert test.finish_stage() is False

    test.start()
    clock.advance(2.0)
    assert test.finish_stage() is True
    assert test.stage is TouchStage.SQUARE_TRACING
    assert test.finish_stage() is False  # lead-in

    clock.advance(1.0)
    test.update()
    _trace_outline(test, Shape.SQUARE)
    assert test.finish_stage() is True
    assert test.stage is TouchStage.SECOND_SHAPE_TRACING

    clock.advance(1.0)
    test.update()
    assert test.finish_stage() is True
    assert test.phase is Phase.RESULTS
    assert test.finish_stage() is False

    result = test.result()
    assert result is not None
    assert result.basic_touch.test_duration_ms == 2000
    assert result.square_tracing.accuracy == 100
    assert result.square_tracing.completion_time_ms == 0
