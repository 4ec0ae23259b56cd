"""Composite touchscreen test: basic touch window followed by two shape tracings.

The sub-tests run back to back on the same capture surface.  Touch events are
forwarded to whichever sub-test is active; the composite result is assembled
once the last tracing finishes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from .clock import Clock, to_ms
from .diagnostic_core import Phase, TestSnapshot
from .geometry import Shape
from .results import CompositeTouchResult, ShapeTracingResult, TouchTestResult
from .shape_tracing import ShapeTracingConfig, ShapeTracingTest
from .touch_aggregator import TouchTest, TouchTestConfig


class TouchStage(StrEnum):
    BASIC_TOUCH = "basic-touch"
    SQUARE_TRACING = "square-tracing"
    SECOND_SHAPE_TRACING = "second-shape-tracing"


@dataclass(frozen=True, slots=True)
class CompositeTouchConfig:
    touch: TouchTestConfig = field(default_factory=TouchTestConfig)
    tracing: ShapeTracingConfig = field(default_factory=ShapeTracingConfig)
    second_shape: Shape = Shape.DIAMOND
    include_basic_touch: bool = True


class CompositeTouchTest:
    def __init__(self, *, clock: Clock, config: CompositeTouchConfig | None = None) -> None:
        cfg = config if config is not None else CompositeTouchConfig()
        if cfg.second_shape is Shape.SQUARE:
            raise ValueError("second_shape must differ from the square")

        self._clock = clock
        self._cfg = cfg
        self._phase = Phase.READY

        self._basic = TouchTest(clock=clock, config=cfg.touch)
        self._square = ShapeTracingTest(shape=Shape.SQUARE, clock=clock, config=cfg.tracing)
        self._second = ShapeTracingTest(shape=cfg.second_shape, clock=clock, config=cfg.tracing)

        self._stages: list[TouchStage] = [TouchStage.SQUARE_TRACING, TouchStage.SECOND_SHAPE_TRACING]
        if cfg.include_basic_touch:
            self._stages.insert(0, TouchStage.BASIC_TOUCH)
        self._stage_index = 0
        self._result: CompositeTouchResult | None = None

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def stage(self) -> TouchStage | None:
        if self._phase is not Phase.RUNNING:
            return None
        return self._stages[self._stage_index]

    def stages(self) -> tuple[TouchStage, ...]:
        return tuple(self._stages)

    def active_test(self) -> TouchTest | ShapeTracingTest | None:
        stage = self.stage
        if stage is None:
            return None
        return self._engine_for(stage)

    def start(self) -> None:
        if self._phase is not Phase.READY:
            raise RuntimeError("Test already started")
        self._phase = Phase.RUNNING
        self._stage_index = 0
        self._engine_for(self._stages[0]).start()

    def update(self) -> None:
        if self._phase is not Phase.RUNNING:
            return
        engine = self._engine_for(self._stages[self._stage_index])
        engine.update()
        if engine.result() is None:
            return
        if self._stage_index + 1 < len(self._stages):
            self._stage_index += 1
            self._engine_for(self._stages[self._stage_index]).start()
            return
        self._finish()

    def finish_stage(self) -> bool:
        """Close the active sub-test's window now and move on.

        Returns False when no window is open, e.g. during a tracing lead-in.
        """
        engine = self.active_test()
        if engine is None or engine.phase is not Phase.RUNNING:
            return False
        engine.finish()
        self.update()
        return True

    def touch_begin(self, contact_id: int, x: float, y: float, *, dispatched_at_s: float | None = None) -> None:
        engine = self.active_test()
        if engine is not None:
            engine.touch_begin(contact_id, x, y, dispatched_at_s=dispatched_at_s)

    def touch_move(self, contact_id: int, x: float, y: float) -> None:
        engine = self.active_test()
        if engine is not None:
            engine.touch_move(contact_id, x, y)

    def touch_end(self, contact_id: int) -> None:
        engine = self.active_test()
        if engine is not None:
            engine.touch_end(contact_id)

    def result(self) -> CompositeTouchResult | None:
        return self._result

    def snapshot(self) -> TestSnapshot:
        engine = self.active_test()
        if engine is not None:
            inner = engine.snapshot()
            n = len(self._stages)
            return TestSnapshot(
                title=f"{inner.title} ({self._stage_index + 1}/{n})",
                phase=self._phase,
                prompt=inner.prompt,
                time_remaining_s=inner.time_remaining_s,
                payload=inner.payload,
            )
        if self._phase is Phase.RESULTS:
            assert self._result is not None
            prompt = f"Test Complete! Overall score: {self._result.overall_score}%"
        else:
            prompt = "This test evaluates touch response and tracing accuracy."
        return TestSnapshot(
            title="Enhanced Touchscreen Test",
            phase=self._phase,
            prompt=prompt,
            time_remaining_s=None,
        )

    def _engine_for(self, stage: TouchStage) -> TouchTest | ShapeTracingTest:
        if stage is TouchStage.BASIC_TOUCH:
            return self._basic
        if stage is TouchStage.SQUARE_TRACING:
            return self._square
        return self._second

    def _finish(self) -> None:
        basic = self._basic.result()
        if basic is None:
            basic = TouchTestResult(
                multi_touch_supported=False,
                max_simultaneous_touches=0,
                average_response_time_ms=0.0,
                total_touches=0,
                test_duration_ms=to_ms(self._cfg.touch.window_s),
            )
        square = self._square.result()
        second = self._second.result()
        assert isinstance(square, ShapeTracingResult)
        assert isinstance(second, ShapeTracingResult)
        self._result = CompositeTouchResult(
            basic_touch=basic,
            square_tracing=square,
            second_shape_tracing=second,
        )
        self._phase = Phase.RESULTS
