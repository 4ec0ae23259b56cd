from __future__ import annotations

from dataclasses import dataclass

import pytest

from device_diagnostics.diagnostic_core import Phase
from device_diagnostics.display_defect import (
    ColourPhase,
    DisplayDefectConfig,
    DisplayDefectPayload,
    DisplayDefectTest,
)


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


@dataclass
class FakeWallClock:
    epoch_s: float = 1_700_000_000.0

    def time(self) -> float:
        return self.epoch_s


def test_red_then_green_then_completed() -> None:
    clock = FakeClock()
    test = DisplayDefectTest(clock=clock, wall_clock=FakeWallClock())
    assert test.fill_rgb() == (50, 50, 50)

    test.start()
    assert test.phase is Phase.RUNNING
    assert test.current_colour().name == "red"
    assert test.fill_rgb() == (255, 0, 0)
    assert test.time_remaining_s() == pytest.approx(6.0)

    clock.advance(2.9)
    test.update()
    assert test.current_colour().name == "red"

    clock.t = 3.0
    test.update()
    assert test.current_colour().name == "green"
    assert test.fill_rgb() == (0, 255, 0)
    assert test.time_remaining_s() == pytest.approx(3.0)

    clock.t = 6.0
    test.update()
    assert test.phase is Phase.RESULTS
    assert test.current_colour() is None
    result = test.result()
    assert result is not None
    assert result.test_completed is True
    assert result.duration_ms == 6000
    assert result.timestamp_ms == 1_700_000_000_000


def test_long_frame_finishes_at_due_time() -> None:
    clock = FakeClock()
    test = DisplayDefectTest(clock=clock, wall_clock=FakeWallClock())
    test.start()
    clock.advance(20.0)
    test.update()
    result = test.result()
    assert result is not None
    assert result.duration_ms == 6000


def test_snapshot_exposes_fill_colour() -> None:
    clock = FakeClock()
    test = DisplayDefectTest(clock=clock, wall_clock=FakeWallClock())
    snap = test.snapshot()
    assert snap.phase is Phase.READY
    assert isinstance(snap.payload, DisplayDefectPayload)
    assert snap.payload.colour is None

    test.start()
    clock.advance(1.5)
    snap = test.snapshot()
    assert snap.prompt == "RED"
    assert snap.payload.rgb == (255, 0, 0)
    assert snap.payload.phase_progress == pytest.approx(0.5)


def test_custom_phases_and_validation() -> None:
    cfg = DisplayDefectConfig(phases=(ColourPhase("blue", (0, 0, 255), 1.0),))
    clock = FakeClock()
    test = DisplayDefectTest(clock=clock, config=cfg, wall_clock=FakeWallClock())
    test.start()
    with pytest.raises(RuntimeError):
        test.start()
    clock.advance(1.0)
    test.update()
    assert test.phase is Phase.RESULTS

    with pytest.raises(ValueError):
        DisplayDefectTest(clock=clock, config=DisplayDefectConfig(phases=()))
    with pytest.raises(ValueError):
        DisplayDefectTest(clock=clock, config=DisplayDefectConfig(phases=(ColourPhase("red", (255, 0, 0), 0.0),)))
