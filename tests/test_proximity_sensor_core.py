from __future__ import annotations

from dataclasses import dataclass

import pytest

from device_diagnostics.diagnostic_core import Phase
from device_diagnostics.proximity_sensor import (
    ProximitySensorConfig,
    ProximitySensorPayload,
    ProximitySensorTest,
)


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


def _running(clock: FakeClock) -> ProximitySensorTest:
    test = ProximitySensorTest(clock=clock)
    test.start()
    clock.advance(10.0)
    test.update()
    assert test.phase is Phase.RUNNING
    return test


def test_readings_during_countdown_are_ignored() -> None:
    clock = FakeClock()
    test = ProximitySensorTest(clock=clock)
    test.start()
    assert test.phase is Phase.COUNTDOWN
    assert test.time_remaining_s() == pytest.approx(10.0)
    assert test.report_reading(near=True) is False
    assert test.sensor_activated is False

    snap = test.snapshot()
    assert isinstance(snap.payload, ProximitySensorPayload)
    assert snap.payload.countdown_remaining_s == pytest.approx(10.0)


def test_activation_time_is_relative_to_window_start() -> None:
    clock = FakeClock()
    test = _running(clock)
    clock.advance(2.5)
    assert test.report_reading(near=True) is True
    # Only the first activation counts.
    clock.advance(1.0)
    assert test.report_reading(near=True) is False

    clock.t = 20.0
    test.update()
    assert test.phase is Phase.RESULTS
    result = test.result()
    assert result is not None
    assert result.success is True
    assert result.sensor_activated is True
    assert result.activation_time_ms == 2500
    assert result.test_duration_ms == 10_000


def test_distance_reading_below_threshold_activates() -> None:
    clock = FakeClock()
    test = _running(clock)
    assert test.report_reading(distance_cm=5.0) is False
    assert test.report_reading(near=False, distance_cm=12.0) is False
    assert test.report_reading(distance_cm=4.9) is True
    assert test.sensor_activated is True


def test_never_activated_yields_failing_result() -> None:
    clock = FakeClock()
    test = _running(clock)
    clock.advance(10.0)
    test.update()
    result = test.result()
    assert result is not None
    assert result.success is False
    assert result.activation_time_ms == 0
    # Late readings are ignored.
    assert test.report_reading(near=True) is False


def test_long_frame_opens_window_at_countdown_end() -> None:
    clock = FakeClock()
    test = ProximitySensorTest(clock=clock)
    test.start()
    clock.advance(14.0)
    test.update()
    assert test.phase is Phase.RUNNING
    assert test.time_remaining_s() == pytest.approx(6.0)


def test_zero_countdown_starts_window_immediately() -> None:
    clock = FakeClock()
    test = ProximitySensorTest(clock=clock, config=ProximitySensorConfig(countdown_s=0.0, window_s=3.0))
    test.start()
    assert test.phase is Phase.RUNNING
    clock.advance(1.0)
    assert test.report_reading(near=True) is True
    clock.advance(2.0)
    test.update()
    assert test.result().activation_time_ms == 1000


def test_reading_needs_a_value() -> None:
    clock = FakeClock()
    test = _running(clock)
    with pytest.raises(ValueError):
        test.report_reading()
    with pytest.raises(RuntimeError):
        test.start()
