from __future__ import annotations

from dataclasses import dataclass

from .clock import Clock, to_ms
from .diagnostic_core import Phase, TestSnapshot, TimedWindow
from .results import ProximitySensorResult


@dataclass(frozen=True, slots=True)
class ProximitySensorConfig:
    # Lead-in so the robot can position itself before the window opens.
    countdown_s: float = 10.0
    window_s: float = 10.0
    near_distance_cm: float = 5.0


@dataclass(frozen=True, slots=True)
class ProximitySensorPayload:
    sensor_activated: bool
    countdown_remaining_s: float | None


class ProximitySensorTest:
    """Checks that the proximity sensor fires while the robot covers it.

    Readings before or after the test window are ignored.  Only the first
    activation is recorded.  A sensor that never fires still yields a
    (failing) result once the window closes.
    """

    def __init__(self, *, clock: Clock, config: ProximitySensorConfig | None = None) -> None:
        cfg = config if config is not None else ProximitySensorConfig()
        if cfg.countdown_s < 0:
            raise ValueError("countdown_s must be >= 0")
        if cfg.near_distance_cm <= 0:
            raise ValueError("near_distance_cm must be > 0")
        self._clock = clock
        self._cfg = cfg
        self._countdown = TimedWindow(cfg.countdown_s) if cfg.countdown_s > 0 else None
        self._window = TimedWindow(cfg.window_s)
        self._phase = Phase.READY
        self._activated_at_s: float | None = None
        self._result: ProximitySensorResult | None = None

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def sensor_activated(self) -> bool:
        return self._activated_at_s is not None

    def start(self) -> None:
        if self._phase is not Phase.READY:
            raise RuntimeError("Test already started")
        self._activated_at_s = None
        now = self._clock.now()
        if self._countdown is None:
            self._open_window(now)
            return
        self._countdown.open(now)
        self._phase = Phase.COUNTDOWN

    def update(self) -> None:
        now = self._clock.now()
        if self._phase is Phase.COUNTDOWN:
            assert self._countdown is not None
            if not self._countdown.expired(now):
                return
            started = self._countdown.started_at_s
            assert started is not None
            self._countdown.close()
            self._open_window(started + self._countdown.duration_s)
        if self._phase is Phase.RUNNING and self._window.expired(now):
            self._close()

    def report_reading(self, *, near: bool | None = None, distance_cm: float | None = None) -> bool:
        """Feed one sensor reading. Returns True if it activated the sensor."""

        if near is None and distance_cm is None:
            raise ValueError("reading needs near or distance_cm")
        if self._phase is not Phase.RUNNING or self._activated_at_s is not None:
            return False
        is_near = bool(near) or (distance_cm is not None and distance_cm < self._cfg.near_distance_cm)
        if not is_near:
            return False
        self._activated_at_s = self._clock.now()
        return True

    def time_remaining_s(self) -> float | None:
        now = self._clock.now()
        if self._phase is Phase.COUNTDOWN:
            assert self._countdown is not None
            return self._countdown.remaining_s(now)
        if self._phase is Phase.RUNNING:
            return self._window.remaining_s(now)
        return None

    def result(self) -> ProximitySensorResult | None:
        return self._result

    def snapshot(self) -> TestSnapshot:
        if self._phase is Phase.READY:
            prompt = f"Robot will have {self._cfg.window_s:.0f} seconds to cover the proximity sensor."
        elif self._phase is Phase.COUNTDOWN:
            prompt = "Robot should prepare to cover the proximity sensor"
        elif self._phase is Phase.RUNNING:
            prompt = "Sensor Activated!" if self.sensor_activated else "Cover the Sensor"
        else:
            assert self._result is not None
            if self._result.success:
                prompt = f"Sensor activated in {self._result.activation_time_ms / 1000.0:.1f} seconds"
            else:
                prompt = f"Sensor was not activated within {self._cfg.window_s:.0f} seconds"
        countdown = self.time_remaining_s() if self._phase is Phase.COUNTDOWN else None
        return TestSnapshot(
            title="Proximity Sensor Check",
            phase=self._phase,
            prompt=prompt,
            time_remaining_s=self.time_remaining_s(),
            payload=ProximitySensorPayload(
                sensor_activated=self.sensor_activated,
                countdown_remaining_s=countdown,
            ),
        )

    def _open_window(self, at_s: float) -> None:
        self._window.open(at_s)
        self._phase = Phase.RUNNING

    def _close(self) -> None:
        started = self._window.started_at_s
        assert started is not None
        activation_ms = 0 if self._activated_at_s is None else to_ms(self._activated_at_s - started)
        self._result = ProximitySensorResult(
            sensor_activated=self._activated_at_s is not None,
            activation_time_ms=activation_ms,
            test_duration_ms=to_ms(self._window.duration_s),
            success=self._activated_at_s is not None,
        )
        self._window.close()
        self._phase = Phase.RESULTS
