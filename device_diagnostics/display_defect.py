from __future__ import annotations

from dataclasses import dataclass

from .clock import Clock, SystemWallClock, WallClock, to_ms
from .diagnostic_core import Phase, TestSnapshot
from .results import DisplayDefectResult


@dataclass(frozen=True, slots=True)
class ColourPhase:
    name: str
    rgb: tuple[int, int, int]
    duration_s: float


@dataclass(frozen=True, slots=True)
class DisplayDefectConfig:
    phases: tuple[ColourPhase, ...] = (
        ColourPhase("red", (255, 0, 0), 3.0),
        ColourPhase("green", (0, 255, 0), 3.0),
    )
    idle_rgb: tuple[int, int, int] = (50, 50, 50)


@dataclass(frozen=True, slots=True)
class DisplayDefectPayload:
    colour: str | None
    rgb: tuple[int, int, int]
    phase_progress: float


class DisplayDefectTest:
    """Shows full-screen colours in sequence for the robot camera to inspect.

    The test itself only sequences the colours; defect analysis happens on the
    robot, which acknowledges over the bus once it is done.
    """

    def __init__(
        self,
        *,
        clock: Clock,
        config: DisplayDefectConfig | None = None,
        wall_clock: WallClock | None = None,
    ) -> None:
        cfg = config if config is not None else DisplayDefectConfig()
        if not cfg.phases:
            raise ValueError("phases must not be empty")
        for p in cfg.phases:
            if p.duration_s <= 0:
                raise ValueError(f"duration_s of colour {p.name!r} must be > 0")

        self._clock = clock
        self._wall = wall_clock if wall_clock is not None else SystemWallClock()
        self._cfg = cfg

        self._phase = Phase.READY
        self._started_at_s: float | None = None
        self._colour_index = 0
        self._colour_started_at_s: float | None = None
        self._result: DisplayDefectResult | None = None

    @property
    def phase(self) -> Phase:
        return self._phase

    def start(self) -> None:
        if self._phase is not Phase.READY:
            raise RuntimeError("Test already started")
        now = self._clock.now()
        self._started_at_s = now
        self._colour_index = 0
        self._colour_started_at_s = now
        self._phase = Phase.RUNNING

    def update(self) -> None:
        if self._phase is not Phase.RUNNING:
            return
        assert self._colour_started_at_s is not None
        now = self._clock.now()
        # A long frame may cover several colour phases at once.
        while True:
            current = self._cfg.phases[self._colour_index]
            due = self._colour_started_at_s + current.duration_s
            if now < due:
                return
            if self._colour_index + 1 >= len(self._cfg.phases):
                self._finish(due)
                return
            self._colour_index += 1
            self._colour_started_at_s = due

    def current_colour(self) -> ColourPhase | None:
        if self._phase is not Phase.RUNNING:
            return None
        return self._cfg.phases[self._colour_index]

    def fill_rgb(self) -> tuple[int, int, int]:
        colour = self.current_colour()
        return self._cfg.idle_rgb if colour is None else colour.rgb

    def time_remaining_s(self) -> float | None:
        if self._phase is not Phase.RUNNING:
            return None
        assert self._colour_started_at_s is not None
        now = self._clock.now()
        remaining = self._colour_started_at_s + self._cfg.phases[self._colour_index].duration_s - now
        for p in self._cfg.phases[self._colour_index + 1 :]:
            remaining += p.duration_s
        return max(0.0, remaining)

    def result(self) -> DisplayDefectResult | None:
        return self._result

    def snapshot(self) -> TestSnapshot:
        colour = self.current_colour()
        progress = 0.0
        if colour is not None:
            assert self._colour_started_at_s is not None
            progress = min(1.0, (self._clock.now() - self._colour_started_at_s) / colour.duration_s)
        if self._phase is Phase.READY:
            prompt = "Screen will cycle through solid colours for camera verification."
        elif self._phase is Phase.RESULTS:
            prompt = "Display Defect Test Completed"
        else:
            assert colour is not None
            prompt = colour.name.upper()
        return TestSnapshot(
            title="Display Defect Analysis",
            phase=self._phase,
            prompt=prompt,
            time_remaining_s=self.time_remaining_s(),
            payload=DisplayDefectPayload(
                colour=None if colour is None else colour.name,
                rgb=self.fill_rgb(),
                phase_progress=progress,
            ),
        )

    def _finish(self, finished_at_s: float) -> None:
        assert self._started_at_s is not None
        self._result = DisplayDefectResult(
            test_completed=True,
            duration_ms=to_ms(finished_at_s - self._started_at_s),
            timestamp_ms=to_ms(self._wall.time()),
        )
        self._phase = Phase.RESULTS
        self._colour_started_at_s = None
