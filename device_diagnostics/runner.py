from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

from .clock import Clock, WallClock
from .confirmation import ConfirmationGateway, confirmation_payload
from .diagnostic_core import EarlyFinish, StepEngine, TestSnapshot, TouchSink
from .display_defect import DisplayDefectConfig, DisplayDefectTest
from .proximity_sensor import ProximitySensorConfig, ProximitySensorTest
from .results import SuiteResult, TestKind, TestResult, composite_score
from .suite import (
    ConfirmationReceived,
    InvalidTransition,
    ManualContinue,
    Pause,
    Resume,
    Retry,
    SettleElapsed,
    Skip,
    Start,
    StepCompleted,
    StepFailed,
    StepStatus,
    StepToken,
    SuiteEvent,
    SuiteState,
    SuiteStatus,
    TestStepDescriptor,
    initial_state,
    reduce,
)
from .touchscreen import CompositeTouchConfig, CompositeTouchTest

logger = logging.getLogger(__name__)

EngineFactory = Callable[[Clock], StepEngine]

REPORT_STEP_ID = "report"


@dataclass(frozen=True, slots=True)
class SuiteConfig:
    # Pause between a finished step and the next one.
    settle_delay_s: float = 1.0
    confirmation_topic: str = "/test_confirmation"

    def __post_init__(self) -> None:
        if self.settle_delay_s < 0.0:
            raise ValueError("settle_delay_s must be >= 0")


def default_steps() -> tuple[TestStepDescriptor, ...]:
    return (
        TestStepDescriptor(
            TestKind.TOUCHSCREEN.value,
            "Touchscreen",
            "Test touch responsiveness, multi-touch and shape tracing",
        ),
        TestStepDescriptor(
            TestKind.DISPLAY_DEFECT.value,
            "Display",
            "Show full-screen colours for a camera to inspect",
            requires_confirmation=True,
        ),
        TestStepDescriptor(
            TestKind.PROXIMITY_SENSOR.value,
            "Proximity Sensor",
            "Cover the sensor within the test window",
        ),
        TestStepDescriptor(REPORT_STEP_ID, "Report", "Generate comprehensive diagnostic report"),
    )


def default_engine_factories(
    *,
    wall_clock: WallClock | None = None,
    touch: CompositeTouchConfig | None = None,
    display: DisplayDefectConfig | None = None,
    proximity: ProximitySensorConfig | None = None,
) -> dict[str, EngineFactory]:
    return {
        TestKind.TOUCHSCREEN.value: lambda clock: CompositeTouchTest(clock=clock, config=touch),
        TestKind.DISPLAY_DEFECT.value: lambda clock: DisplayDefectTest(
            clock=clock, config=display, wall_clock=wall_clock
        ),
        TestKind.PROXIMITY_SENSOR.value: lambda clock: ProximitySensorTest(clock=clock, config=proximity),
    }


@dataclass(frozen=True, slots=True)
class SuiteSnapshot:
    """View model of the whole suite for the presentation layer (pure data)."""

    status: SuiteStatus
    step_index: int
    current_step: TestStepDescriptor
    step_statuses: tuple[tuple[str, StepStatus], ...]
    awaiting_key: str | None
    result_keys: tuple[str, ...]
    composite_score: int | None
    engine: TestSnapshot | None


class SuiteRunner:
    """Drives a suite: one engine per active step, settle timer, confirmation wait.

    Everything happens on the caller's thread.  ``update()`` must be called
    every frame; it polls the active engine and fires the settle timer.  Timer
    and confirmation firings carry the ``StepToken`` they were created for and
    are dropped once the suite has moved on.
    """

    def __init__(
        self,
        *,
        clock: Clock,
        gateway: ConfirmationGateway,
        steps: Sequence[TestStepDescriptor] | None = None,
        engine_factories: Mapping[str, EngineFactory] | None = None,
        config: SuiteConfig | None = None,
        on_terminal: Callable[[SuiteState], None] | None = None,
        on_step_completed: Callable[[str, TestResult], None] | None = None,
    ) -> None:
        self._clock = clock
        self._gateway = gateway
        self._cfg = config if config is not None else SuiteConfig()
        self._state = initial_state(steps if steps is not None else default_steps())
        self._factories = dict(engine_factories if engine_factories is not None else default_engine_factories())
        missing = [s.id for s in self._state.steps[:-1] if s.id not in self._factories]
        if missing:
            raise ValueError(f"no engine factory for steps: {', '.join(missing)}")
        self._on_terminal = on_terminal
        self._on_step_completed = on_step_completed

        self._engine: StepEngine | None = None
        self._settle_due_s: float | None = None
        self._settle_token: StepToken | None = None

    @property
    def state(self) -> SuiteState:
        return self._state

    @property
    def status(self) -> SuiteStatus:
        return self._state.status

    @property
    def results(self) -> SuiteResult:
        return self._state.results

    @property
    def active_engine(self) -> StepEngine | None:
        return self._engine

    # Commands

    def start(self) -> None:
        self.dispatch(Start())

    def pause(self) -> None:
        self.dispatch(Pause())

    def resume(self) -> None:
        self.dispatch(Resume())

    def skip(self) -> None:
        self.dispatch(Skip())

    def retry(self) -> None:
        self.dispatch(Retry())

    def manual_continue(self) -> None:
        self.dispatch(ManualContinue())

    def fail_step(self, reason: str) -> None:
        if self._state.status is not SuiteStatus.RUNNING:
            raise InvalidTransition(f"cannot fail a step while the suite is {self._state.status.value}")
        step_id = self._state.current_step.id
        logger.warning("Step %s failed: %s", step_id, reason)
        self.dispatch(StepFailed(step_id, reason))

    def report_proximity(self, *, near: bool | None = None, distance_cm: float | None = None) -> bool:
        """Forward a sensor reading to the active proximity test. False if none is listening."""
        engine = self._engine
        if self._state.status is not SuiteStatus.RUNNING or not isinstance(engine, ProximitySensorTest):
            return False
        return engine.report_reading(near=near, distance_cm=distance_cm)

    def finish_stage(self) -> bool:
        """Close the active engine's open window early. False if there is none."""
        st = self._state
        engine = self._engine
        if st.status is not SuiteStatus.RUNNING or st.advance_pending or not isinstance(engine, EarlyFinish):
            return False
        if not engine.finish_stage():
            return False
        logger.info("Finished %s stage early", st.current_step.id)
        return True

    def touch_sink(self) -> TouchSink | None:
        st = self._state
        if st.status is not SuiteStatus.RUNNING or st.advance_pending:
            return None
        engine = self._engine
        return engine if isinstance(engine, TouchSink) else None

    def teardown(self) -> None:
        self._gateway.cancel()
        self._engine = None
        self._clear_settle()

    # Event loop

    def dispatch(self, event: SuiteEvent) -> None:
        prev = self._state
        nxt = reduce(prev, event)
        if nxt is prev:
            logger.debug("Dropped %s (status %s, step %s)", type(event).__name__, prev.status.value, prev.current_step.id)
            return
        self._state = nxt
        self._on_transition(prev, nxt, event)

    def update(self) -> None:
        st = self._state
        if st.status is not SuiteStatus.RUNNING:
            return
        if st.advance_pending:
            if self._settle_due_s is not None and self._clock.now() >= self._settle_due_s:
                token = self._settle_token
                self._clear_settle()
                assert token is not None
                self.dispatch(SettleElapsed(token))
            return
        engine = self._engine
        if engine is None:
            return
        engine.update()
        result = engine.result()
        if result is not None:
            self.dispatch(StepCompleted(st.current_step.id, result))  # type: ignore[arg-type]

    def snapshot(self) -> SuiteSnapshot:
        st = self._state
        terminal = st.status is SuiteStatus.TERMINAL
        return SuiteSnapshot(
            status=st.status,
            step_index=st.step_index,
            current_step=st.current_step,
            step_statuses=tuple(st.statuses().items()),
            awaiting_key=st.wait_key,
            result_keys=st.results.keys(),
            composite_score=composite_score(st.results) if terminal else None,
            engine=self._engine.snapshot() if self._engine is not None else None,
        )

    # Internals

    def _on_transition(self, prev: SuiteState, nxt: SuiteState, event: SuiteEvent) -> None:
        if isinstance(event, StepCompleted) and self._on_step_completed is not None:
            self._on_step_completed(event.step_id, event.result)

        if nxt.generation != prev.generation:
            self._gateway.cancel()
            self._clear_settle()
            self._engine = None
            if isinstance(event, Retry):
                logger.info("Suite restarted")
            elif isinstance(event, Start):
                logger.info("Suite started")
            if nxt.status is SuiteStatus.TERMINAL:
                logger.info("Suite complete, composite score %d", composite_score(nxt.results))
                if self._on_terminal is not None:
                    self._on_terminal(nxt)
                return
            self._activate(nxt)
            return

        if nxt.status is SuiteStatus.AWAITING_CONFIRMATION and prev.status is not SuiteStatus.AWAITING_CONFIRMATION:
            self._await(nxt)
            return

        if isinstance(event, Pause):
            logger.info("Suite paused at %s", nxt.current_step.id)
            self._clear_settle()
        elif isinstance(event, Resume):
            logger.info("Suite resumed at %s", nxt.current_step.id)
            if nxt.advance_pending:
                self._arm_settle(nxt)
        elif nxt.advance_pending and not prev.advance_pending:
            logger.info("Step %s finished", nxt.current_step.id)
            self._arm_settle(nxt)

    def _activate(self, st: SuiteState) -> None:
        step = st.current_step
        logger.info("Step %s active (%d/%d)", step.id, st.step_index + 1, st.last_index)
        if st.step_index >= st.last_index:
            # Report step reached with no results: nothing to run.
            return
        engine = self._factories[step.id](self._clock)
        engine.start()
        self._engine = engine

    def _await(self, st: SuiteState) -> None:
        key = st.wait_key
        assert key is not None
        token = st.token
        logger.info("Awaiting confirmation for %s", key)
        self._gateway.await_confirmation(
            self._cfg.confirmation_topic,
            confirmation_payload(key),
            on_confirmed=lambda: self._confirmed(token, key),
        )

    def _confirmed(self, token: StepToken, key: str) -> None:
        if self._state.token != token:
            logger.debug("Dropped late confirmation for %s", key)
            return
        self.dispatch(ConfirmationReceived(key))

    def _arm_settle(self, st: SuiteState) -> None:
        self._settle_due_s = self._clock.now() + self._cfg.settle_delay_s
        self._settle_token = st.token

    def _clear_settle(self) -> None:
        self._settle_due_s = None
        self._settle_token = None
