"""Test-suite state machine as an immutable state value and a pure reducer.

``reduce(state, event)`` implements the step transition table: start, step
completion, confirmation, manual continue, pause/resume, skip, retry and the
terminal report step.  It never performs I/O and never reads a clock; timers
and bus subscriptions live in :mod:`device_diagnostics.runner`, which feeds
their firings back in as events carrying the ``StepToken`` they were scoped
to.  A token that no longer matches the state means the firing is stale and
the event is dropped.

Events whose precondition does not hold are programmer errors and raise
``InvalidTransition``.  The exceptions are late confirmations and stale settle
timers, which are expected under normal operation and are no-ops.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from enum import StrEnum

from .results import SuiteResult, TestResult


class SuiteStatus(StrEnum):
    NOT_STARTED = "not-started"
    RUNNING = "running"
    PAUSED = "paused"
    AWAITING_CONFIRMATION = "awaiting-confirmation"
    TERMINAL = "terminal"


class StepStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    ERROR = "error"


class InvalidTransition(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class TestStepDescriptor:
    """One entry of the ordered step list.

    ``id`` doubles as the result key.  The last descriptor of a suite is the
    report step: it is never executed as a test.
    """

    __test__ = False

    id: str
    title: str
    description: str
    requires_confirmation: bool = False


@dataclass(frozen=True, slots=True)
class StepToken:
    generation: int
    step_index: int


@dataclass(frozen=True, slots=True)
class SuiteState:
    steps: tuple[TestStepDescriptor, ...]
    status: SuiteStatus = SuiteStatus.NOT_STARTED
    step_index: int = 0
    step_statuses: tuple[tuple[str, StepStatus], ...] = ()
    results: SuiteResult = field(default_factory=SuiteResult)
    wait_key: str | None = None
    # Current step finished; advance once the settle delay elapses.
    advance_pending: bool = False
    # Bumped on every step change and on retry.
    generation: int = 0

    @property
    def token(self) -> StepToken:
        return StepToken(self.generation, self.step_index)

    @property
    def last_index(self) -> int:
        return len(self.steps) - 1

    @property
    def current_step(self) -> TestStepDescriptor:
        return self.steps[self.step_index]

    def status_of(self, step_id: str) -> StepStatus:
        for k, v in self.step_statuses:
            if k == step_id:
                return v
        return StepStatus.PENDING

    def statuses(self) -> dict[str, StepStatus]:
        return {s.id: self.status_of(s.id) for s in self.steps}


@dataclass(frozen=True, slots=True)
class Start:
    pass


@dataclass(frozen=True, slots=True)
class StepCompleted:
    step_id: str
    result: TestResult


@dataclass(frozen=True, slots=True)
class StepFailed:
    step_id: str
    reason: str = ""


@dataclass(frozen=True, slots=True)
class SettleElapsed:
    token: StepToken


@dataclass(frozen=True, slots=True)
class ConfirmationReceived:
    key: str


@dataclass(frozen=True, slots=True)
class ManualContinue:
    pass


@dataclass(frozen=True, slots=True)
class Pause:
    pass


@dataclass(frozen=True, slots=True)
class Resume:
    pass


@dataclass(frozen=True, slots=True)
class Skip:
    pass


@dataclass(frozen=True, slots=True)
class Retry:
    pass


SuiteEvent = (
    Start
    | StepCompleted
    | StepFailed
    | SettleElapsed
    | ConfirmationReceived
    | ManualContinue
    | Pause
    | Resume
    | Skip
    | Retry
)


def initial_state(steps: Sequence[TestStepDescriptor]) -> SuiteState:
    steps = tuple(steps)
    if len(steps) < 2:
        raise ValueError("a suite needs at least one test step and the report step")
    ids = [s.id for s in steps]
    if len(set(ids)) != len(ids):
        raise ValueError("step ids must be unique")
    if steps[-1].requires_confirmation:
        raise ValueError("the report step cannot require confirmation")
    return SuiteState(steps=steps)


def reduce(state: SuiteState, event: SuiteEvent) -> SuiteState:
    match event:
        case Start():
            if state.status is not SuiteStatus.NOT_STARTED:
                raise InvalidTransition(f"cannot start a suite that is {state.status.value}")
            return _restart(state)

        case Retry():
            return _restart(state)

        case StepCompleted(step_id=step_id, result=result):
            _require_current_open(state, step_id, "complete")
            recorded = replace(
                state,
                results=state.results.with_result(step_id, result),
                step_statuses=_with_status(state.step_statuses, step_id, StepStatus.COMPLETED),
            )
            if state.current_step.requires_confirmation:
                return replace(recorded, status=SuiteStatus.AWAITING_CONFIRMATION, wait_key=step_id)
            return replace(recorded, advance_pending=True)

        case StepFailed(step_id=step_id):
            _require_current_open(state, step_id, "fail")
            return replace(
                state,
                step_statuses=_with_status(state.step_statuses, step_id, StepStatus.ERROR),
                advance_pending=True,
            )

        case SettleElapsed(token=token):
            if state.status is not SuiteStatus.RUNNING or not state.advance_pending or token != state.token:
                return state
            return _advance(state)

        case ConfirmationReceived(key=key):
            if state.status is not SuiteStatus.AWAITING_CONFIRMATION or key != state.wait_key:
                return state
            return _advance(state)

        case ManualContinue():
            if state.status is not SuiteStatus.AWAITING_CONFIRMATION:
                raise InvalidTransition("manual continue is only possible while awaiting confirmation")
            return _advance(state)

        case Pause():
            if state.status is not SuiteStatus.RUNNING:
                raise InvalidTransition(f"cannot pause a suite that is {state.status.value}")
            return replace(state, status=SuiteStatus.PAUSED)

        case Resume():
            if state.status is not SuiteStatus.PAUSED:
                raise InvalidTransition(f"cannot resume a suite that is {state.status.value}")
            return replace(state, status=SuiteStatus.RUNNING)

        case Skip():
            if state.status is not SuiteStatus.RUNNING:
                raise InvalidTransition(f"cannot skip while the suite is {state.status.value}")
            if state.step_index == 0:
                raise InvalidTransition("the first step is mandatory")
            if state.step_index >= state.last_index:
                raise InvalidTransition("the report step cannot be skipped")
            if state.advance_pending:
                raise InvalidTransition("the current step has already finished")
            skipped = replace(
                state,
                step_statuses=_with_status(state.step_statuses, state.current_step.id, StepStatus.COMPLETED),
            )
            return _advance(skipped)

    raise TypeError(f"unsupported event: {type(event).__name__}")


def _require_current_open(state: SuiteState, step_id: str, verb: str) -> None:
    if state.status is not SuiteStatus.RUNNING:
        raise InvalidTransition(f"cannot {verb} a step while the suite is {state.status.value}")
    if step_id != state.current_step.id:
        raise InvalidTransition(f"{step_id!r} is not the current step ({state.current_step.id!r})")
    if state.step_index >= state.last_index:
        raise InvalidTransition("the report step is not a test")
    if state.advance_pending:
        raise InvalidTransition(f"{step_id!r} has already finished")


def _with_status(
    statuses: tuple[tuple[str, StepStatus], ...], step_id: str, status: StepStatus
) -> tuple[tuple[str, StepStatus], ...]:
    kept = tuple((k, v) for k, v in statuses if k != step_id)
    return kept + ((step_id, status),)


def _restart(state: SuiteState) -> SuiteState:
    first = state.steps[0].id
    return SuiteState(
        steps=state.steps,
        status=SuiteStatus.RUNNING,
        step_index=0,
        step_statuses=((first, StepStatus.ACTIVE),),
        results=SuiteResult(),
        generation=state.generation + 1,
    )


def _advance(state: SuiteState) -> SuiteState:
    nxt = state.step_index + 1
    step_id = state.steps[nxt].id
    if nxt == state.last_index and len(state.results) > 0:
        return replace(
            state,
            status=SuiteStatus.TERMINAL,
            step_index=nxt,
            step_statuses=_with_status(state.step_statuses, step_id, StepStatus.COMPLETED),
            wait_key=None,
            advance_pending=False,
            generation=state.generation + 1,
        )
    return replace(
        state,
        status=SuiteStatus.RUNNING,
        step_index=nxt,
        step_statuses=_with_status(state.step_statuses, step_id, StepStatus.ACTIVE),
        wait_key=None,
        advance_pending=False,
        generation=state.generation + 1,
    )
