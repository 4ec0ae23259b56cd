from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from enum import StrEnum

from .diagnostic_core import round_half_up
from .geometry import Shape


class TestKind(StrEnum):
    __test__ = False

    TOUCHSCREEN = "touchscreen"
    DISPLAY_DEFECT = "displayDefect"
    PROXIMITY_SENSOR = "proximitySensor"


ACCURACY_PASS_THRESHOLD = 70
RESPONSE_TIME_PASS_MS = 100.0


@dataclass(frozen=True, slots=True)
class TracePoint:
    x: float
    y: float
    timestamp_ms: int


@dataclass(frozen=True, slots=True)
class TouchPoint:
    contact_id: int
    x: float
    y: float
    timestamp_ms: int


@dataclass(frozen=True, slots=True)
class TouchTestResult:
    multi_touch_supported: bool
    max_simultaneous_touches: int
    average_response_time_ms: float
    total_touches: int
    test_duration_ms: int
    touch_points: tuple[TouchPoint, ...] = ()


@dataclass(frozen=True, slots=True)
class ShapeTracingResult:
    shape: Shape
    accuracy: int
    completion_time_ms: int
    trace_points: tuple[TracePoint, ...]
    total_distance: float
    deviation_score: int


@dataclass(frozen=True, slots=True)
class CompositeTouchResult:
    """Basic touch run plus two shape tracings.

    ``overall_score`` is derived from the two tracing accuracies on every
    access; the basic touch metrics do not contribute to it.
    """

    basic_touch: TouchTestResult
    square_tracing: ShapeTracingResult
    second_shape_tracing: ShapeTracingResult

    @property
    def overall_score(self) -> int:
        mean = (self.square_tracing.accuracy + self.second_shape_tracing.accuracy) / 2.0
        return int(round_half_up(mean))


@dataclass(frozen=True, slots=True)
class DisplayDefectResult:
    test_completed: bool
    duration_ms: int
    timestamp_ms: int


@dataclass(frozen=True, slots=True)
class ProximitySensorResult:
    sensor_activated: bool
    activation_time_ms: int
    test_duration_ms: int
    success: bool


TestResult = (
    CompositeTouchResult
    | TouchTestResult
    | ShapeTracingResult
    | DisplayDefectResult
    | ProximitySensorResult
)


@dataclass(frozen=True, slots=True)
class SuiteResult:
    """Results keyed by test kind, in the order they were recorded.

    Immutable: ``with_result`` returns a new value.  A key is only present for
    tests that actually ran (skipped tests leave no entry).
    """

    entries: tuple[tuple[str, TestResult], ...] = ()

    def with_result(self, key: str, result: TestResult) -> SuiteResult:
        kept = tuple((k, v) for k, v in self.entries if k != key)
        return SuiteResult(entries=kept + ((str(key), result),))

    def get(self, key: str) -> TestResult | None:
        for k, v in self.entries:
            if k == key:
                return v
        return None

    def keys(self) -> tuple[str, ...]:
        return tuple(k for k, _ in self.entries)

    def items(self) -> tuple[tuple[str, TestResult], ...]:
        return self.entries

    def __contains__(self, key: object) -> bool:
        return any(k == key for k, _ in self.entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self.entries)


def category_score(result: TestResult) -> int:
    """0-100 score of one test category."""

    match result:
        case CompositeTouchResult():
            return result.overall_score
        case ShapeTracingResult():
            return int(result.accuracy)
        case TouchTestResult():
            return 100 if result.multi_touch_supported else 0
        case DisplayDefectResult():
            return 100 if result.test_completed else 0
        case ProximitySensorResult():
            return 100 if result.success else 0
    raise TypeError(f"unsupported result type: {type(result).__name__}")


def composite_score(suite: SuiteResult) -> int:
    """Unweighted mean of the category scores of every completed test."""

    if len(suite) == 0:
        return 0
    total = sum(category_score(r) for _, r in suite.items())
    return int(round_half_up(total / len(suite)))


def _fmt(value: bool | int | float) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    return f"{value:.2f}"


def result_metrics(result: TestResult, *, prefix: str = "") -> list[tuple[str, str]]:
    """Flatten the numeric and boolean fields of a result into key/value strings."""

    p = prefix
    match result:
        case CompositeTouchResult():
            return (
                result_metrics(result.basic_touch, prefix=p)
                + result_metrics(result.square_tracing, prefix=f"{p}square_")
                + result_metrics(result.second_shape_tracing, prefix=f"{p}{result.second_shape_tracing.shape.value}_")
                + [(f"{p}overall_score", _fmt(result.overall_score))]
            )
        case TouchTestResult():
            return [
                (f"{p}multi_touch_supported", _fmt(result.multi_touch_supported)),
                (f"{p}max_simultaneous_touches", _fmt(result.max_simultaneous_touches)),
                (f"{p}average_response_time_ms", _fmt(float(result.average_response_time_ms))),
                (f"{p}total_touches", _fmt(result.total_touches)),
                (f"{p}test_duration_ms", _fmt(result.test_duration_ms)),
            ]
        case ShapeTracingResult():
            return [
                (f"{p}accuracy", _fmt(result.accuracy)),
                (f"{p}completion_time_ms", _fmt(result.completion_time_ms)),
                (f"{p}total_distance", _fmt(float(result.total_distance))),
                (f"{p}deviation_score", _fmt(result.deviation_score)),
                (f"{p}trace_point_count", _fmt(len(result.trace_points))),
            ]
        case DisplayDefectResult():
            return [
                (f"{p}test_completed", _fmt(result.test_completed)),
                (f"{p}duration_ms", _fmt(result.duration_ms)),
                (f"{p}timestamp_ms", _fmt(result.timestamp_ms)),
            ]
        case ProximitySensorResult():
            return [
                (f"{p}sensor_activated", _fmt(result.sensor_activated)),
                (f"{p}activation_time_ms", _fmt(result.activation_time_ms)),
                (f"{p}test_duration_ms", _fmt(result.test_duration_ms)),
                (f"{p}success", _fmt(result.success)),
            ]
    raise TypeError(f"unsupported result type: {type(result).__name__}")


def suite_metrics(suite: SuiteResult) -> list[tuple[str, str]]:
    """Flatten every present result, keys prefixed with the test kind."""

    values: list[tuple[str, str]] = []
    for key, result in suite.items():
        values.extend(result_metrics(result, prefix=f"{key}_"))
    values.append(("overall_score", _fmt(composite_score(suite))))
    return values


@dataclass(frozen=True, slots=True)
class Check:
    name: str
    passed: bool


def pass_fail_checks(suite: SuiteResult) -> list[Check]:
    """Informational pass/fail table; it does not feed the composite score."""

    checks: list[Check] = []
    touch = suite.get(TestKind.TOUCHSCREEN)
    if isinstance(touch, CompositeTouchResult):
        second = touch.second_shape_tracing.shape.value.capitalize()
        checks += [
            Check("Multi-touch", touch.basic_touch.multi_touch_supported),
            Check("Response Time", touch.basic_touch.average_response_time_ms < RESPONSE_TIME_PASS_MS),
            Check("Square Tracing", touch.square_tracing.accuracy >= ACCURACY_PASS_THRESHOLD),
            Check(f"{second} Tracing", touch.second_shape_tracing.accuracy >= ACCURACY_PASS_THRESHOLD),
        ]
    display = suite.get(TestKind.DISPLAY_DEFECT)
    if isinstance(display, DisplayDefectResult):
        checks.append(Check("Display Test", display.test_completed))
    proximity = suite.get(TestKind.PROXIMITY_SENSOR)
    if isinstance(proximity, ProximitySensorResult):
        checks.append(Check("Proximity Sensor", proximity.success))
    return checks
