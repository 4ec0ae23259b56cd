"""Builds and publishes the diagnostic report.

The outbound message mirrors a ``diagnostic_msgs/DiagnosticArray``: an array
header plus one status carrying a free-text summary and flat key/value
metrics.  Publishing never retries; the transport's boolean is handed back to
the caller.
"""

from __future__ import annotations

import logging
from typing import Any

from .clock import SystemWallClock, WallClock, to_ms
from .config import DiagnosticsConfig
from .results import (
    CompositeTouchResult,
    DisplayDefectResult,
    ProximitySensorResult,
    ShapeTracingResult,
    SuiteResult,
    TestResult,
    TouchTestResult,
    composite_score,
    result_metrics,
    suite_metrics,
)
from .transport import Transport

logger = logging.getLogger(__name__)

SUITE_STATUS_NAME = "test_suite"
SUITE_FRAME_ID = "test_suite_diagnostic"


def stamp(epoch_s: float) -> dict[str, int]:
    ms = to_ms(epoch_s)
    return {"sec": ms // 1000, "nanosec": (ms % 1000) * 1_000_000}


def _header(epoch_s: float, frame_id: str) -> dict[str, Any]:
    return {"stamp": stamp(epoch_s), "frame_id": frame_id}


def describe_result(key: str, result: TestResult) -> str:
    match result:
        case CompositeTouchResult():
            b = result.basic_touch
            return (
                f"{key}: Multi-touch: {str(b.multi_touch_supported).lower()}, "
                f"Max touches: {b.max_simultaneous_touches}, "
                f"Response time: {b.average_response_time_ms:.2f}ms, "
                f"Tracing score: {result.overall_score}%"
            )
        case TouchTestResult():
            return (
                f"{key}: Multi-touch: {str(result.multi_touch_supported).lower()}, "
                f"Max touches: {result.max_simultaneous_touches}, "
                f"Response time: {result.average_response_time_ms:.2f}ms"
            )
        case ShapeTracingResult():
            return f"{key}: {result.shape.value} accuracy {result.accuracy}%"
        case DisplayDefectResult():
            return f"{key}: {'completed' if result.test_completed else 'not completed'}"
        case ProximitySensorResult():
            return f"{key}: {'passed' if result.success else 'failed'}"
    raise TypeError(f"unsupported result type: {type(result).__name__}")


def summary_message(suite: SuiteResult) -> str:
    parts = [describe_result(k, r) for k, r in suite.items()]
    return f"Test suite completed. {'; '.join(parts)}. Overall score: {composite_score(suite)}%"


def build_status(
    *,
    name: str,
    message: str,
    hardware_id: str,
    frame_id: str,
    values: list[tuple[str, str]],
    epoch_s: float,
) -> dict[str, Any]:
    return {
        "header": _header(epoch_s, frame_id),
        "name": name,
        "message": message,
        "hardware_id": hardware_id,
        "values": [{"key": k, "value": v} for k, v in values],
    }


def build_array(statuses: list[dict[str, Any]], *, epoch_s: float, frame_id: str) -> dict[str, Any]:
    return {"header": _header(epoch_s, frame_id), "status": statuses}


def build_suite_report(suite: SuiteResult, *, hardware_id: str, epoch_s: float) -> dict[str, Any]:
    if len(suite) == 0:
        raise ValueError("suite has no completed tests to report")
    status = build_status(
        name=SUITE_STATUS_NAME,
        message=summary_message(suite),
        hardware_id=hardware_id,
        frame_id=SUITE_FRAME_ID,
        values=suite_metrics(suite),
        epoch_s=epoch_s,
    )
    return build_array([status], epoch_s=epoch_s, frame_id=SUITE_FRAME_ID)


def build_test_report(key: str, result: TestResult, *, hardware_id: str, epoch_s: float) -> dict[str, Any]:
    frame_id = f"{key}_diagnostic"
    status = build_status(
        name=f"{key}_test",
        message=f"{describe_result(key, result)}.",
        hardware_id=hardware_id,
        frame_id=frame_id,
        values=result_metrics(result),
        epoch_s=epoch_s,
    )
    return build_array([status], epoch_s=epoch_s, frame_id=frame_id)


class ReportPublisher:
    def __init__(
        self,
        transport: Transport,
        *,
        config: DiagnosticsConfig | None = None,
        wall_clock: WallClock | None = None,
    ) -> None:
        self._transport = transport
        self._cfg = config if config is not None else DiagnosticsConfig()
        self._wall = wall_clock if wall_clock is not None else SystemWallClock()

    def publish(self, suite: SuiteResult) -> bool:
        message = build_suite_report(suite, hardware_id=self._cfg.hardware_id, epoch_s=self._wall.time())
        return self._send(message, what="suite report")

    def publish_test(self, key: str, result: TestResult) -> bool:
        """Publish one finished test as its own status.

        The app hooks this to every completed step when DIAG_PUBLISH_EACH_TEST is set.
        """
        message = build_test_report(key, result, hardware_id=self._cfg.hardware_id, epoch_s=self._wall.time())
        return self._send(message, what=f"{key} result")

    def _send(self, message: dict[str, Any], *, what: str) -> bool:
        ok = self._transport.publish(self._cfg.diagnostics_topic, self._cfg.diagnostics_type, message)
        if ok:
            logger.info("Published %s on %s", what, self._cfg.diagnostics_topic)
        else:
            logger.warning("Failed to publish %s on %s", what, self._cfg.diagnostics_topic)
        return ok
