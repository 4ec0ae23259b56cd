from __future__ import annotations

import sqlite3
from pathlib import Path

from device_diagnostics.persistence import (
    SCHEMA_VERSION,
    load_run_metrics,
    load_step_outcomes,
    open_db,
    record_suite_run,
)
from device_diagnostics.results import DisplayDefectResult, ProximitySensorResult, SuiteResult
from device_diagnostics.suite import StepStatus


def _suite() -> SuiteResult:
    return (
        SuiteResult()
        .with_result("displayDefect", DisplayDefectResult(True, 6000, 1_700_000_000_000))
        .with_result("proximitySensor", ProximitySensorResult(True, 1500, 10_000, True))
    )


def test_schema_is_versioned(tmp_path: Path) -> None:
    db = tmp_path / "runs.sqlite3"
    conn = open_db(db)
    try:
        (ver,) = conn.execute("PRAGMA user_version;").fetchone()
        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    finally:
        conn.close()
    assert ver == SCHEMA_VERSION
    assert {"session", "suite_run", "step_outcome", "metric"} <= tables

    # Re-opening an up-to-date database is a no-op.
    open_db(db).close()


def test_record_and_load_round_trip(tmp_path: Path) -> None:
    db = tmp_path / "runs.sqlite3"
    statuses = {
        "touchscreen": StepStatus.ERROR,
        "displayDefect": StepStatus.COMPLETED,
        "proximitySensor": StepStatus.COMPLETED,
        "report": StepStatus.COMPLETED,
    }
    run_id = record_suite_run(
        db_path=db,
        suite=_suite(),
        hardware_id="bench_01",
        app_version="0.1.0",
        published=True,
        step_statuses=statuses,
    )
    assert run_id >= 1

    metrics = load_run_metrics(db, run_id)
    assert metrics["displayDefect_test_completed"] == "true"
    assert metrics["proximitySensor_activation_time_ms"] == "1500"
    assert metrics["overall_score"] == "100"
    assert list(metrics)[-1] == "overall_score"

    assert load_step_outcomes(db, run_id) == list(statuses.items())

    conn = sqlite3.connect(db)
    try:
        row = conn.execute(
            "SELECT hardware_id, composite_score, published FROM suite_run WHERE id = ?", (run_id,)
        ).fetchone()
    finally:
        conn.close()
    assert row == ("bench_01", 100, 1)


def test_runs_are_kept_separately(tmp_path: Path) -> None:
    db = tmp_path / "runs.sqlite3"
    first = record_suite_run(db_path=db, suite=_suite(), hardware_id="a", app_version="0.1.0", published=False)
    only_display = SuiteResult().with_result("displayDefect", DisplayDefectResult(False, 0, 0))
    second = record_suite_run(db_path=db, suite=only_display, hardware_id="a", app_version="0.1.0", published=True)
    assert second != first
    assert "proximitySensor_success" in load_run_metrics(db, first)
    assert load_run_metrics(db, second) == {
        "displayDefect_test_completed": "false",
        "displayDefect_duration_ms": "0",
        "displayDefect_timestamp_ms": "0",
        "overall_score": "0",
    }
    assert load_step_outcomes(db, first) == []
    assert load_run_metrics(db, 999) == {}
