from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
import sqlite3
import time

from .results import SuiteResult, composite_score, suite_metrics
from .suite import StepStatus

SCHEMA_VERSION = 1


def open_db(path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(path)
    conn.execute("PRAGMA foreign_keys=ON;")
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    _migrate(conn)
    return conn


def _utc_now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time()))


def _migrate(conn: sqlite3.Connection) -> None:
    row = conn.execute("PRAGMA user_version;").fetchone()
    ver = int(row[0]) if row else 0
    if ver >= SCHEMA_VERSION:
        return

    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS session (
                id INTEGER PRIMARY KEY,
                created_at_utc TEXT NOT NULL
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS suite_run (
                id INTEGER PRIMARY KEY,
                session_id INTEGER NOT NULL REFERENCES session(id) ON DELETE CASCADE,
                hardware_id TEXT NOT NULL,
                app_version TEXT NOT NULL,
                composite_score INTEGER NOT NULL,
                published INTEGER NOT NULL,
                completed_at_utc TEXT NOT NULL
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS step_outcome (
                run_id INTEGER NOT NULL REFERENCES suite_run(id) ON DELETE CASCADE,
                seq INTEGER NOT NULL,
                step_id TEXT NOT NULL,
                status TEXT NOT NULL,
                PRIMARY KEY (run_id, seq)
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS metric (
                run_id INTEGER NOT NULL REFERENCES suite_run(id) ON DELETE CASCADE,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                PRIMARY KEY (run_id, key)
            );
            """
        )
        conn.execute(f"PRAGMA user_version={SCHEMA_VERSION};")


def record_suite_run(
    *,
    db_path: Path,
    suite: SuiteResult,
    hardware_id: str,
    app_version: str,
    published: bool,
    step_statuses: Mapping[str, StepStatus] | None = None,
) -> int:
    """
    Store one finished suite:
      session -> suite_run -> step_outcome + metric
    """
    conn = open_db(db_path)
    try:
        return _insert_run(
            conn=conn,
            suite=suite,
            hardware_id=hardware_id,
            app_version=app_version,
            published=published,
            step_statuses=step_statuses or {},
        )
    finally:
        conn.close()


def _insert_run(
    *,
    conn: sqlite3.Connection,
    suite: SuiteResult,
    hardware_id: str,
    app_version: str,
    published: bool,
    step_statuses: Mapping[str, StepStatus],
) -> int:
    now = _utc_now_iso()

    with conn:
        cur = conn.execute("INSERT INTO session(created_at_utc) VALUES (?)", (now,))
        session_id = int(cur.lastrowid)

        cur = conn.execute(
            """
            INSERT INTO suite_run(
                session_id, hardware_id, app_version, composite_score, published, completed_at_utc
            )
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                session_id,
                str(hardware_id),
                app_version,
                int(composite_score(suite)),
                1 if published else 0,
                now,
            ),
        )
        run_id = int(cur.lastrowid)

        for seq, (step_id, status) in enumerate(step_statuses.items()):
            conn.execute(
                "INSERT INTO step_outcome(run_id, seq, step_id, status) VALUES (?, ?, ?, ?)",
                (run_id, seq, str(step_id), StepStatus(status).value),
            )

        for k, v in suite_metrics(suite):
            conn.execute("INSERT INTO metric(run_id, key, value) VALUES (?, ?, ?)", (run_id, k, v))

    return run_id


def load_run_metrics(db_path: Path, run_id: int) -> dict[str, str]:
    conn = open_db(db_path)
    try:
        rows = conn.execute(
            "SELECT key, value FROM metric WHERE run_id = ? ORDER BY rowid", (int(run_id),)
        ).fetchall()
    finally:
        conn.close()
    return {str(k): str(v) for k, v in rows}


def load_step_outcomes(db_path: Path, run_id: int) -> list[tuple[str, StepStatus]]:
    conn = open_db(db_path)
    try:
        rows = conn.execute(
            "SELECT step_id, status FROM step_outcome WHERE run_id = ? ORDER BY seq", (int(run_id),)
        ).fetchall()
    finally:
        conn.close()
    return [(str(s), StepStatus(v)) for s, v in rows]
