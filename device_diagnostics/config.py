"""Runtime configuration from environment variables with defaults.

All variables use the ``DIAG_`` prefix; see ``load_config`` for the list.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "DIAG_"


@dataclass(frozen=True, slots=True)
class DiagnosticsConfig:
    bus_url: str = "ws://localhost:9090"
    diagnostics_topic: str = "/diagnostics"
    diagnostics_type: str = "diagnostic_msgs/DiagnosticArray"
    confirmation_topic: str = "/test_confirmation"
    confirmation_type: str = "std_msgs/String"
    hardware_id: str = "mobile_test_suite"
    reconnect_delay_s: float = 0.5
    db_path: Path | None = None
    log_level: str = "INFO"
    publish_each_test: bool = False


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{ENV_PREFIX}{name} must be >= 0")
    return value


_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


def _flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(ENV_PREFIX + name, "").strip().lower()
    if raw == "":
        return default
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ValueError(f"{ENV_PREFIX}{name} must be a boolean, got {raw!r}")


def load_config(environ: Mapping[str, str] | None = None) -> DiagnosticsConfig:
    """Build the config from ``environ`` (``os.environ`` by default).

    Recognised variables: DIAG_BUS_URL, DIAG_DIAGNOSTICS_TOPIC,
    DIAG_DIAGNOSTICS_TYPE, DIAG_CONFIRMATION_TOPIC, DIAG_CONFIRMATION_TYPE,
    DIAG_HARDWARE_ID, DIAG_RECONNECT_DELAY_S, DIAG_DB_PATH (empty disables run
    history), DIAG_LOG_LEVEL and DIAG_PUBLISH_EACH_TEST (also publish every
    finished test as its own status).
    """

    env = os.environ if environ is None else environ
    defaults = DiagnosticsConfig()

    def text(name: str, default: str) -> str:
        value = env.get(ENV_PREFIX + name, "").strip()
        return value or default

    db_raw = env.get(ENV_PREFIX + "DB_PATH", "").strip()
    return DiagnosticsConfig(
        bus_url=text("BUS_URL", defaults.bus_url),
        diagnostics_topic=text("DIAGNOSTICS_TOPIC", defaults.diagnostics_topic),
        diagnostics_type=text("DIAGNOSTICS_TYPE", defaults.diagnostics_type),
        confirmation_topic=text("CONFIRMATION_TOPIC", defaults.confirmation_topic),
        confirmation_type=text("CONFIRMATION_TYPE", defaults.confirmation_type),
        hardware_id=text("HARDWARE_ID", defaults.hardware_id),
        reconnect_delay_s=_float(env, "RECONNECT_DELAY_S", defaults.reconnect_delay_s),
        db_path=Path(db_raw) if db_raw else None,
        log_level=text("LOG_LEVEL", defaults.log_level).upper(),
        publish_each_test=_flag(env, "PUBLISH_EACH_TEST", defaults.publish_each_test),
    )
