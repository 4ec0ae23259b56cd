from __future__ import annotations

import sys
from pathlib import Path


def _ensure_repo_root_on_path() -> None:
    """Put the repository root (parent of this package) on ``sys.path``.

    Needed when the file is run as a script (``python device_diagnostics/__main__.py``)
    rather than with ``python -m device_diagnostics``.
    """
    pkg_dir = Path(__file__).resolve().parent
    repo_root_str = str(pkg_dir.parent)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


try:
    from .app import run  # type: ignore[attr-defined]
    from .config import load_config
    from .logging_config import configure_logging
except ImportError:
    _ensure_repo_root_on_path()
    from device_diagnostics.app import run  # type: ignore[attr-defined]
    from device_diagnostics.config import load_config
    from device_diagnostics.logging_config import configure_logging


def main() -> int:
    """Entry point for running the diagnostics suite from the command line."""
    config = load_config()
    configure_logging(config.log_level)
    return run(config=config)


if __name__ == "__main__":
    raise SystemExit(main())
