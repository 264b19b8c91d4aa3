"""Project-root lookup and log setup for the command-line entrypoints.

Every entrypoint logs under ``<project root>/logs/`` through the
``subway_ridership`` package logger, so module loggers such as
``subway_ridership.normalize_counters`` write to the same file.
"""

from __future__ import annotations

from datetime import datetime
import logging
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER = "subway_ridership"
ROOT_MARKERS = (".git", "pyproject.toml")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def find_project_root(start: Optional[Path] = None) -> Path:
    """First directory at or above ``start`` holding a root marker.

    Falls back to ``start`` itself (default: the working directory), so a
    fresh checkout without markers still gets its ``data/`` and ``logs/``
    next to where it was run.
    """
    start_path = (start or Path.cwd()).resolve()
    for directory in [start_path, *start_path.parents]:
        if any((directory / marker).exists() for marker in ROOT_MARKERS):
            return directory
    return start_path


def configure_logging(base_dir: Path, log_name: str, *, timestamped: bool = False) -> Path:
    """Send package logs to ``logs/<log_name>.log`` and the console.

    With ``timestamped`` each run gets its own ``<log_name>_<YYYYmmdd_HHMMSS>.log``.
    Handlers from an earlier call are closed first, so calling this twice in
    one process does not duplicate output.
    """
    log_dir = base_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    if timestamped:
        log_name = f"{log_name}_{datetime.now():%Y%m%d_%H%M%S}"
    log_path = log_dir / f"{log_name}.log"

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.setLevel(logging.INFO)
    package_logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in (logging.FileHandler(log_path), logging.StreamHandler()):
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)

    return log_path
