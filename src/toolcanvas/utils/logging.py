"""Logging setup for the ``toolcanvas`` command line.

Rendered HTML goes to stdout, so the console handler writes to stderr and only
shows warnings unless debug logging is on. The log file always records the
requested level.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from pathlib import Path

__all__ = ["setup_logging"]

LOG_DIR_ENV = "TOOLCANVAS_LOG_DIR"
LOG_FILE_NAME = "toolcanvas.log"

_FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
_ROTATE_BYTES = 512_000
_ROTATE_BACKUPS = 2

# Minimum level per third-party logger; httpx logs every request at INFO.
_THIRD_PARTY_FLOORS = {
    "asyncio": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "markdown_it": logging.WARNING,
}

_active_log: Path | None = None


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    force: bool = False,
) -> Path:
    """Route root logging to a rotating file and, optionally, to stderr.

    Returns the log file path. A second call returns the active path untouched
    unless ``force`` is set.
    """

    global _active_log
    if _active_log is not None and not force:
        return _active_log

    directory = Path(log_dir or os.environ.get(LOG_DIR_ENV) or Path.home() / ".toolcanvas" / "logs")
    directory = directory.expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    log_path = directory / LOG_FILE_NAME

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=_ROTATE_BYTES, backupCount=_ROTATE_BACKUPS, encoding="utf-8"
    )
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handlers: list[logging.Handler] = [file_handler]

    if console:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(level if level <= logging.DEBUG else logging.WARNING)
        stderr_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
        handlers.append(stderr_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    for name, floor in _THIRD_PARTY_FLOORS.items():
        logging.getLogger(name).setLevel(max(level, floor))

    _active_log = log_path
    return log_path
