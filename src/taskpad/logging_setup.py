# src/taskpad/logging_setup.py

"""
Logging for the taskpad CLI.

Console output shares the terminal with the REPL prompt, so it only carries what a
person typing commands should see: board events, storage retries, write-budget
delays, quota failures. The chunked writer logs every commit and coalesced save
at DEBUG and the display refresher runs every frame; that chatter goes to the
log file only.

The file gets everything and is rotated, since a session with a running
stopwatch can stay open for days.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

LOG_FILE_NAME = "taskpad.log"
LOG_FILE_MAX_BYTES = 2 * 1024 * 1024
LOG_FILE_BACKUPS = 3

# Lowest level each logger may print on the console. The longest matching prefix wins;
# loggers outside this table (third-party libraries) print errors only.
CONSOLE_FLOORS: dict[str, int] = {
    "taskpad": logging.DEBUG,
    "taskpad.storage": logging.INFO,
    "taskpad.storage.sqlite_backend": logging.WARNING,
    "taskpad.timer.refresh": logging.WARNING,
    "taskpad.connectors.loop_runner": logging.WARNING,
    "py.warnings": logging.ERROR,
}
DEFAULT_CONSOLE_FLOOR = logging.ERROR


def console_floor(logger_name: str) -> int:
    match_len = -1
    floor = DEFAULT_CONSOLE_FLOOR
    for prefix, level in CONSOLE_FLOORS.items():
        if logger_name == prefix or logger_name.startswith(prefix + "."):
            if len(prefix) > match_len:
                match_len, floor = len(prefix), level
    return floor


class _ConsoleNoiseFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= console_floor(record.name)


def level_from_name(name: Any, default: int = logging.INFO) -> int:
    """Map "debug"/"INFO"/... to a logging level; unknown names give default."""
    level = logging.getLevelName(str(name).strip().upper())
    return level if isinstance(level, int) else default


def setup_logging(settings: Any, *, file_level: int = logging.DEBUG) -> Path:
    """
    Configure the root logger from Settings (log_level, data_dir).

    Replaces any existing root handlers, so call it once at startup.
    Returns the path of the log file.
    """
    log_dir = Path(settings.data_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME
    console_level = level_from_name(settings.log_level)

    root = logging.getLogger()
    root.setLevel(min(console_level, file_level))
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    logging.captureWarnings(True)
    logging.getLogger(__name__).debug(
        "Logging to %s (console level %s)", log_file, logging.getLevelName(console_level)
    )
    return log_file
