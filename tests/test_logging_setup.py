# tests/test_logging_setup.py

from __future__ import annotations

import logging
from pathlib import Path
from types import SimpleNamespace

import pytest

from taskpad.logging_setup import (
    DEFAULT_CONSOLE_FLOOR,
    _ConsoleNoiseFilter,
    console_floor,
    level_from_name,
    setup_logging,
)


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


@pytest.fixture()
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in list(root.handlers):
        if h not in handlers:
            root.removeHandler(h)
            h.close()
    for h in handlers:
        if h not in root.handlers:
            root.addHandler(h)
    root.setLevel(level)
    logging.captureWarnings(False)


def test_console_floor_uses_longest_prefix() -> None:
    assert console_floor("taskpad.tasks.task_board") == logging.DEBUG
    assert console_floor("taskpad.storage.chunked_store") == logging.INFO
    assert console_floor("taskpad.storage.sqlite_backend") == logging.WARNING
    assert console_floor("taskpad.timer.refresh") == logging.WARNING
    assert console_floor("taskpadx.other") == DEFAULT_CONSOLE_FLOOR
    assert console_floor("asyncio") == DEFAULT_CONSOLE_FLOOR


def test_console_filter_keeps_storage_warnings_and_drops_commit_chatter() -> None:
    f = _ConsoleNoiseFilter()
    store = "taskpad.storage.chunked_store"

    assert f.filter(_record(store, logging.WARNING))  # retries, write budget
    assert f.filter(_record(store, logging.INFO))
    assert not f.filter(_record(store, logging.DEBUG))  # per-commit lines
    assert not f.filter(_record("taskpad.timer.refresh", logging.INFO))
    assert not f.filter(_record("asyncio", logging.WARNING))
    assert f.filter(_record("asyncio", logging.ERROR))


def test_level_from_name() -> None:
    assert level_from_name("debug") == logging.DEBUG
    assert level_from_name(" WARNING ") == logging.WARNING
    assert level_from_name("loud") == logging.INFO


@pytest.mark.usefixtures("restore_root_logging")
def test_setup_logging_from_settings(tmp_path: Path) -> None:
    settings = SimpleNamespace(data_dir=tmp_path / "logs", log_level="warning")

    log_file = setup_logging(settings)
    logging.getLogger("taskpad.storage.chunked_store").debug("committed 2 chunks")
    for h in logging.getLogger().handlers:
        h.flush()

    assert log_file == tmp_path / "logs" / "taskpad.log"
    assert "committed 2 chunks" in log_file.read_text(encoding="utf-8")

    console = [
        h
        for h in logging.getLogger().handlers
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
    ]
    assert len(console) == 1
    assert console[0].level == logging.WARNING
