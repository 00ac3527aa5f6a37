# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskpad.cli.bootstrap import create_initial_state, shutdown_app
from taskpad.connectors.loop_runner import start_loop_in_background
from taskpad.core.state import AppState
from taskpad.storage.chunked_store import ChunkedStore
from taskpad.tasks.task_board import TaskBoard

from .fakes import EventLog, FakeClock, RecordingBackingStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with bootstrap and AppState.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="taskpad-test",
        log_level="DEBUG",
        console_enabled=False,
        data_dir=tmp_path / "data",
        store_backend="memory",
        store_path=tmp_path / "data" / "store.sqlite3",
        # No throttle window: writes happen as soon as the writer wakes up.
        write_throttle_ms=0,
        max_writes_per_minute=10_000,
        target_chunk_bytes=7 * 1024,
        quota_bytes_per_item=8 * 1024,
        quota_bytes=100 * 1024,
    )


@pytest.fixture()
def backend() -> RecordingBackingStore:
    return RecordingBackingStore()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def events() -> EventLog:
    return EventLog()


@pytest.fixture()
def store(backend: RecordingBackingStore) -> ChunkedStore:
    return ChunkedStore(backend, write_throttle_ms=0)


@pytest.fixture()
def board(store: ChunkedStore, clock: FakeClock, events: EventLog) -> TaskBoard:
    """Board with awaited writes and no display refresher."""
    return TaskBoard(
        store,
        clock=clock,
        on_row_status_changed=events.on_row,
        on_timer_button_state_changed=events.on_button,
    )


@pytest.fixture()
def state(settings: SimpleNamespace):
    """
    AppState wired like the CLI: background loop thread + in-memory backing store.

    NOTE: commands block on the loop thread, so tests call them synchronously.
    """
    runner = start_loop_in_background(name="taskpad-test-loop")
    assert runner is not None
    app: AppState = create_initial_state(settings=settings, runner=runner)
    app.run(app.board.load())
    try:
        yield app
    finally:
        shutdown_app(app)
