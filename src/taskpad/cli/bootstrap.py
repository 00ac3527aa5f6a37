# src/taskpad/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the backing store, chunked store and task board into AppState,
- starts the background event loop and hydrates the board from storage.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..connectors.loop_runner import LoopRunner, start_loop_in_background
from ..core.ports import BackingStore
from ..core.state import AppState
from ..storage.chunked_store import ChunkedStore
from ..storage.memory_backend import InMemoryBackingStore
from ..storage.sqlite_backend import SqliteBackingStore
from ..tasks.task_board import TaskBoard

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.store_path.parent.mkdir(parents=True, exist_ok=True)


def create_backend(settings) -> BackingStore:
    if settings.store_backend == "memory":
        logger.warning("Using in-memory backing store: tasks will not survive a restart.")
        return InMemoryBackingStore(
            quota_bytes_per_item=settings.quota_bytes_per_item,
            quota_bytes=settings.quota_bytes,
        )
    return SqliteBackingStore(
        settings.store_path,
        quota_bytes_per_item=settings.quota_bytes_per_item,
        quota_bytes=settings.quota_bytes,
    )


def create_initial_state(*, settings=None, runner: LoopRunner | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    backend = create_backend(settings)
    store = ChunkedStore(
        backend,
        write_throttle_ms=settings.write_throttle_ms,
        max_writes_per_minute=settings.max_writes_per_minute,
        target_chunk_bytes=settings.target_chunk_bytes,
    )

    displays: dict[str, str] = {}
    board = TaskBoard(
        store,
        render_elapsed=displays.__setitem__,
        # Console rows are not on screen between commands: refresh them once per second.
        is_visible=lambda _task_id: False,
        # Commands return once the snapshot is queued; the throttle window would stall the REPL.
        await_writes=False,
    )

    return AppState(
        settings=settings,
        backend=backend,
        store=store,
        board=board,
        runner=runner,
        displays=displays,
    )


def start_app(*, settings=None) -> AppState:
    """Build state, start the loop thread and load persisted tasks."""
    runner = start_loop_in_background()
    if runner is None:
        raise RuntimeError("Could not start the event loop thread")

    state = create_initial_state(settings=settings, runner=runner)
    tasks = state.run(state.board.load())
    logger.info("Loaded %d tasks.", len(tasks))
    return state


def shutdown_app(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        state.run(state.board.close())
    except Exception:
        logger.exception("Failed to persist tasks on shutdown.")

    close = getattr(state.backend, "close", None)
    if callable(close):
        try:
            close()
        except Exception:
            logger.debug("Backend close failed.", exc_info=True)

    if state.runner is not None:
        state.runner.stop()
        state.runner.join(timeout=10.0)
