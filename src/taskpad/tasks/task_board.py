# src/taskpad/tasks/task_board.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from ..core.ports import Clock
from ..storage.chunked_store import ChunkedStore
from ..timer.refresh import DisplayRefresher
from ..timer.time_utils import parse_time_input
from ..timer.timer_engine import TimerEngine
from .task_models import Task, TaskStatus, create_task

logger = logging.getLogger(__name__)


def _noop_row(task_id: str, status: str) -> None:
    return


def _noop_button(task_id: str, is_running: bool) -> None:
    return


class TaskBoard:
    """
    In-memory task collection plus the event handlers that mutate it.

    Every mutation happens synchronously in memory, then a full snapshot is handed
    to ChunkedStore (which throttles and coalesces the physical writes).
    Timer transitions go through TimerEngine, which triggers its own saves.

    Must be driven from one event loop.
    """

    def __init__(
        self,
        store: ChunkedStore,
        *,
        clock: Clock | None = None,
        on_row_status_changed: Callable[[str, str], None] | None = None,
        on_timer_button_state_changed: Callable[[str, bool], None] | None = None,
        render_elapsed: Callable[[str, str], None] | None = None,
        is_visible: Callable[[str], bool] | None = None,
        await_writes: bool = True,
    ) -> None:
        self.store = store
        # False: mutations return as soon as the snapshot is queued; write errors are logged.
        self.await_writes = await_writes
        self._tasks: list[Task] = []
        self._background_saves: set[asyncio.Future[None]] = set()
        self._on_row_status_changed = on_row_status_changed or _noop_row
        self._on_timer_button_state_changed = on_timer_button_state_changed or _noop_button

        self.timer = TimerEngine(
            get_tasks=lambda: self._tasks,
            save_tasks=self.store.save_tasks,
            on_row_status_changed=self._on_row_status_changed,
            on_timer_button_state_changed=self._timer_button_changed,
            clock=clock,
        )
        self.refresher: DisplayRefresher | None = None
        if render_elapsed is not None:
            self.refresher = DisplayRefresher(
                elapsed_for=self.timer.current_elapsed,
                render=render_elapsed,
                is_visible=is_visible,
            )

    # ---- queries ----

    def tasks(self) -> list[Task]:
        return list(self._tasks)

    def get(self, task_id: str) -> Task | None:
        for t in self._tasks:
            if t.id == task_id:
                return t
        return None

    def _require(self, task_id: str) -> Task:
        task = self.get(task_id)
        if task is None:
            raise KeyError(f"Unknown task: {task_id}")
        return task

    # ---- lifecycle ----

    async def load(self) -> list[Task]:
        """Replace the in-memory collection with what the store holds."""
        self.timer.clear_all()
        if self.refresher is not None:
            await self.refresher.stop()
        self._tasks = await self.store.load_tasks()
        # No stopwatch survives a restart, so nothing can be in progress yet.
        stranded = [t for t in self._tasks if t.status is TaskStatus.IN_PROGRESS]
        for t in stranded:
            t.status = TaskStatus.TODO
        if stranded:
            logger.info("Reset %d in-progress tasks without a running timer to todo.", len(stranded))
        logger.info("Board loaded with %d tasks.", len(self._tasks))
        try:
            # Stopwatches are runtime-only now; drop records left by per-task timer persistence.
            await self.store.clear_timer_states()
        except Exception as exc:
            logger.warning("Could not purge stale timer records: %s", exc)
        return self.tasks()

    async def save(self) -> None:
        await self.store.save_tasks(self._tasks)

    async def _persist(self) -> None:
        if self.await_writes:
            await self.save()
            return
        bg = self.store.save_tasks(self._tasks)
        self._background_saves.add(bg)
        bg.add_done_callback(self._on_background_save_done)

    def _on_background_save_done(self, bg: asyncio.Future[None]) -> None:
        self._background_saves.discard(bg)
        if bg.cancelled():
            return
        exc = bg.exception()
        if exc is not None:
            logger.error("Failed to save tasks: %s", exc)

    async def _settle_timer_saves(self) -> None:
        if self.await_writes:
            await self.timer.wait_for_saves()

    async def _drain_pending_saves(self) -> None:
        await self.timer.wait_for_saves()
        while self._background_saves:
            await asyncio.gather(*list(self._background_saves), return_exceptions=True)

    async def close(self) -> None:
        """Stop refresh and timers, persist folded elapsed time, wait for writes."""
        if self.refresher is not None:
            await self.refresher.stop()
        had_running = bool(self.timer.running_task_ids())
        self.timer.clear_all()
        await self._drain_pending_saves()
        if had_running:
            await self.save()
        await self.store.flush()

    # ---- mutations ----

    async def add_task(
        self,
        name: str,
        *,
        notes: str = "",
        additional_columns: dict[str, str] | None = None,
    ) -> Task:
        task = create_task(name, notes=notes, additional_columns=additional_columns)
        self._tasks.append(task)
        logger.debug("Task added id=%s", task.id)
        await self._persist()
        return task

    async def rename(self, task_id: str, name: str) -> Task:
        if not name or not name.strip():
            raise ValueError("name is required")
        task = self._require(task_id)
        task.name = name.strip()
        task.touch()
        await self._persist()
        return task

    async def set_notes(self, task_id: str, notes: str) -> Task:
        task = self._require(task_id)
        task.notes = notes
        task.touch()
        await self._persist()
        return task

    async def set_status(self, task_id: str, status: TaskStatus | str) -> Task:
        """
        Set a task's status, keeping it consistent with its stopwatch.

        - in-progress starts the stopwatch (a done task is reopened first)
        - any other status stops a running stopwatch; done wins over the restore
        """
        task = self._require(task_id)
        new_status = TaskStatus(status)
        running = self.timer.is_running(task_id)

        if new_status is TaskStatus.IN_PROGRESS:
            if not running:
                if task.status is TaskStatus.DONE:
                    task.status = TaskStatus.TODO
                self.timer.start(task_id)
                await self._settle_timer_saves()
            return task

        if running:
            if new_status is TaskStatus.DONE:
                task.status = TaskStatus.DONE
            self.timer.stop(task_id)

        if task.status is not new_status:
            task.status = new_status
            task.touch()
            self._on_row_status_changed(task_id, new_status.value)
        await self._persist()
        return task

    async def set_elapsed(self, task_id: str, value: str | int) -> Task:
        """Overwrite elapsed time ("H:MM:SS"/"M:SS" or ms); rebases a running stopwatch."""
        task = self._require(task_id)
        if isinstance(value, str):
            ms = parse_time_input(value)
            if ms is None:
                raise ValueError(f"Invalid time format: {value!r} (use M:SS or H:MM:SS)")
        else:
            ms = max(0, int(value))

        if self.timer.is_running(task_id):
            self.timer.set_base_elapsed_ms(task_id, ms)
        else:
            task.elapsed_ms = ms
            task.touch()
        await self._persist()
        return task

    async def toggle_timer(self, task_id: str) -> bool:
        """Toggle the stopwatch; returns whether it is running afterwards."""
        self._require(task_id)
        self.timer.toggle(task_id)
        await self._settle_timer_saves()
        return self.timer.is_running(task_id)

    async def delete_task(self, task_id: str) -> None:
        self._require(task_id)
        if self.timer.is_running(task_id):
            self.timer.stop(task_id)
        self._tasks = [t for t in self._tasks if t.id != task_id]
        logger.debug("Task deleted id=%s", task_id)
        await self._persist()
        try:
            await self.store.clear_timer_state(task_id)
        except Exception as exc:
            logger.warning("Could not clear timer record of %s: %s", task_id, exc)

    async def clear_all(self) -> None:
        """Delete every task: tear down timers and bulk-clear the store."""
        self.timer.clear_all()
        if self.refresher is not None:
            await self.refresher.stop()
        self._tasks = []
        await self._drain_pending_saves()
        await self.store.clear_all_data()

    # ---- callbacks ----

    def _timer_button_changed(self, task_id: str, is_running: bool) -> None:
        if self.refresher is not None:
            if is_running:
                self.refresher.track(task_id)
            else:
                self.refresher.untrack(task_id)
        self._on_timer_button_state_changed(task_id, is_running)
