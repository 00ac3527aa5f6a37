# src/taskpad/timer/timer_engine.py

"""
Per-task stopwatch engine.

Pure time math over an injected clock:

    current_elapsed = base_elapsed_ms + (now() - start_time)    while running
    current_elapsed = task.elapsed_ms                           while stopped

The engine owns a mapping task_id -> TimerRecord (runtime only, never persisted).
Starting and stopping mutate the task (status, elapsed_ms), notify the rendering
callbacks and trigger a full save. Display refresh lives in timer.refresh.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ..core.ports import Clock, RowStatusListener, TaskSaver, TimerButtonListener
from ..tasks.task_models import Task, TaskStatus
from .time_utils import wall_clock_ms

logger = logging.getLogger(__name__)


class InvalidTimerTransition(Exception):
    """The requested stopwatch transition is not allowed (e.g. starting a done task)."""


@dataclass(slots=True)
class TimerRecord:
    start_time: float
    base_elapsed_ms: int
    prior_status: TaskStatus

    def elapsed_at(self, now: float) -> int:
        return max(0, int(self.base_elapsed_ms + (now - self.start_time)))


def _status_after_stop(current: TaskStatus, prior: TaskStatus) -> TaskStatus:
    if current is TaskStatus.DONE:
        return TaskStatus.DONE
    if prior is TaskStatus.IN_PROGRESS:
        return TaskStatus.TODO
    return prior


class TimerEngine:
    def __init__(
        self,
        *,
        get_tasks: Callable[[], list[Task]],
        save_tasks: TaskSaver,
        on_row_status_changed: RowStatusListener,
        on_timer_button_state_changed: TimerButtonListener,
        clock: Clock | None = None,
    ) -> None:
        self._get_tasks = get_tasks
        self._save_tasks = save_tasks
        self._on_row_status_changed = on_row_status_changed
        self._on_timer_button_state_changed = on_timer_button_state_changed
        self._clock: Clock = clock or wall_clock_ms

        self._timers: dict[str, TimerRecord] = {}
        self._pending_saves: set[asyncio.Future[Any]] = set()

    # ---- queries ----

    def is_running(self, task_id: str) -> bool:
        return task_id in self._timers

    def running_task_ids(self) -> list[str]:
        return list(self._timers)

    def current_elapsed(self, task_id: str) -> int:
        rec = self._timers.get(task_id)
        if rec is not None:
            return rec.elapsed_at(self._clock())
        task = self._find(task_id)
        return task.elapsed_ms if task is not None else 0

    # ---- transitions ----

    def toggle(self, task_id: str) -> None:
        task = self._find(task_id)
        if task is None:
            logger.debug("toggle ignored: unknown task %s", task_id)
            return

        if task_id in self._timers:
            self.stop(task_id)
            return

        try:
            self.start(task_id)
        except InvalidTimerTransition as exc:
            logger.debug("toggle ignored: %s", exc)

    def start(self, task_id: str) -> None:
        task = self._find(task_id)
        if task is None:
            raise KeyError(task_id)
        if task_id in self._timers:
            return
        if not task.status.allows_timer:
            raise InvalidTimerTransition(f"task {task_id} is {task.status.value}")

        self._timers[task_id] = TimerRecord(
            start_time=self._clock(),
            base_elapsed_ms=task.elapsed_ms,
            prior_status=task.status,
        )
        task.status = TaskStatus.IN_PROGRESS
        task.touch()
        logger.debug("Timer started task=%s base_ms=%s", task_id, task.elapsed_ms)

        self._on_row_status_changed(task_id, task.status.value)
        self._on_timer_button_state_changed(task_id, True)
        self._trigger_save()

    def stop(self, task_id: str) -> None:
        rec = self._timers.get(task_id)
        if rec is None:
            return

        task = self._find(task_id)
        if task is None:
            # Task vanished while running (deleted elsewhere): nothing left to update.
            del self._timers[task_id]
            return

        task.elapsed_ms = rec.elapsed_at(self._clock())
        task.status = _status_after_stop(task.status, rec.prior_status)
        task.touch()
        del self._timers[task_id]
        logger.debug("Timer stopped task=%s elapsed_ms=%s", task_id, task.elapsed_ms)

        self._on_row_status_changed(task_id, task.status.value)
        self._on_timer_button_state_changed(task_id, False)
        self._trigger_save()

    def set_base_elapsed_ms(self, task_id: str, ms: int) -> None:
        """
        Rebase a running stopwatch to `ms` without stopping it.

        No-op when the task's timer is not running.
        """
        rec = self._timers.get(task_id)
        if rec is None:
            return
        task = self._find(task_id)
        if task is None:
            return

        ms = max(0, int(ms))
        rec.base_elapsed_ms = ms
        rec.start_time = self._clock()
        task.elapsed_ms = ms
        task.touch()

    def clear_all(self) -> None:
        """
        Stop every running timer without saving or notifying.

        Elapsed time is folded into each task and its status restored, so the caller's
        final bulk save (if any) persists the right values.
        """
        now = self._clock()
        tasks = {t.id: t for t in self._get_tasks()}
        for task_id, rec in self._timers.items():
            task = tasks.get(task_id)
            if task is None:
                continue
            task.elapsed_ms = rec.elapsed_at(now)
            task.status = _status_after_stop(task.status, rec.prior_status)
        if self._timers:
            logger.debug("Cleared %d running timers", len(self._timers))
        self._timers.clear()

    # ---- persistence ----

    def _trigger_save(self) -> None:
        try:
            result = self._save_tasks(self._get_tasks())
        except Exception as exc:
            logger.error("Failed to save timer state: %s", exc)
            return
        if not inspect.isawaitable(result):
            return

        fut = asyncio.ensure_future(result)
        self._pending_saves.add(fut)
        fut.add_done_callback(self._on_save_done)

    def _on_save_done(self, fut: asyncio.Future[Any]) -> None:
        self._pending_saves.discard(fut)
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc is not None:
            logger.error("Failed to save timer state: %s", exc)

    async def wait_for_saves(self) -> None:
        """Await every save triggered by a timer transition so far."""
        while self._pending_saves:
            await asyncio.gather(*list(self._pending_saves), return_exceptions=True)

    def _find(self, task_id: str) -> Task | None:
        for t in self._get_tasks():
            if t.id == task_id:
                return t
        return None
