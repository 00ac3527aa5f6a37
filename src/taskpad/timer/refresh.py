# src/taskpad/timer/refresh.py

"""
Batched display refresh for running stopwatches.

A small cooperative loop that:
- wakes once per frame,
- re-renders every tracked row that is due, in one batch,
- refreshes visible rows every frame and hidden rows once per second.

Correctness never depends on this loop: the displayed value is always recomputed
from TimerEngine.current_elapsed, so a late or skipped frame only delays the text.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

from .time_utils import format_hms

logger = logging.getLogger(__name__)

FRAME_INTERVAL_S = 1 / 60
HIDDEN_INTERVAL_S = 1.0


class DisplayRefresher:
    def __init__(
        self,
        *,
        elapsed_for: Callable[[str], int],
        render: Callable[[str, str], None],
        is_visible: Callable[[str], bool] | None = None,
        frame_interval_s: float = FRAME_INTERVAL_S,
        hidden_interval_s: float = HIDDEN_INTERVAL_S,
    ) -> None:
        self._elapsed_for = elapsed_for
        self._render = render
        self._is_visible = is_visible or (lambda _task_id: True)
        self.frame_interval_s = max(0.001, float(frame_interval_s))
        self.hidden_interval_s = max(self.frame_interval_s, float(hidden_interval_s))

        self._next_due: dict[str, float] = {}
        self._runner: asyncio.Task[None] | None = None

    def is_tracking(self, task_id: str) -> bool:
        return task_id in self._next_due

    def track(self, task_id: str) -> None:
        """Start refreshing task_id (first render on the next frame)."""
        self._next_due[task_id] = 0.0
        if self._runner is None or self._runner.done():
            self._runner = asyncio.create_task(self._run(), name="taskpad-display-refresh")

    def untrack(self, task_id: str) -> None:
        self._next_due.pop(task_id, None)

    async def stop(self) -> None:
        self._next_due.clear()
        runner, self._runner = self._runner, None
        if runner is None or runner.done():
            return
        runner.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await runner

    def refresh_due(self, now: float) -> list[str]:
        """Render every tracked row that is due at `now`; returns the ids rendered."""
        batch = [tid for tid, due in self._next_due.items() if due <= now]
        for tid in batch:
            try:
                self._render(tid, format_hms(self._elapsed_for(tid)))
            except Exception:
                logger.exception("Display refresh failed for task %s", tid)
            if tid not in self._next_due:
                continue
            visible = self._is_visible(tid)
            interval = self.frame_interval_s if visible else self.hidden_interval_s
            self._next_due[tid] = now + interval
        return batch

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while self._next_due:
            self.refresh_due(loop.time())
            await asyncio.sleep(self.frame_interval_s)
