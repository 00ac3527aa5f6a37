# src/taskpad/core/state.py

from __future__ import annotations

from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from ..core.ports import BackingStore
from ..storage.chunked_store import ChunkedStore
from ..tasks.task_board import TaskBoard

if TYPE_CHECKING:
    from ..connectors.loop_runner import LoopRunner

T = TypeVar("T")


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    backend: BackingStore
    store: ChunkedStore
    board: TaskBoard

    # Event loop thread that owns board/store; console threads submit work to it.
    runner: LoopRunner | None = None

    # Latest rendered stopwatch text per task id (written by the display refresher).
    displays: dict[str, str] = field(default_factory=dict)

    def run(self, coro: Coroutine[Any, Any, T], timeout: float | None = 60.0) -> T:
        if self.runner is None:
            coro.close()
            raise RuntimeError("No event loop runner attached to AppState")
        return self.runner.call(coro, timeout=timeout)
