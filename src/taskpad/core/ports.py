# src/taskpad/core/ports.py

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps backing stores and rendering swappable and makes testing easier.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Protocol

Clock = Callable[[], float]
# Wall-clock reading in milliseconds.


class BackingStore(Protocol):
    """
    Asynchronous key-value service with named records.

    - get(key)        -> {key: value} (missing keys are simply absent)
    - get([k1, k2])   -> {k1: v1, k2: v2}
    - get(None)       -> every record
    - set(mapping)    -> one batched write; all-or-nothing per call
    - remove([keys])  -> one batched removal

    Values are JSON-compatible (dict/list/str/int/float/bool/None).
    Implementations may raise WriteQuotaExceeded for oversized records.
    """

    async def get(self, keys: str | Sequence[str] | None) -> dict[str, Any]: ...

    async def set(self, items: dict[str, Any]) -> None: ...

    async def remove(self, keys: Sequence[str]) -> None: ...


class TaskSaver(Protocol):
    """Persist a full snapshot of the task collection."""

    def __call__(self, tasks: list[Any]) -> Awaitable[None]: ...


class RowStatusListener(Protocol):
    def __call__(self, task_id: str, status: str) -> None: ...


class TimerButtonListener(Protocol):
    def __call__(self, task_id: str, is_running: bool) -> None: ...
