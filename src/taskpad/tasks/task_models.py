# src/taskpad/tasks/task_models.py

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from ..timer.time_utils import parse_timer_to_ms


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Transitions driven by the timer:
    - todo / in-progress -> in-progress while a stopwatch runs
    - back to the pre-timer status on stop, unless the task became done meanwhile
    - done tasks never start a stopwatch
    """

    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"

    @classmethod
    def from_raw(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.TODO
        try:
            return cls(raw.strip().lower())
        except ValueError:
            return cls.TODO

    @property
    def allows_timer(self) -> bool:
        return self is not TaskStatus.DONE


def utc_now() -> datetime:
    return datetime.now(UTC)


def new_task_id() -> str:
    return f"task_{uuid.uuid4().hex[:16]}"


def _ts_to_str(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.isoformat()


def _str_to_ts(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        return raw
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return datetime.fromtimestamp(float(raw) / 1000.0, UTC)
    if isinstance(raw, str) and raw:
        ts = datetime.fromisoformat(raw)
        return ts if ts.tzinfo is not None else ts.replace(tzinfo=UTC)
    raise ValueError(f"not a timestamp: {raw!r}")


@dataclass(slots=True)
class Task:
    id: str
    name: str
    status: TaskStatus
    notes: str
    elapsed_ms: int
    created_at: datetime
    updated_at: datetime
    additional_columns: dict[str, str] = field(default_factory=dict)

    def touch(self) -> None:
        self.updated_at = utc_now()

    def to_record(self) -> dict[str, Any]:
        """JSON-safe dict used as the persisted form of a task."""
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "notes": self.notes,
            "elapsed_ms": int(self.elapsed_ms),
            "created_at": _ts_to_str(self.created_at),
            "updated_at": _ts_to_str(self.updated_at),
            "additional_columns": dict(self.additional_columns),
        }

    @classmethod
    def from_record(cls, rec: Any) -> Task:
        """
        Rebuild a Task from its persisted dict.

        Raises ValueError/TypeError when the record is not a usable task.
        """
        if not isinstance(rec, dict):
            raise TypeError(f"task record must be an object, got {type(rec).__name__}")

        task_id = rec.get("id")
        if not isinstance(task_id, str) or not task_id:
            raise ValueError("task record without id")

        extra = rec.get("additional_columns") or {}
        if not isinstance(extra, dict):
            raise ValueError(f"task {task_id}: additional_columns must be an object")

        if "elapsed_ms" in rec:
            elapsed = rec["elapsed_ms"]
        else:
            # Older records kept the stopwatch as display text ("1:02:03", "1h 2m").
            elapsed = parse_timer_to_ms(str(rec.get("timer") or ""))
        if isinstance(elapsed, bool) or not isinstance(elapsed, (int, float)):
            raise ValueError(f"task {task_id}: elapsed_ms must be a number")

        return cls(
            id=task_id,
            name=str(rec.get("name") or ""),
            status=TaskStatus.from_raw(rec.get("status")),
            notes=str(rec.get("notes") or ""),
            elapsed_ms=max(0, int(elapsed)),
            created_at=_str_to_ts(rec.get("created_at")),
            updated_at=_str_to_ts(rec.get("updated_at")),
            additional_columns={str(k): str(v) for k, v in extra.items()},
        )


def is_valid_task(obj: Any) -> bool:
    return (
        isinstance(obj, Task)
        and isinstance(obj.id, str)
        and bool(obj.id)
        and isinstance(obj.name, str)
        and isinstance(obj.status, TaskStatus)
        and isinstance(obj.notes, str)
        and isinstance(obj.elapsed_ms, int)
        and not isinstance(obj.elapsed_ms, bool)
        and obj.elapsed_ms >= 0
        and isinstance(obj.created_at, datetime)
        and isinstance(obj.updated_at, datetime)
        and isinstance(obj.additional_columns, dict)
    )


def create_task(
    name: str,
    *,
    notes: str = "",
    status: TaskStatus = TaskStatus.TODO,
    elapsed_ms: int = 0,
    additional_columns: dict[str, str] | None = None,
) -> Task:
    if not name or not name.strip():
        raise ValueError("name is required")

    now = utc_now()
    return Task(
        id=new_task_id(),
        name=name.strip(),
        status=status,
        notes=notes,
        elapsed_ms=max(0, int(elapsed_ms)),
        created_at=now,
        updated_at=now,
        additional_columns=dict(additional_columns or {}),
    )
