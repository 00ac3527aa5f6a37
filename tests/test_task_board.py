# tests/test_task_board.py

from __future__ import annotations

import pytest

from taskpad.storage.chunked_store import INDEX_KEY, ChunkedStore
from taskpad.tasks.task_board import TaskBoard
from taskpad.tasks.task_models import TaskStatus

from .fakes import EventLog, FakeClock, RecordingBackingStore


async def _reload(backend: RecordingBackingStore) -> TaskBoard:
    board = TaskBoard(ChunkedStore(backend, write_throttle_ms=0))
    await board.load()
    return board


@pytest.mark.asyncio
async def test_mutations_are_persisted(board: TaskBoard, backend: RecordingBackingStore) -> None:
    task = await board.add_task("Write docs", additional_columns={"area": "docs"})
    await board.rename(task.id, "Write better docs")
    await board.set_notes(task.id, "chapter 2")

    fresh = await _reload(backend)
    (loaded,) = fresh.tasks()
    assert loaded.id == task.id
    assert loaded.name == "Write better docs"
    assert loaded.notes == "chapter 2"
    assert loaded.additional_columns == {"area": "docs"}


@pytest.mark.asyncio
async def test_unknown_task_raises_key_error(board: TaskBoard) -> None:
    with pytest.raises(KeyError):
        await board.rename("task_nope", "x")
    assert board.get("task_nope") is None


@pytest.mark.asyncio
async def test_timer_toggle_persists_elapsed(
    board: TaskBoard, clock: FakeClock, backend: RecordingBackingStore
) -> None:
    task = await board.add_task("t")

    assert await board.toggle_timer(task.id) is True
    clock.advance(2500)
    assert await board.toggle_timer(task.id) is False

    (loaded,) = (await _reload(backend)).tasks()
    assert loaded.elapsed_ms == 2500
    assert loaded.status is TaskStatus.TODO


@pytest.mark.asyncio
async def test_set_status_drives_the_timer(board: TaskBoard, clock: FakeClock, events: EventLog) -> None:
    task = await board.add_task("t")

    await board.set_status(task.id, "in-progress")
    assert board.timer.is_running(task.id)
    clock.advance(1000)

    await board.set_status(task.id, TaskStatus.DONE)
    assert not board.timer.is_running(task.id)
    assert task.status is TaskStatus.DONE
    assert task.elapsed_ms == 1000
    assert events.buttons == [(task.id, True), (task.id, False)]

    # done tasks never start from a toggle ...
    assert await board.toggle_timer(task.id) is False
    # ... but asking for in-progress reopens them
    await board.set_status(task.id, TaskStatus.IN_PROGRESS)
    assert board.timer.is_running(task.id)


@pytest.mark.asyncio
async def test_set_elapsed(board: TaskBoard, clock: FakeClock) -> None:
    task = await board.add_task("t")

    await board.set_elapsed(task.id, "1:30")
    assert task.elapsed_ms == 90_000

    with pytest.raises(ValueError):
        await board.set_elapsed(task.id, "ninety")
    assert task.elapsed_ms == 90_000

    await board.toggle_timer(task.id)
    clock.advance(5000)
    await board.set_elapsed(task.id, 62_000)
    clock.advance(1000)
    assert board.timer.current_elapsed(task.id) == 63_000


@pytest.mark.asyncio
async def test_delete_stops_timer_and_removes_task(
    board: TaskBoard, backend: RecordingBackingStore
) -> None:
    keep = await board.add_task("keep")
    gone = await board.add_task("gone")
    await backend.set({f"timer_{gone.id}": {"start": 1}})
    await board.toggle_timer(gone.id)

    await board.delete_task(gone.id)

    assert board.timer.running_task_ids() == []
    assert [t.id for t in board.tasks()] == [keep.id]
    assert f"timer_{gone.id}" not in backend.keys()
    assert [t.id for t in (await _reload(backend)).tasks()] == [keep.id]


@pytest.mark.asyncio
async def test_clear_all_empties_store(board: TaskBoard, backend: RecordingBackingStore) -> None:
    a = await board.add_task("a")
    await board.add_task("b")
    await board.toggle_timer(a.id)

    await board.clear_all()

    assert board.tasks() == []
    assert board.timer.running_task_ids() == []
    assert backend.keys() == []


@pytest.mark.asyncio
async def test_close_folds_running_timers(
    board: TaskBoard, clock: FakeClock, backend: RecordingBackingStore
) -> None:
    task = await board.add_task("t")
    await board.toggle_timer(task.id)
    clock.advance(5000)

    await board.close()

    (loaded,) = (await _reload(backend)).tasks()
    assert loaded.elapsed_ms == 5000
    assert loaded.status is TaskStatus.TODO


@pytest.mark.asyncio
async def test_load_purges_leftover_timer_records(backend: RecordingBackingStore) -> None:
    await backend.set({"timer_task_x": {"start": 1}})
    await _reload(backend)
    assert "timer_task_x" not in backend.keys()


@pytest.mark.asyncio
async def test_background_writes_complete_on_close(backend: RecordingBackingStore) -> None:
    board = TaskBoard(ChunkedStore(backend, write_throttle_ms=50), await_writes=False)

    await board.add_task("a")
    await board.add_task("b")
    assert INDEX_KEY not in backend.keys()  # still inside the throttle window

    await board.close()

    assert [t.name for t in (await _reload(backend)).tasks()] == ["a", "b"]
    assert [w[0] for w in backend.writes()] == ["set"]


@pytest.mark.asyncio
async def test_background_write_failure_is_logged(
    backend: RecordingBackingStore, caplog: pytest.LogCaptureFixture
) -> None:
    board = TaskBoard(ChunkedStore(backend, write_throttle_ms=0), await_writes=False)
    backend.fail_sets = 100

    await board.add_task("a")
    await board.close()

    assert "Failed to save tasks" in caplog.text


@pytest.mark.asyncio
async def test_load_resets_in_progress_tasks_without_a_timer(
    board: TaskBoard, clock: FakeClock, backend: RecordingBackingStore
) -> None:
    task = await board.add_task("t")
    await board.toggle_timer(task.id)
    clock.advance(1200)
    # Persisted mid-run: the snapshot says in-progress, the stopwatch lives only in memory.
    await board.save()
    assert backend.raw("tasks_0")[0]["status"] == "in-progress"

    fresh = await _reload(backend)
    (loaded,) = fresh.tasks()
    assert loaded.status is TaskStatus.TODO
    assert not fresh.timer.is_running(loaded.id)

    assert await fresh.toggle_timer(loaded.id) is True
    assert loaded.status is TaskStatus.IN_PROGRESS
