# tests/test_commands.py

from __future__ import annotations

from taskpad.cli.commands import CommandRegistry, registry
from taskpad.storage.errors import WriteTransportError
from taskpad.tasks.task_models import TaskStatus


def test_command_registry_routes_2_and_3_params(state) -> None:
    reg = CommandRegistry()
    called = {"h2": 0, "h3": 0}

    def h2(state, args):
        called["h2"] += 1
        return "h2"

    def h3(state, args, emit):
        called["h3"] += 1
        if emit is not None:
            emit("note")
        return "h3"

    reg.register("a", h2, "a")
    reg.register("b", h3, "b", aliases=["bb"])

    notes: list[str] = []
    assert reg.handle(state, "/a x") == "h2"
    assert reg.handle(state, "/bb y", emit=notes.append) == "h3"
    assert called == {"h2": 1, "h3": 1}
    assert notes == ["note"]


def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert reg.handle(state, "hello") is None
    assert "Unknown command" in (reg.handle(state, "/nope") or "")
    assert "Empty command" in (reg.handle(state, "/") or "")


def test_storage_errors_become_replies(state) -> None:
    reg = CommandRegistry()

    def broken(state, args):
        raise WriteTransportError("backend unavailable")

    reg.register("x", broken, "x")
    assert reg.handle(state, "/x") == "Storage error: backend unavailable"


def test_task_lifecycle_through_commands(state) -> None:
    assert registry.handle(state, "/list") == "No tasks. Use /add <name> to create one."
    assert registry.handle(state, "/add Write docs") == "Added #1: Write docs"
    assert registry.handle(state, "/add Review PR") == "Added #2: Review PR"

    listing = registry.handle(state, "/ls") or ""
    assert "1. [todo] Write docs  00:00:00" in listing
    assert "2. [todo] Review PR" in listing

    assert (registry.handle(state, "/timer 1") or "").startswith("Started Write docs")
    assert "[in-progress] Write docs" in (registry.handle(state, "/list") or "")
    assert (registry.handle(state, "/t 1") or "").startswith("Stopped Write docs")

    assert registry.handle(state, "/elapsed 2 1:30") == "Review PR: elapsed set to 00:01:30"
    assert "Invalid time format" in (registry.handle(state, "/elapsed 2 soon") or "")

    assert (registry.handle(state, "/done 2") or "").startswith("Done: Review PR")
    assert "reopen it with /todo" in (registry.handle(state, "/timer 2") or "")
    assert registry.handle(state, "/todo 2") == "Reopened: Review PR"

    assert registry.handle(state, "/rename 1 Write guides") == "Renamed to Write guides."
    assert registry.handle(state, "/notes 1 chapter one") == "Notes updated for Write guides."
    assert "notes: chapter one" in (registry.handle(state, "/list") or "")

    tasks = state.board.tasks()
    assert [t.name for t in tasks] == ["Write guides", "Review PR"]
    assert tasks[1].status is TaskStatus.TODO
    assert tasks[1].elapsed_ms == 90_000

    assert registry.handle(state, "/delete 1") == "Deleted Write guides."
    assert [t.name for t in state.board.tasks()] == ["Review PR"]


def test_task_references(state) -> None:
    registry.handle(state, "/add one")
    task = state.board.tasks()[0]

    assert registry.handle(state, f"/rename {task.id[:12]} uno") == "Renamed to uno."
    assert registry.handle(state, "/done 7") == "No task #7 (have 1)."
    assert registry.handle(state, "/done zzz") == "No task matches 'zzz'."
    assert registry.handle(state, "/done") == "Usage: /done <n>"


def test_clear_requires_confirmation(state) -> None:
    registry.handle(state, "/add a")
    registry.handle(state, "/add b")

    assert "Confirm with /clear yes" in (registry.handle(state, "/clear") or "")
    assert len(state.board.tasks()) == 2

    emitted: list[str] = []
    assert registry.handle(state, "/clear yes", emit=emitted.append) == "All tasks deleted."
    assert emitted == ["Clearing all tasks..."]
    assert state.board.tasks() == []
    assert state.backend.keys() == []


def test_storage_and_status(state) -> None:
    registry.handle(state, "/add a")
    state.run(state.store.flush())

    storage = registry.handle(state, "/storage") or ""
    assert "Used:" in storage
    assert "Tasks: 1" in storage
    assert "near limit" not in storage

    status = registry.handle(state, "/status") or ""
    assert "Backend: memory" in status
    assert "Running timers: 0" in status
