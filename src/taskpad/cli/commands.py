# src/taskpad/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from typing import cast

from ..core.state import AppState
from ..storage.errors import StorageError
from ..tasks.task_models import Task, TaskStatus
from ..timer.time_utils import format_hms

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """User-facing command failure (bad arguments, unknown task)."""


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return h3(state, args, emit)

            h2 = cast(CommandHandler2, handler)
            return h2(state, args)
        except CommandError as e:
            return str(e)
        except StorageError as e:
            logger.warning("Command /%s hit a storage error: %s", name, e)
            return f"Storage error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _resolve(state: AppState, ref: str) -> Task:
    """Find a task by 1-based list position, exact id or unique id prefix."""
    tasks = state.board.tasks()
    if ref.isdigit():
        pos = int(ref)
        if 1 <= pos <= len(tasks):
            return tasks[pos - 1]
        raise CommandError(f"No task #{pos} (have {len(tasks)}).")

    matches = [t for t in tasks if t.id == ref] or [t for t in tasks if t.id.startswith(ref)]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise CommandError(f"No task matches {ref!r}.")
    raise CommandError(f"{ref!r} is ambiguous ({len(matches)} tasks).")


def _need(args: list[str], n: int, usage: str) -> None:
    if len(args) < n:
        raise CommandError(f"Usage: {usage}")


def _row(state: AppState, pos: int, task: Task) -> str:
    running = state.board.timer.is_running(task.id)
    shown = state.displays.get(task.id) if running else None
    elapsed = shown or format_hms(state.board.timer.current_elapsed(task.id))
    marker = " >" if running else ""
    line = f"{pos}. [{task.status.value}] {task.name}  {elapsed}{marker}"
    if task.notes:
        line += f"\n     notes: {task.notes}"
    return line


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_list(state: AppState, args: list[str]) -> str:
    tasks = state.board.tasks()
    if not tasks:
        return "No tasks. Use /add <name> to create one."
    return "\n".join(_row(state, i, t) for i, t in enumerate(tasks, start=1))


def cmd_add(state: AppState, args: list[str]) -> str:
    _need(args, 1, "/add <name>")
    task = state.run(state.board.add_task(" ".join(args)))
    return f"Added #{len(state.board.tasks())}: {task.name}"


def cmd_timer(state: AppState, args: list[str]) -> str:
    """
    /timer <n> -> start/stop the stopwatch of task n
    Done tasks never start.
    """
    _need(args, 1, "/timer <n>")
    task = _resolve(state, args[0])
    if task.status is TaskStatus.DONE and not state.board.timer.is_running(task.id):
        return f"{task.name} is done; reopen it with /todo first."

    running = state.run(state.board.toggle_timer(task.id))
    elapsed = format_hms(state.board.timer.current_elapsed(task.id))
    return f"{'Started' if running else 'Stopped'} {task.name} at {elapsed}."


def cmd_done(state: AppState, args: list[str]) -> str:
    _need(args, 1, "/done <n>")
    task = _resolve(state, args[0])
    state.run(state.board.set_status(task.id, TaskStatus.DONE))
    return f"Done: {task.name} ({format_hms(task.elapsed_ms)})"


def cmd_todo(state: AppState, args: list[str]) -> str:
    _need(args, 1, "/todo <n>")
    task = _resolve(state, args[0])
    state.run(state.board.set_status(task.id, TaskStatus.TODO))
    return f"Reopened: {task.name}"


def cmd_elapsed(state: AppState, args: list[str]) -> str:
    _need(args, 2, "/elapsed <n> <H:MM:SS|M:SS>")
    task = _resolve(state, args[0])
    try:
        state.run(state.board.set_elapsed(task.id, args[1]))
    except ValueError as e:
        raise CommandError(str(e)) from e
    return f"{task.name}: elapsed set to {format_hms(state.board.timer.current_elapsed(task.id))}"


def cmd_notes(state: AppState, args: list[str]) -> str:
    _need(args, 1, "/notes <n> [text]")
    task = _resolve(state, args[0])
    state.run(state.board.set_notes(task.id, " ".join(args[1:])))
    return f"Notes updated for {task.name}."


def cmd_rename(state: AppState, args: list[str]) -> str:
    _need(args, 2, "/rename <n> <name>")
    task = _resolve(state, args[0])
    state.run(state.board.rename(task.id, " ".join(args[1:])))
    return f"Renamed to {task.name}."


def cmd_delete(state: AppState, args: list[str]) -> str:
    _need(args, 1, "/delete <n>")
    task = _resolve(state, args[0])
    state.run(state.board.delete_task(task.id))
    return f"Deleted {task.name}."


def cmd_clear(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args or args[0].lower() != "yes":
        return "This deletes every task. Confirm with /clear yes."
    if emit:
        emit("Clearing all tasks...")
    state.run(state.board.clear_all())
    state.displays.clear()
    return "All tasks deleted."


def cmd_storage(state: AppState, args: list[str]) -> str:
    info = state.run(state.store.get_storage_info())
    near = " (near limit!)" if state.run(state.store.is_storage_near_limit()) else ""
    return (
        "Storage:\n"
        f"  Used: {info.bytes_used} bytes ({info.percent_used:.2f}%){near}\n"
        f"  Available: {info.bytes_available} bytes\n"
        f"  Tasks: {len(state.board.tasks())}"
    )


def cmd_status(state: AppState, args: list[str]) -> str:
    s = state.settings
    running = len(state.board.timer.running_task_ids())
    return (
        "Status:\n"
        f"  Backend: {getattr(s, 'store_backend', '?')} ({getattr(s, 'store_path', '-')})\n"
        f"  Throttle: {state.store.write_throttle_ms} ms, "
        f"budget {state.store.max_writes_per_minute} writes/min\n"
        f"  Chunk budget: {state.store.target_chunk_bytes} bytes\n"
        f"  Running timers: {running}"
    )


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("list", cmd_list, help_text="List tasks with their timers.", aliases=["ls"])
registry.register("add", cmd_add, help_text="Add a task: /add <name>.")
registry.register("timer", cmd_timer, help_text="Start/stop a task timer: /timer <n>.", aliases=["t"])
registry.register("done", cmd_done, help_text="Mark a task done: /done <n>.")
registry.register("todo", cmd_todo, help_text="Reopen a task: /todo <n>.")
registry.register("elapsed", cmd_elapsed, help_text="Set elapsed time: /elapsed <n> <H:MM:SS>.")
registry.register("notes", cmd_notes, help_text="Set notes: /notes <n> <text>.")
registry.register("rename", cmd_rename, help_text="Rename a task: /rename <n> <name>.")
registry.register("delete", cmd_delete, help_text="Delete a task: /delete <n>.", aliases=["rm"])
registry.register("clear", cmd_clear, help_text="Delete every task: /clear yes.")
registry.register("storage", cmd_storage, help_text="Show storage usage.")
registry.register("status", cmd_status, help_text="Show current settings (backend/throttle/chunks).")
