# src/taskpad/storage/chunked_store.py

"""
Chunked task persistence over a quota-limited async key-value store.

Layout in the backing store:
- "tasks_index"            -> ChunkIndex record (the only source of truth)
- "tasks_0", "tasks_1", .. -> chunks: JSON lists of task records, each kept under
                              target_chunk_bytes when serialized

Write path:
- save_tasks() snapshots the collection, plans chunks and queues the snapshot
- a single writer coroutine waits out the throttle window (plus extra delay when the
  per-minute write budget is spent), then commits the latest snapshot only
- chunks and index go out in ONE backend.set() call; stale chunk keys of the previous
  generation are removed afterwards (orphans are harmless: nothing reads them)

Read path:
- index first, then every referenced chunk in one batched get()
- a bad index means "no data"; a bad chunk only drops that chunk's tasks
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from ..core.ports import BackingStore
from ..tasks.task_models import Task, is_valid_task
from .errors import (
    CorruptIndex,
    PartialChunkFailure,
    StorageError,
    WriteQuotaExceeded,
    WriteTransportError,
)

logger = logging.getLogger(__name__)

INDEX_KEY = "tasks_index"
CHUNK_KEY_PREFIX = "tasks_"
TIMER_KEY_PREFIX = "timer_"
INDEX_VERSION = 1

MAX_STORAGE_BYTES = 100 * 1024
MAX_ITEM_BYTES = 8 * 1024
DEFAULT_TARGET_CHUNK_BYTES = 7 * 1024
MIN_TARGET_CHUNK_BYTES = 256

DEFAULT_WRITE_THROTTLE_MS = 2000
DEFAULT_MAX_WRITES_PER_MINUTE = 120
WRITE_RETRY_LIMIT = 3
NEAR_LIMIT_PERCENT = 80.0

_RATE_WINDOW_S = 60.0
_CHUNK_KEY_RE = re.compile(rf"^{CHUNK_KEY_PREFIX}\d+$")


def chunk_key(ordinal: int) -> str:
    return f"{CHUNK_KEY_PREFIX}{ordinal}"


def json_size(value: Any) -> int:
    """UTF-8 size of the compact JSON form of value."""
    return len(json.dumps(value, ensure_ascii=False, separators=(",", ":")).encode("utf-8"))


def plan_chunks(records: Sequence[dict[str, Any]], target_bytes: int) -> list[list[dict[str, Any]]]:
    """
    Greedily pack records into chunks, preserving order.

    A chunk is closed when appending the next record would push its serialized size
    past target_bytes. A single record larger than the budget gets a chunk of its own.
    """
    chunks: list[list[dict[str, Any]]] = []
    current: list[dict[str, Any]] = []
    current_bytes = 2  # "[]"

    for rec in records:
        size = json_size(rec)
        projected = current_bytes + size + (1 if current else 0)
        if current and projected > target_bytes:
            chunks.append(current)
            current = []
            projected = 2 + size
        current.append(rec)
        current_bytes = projected

    if current:
        chunks.append(current)
    return chunks


@dataclass(slots=True, frozen=True)
class ChunkIndex:
    version: int
    chunk_keys: tuple[str, ...]
    total_task_count: int
    updated_at: float  # epoch milliseconds

    def to_record(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "chunks": list(self.chunk_keys),
            "total": self.total_task_count,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_record(cls, raw: Any) -> ChunkIndex:
        if not isinstance(raw, dict):
            raise CorruptIndex(f"index must be an object, got {type(raw).__name__}")

        version = raw.get("version", INDEX_VERSION)
        if not isinstance(version, int) or isinstance(version, bool) or version > INDEX_VERSION:
            raise CorruptIndex(f"unsupported index version {version!r}")

        keys = raw.get("chunks")
        if not isinstance(keys, list) or not all(isinstance(k, str) and k for k in keys):
            raise CorruptIndex("index chunks must be a list of record names")

        total = raw.get("total", 0)
        if not isinstance(total, int) or isinstance(total, bool) or total < 0:
            raise CorruptIndex(f"invalid total {total!r}")

        updated_at = raw.get("updated_at", 0)
        if not isinstance(updated_at, (int, float)) or isinstance(updated_at, bool):
            raise CorruptIndex(f"invalid updated_at {updated_at!r}")

        return cls(
            version=version,
            chunk_keys=tuple(keys),
            total_task_count=total,
            updated_at=float(updated_at),
        )


@dataclass(slots=True, frozen=True)
class StorageInfo:
    bytes_used: int
    bytes_available: int
    percent_used: float


@dataclass(slots=True)
class _PendingSave:
    """Latest queued snapshot plus everyone waiting for it to hit the store."""

    records: dict[str, Any]
    chunk_keys: list[str]
    waiters: list[asyncio.Future[None]] = field(default_factory=list)


def _as_write_error(exc: Exception) -> StorageError:
    msg = str(exc) or type(exc).__name__
    if "QUOTA" in msg.upper():
        return WriteQuotaExceeded(msg)
    return WriteTransportError(msg)


class ChunkedStore:
    """
    Durable round-trip of the full task collection through a size- and rate-limited store.

    One instance owns one writer coroutine; physical writes never overlap and are never
    reordered. Must be used from a single event loop.
    """

    def __init__(
        self,
        backend: BackingStore,
        *,
        write_throttle_ms: int = DEFAULT_WRITE_THROTTLE_MS,
        max_writes_per_minute: int = DEFAULT_MAX_WRITES_PER_MINUTE,
        target_chunk_bytes: int = DEFAULT_TARGET_CHUNK_BYTES,
    ) -> None:
        self._backend = backend
        self.write_throttle_ms = max(0, int(write_throttle_ms))
        self.max_writes_per_minute = max(1, int(max_writes_per_minute))
        # Never exceed the per-record quota, whatever the caller asks for.
        self.target_chunk_bytes = min(
            max(MIN_TARGET_CHUNK_BYTES, int(target_chunk_bytes)), MAX_ITEM_BYTES - 64
        )

        self._pending: _PendingSave | None = None
        self._worker: asyncio.Task[None] | None = None
        self._write_history: list[float] = []
        self._committed_keys: list[str] = []
        self.physical_writes = 0

        logger.debug(
            "ChunkedStore ready throttle_ms=%s max_writes_per_minute=%s target_chunk_bytes=%s",
            self.write_throttle_ms,
            self.max_writes_per_minute,
            self.target_chunk_bytes,
        )

    # ---- read path ----

    async def load_tasks(self) -> list[Task]:
        """
        Rebuild the task collection from the index and its chunks.

        Never raises: a missing/corrupt index yields [], a bad chunk is skipped.
        """
        try:
            index = await self._read_index()
        except CorruptIndex as exc:
            logger.warning("Ignoring corrupt task index: %s", exc)
            return []
        except Exception:
            logger.exception("Failed to read task index; starting empty.")
            return []

        if index is None:
            logger.info("No task index found; starting with an empty task list.")
            return []

        self._committed_keys = list(index.chunk_keys)
        if not index.chunk_keys:
            return []

        try:
            raw_chunks = await self._backend.get(list(index.chunk_keys))
        except Exception:
            logger.exception("Failed to read %d task chunks; starting empty.", len(index.chunk_keys))
            return []

        tasks: list[Task] = []
        for key in index.chunk_keys:
            try:
                tasks.extend(self._parse_chunk(key, raw_chunks))
            except PartialChunkFailure as exc:
                logger.warning("Dropping unreadable task chunk: %s", exc)

        if len(tasks) != index.total_task_count:
            logger.warning(
                "Loaded %d tasks but index says %d (chunks=%s)",
                len(tasks),
                index.total_task_count,
                list(index.chunk_keys),
            )
        else:
            logger.info("Loaded %d tasks from %d chunks.", len(tasks), len(index.chunk_keys))
        return tasks

    async def _read_index(self) -> ChunkIndex | None:
        res = await self._backend.get(INDEX_KEY)
        if INDEX_KEY not in res or res[INDEX_KEY] is None:
            return None
        return ChunkIndex.from_record(res[INDEX_KEY])

    @staticmethod
    def _parse_chunk(key: str, raw_chunks: dict[str, Any]) -> list[Task]:
        if key not in raw_chunks:
            raise PartialChunkFailure(key, "missing")
        payload = raw_chunks[key]
        if not isinstance(payload, list):
            raise PartialChunkFailure(key, f"expected a list, got {type(payload).__name__}")

        out: list[Task] = []
        for i, rec in enumerate(payload):
            try:
                out.append(Task.from_record(rec))
            except (TypeError, ValueError) as exc:
                raise PartialChunkFailure(key, f"record {i}: {exc}") from exc
        return out

    # ---- write path ----

    def save_tasks(self, tasks: Sequence[Task]) -> asyncio.Future[None]:
        """
        Snapshot tasks now and queue the snapshot for writing.

        Returns a future resolved once this snapshot (or a newer one) is written; it
        fails with the final write error after retries are exhausted. Snapshotting at
        call time keeps saves in call order.

        Raises ValueError for invalid task data and WriteQuotaExceeded when the snapshot
        cannot fit the store, before anything is queued.
        """
        for t in tasks:
            if not is_valid_task(t):
                raise ValueError(f"Invalid task data: {getattr(t, 'id', t)!r}")

        records, keys = self._build_snapshot(tasks)

        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()

        if self._pending is None:
            self._pending = _PendingSave(records=records, chunk_keys=keys, waiters=[waiter])
        else:
            # Last writer wins: the older snapshot is never written.
            self._pending.records = records
            self._pending.chunk_keys = keys
            self._pending.waiters.append(waiter)
            logger.debug(
                "Coalesced save into pending write (waiters=%d)", len(self._pending.waiters)
            )

        self._ensure_worker()
        return waiter

    def _build_snapshot(self, tasks: Sequence[Task]) -> tuple[dict[str, Any], list[str]]:
        if not tasks:
            return {}, []

        chunks = plan_chunks([t.to_record() for t in tasks], self.target_chunk_bytes)
        keys = [chunk_key(i) for i in range(len(chunks))]
        index = ChunkIndex(
            version=INDEX_VERSION,
            chunk_keys=tuple(keys),
            total_task_count=len(tasks),
            updated_at=time.time() * 1000.0,
        )

        records: dict[str, Any] = dict(zip(keys, chunks))
        records[INDEX_KEY] = index.to_record()

        approx_total = sum(json_size(v) for v in records.values())
        if approx_total > MAX_STORAGE_BYTES:
            raise WriteQuotaExceeded(f"Data size (~{approx_total} bytes) exceeds storage limit")
        return records, keys

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain(), name="taskpad-chunked-writer")

    async def _drain(self) -> None:
        while self._pending is not None:
            await asyncio.sleep(self._next_write_delay())

            batch = self._pending
            self._pending = None
            if batch is None:
                continue

            try:
                await self._commit_with_retry(batch)
            except StorageError as exc:
                for w in batch.waiters:
                    if not w.done():
                        w.set_exception(exc)
            else:
                for w in batch.waiters:
                    if not w.done():
                        w.set_result(None)

    def _next_write_delay(self) -> float:
        """Throttle window, stretched when the per-minute write budget is used up."""
        delay = self.write_throttle_ms / 1000.0
        now = asyncio.get_running_loop().time()

        self._write_history = [t for t in self._write_history if now - t < _RATE_WINDOW_S]
        over = len(self._write_history) - self.max_writes_per_minute
        if over >= 0:
            # Wait until enough old writes fall out of the one-minute window.
            budget_wait = self._write_history[over] + _RATE_WINDOW_S - now
            if budget_wait > delay:
                logger.warning(
                    "Write budget reached (%d/min); delaying next write by %.2fs",
                    self.max_writes_per_minute,
                    budget_wait,
                )
                delay = budget_wait
        return delay

    async def _commit_with_retry(self, batch: _PendingSave) -> None:
        backoff_s = self.write_throttle_ms / 1000.0
        attempts = WRITE_RETRY_LIMIT + 1

        for attempt in range(1, attempts + 1):
            try:
                await self._commit(batch)
                return
            except Exception as exc:
                if attempt >= attempts:
                    logger.error("Task write failed after %d attempts: %s", attempt, exc)
                    if isinstance(exc, StorageError):
                        raise
                    raise _as_write_error(exc) from exc
                logger.warning(
                    "Task write failed (attempt %d/%d): %s; retrying in %.2fs",
                    attempt,
                    attempts,
                    exc,
                    backoff_s,
                )
            await asyncio.sleep(backoff_s)

    def _record_write(self) -> None:
        self._write_history.append(asyncio.get_running_loop().time())
        self.physical_writes += 1

    async def _commit(self, batch: _PendingSave) -> None:
        previous = await self._previous_chunk_keys()

        if not batch.chunk_keys:
            # Empty collection: drop the index and every chunk in one call.
            doomed = list(dict.fromkeys([INDEX_KEY, *previous]))
            self._record_write()
            await self._backend.remove(doomed)
            self._committed_keys = []
            logger.info("Cleared persisted tasks (removed %d records).", len(doomed))
            return

        self._record_write()
        await self._backend.set(batch.records)
        self._committed_keys = list(batch.chunk_keys)
        logger.debug("Committed %d chunks + index.", len(batch.chunk_keys))

        live = set(batch.chunk_keys)
        stale = [k for k in previous if k not in live]
        if stale:
            try:
                self._record_write()
                await self._backend.remove(stale)
                logger.debug("Removed stale chunks %s", stale)
            except Exception:
                # The new index no longer references them, so they are never read.
                logger.warning("Failed to remove stale chunks %s", stale, exc_info=True)

    async def _previous_chunk_keys(self) -> list[str]:
        """
        Chunk keys the upcoming commit may leave stale.

        Taken from the previous index; when that index is missing or unreadable, every
        stored `tasks_<n>` record counts, so a corrupt generation is not left behind.
        """
        keys: list[str] | None = None
        try:
            index = await self._read_index()
            if index is not None:
                keys = list(index.chunk_keys)
        except CorruptIndex as exc:
            logger.warning("Previous task index is unreadable (%s); scanning for chunks.", exc)
        except Exception:
            logger.debug("Could not read previous index before commit.", exc_info=True)

        if keys is None:
            keys = await self._scan_chunk_keys()
        return list(dict.fromkeys([*keys, *self._committed_keys]))

    async def _scan_chunk_keys(self) -> list[str]:
        try:
            everything = await self._backend.get(None)
        except Exception:
            logger.debug("Could not list records while scanning for chunks.", exc_info=True)
            return []
        return sorted(k for k in everything if _CHUNK_KEY_RE.match(k))

    async def flush(self) -> None:
        """Wait until every queued snapshot has been written (or has failed)."""
        while self._worker is not None and not self._worker.done():
            await asyncio.shield(self._worker)

    # ---- maintenance ----

    async def clear_timer_state(self, task_id: str) -> None:
        """Remove the per-task timer record of task_id, if any."""
        key = f"{TIMER_KEY_PREFIX}{task_id}"
        try:
            await self._backend.remove([key])
        except Exception:
            logger.error("Failed to clear timer state for task %s", task_id, exc_info=True)
            raise

    async def clear_timer_states(self) -> None:
        """Remove every per-task timer record in one call."""
        try:
            everything = await self._backend.get(None)
            keys = [k for k in everything if k.startswith(TIMER_KEY_PREFIX)]
            if keys:
                await self._backend.remove(keys)
                logger.info("Cleared %d timer records.", len(keys))
        except Exception:
            logger.error("Failed to clear timer states.", exc_info=True)
            raise

    async def clear_all_data(self) -> None:
        """
        Bulk clear: remove the index, all chunks and all timer records in one call.

        Waits for queued writes first so a pending snapshot cannot resurrect the data.
        """
        await self.flush()
        try:
            everything = await self._backend.get(None)
            doomed = [INDEX_KEY, *self._committed_keys]
            doomed.extend(
                k for k in everything if _CHUNK_KEY_RE.match(k) or k.startswith(TIMER_KEY_PREFIX)
            )
            doomed = list(dict.fromkeys(doomed))
            self._record_write()
            await self._backend.remove(doomed)
            self._committed_keys = []
            logger.info("Cleared all task data (%d records).", len(doomed))
        except Exception:
            logger.error("Failed to clear all data.", exc_info=True)
            raise

    async def get_storage_info(self) -> StorageInfo:
        try:
            everything = await self._backend.get(None)
            used = sum(len(k.encode("utf-8")) + json_size(v) for k, v in everything.items())
        except Exception:
            logger.error("Failed to get storage info.", exc_info=True)
            return StorageInfo(bytes_used=0, bytes_available=MAX_STORAGE_BYTES, percent_used=0.0)

        return StorageInfo(
            bytes_used=used,
            bytes_available=max(0, MAX_STORAGE_BYTES - used),
            percent_used=round(used / MAX_STORAGE_BYTES * 100, 2),
        )

    async def is_storage_near_limit(self) -> bool:
        info = await self.get_storage_info()
        return info.percent_used > NEAR_LIMIT_PERCENT
