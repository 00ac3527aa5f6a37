# src/taskpad/storage/sqlite_backend.py

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import sqlite3
import time
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from .memory_backend import (
    DEFAULT_QUOTA_BYTES,
    DEFAULT_QUOTA_BYTES_PER_ITEM,
    encode_value,
    enforce_quota,
    normalize_keys,
)

logger = logging.getLogger(__name__)


class SqliteBackingStore:
    """
    SQLite key-value BackingStore.

    The schema is one table: kv(key, value, updated_at), value holding JSON text.

    Atomicity:
    - every set()/remove() call is a single transaction, so a chunks+index batch
      becomes visible all at once

    Thread-safety:
    - each operation opens its own SQLite connection
    - blocking work runs in a worker thread via asyncio.to_thread
    """

    def __init__(
        self,
        db_path: str | Path = "store.sqlite3",
        *,
        quota_bytes_per_item: int = DEFAULT_QUOTA_BYTES_PER_ITEM,
        quota_bytes: int = DEFAULT_QUOTA_BYTES,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self.quota_bytes_per_item = int(quota_bytes_per_item)
        self.quota_bytes = int(quota_bytes)
        self._ensure_schema()
        try:
            total = self._count_sync()
        except sqlite3.Error:
            total = -1
        logger.info("SqliteBackingStore ready db=%s records=%s", self._db_path, total)

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

    def _count_sync(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM kv").fetchone()
            return int(n)
        finally:
            conn.close()

    def _get_sync(self, keys: list[str] | None) -> dict[str, Any]:
        conn = self._get_conn()
        try:
            if keys is None:
                rows = conn.execute("SELECT key, value FROM kv").fetchall()
            elif not keys:
                return {}
            else:
                placeholders = ",".join("?" for _ in keys)
                rows = conn.execute(
                    f"SELECT key, value FROM kv WHERE key IN ({placeholders})", keys
                ).fetchall()
        finally:
            conn.close()

        out: dict[str, Any] = {}
        for row in rows:
            try:
                out[row["key"]] = json.loads(row["value"])
            except ValueError:
                # Surface the raw text; the reader decides whether it is usable.
                logger.warning("Record %r holds invalid JSON", row["key"])
                out[row["key"]] = row["value"]
        return out

    def _set_sync(self, encoded: dict[str, str]) -> None:
        now = time.time()
        conn = self._get_conn()
        try:
            current = {
                row["key"]: row["value"]
                for row in conn.execute("SELECT key, value FROM kv").fetchall()
            }
            enforce_quota(
                current,
                encoded,
                quota_bytes_per_item=self.quota_bytes_per_item,
                quota_bytes=self.quota_bytes,
            )
            with conn:
                conn.executemany(
                    """
                    INSERT INTO kv(key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                                   updated_at = excluded.updated_at
                    """,
                    [(k, v, now) for k, v in encoded.items()],
                )
        finally:
            conn.close()

    def _remove_sync(self, keys: list[str]) -> None:
        if not keys:
            return
        conn = self._get_conn()
        try:
            with conn:
                conn.executemany("DELETE FROM kv WHERE key = ?", [(k,) for k in keys])
        finally:
            conn.close()

    # ---- BackingStore API ----

    async def get(self, keys: str | Sequence[str] | None) -> dict[str, Any]:
        return await asyncio.to_thread(self._get_sync, normalize_keys(keys))

    async def set(self, items: dict[str, Any]) -> None:
        encoded = {k: encode_value(v) for k, v in items.items()}
        await asyncio.to_thread(self._set_sync, encoded)
        logger.debug("kv set keys=%s", list(encoded))

    async def remove(self, keys: Sequence[str]) -> None:
        await asyncio.to_thread(self._remove_sync, normalize_keys(keys) or [])
        logger.debug("kv remove keys=%s", list(keys))

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return
