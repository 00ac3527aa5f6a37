# src/taskpad/storage/memory_backend.py

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from .errors import WriteQuotaExceeded

logger = logging.getLogger(__name__)

DEFAULT_QUOTA_BYTES_PER_ITEM = 8 * 1024
DEFAULT_QUOTA_BYTES = 100 * 1024


def encode_value(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def record_size(key: str, encoded: str) -> int:
    return len(key.encode("utf-8")) + len(encoded.encode("utf-8"))


def normalize_keys(keys: str | Sequence[str] | None) -> list[str] | None:
    if keys is None:
        return None
    if isinstance(keys, str):
        return [keys]
    return list(keys)


def enforce_quota(
    current: Mapping[str, str],
    incoming: Mapping[str, str],
    *,
    quota_bytes_per_item: int,
    quota_bytes: int,
) -> None:
    """
    Raise WriteQuotaExceeded if writing `incoming` over `current` breaks a quota.

    Both mappings hold already-encoded JSON text.
    """
    for key, encoded in incoming.items():
        size = record_size(key, encoded)
        if size > quota_bytes_per_item:
            raise WriteQuotaExceeded(
                f"QUOTA_BYTES_PER_ITEM quota exceeded: {key!r} is {size} bytes "
                f"(limit {quota_bytes_per_item})"
            )

    merged = dict(current)
    merged.update(incoming)
    total = sum(record_size(k, v) for k, v in merged.items())
    if total > quota_bytes:
        raise WriteQuotaExceeded(f"QUOTA_BYTES quota exceeded: {total} bytes (limit {quota_bytes})")


class InMemoryBackingStore:
    """
    Dict-backed BackingStore.

    Values are stored as JSON text so callers always get fresh copies back,
    the same way a real serializing store behaves. Each set()/remove() call is
    applied all-or-nothing.
    """

    def __init__(
        self,
        *,
        quota_bytes_per_item: int = DEFAULT_QUOTA_BYTES_PER_ITEM,
        quota_bytes: int = DEFAULT_QUOTA_BYTES,
    ) -> None:
        self.quota_bytes_per_item = int(quota_bytes_per_item)
        self.quota_bytes = int(quota_bytes)
        self._data: dict[str, str] = {}
        self.set_calls = 0
        self.remove_calls = 0

    async def get(self, keys: str | Sequence[str] | None) -> dict[str, Any]:
        await asyncio.sleep(0)
        wanted = normalize_keys(keys)
        if wanted is None:
            wanted = list(self._data)
        return {k: json.loads(self._data[k]) for k in wanted if k in self._data}

    async def set(self, items: dict[str, Any]) -> None:
        await asyncio.sleep(0)
        encoded = {k: encode_value(v) for k, v in items.items()}
        enforce_quota(
            self._data,
            encoded,
            quota_bytes_per_item=self.quota_bytes_per_item,
            quota_bytes=self.quota_bytes,
        )
        self._data.update(encoded)
        self.set_calls += 1

    async def remove(self, keys: Sequence[str]) -> None:
        await asyncio.sleep(0)
        for k in normalize_keys(keys) or []:
            self._data.pop(k, None)
        self.remove_calls += 1

    def keys(self) -> list[str]:
        return list(self._data)
