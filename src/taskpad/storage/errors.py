# src/taskpad/storage/errors.py

"""
Storage error taxonomy.

Load-path errors (CorruptIndex, PartialChunkFailure) are raised internally and
recovered inside ChunkedStore.load_tasks; callers never see them.
Write-path errors (WriteQuotaExceeded, WriteTransportError) are retried and then
surfaced to the caller of save_tasks.
"""

from __future__ import annotations


class StorageError(Exception):
    """Base class for every error raised by the storage layer."""


class CorruptIndex(StorageError):
    """The chunk index record exists but cannot be interpreted."""


class PartialChunkFailure(CorruptIndex):
    """A chunk referenced by the index is missing or cannot be parsed."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"chunk {key!r}: {reason}")
        self.key = key
        self.reason = reason


class WriteQuotaExceeded(StorageError):
    """The backing store refused a write because of a size quota."""


class WriteTransportError(StorageError):
    """A physical write failed for any reason other than quota."""
