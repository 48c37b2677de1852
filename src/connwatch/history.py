"""Bounded log of recent probe failures."""

from __future__ import annotations

import threading
from collections import deque

from connwatch.types import ErrorRecord


class ErrorHistory:
    """Fixed-capacity, recency-ordered record of failures.

    Appending beyond capacity evicts the oldest record.  Snapshots are
    returned most-recent first.  Safe to read from other threads while the
    controller appends.
    """

    def __init__(self, capacity: int = 10) -> None:
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
            raise ValueError(f"capacity must be a positive integer, got {capacity!r}")
        self._records: deque[ErrorRecord] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._records.maxlen or 0

    def append(self, record: ErrorRecord) -> None:
        with self._lock:
            self._records.append(record)

    def snapshot(self) -> tuple[ErrorRecord, ...]:
        """Return the records, most recent first."""
        with self._lock:
            return tuple(reversed(self._records))

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
