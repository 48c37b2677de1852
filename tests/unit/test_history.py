"""Tests for ErrorHistory."""

from __future__ import annotations

import threading

import pytest

from connwatch.history import ErrorHistory
from connwatch.types import ErrorRecord, ProbeErrorKind


def record(i: int) -> ErrorRecord:
    return ErrorRecord(observed_at=float(i), message=f"e{i}", kind=ProbeErrorKind.NETWORK)


class TestErrorHistory:
    """Tests for the bounded failure log."""

    def test_empty_snapshot(self) -> None:
        history = ErrorHistory()
        assert history.snapshot() == ()
        assert len(history) == 0
        assert history.capacity == 10

    def test_most_recent_first(self) -> None:
        history = ErrorHistory(capacity=5)
        for i in range(1, 4):
            history.append(record(i))

        assert [r.message for r in history.snapshot()] == ["e3", "e2", "e1"]

    def test_eleventh_append_evicts_oldest(self) -> None:
        history = ErrorHistory(capacity=10)
        for i in range(1, 12):
            history.append(record(i))

        snapshot = history.snapshot()
        assert len(snapshot) == 10
        assert snapshot[0].message == "e11"
        assert snapshot[-1].message == "e2"
        assert "e1" not in [r.message for r in snapshot]

    def test_clear(self) -> None:
        history = ErrorHistory(capacity=3)
        history.append(record(1))

        history.clear()

        assert history.snapshot() == ()
        assert len(history) == 0

    def test_snapshot_is_detached(self) -> None:
        history = ErrorHistory(capacity=3)
        history.append(record(1))
        snapshot = history.snapshot()

        history.append(record(2))

        assert len(snapshot) == 1

    @pytest.mark.parametrize("capacity", [0, -1, True, 2.5])
    def test_invalid_capacity(self, capacity: object) -> None:
        with pytest.raises(ValueError, match="capacity"):
            ErrorHistory(capacity)  # type: ignore[arg-type]

    def test_concurrent_appends_respect_capacity(self) -> None:
        history = ErrorHistory(capacity=50)

        def writer(offset: int) -> None:
            for i in range(200):
                history.append(record(offset + i))

        threads = [threading.Thread(target=writer, args=(n * 1000,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(history) == 50
