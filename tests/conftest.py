"""Shared pytest fixtures for connwatch tests.

The controller is tested against ``FakeProber`` (scripted results, optional
gate to hold a probe in flight) and ``RecordingScheduler`` (a real
``BackoffScheduler`` that remembers every armed delay).  ``FakeClock`` stands in
for ``time.time`` so ``next_check_at`` values are exact.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable, Iterable, Iterator

import pytest

from connwatch.backoff import BackoffScheduler
from connwatch.config import MonitorConfig
from connwatch.controller import ConnectionController
from connwatch.types import ProbeErrorKind, ProbeResult

HEALTH_URL = "http://tasks.test/health"


def ok(latency_ms: int = 12) -> ProbeResult:
    """Successful probe result."""
    return ProbeResult(available=True, latency_ms=latency_ms, observed_at=0.0, status_code=200)


def fail(message: str = "Connection refused", kind: ProbeErrorKind = ProbeErrorKind.NETWORK) -> ProbeResult:
    """Failed probe result."""
    return ProbeResult(available=False, error=message, observed_at=0.0, error_kind=kind)


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProber:
    """Prober returning scripted results.

    Results are consumed in order; once exhausted, ``default`` is returned.
    An exception instance in the script is raised instead of returned.  When
    ``gate`` is set, every probe waits for it before answering.
    """

    def __init__(
        self,
        results: Iterable[ProbeResult | BaseException] = (),
        default: ProbeResult | None = None,
    ) -> None:
        self.results: deque[ProbeResult | BaseException] = deque(results)
        self.default = default or ok()
        self.calls: list[int | None] = []
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def push(self, *results: ProbeResult | BaseException) -> None:
        self.results.extend(results)

    async def probe(self, timeout_ms: int | None = None) -> ProbeResult:
        self.calls.append(timeout_ms)
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        result = self.results.popleft() if self.results else self.default
        if isinstance(result, BaseException):
            raise result
        return result


class RecordingScheduler(BackoffScheduler):
    """BackoffScheduler that records every delay it arms."""

    def __init__(self, initial_delay_ms: int = 1000, max_delay_ms: int = 30000) -> None:
        super().__init__(initial_delay_ms=initial_delay_ms, max_delay_ms=max_delay_ms)
        self.armed_delays: list[int] = []
        self.callbacks: list[Callable[[], object]] = []
        self.disarm_calls = 0

    def arm(self, delay_ms: int, callback: Callable[[], object]) -> None:
        self.armed_delays.append(delay_ms)
        self.callbacks.append(callback)
        super().arm(delay_ms, callback)

    def disarm(self) -> None:
        self.disarm_calls += 1
        super().disarm()


@pytest.fixture
def config() -> MonitorConfig:
    return MonitorConfig(
        health_check_url=HEALTH_URL,
        timeout_ms=5000,
        initial_delay_ms=1000,
        max_delay_ms=30000,
        max_attempts=5,
        error_history_capacity=10,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def prober() -> FakeProber:
    return FakeProber()


@pytest.fixture
def scheduler(config: MonitorConfig) -> RecordingScheduler:
    return RecordingScheduler(config.initial_delay_ms, config.max_delay_ms)


@pytest.fixture
def controller(
    config: MonitorConfig,
    prober: FakeProber,
    scheduler: RecordingScheduler,
    clock: FakeClock,
) -> Iterator[ConnectionController]:
    ctrl = ConnectionController(
        config,
        prober=prober,
        scheduler=scheduler,
        time_func=clock,
        name="tasks-api",
    )
    yield ctrl
    ctrl.dispose()
