"""Connection state controller for one monitored dependency.

The controller owns the authoritative ``ConnectionState`` and is the only
component that mutates it.  It composes the health prober, the backoff
scheduler, the error history and the status publisher:

    trigger (timer fire, forced check, mode switch)
        -> controller transition
        -> prober (only in LIVE mode)
        -> error history / backoff timer
        -> status publisher -> observers

Status transitions:
- UNKNOWN/AVAILABLE/UNAVAILABLE/EXHAUSTED -> CHECKING: a forced check, a timer
  fire, or the first unforced check from UNKNOWN, while in LIVE mode
- CHECKING -> AVAILABLE: probe succeeded; attempts reset
- CHECKING -> UNAVAILABLE: probe failed below ``max_attempts``; retry armed
- CHECKING -> EXHAUSTED: probe failed for the ``max_attempts``-th time; no retry
- any -> UNKNOWN: ``reset_attempts()``, or ``set_mode(LIVE)`` from FALLBACK

EXHAUSTED is terminal for automatic probing.  Only an operator action
(``reset_attempts`` or a forced check) probes again.

Concurrency model:
    A controller is bound to one asyncio event loop, which serializes every
    operation.  ``reset_attempts``, ``set_mode`` and ``dispose`` never
    suspend, so they run atomically with respect to other coroutines.
    ``check_availability`` suspends only while a probe is in flight, and
    concurrent calls coalesce onto that single probe.  A generation counter
    is bumped by ``reset_attempts``, ``set_mode(LIVE)`` and disposal; a probe
    started under an older generation finishes without touching state.

Usage:
    config = MonitorConfig(health_check_url="http://localhost:3001/health")
    async with ConnectionController(config) as controller:
        controller.subscribe(lambda state: print(state.status))
        available = await controller.check_availability(force=True)
"""

from __future__ import annotations

import asyncio
import functools
import time
from collections.abc import Callable
from dataclasses import replace
from types import TracebackType
from typing import Any
from urllib.parse import urlparse

from connwatch.backoff import BackoffScheduler
from connwatch.config import ConfigError, MonitorConfig
from connwatch.history import ErrorHistory
from connwatch.logging import get_logger
from connwatch.prober import HealthProber, Prober
from connwatch.publisher import Listener, StatusPublisher, Unsubscribe
from connwatch.types import (
    ConnectionMode,
    ConnectionState,
    ConnectionStatus,
    ErrorRecord,
    ProbeErrorKind,
    ProbeResult,
)

logger = get_logger(__name__)


class ConnectionController:
    """State machine deciding when the dependency is probed and how it is reported.

    Attributes:
        config: Validated monitor configuration.
        name: Short label for the dependency, used in log lines.
    """

    # Added to the probe timeout for the controller's own bound on a probe,
    # so the prober's timeout fires first and reports a proper error.
    TIMEOUT_BUFFER_SECONDS = 1.0

    def __init__(
        self,
        config: MonitorConfig,
        *,
        prober: Prober | None = None,
        scheduler: BackoffScheduler | None = None,
        history: ErrorHistory | None = None,
        publisher: StatusPublisher | None = None,
        time_func: Callable[[], float] | None = None,
        name: str | None = None,
    ) -> None:
        """Initialize the controller in status UNKNOWN, mode LIVE.

        Args:
            config: Monitor configuration.
            prober: Optional prober. Defaults to a ``HealthProber`` for
                ``config.health_check_url``.
            scheduler: Optional backoff scheduler. Defaults to one built from
                the config's delay bounds.
            history: Optional error history. Defaults to one with
                ``config.error_history_capacity``.
            publisher: Optional status publisher.
            time_func: Wall clock used for ``last_checked_at`` and
                ``next_check_at``. Defaults to ``time.time``.
            name: Label for log lines. Defaults to the URL's host.

        Raises:
            ConfigError: If ``config`` is not a ``MonitorConfig``.
            TypeError: If ``prober`` does not satisfy the ``Prober`` protocol.
        """
        if not isinstance(config, MonitorConfig):
            raise ConfigError(f"config must be a MonitorConfig, got {type(config).__name__}")
        if prober is not None and not isinstance(prober, Prober):
            raise TypeError(f"prober must satisfy the Prober protocol, got {type(prober).__name__}")

        self.config = config
        self.name = name or urlparse(config.health_check_url).netloc
        self._time_func: Callable[[], float] = time_func or time.time
        self._prober: Prober = prober or HealthProber(
            config.health_check_url, default_timeout_ms=config.timeout_ms
        )
        self._scheduler = scheduler or BackoffScheduler(
            initial_delay_ms=config.initial_delay_ms, max_delay_ms=config.max_delay_ms
        )
        self._history = history or ErrorHistory(config.error_history_capacity)
        self._state = ConnectionState(max_attempts=config.max_attempts)
        self._publisher = publisher or StatusPublisher(self._state)
        self._log = logger.with_context(dependency=self.name)

        self._generation = 0
        self._disposed = False
        self._inflight: asyncio.Task[bool] | None = None
        self._inflight_generation = -1
        self._timer_tasks: set[asyncio.Task[bool]] = set()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def snapshot(self) -> ConnectionState:
        """Return the current state. The returned object is immutable."""
        return self._state

    def subscribe(self, listener: Listener) -> Unsubscribe:
        """Subscribe to state changes. See ``StatusPublisher.subscribe``."""
        return self._publisher.subscribe(listener)

    @property
    def publisher(self) -> StatusPublisher:
        return self._publisher

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def probe_in_flight(self) -> bool:
        return self._inflight is not None

    def error_history(self) -> tuple[ErrorRecord, ...]:
        """Recent failures, most recent first."""
        return self._history.snapshot()

    def clear_errors(self) -> None:
        """Empty the error history. State fields are left unchanged."""
        self._history.clear()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def check_availability(self, force: bool = False) -> bool:
        """Report availability, probing the dependency when the rules call for it.

        A probe runs when the controller is in LIVE mode and either ``force``
        is set or nothing is known yet (status UNKNOWN).  Otherwise the cached
        availability is returned.  In FALLBACK mode no probe ever runs and the
        result is ``True``, since dependents are served by the substitute.

        Probe failures never raise; inspect ``snapshot().last_error``.

        Args:
            force: Probe now, even while a backoff timer is pending or after
                exhaustion.

        Returns:
            Whether dependents may proceed.
        """
        return await self._check(force=force)

    def reset_attempts(self) -> None:
        """Return to UNKNOWN with zero attempts and no pending retry.

        Does not probe; follow with ``check_availability(force=True)`` to
        re-test the dependency.  The error history is kept.
        """
        if self._disposed:
            self._log.debug("[CONTROLLER] reset_attempts ignored, controller disposed")
            return
        self._generation += 1
        self._scheduler.disarm()
        self._log.info("[CONTROLLER] Attempts reset by operator")
        self._set_state(
            status=ConnectionStatus.UNKNOWN,
            attempt_count=0,
            next_check_at=None,
        )

    def set_mode(self, mode: ConnectionMode | str) -> None:
        """Switch between the live dependency and the fallback source.

        FALLBACK keeps the status as is and cancels any pending retry; no
        probe runs until the mode returns to LIVE.  Switching back to LIVE
        resets the status to UNKNOWN with zero attempts.

        Args:
            mode: ``ConnectionMode`` or its string value.

        Raises:
            ValueError: If ``mode`` is not a valid connection mode.
        """
        mode = ConnectionMode(mode)
        if self._disposed:
            self._log.debug("[CONTROLLER] set_mode ignored, controller disposed")
            return
        if mode == self._state.mode:
            return

        self._scheduler.disarm()
        if mode == ConnectionMode.FALLBACK:
            self._log.warning("[CONTROLLER] Switched to fallback mode, probing suspended")
            self._set_state(mode=mode, next_check_at=None)
        else:
            self._generation += 1
            self._log.info("[CONTROLLER] Switched to live mode")
            self._set_state(
                mode=mode,
                status=ConnectionStatus.UNKNOWN,
                attempt_count=0,
                next_check_at=None,
            )

    def dispose(self) -> None:
        """Cancel the pending timer and detach from any in-flight probe.

        After disposal every operation is a no-op and the state is frozen.
        Calling ``dispose`` more than once is harmless.
        """
        if self._disposed:
            return
        self._disposed = True
        self._generation += 1
        self._scheduler.disarm()
        for task in list(self._timer_tasks):
            task.cancel()
        self._publisher.clear()
        self._log.debug("[CONTROLLER] Disposed")

    async def aclose(self) -> None:
        """Dispose and wait for the in-flight probe and timer tasks to finish.

        The wait is bounded by the probe timeout.
        """
        self.dispose()
        pending: list[asyncio.Task[bool]] = list(self._timer_tasks)
        if self._inflight is not None:
            pending.append(self._inflight)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def __aenter__(self) -> ConnectionController:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _check(self, *, force: bool, timer_generation: int | None = None) -> bool:
        timer_fired = timer_generation is not None

        while True:
            if self._disposed:
                self._log.debug("[CONTROLLER] Check ignored, controller disposed")
                return self._state.available
            if self._state.mode == ConnectionMode.FALLBACK:
                self._log.debug(
                    "[CONTROLLER] Fallback mode, probe skipped",
                    extra={"diagnostic_tag": "probe"},
                )
                return True
            if timer_fired and (
                timer_generation != self._generation
                or self._state.status != ConnectionStatus.UNAVAILABLE
            ):
                self._log.debug(
                    "[CONTROLLER] Stale timer fire ignored",
                    extra={"diagnostic_tag": "timer"},
                )
                return self._state.available

            inflight = self._inflight
            if inflight is None:
                break
            if self._inflight_generation == self._generation:
                return await asyncio.shield(inflight)
            # A probe from before a reset is still running; let it drain so
            # that at most one probe is ever in flight, then start afresh.
            await asyncio.wait([inflight])

        if not (force or timer_fired or self._state.status == ConnectionStatus.UNKNOWN):
            return self._state.available

        self._scheduler.disarm()
        self._set_state(status=ConnectionStatus.CHECKING, next_check_at=None)
        self._inflight_generation = self._generation
        task = asyncio.get_running_loop().create_task(self._run_probe(self._generation))
        self._inflight = task
        return await asyncio.shield(task)

    async def _run_probe(self, generation: int) -> bool:
        try:
            result = await self._invoke_prober()
        finally:
            self._inflight = None

        if self._disposed or generation != self._generation:
            self._log.debug(
                "[CONTROLLER] Discarding probe result from a superseded check",
                extra={"diagnostic_tag": "probe"},
            )
            return self._state.available

        self._apply(result)
        return self._state.available

    async def _invoke_prober(self) -> ProbeResult:
        timeout_ms = self.config.timeout_ms
        try:
            return await asyncio.wait_for(
                self._prober.probe(timeout_ms),
                timeout=timeout_ms / 1000 + self.TIMEOUT_BUFFER_SECONDS,
            )
        except asyncio.CancelledError:
            raise
        except TimeoutError:
            return ProbeResult(
                available=False,
                error=f"Health check timed out after {timeout_ms}ms",
                observed_at=self._time_func(),
                error_kind=ProbeErrorKind.TIMEOUT,
            )
        except Exception as e:
            # INTENTIONAL BROAD CATCH: probe errors are data, never fatal to the controller.
            self._log.warning(
                "[CONTROLLER] Prober raised %s: %s",
                type(e).__name__,
                e,
            )
            return ProbeResult(
                available=False,
                error=f"{type(e).__name__}: {e}",
                observed_at=self._time_func(),
                error_kind=ProbeErrorKind.UNEXPECTED,
            )

    def _apply(self, result: ProbeResult) -> None:
        now = self._time_func()

        if result.available:
            self._scheduler.disarm()
            if self._state.attempt_count > 0:
                self._log.info("[CONTROLLER] Dependency recovered and is now available")
            else:
                self._log.debug("[CONTROLLER] Probe succeeded in %dms", result.latency_ms)
            self._set_state(
                status=ConnectionStatus.AVAILABLE,
                attempt_count=0,
                last_error=None,
                last_checked_at=now,
                next_check_at=None,
                last_latency_ms=result.latency_ms,
            )
            return

        message = result.error or "Unknown error"
        self._history.append(ErrorRecord(observed_at=now, message=message, kind=result.error_kind))
        attempts = self._state.attempt_count + 1
        max_attempts = self.config.max_attempts

        if attempts >= max_attempts:
            self._scheduler.disarm()
            self._log.warning(
                "[CONTROLLER] Probe failed (%d/%d): %s. Automatic retries exhausted",
                max_attempts,
                max_attempts,
                message,
            )
            self._set_state(
                status=ConnectionStatus.EXHAUSTED,
                attempt_count=max_attempts,
                last_error=message,
                last_checked_at=now,
                next_check_at=None,
                last_latency_ms=result.latency_ms,
            )
            return

        next_check_at: float | None = None
        if self._state.mode == ConnectionMode.LIVE:
            delay_ms = self._scheduler.delay_for(attempts - 1)
            self._scheduler.arm(delay_ms, functools.partial(self._on_timer, self._generation))
            next_check_at = now + delay_ms / 1000
            self._log.warning(
                "[CONTROLLER] Probe failed (%d/%d): %s. Next check in %dms",
                attempts,
                max_attempts,
                message,
                delay_ms,
            )
        else:
            self._log.warning(
                "[CONTROLLER] Probe failed (%d/%d): %s. No retry in fallback mode",
                attempts,
                max_attempts,
                message,
            )

        self._set_state(
            status=ConnectionStatus.UNAVAILABLE,
            attempt_count=attempts,
            last_error=message,
            last_checked_at=now,
            next_check_at=next_check_at,
            last_latency_ms=result.latency_ms,
        )

    def _on_timer(self, generation: int) -> None:
        if self._disposed or generation != self._generation:
            return
        task = asyncio.get_running_loop().create_task(
            self._check(force=False, timer_generation=generation)
        )
        self._timer_tasks.add(task)
        task.add_done_callback(self._timer_tasks.discard)

    def _set_state(self, **changes: Any) -> None:
        previous = self._state
        self._state = replace(previous, **changes)
        if previous.status != self._state.status or previous.mode != self._state.mode:
            self._log.debug(
                "[CONTROLLER] %s/%s -> %s/%s",
                previous.mode.value,
                previous.status.value,
                self._state.mode.value,
                self._state.status.value,
                extra={
                    "mode": self._state.mode.value,
                    "status": self._state.status.value,
                    "attempt": self._state.attempt_count,
                },
            )
        self._publisher.publish(self._state)
