"""Exponential backoff for automatic health probes.

The delay before the next automatic probe doubles with every consecutive
failure and is capped at a maximum:

    delay = min(initial_delay_ms * 2 ** attempt_count, max_delay_ms)

``BackoffScheduler`` owns at most one pending timer on the event loop.  Arming
while a timer is pending replaces it, so a controller can never leak a timer
or receive a duplicate fire.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from connwatch.logging import get_logger

logger = get_logger(__name__)


def compute_delay(attempt_count: int, initial_delay_ms: int, max_delay_ms: int) -> int:
    """Compute the backoff delay for a given number of prior failures.

    Args:
        attempt_count: Number of failures already accounted for (0-based).
        initial_delay_ms: Delay for ``attempt_count == 0``.
        max_delay_ms: Upper bound on the returned delay.

    Returns:
        Delay in milliseconds, non-decreasing in ``attempt_count``.

    Raises:
        ValueError: If ``attempt_count`` is negative.
    """
    if attempt_count < 0:
        raise ValueError(f"attempt_count must be non-negative, got {attempt_count}")
    # Stop doubling once the cap is reached; large exponents are pointless.
    delay = initial_delay_ms
    for _ in range(attempt_count):
        if delay >= max_delay_ms:
            break
        delay *= 2
    return min(delay, max_delay_ms)


class BackoffScheduler:
    """Single-slot timer for the next automatic probe.

    Must be used from a running asyncio event loop (or given one explicitly).

    Usage:
        scheduler = BackoffScheduler(initial_delay_ms=1000, max_delay_ms=30000)
        delay = scheduler.delay_for(attempt_count)
        scheduler.arm(delay, on_timer)
        ...
        scheduler.disarm()
    """

    def __init__(
        self,
        initial_delay_ms: int = 1000,
        max_delay_ms: int = 30000,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.initial_delay_ms = initial_delay_ms
        self.max_delay_ms = max_delay_ms
        self._loop = loop
        self._handle: asyncio.TimerHandle | None = None

    @property
    def armed(self) -> bool:
        """Whether a timer is pending."""
        return self._handle is not None

    def delay_for(self, attempt_count: int) -> int:
        """Backoff delay for ``attempt_count`` using this scheduler's bounds."""
        return compute_delay(attempt_count, self.initial_delay_ms, self.max_delay_ms)

    def arm(self, delay_ms: int, callback: Callable[[], object]) -> None:
        """Schedule exactly one future invocation of ``callback``.

        Any previously armed timer is cancelled first.

        Args:
            delay_ms: Delay before the invocation, in milliseconds.
            callback: Zero-argument callable run on the event loop.
        """
        self.disarm()
        loop = self._loop or asyncio.get_running_loop()

        def _fire() -> None:
            self._handle = None
            callback()

        self._handle = loop.call_later(delay_ms / 1000, _fire)
        logger.debug(
            "[BACKOFF] Timer armed for %dms",
            delay_ms,
            extra={"diagnostic_tag": "timer"},
        )

    def disarm(self) -> None:
        """Cancel the pending timer, if any. Safe to call repeatedly."""
        if self._handle is None:
            return
        self._handle.cancel()
        self._handle = None
        logger.debug("[BACKOFF] Timer disarmed", extra={"diagnostic_tag": "timer"})
