"""Health prober for the monitored dependency.

The prober issues one bounded-time ``GET`` against the configured health-check
address and reports the outcome as a ``ProbeResult``.  It never raises for
transport or protocol failures: timeouts, connection errors and non-success
status codes are folded into a failed result so the controller can treat them
as data.

The response body is diagnostic only.  When it is JSON and carries a
``version`` (or ``apiVersion``) key, that value is attached to the result, but
it never influences the availability decision.

Usage:
    prober = HealthProber("http://localhost:3001/health", default_timeout_ms=5000)
    result = await prober.probe()
    if not result.available:
        print(result.error_kind, result.error)
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

import httpx

from connwatch.logging import get_logger
from connwatch.types import ProbeErrorKind, ProbeResult

logger = get_logger(__name__)


@runtime_checkable
class Prober(Protocol):
    """Protocol for anything that can check the dependency once.

    ``HealthProber`` is the HTTP implementation.  Implementations should
    fold failures into the returned ``ProbeResult``; the controller still
    treats an exception as a failed probe of kind ``unexpected``.
    """

    async def probe(self, timeout_ms: int | None = None) -> ProbeResult:
        """Check the dependency once within ``timeout_ms``."""
        ...  # pragma: no cover


class HealthProber:
    """Performs single health checks against one dependency.

    Thread-safety contract:
        ``probe`` holds no shared state apart from the metric counters, which
        are protected by ``_counter_lock``.  Use ``get_probe_metrics()`` for an
        atomic snapshot.

    Attributes:
        url: Health-check address.
        default_timeout_ms: Timeout used when ``probe`` is called without one.
    """

    def __init__(
        self,
        url: str,
        *,
        default_timeout_ms: int = 5000,
        transport: httpx.AsyncBaseTransport | None = None,
        headers: dict[str, str] | None = None,
        time_func: Callable[[], float] | None = None,
        perf_counter: Callable[[], float] | None = None,
    ) -> None:
        """Initialize the prober.

        Args:
            url: Health-check address probed with GET.
            default_timeout_ms: Timeout used when ``probe`` receives none.
            transport: Optional httpx transport, e.g. ``httpx.MockTransport``
                in tests.
            headers: Extra request headers.
            time_func: Wall clock for ``observed_at``. Defaults to ``time.time``.
            perf_counter: Monotonic clock for latency. Defaults to
                ``time.perf_counter``.
        """
        self.url = url
        self.default_timeout_ms = default_timeout_ms
        self._transport = transport
        self._headers = {"Accept": "application/json", **(headers or {})}
        self._time_func: Callable[[], float] = time_func or time.time
        self._perf_counter: Callable[[], float] = perf_counter or time.perf_counter
        self._counter_lock = threading.Lock()
        self._success_count = 0
        self._expected_failure_count = 0
        self._unexpected_error_count = 0

    def get_probe_metrics(self) -> dict[str, int]:
        """Return an atomic snapshot of the probe counters.

        Returns:
            Dictionary with keys ``probe_success_count``,
            ``probe_expected_failure_count`` and ``probe_unexpected_error_count``.
        """
        with self._counter_lock:
            return {
                "probe_success_count": self._success_count,
                "probe_expected_failure_count": self._expected_failure_count,
                "probe_unexpected_error_count": self._unexpected_error_count,
            }

    async def probe(self, timeout_ms: int | None = None) -> ProbeResult:
        """Check the dependency once.

        The timeout is enforced twice: as the httpx timeout for every phase of
        the request and as an outer ``asyncio.wait_for`` bound on the whole
        call, so a stalled transport cannot hold the caller longer than
        ``timeout_ms``.

        Args:
            timeout_ms: Bound on this probe. Defaults to ``default_timeout_ms``.

        Returns:
            ProbeResult describing the outcome. Never raises except for
            ``asyncio.CancelledError``.
        """
        timeout_ms = timeout_ms if timeout_ms is not None else self.default_timeout_ms
        timeout = timeout_ms / 1000
        start = self._perf_counter()

        try:
            response = await asyncio.wait_for(self._get(timeout), timeout=timeout)
            response.raise_for_status()
        except asyncio.CancelledError:
            raise
        except (httpx.TimeoutException, TimeoutError):
            return self._failure(
                start, f"Health check timed out after {timeout_ms}ms", ProbeErrorKind.TIMEOUT
            )
        except httpx.HTTPStatusError as e:
            return self._failure(
                start,
                f"HTTP {e.response.status_code}",
                ProbeErrorKind.PROTOCOL,
                status_code=e.response.status_code,
            )
        except httpx.RequestError as e:
            message = str(e) or type(e).__name__
            return self._failure(start, message, ProbeErrorKind.NETWORK)
        except Exception as e:
            # INTENTIONAL BROAD CATCH: a probe must never crash its caller.
            logger.warning(
                "[PROBE] %s: Probe failed with unexpected error: %s: %s",
                self.url,
                type(e).__name__,
                e,
            )
            return self._failure(
                start, f"{type(e).__name__}: {e}", ProbeErrorKind.UNEXPECTED
            )

        latency_ms = self._elapsed_ms(start)
        with self._counter_lock:
            self._success_count += 1
        logger.debug(
            "[PROBE] %s: HTTP %d in %dms",
            self.url,
            response.status_code,
            latency_ms,
            extra={"diagnostic_tag": "probe"},
        )
        return ProbeResult(
            available=True,
            latency_ms=latency_ms,
            observed_at=self._time_func(),
            status_code=response.status_code,
            version=_extract_version(response),
        )

    async def _get(self, timeout: float) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            transport=self._transport,
            headers=self._headers,
        ) as client:
            return await client.get(self.url)

    def _failure(
        self,
        start: float,
        message: str,
        kind: ProbeErrorKind,
        *,
        status_code: int | None = None,
    ) -> ProbeResult:
        with self._counter_lock:
            if kind == ProbeErrorKind.UNEXPECTED:
                self._unexpected_error_count += 1
            else:
                self._expected_failure_count += 1
        latency_ms = self._elapsed_ms(start)
        logger.debug(
            "[PROBE] %s: %s failure after %dms: %s",
            self.url,
            kind.value,
            latency_ms,
            message,
            extra={"diagnostic_tag": "probe"},
        )
        return ProbeResult(
            available=False,
            latency_ms=latency_ms,
            error=message,
            observed_at=self._time_func(),
            error_kind=kind,
            status_code=status_code,
        )

    def _elapsed_ms(self, start: float) -> int:
        return max(0, round((self._perf_counter() - start) * 1000))


def _extract_version(response: httpx.Response) -> str | None:
    """Pull a version string out of a JSON health response, if present."""
    if "json" not in response.headers.get("content-type", ""):
        return None
    try:
        data: Any = response.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    version = data.get("version") or data.get("apiVersion")
    return str(version) if version is not None else None
