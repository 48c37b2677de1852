"""Type definitions for the connectivity controller.

This module holds the enums and immutable value objects shared by the
prober, the error history, the controller and the status publisher.

Usage:
    from connwatch.types import ConnectionMode, ConnectionStatus

    # StrEnum members compare equal to their string values
    if state.status == ConnectionStatus.EXHAUSTED:
        ...
    ConnectionMode.is_valid("fallback")  # True
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class ConnectionMode(StrEnum):
    """Whether requests go to the live dependency or the local substitute.

    Values:
        LIVE: Probe and use the live dependency ("live")
        FALLBACK: Use the fallback data source, never probe ("fallback")
    """

    LIVE = "live"
    FALLBACK = "fallback"

    @classmethod
    def is_valid(cls, value: str) -> bool:
        """Check if a string value is a valid connection mode.

        Args:
            value: The string value to validate.

        Returns:
            True if the value matches a valid mode.
        """
        return value in cls._value2member_map_


class ConnectionStatus(StrEnum):
    """Availability status of the monitored dependency.

    Values:
        UNKNOWN: Not probed since construction or the last reset
        CHECKING: A probe is in flight
        AVAILABLE: The last probe succeeded
        UNAVAILABLE: The last probe failed and an automatic retry is pending
        EXHAUSTED: ``max_attempts`` consecutive failures, no automatic retry
    """

    UNKNOWN = "unknown"
    CHECKING = "checking"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    EXHAUSTED = "exhausted"


class ProbeErrorKind(StrEnum):
    """Classification of a failed probe.

    NETWORK, TIMEOUT and PROTOCOL are the expected failure modes of a
    dependency.  UNEXPECTED marks a fault raised inside the probe itself.
    """

    NETWORK = "network"
    TIMEOUT = "timeout"
    PROTOCOL = "protocol"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one health check.

    Attributes:
        available: Whether the dependency answered with a success status in time.
        latency_ms: Measured round-trip time in milliseconds, 0 if not measured.
        error: Failure description; set if and only if ``available`` is False.
        observed_at: Wall-clock time (seconds since epoch) the probe completed.
        error_kind: Classification of the failure, None on success.
        status_code: HTTP status code when a response was received.
        version: Version string reported by the dependency, if any.
    """

    available: bool
    latency_ms: int = 0
    error: str | None = None
    observed_at: float = 0.0
    error_kind: ProbeErrorKind | None = None
    status_code: int | None = None
    version: str | None = None

    def __post_init__(self) -> None:
        if self.available and self.error is not None:
            raise ValueError("a successful ProbeResult cannot carry an error")
        if not self.available and not self.error:
            raise ValueError("a failed ProbeResult requires an error message")
        if self.latency_ms < 0:
            raise ValueError(f"latency_ms must be non-negative, got {self.latency_ms}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        result: dict[str, Any] = {
            "available": self.available,
            "latency_ms": self.latency_ms,
            "observed_at": self.observed_at,
        }
        if self.error is not None:
            result["error"] = self.error
            result["error_kind"] = self.error_kind.value if self.error_kind else None
        if self.status_code is not None:
            result["status_code"] = self.status_code
        if self.version is not None:
            result["version"] = self.version
        return result


@dataclass(frozen=True)
class ErrorRecord:
    """One entry of the error history."""

    observed_at: float
    message: str
    kind: ProbeErrorKind | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "observed_at": self.observed_at,
            "message": self.message,
            "kind": self.kind.value if self.kind else None,
        }


@dataclass(frozen=True)
class ConnectionState:
    """Snapshot of the controller's authoritative state.

    Instances are immutable; the controller replaces its state with a new
    instance on every mutation, so a snapshot handed to an observer never
    changes underneath it.

    Attributes:
        mode: Live or fallback routing.
        status: Availability status of the dependency.
        attempt_count: Consecutive failed probes since the last success or reset.
        max_attempts: Failures after which automatic probing stops.
        last_error: Message of the most recent failure, cleared on success.
        last_checked_at: Time the most recent probe completed.
        next_check_at: Time the pending automatic retry fires, None if none is armed.
        last_latency_ms: Round-trip time of the most recent probe.
    """

    mode: ConnectionMode = ConnectionMode.LIVE
    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    attempt_count: int = 0
    max_attempts: int = 5
    last_error: str | None = None
    last_checked_at: float | None = None
    next_check_at: float | None = None
    last_latency_ms: int | None = None

    @property
    def available(self) -> bool:
        """Whether dependents may proceed.

        Fallback mode counts as available by substitution.
        """
        return self.mode == ConnectionMode.FALLBACK or self.status == ConnectionStatus.AVAILABLE

    @property
    def retry_pending(self) -> bool:
        """Whether an automatic retry is scheduled."""
        return self.next_check_at is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation for dashboards and logging.

        Returns:
            Dictionary with all state fields plus the derived ``available`` flag.
        """
        return {
            "mode": self.mode.value,
            "status": self.status.value,
            "available": self.available,
            "attempt_count": self.attempt_count,
            "max_attempts": self.max_attempts,
            "last_error": self.last_error,
            "last_checked_at": self.last_checked_at,
            "next_check_at": self.next_check_at,
            "last_latency_ms": self.last_latency_ms,
        }
