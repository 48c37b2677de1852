"""Configuration for the connectivity controller.

Configuration via environment variables:
- CONNWATCH_HEALTH_CHECK_URL: Address probed with GET (required)
- CONNWATCH_TIMEOUT_MS: Bound on a single probe in milliseconds (default: 5000)
- CONNWATCH_INITIAL_DELAY_MS: Delay before the first automatic retry (default: 1000)
- CONNWATCH_MAX_DELAY_MS: Upper bound on the retry delay (default: 30000)
- CONNWATCH_MAX_ATTEMPTS: Consecutive failures before probing stops (default: 5)
- CONNWATCH_ERROR_HISTORY_CAPACITY: Failures kept for diagnostics (default: 10)

Application settings (CLI only):
- CONNWATCH_LOG_LEVEL: Log level (default: INFO)
- CONNWATCH_LOG_JSON: Emit JSON log lines (default: false)
- CONNWATCH_DIAGNOSTIC_TAGS: Comma-separated debug tags to enable (default: none)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from dotenv import load_dotenv

VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

DEFAULT_TIMEOUT_MS = 5000
DEFAULT_INITIAL_DELAY_MS = 1000
DEFAULT_MAX_DELAY_MS = 30000
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_ERROR_HISTORY_CAPACITY = 10


class ConfigError(ValueError):
    """Raised when controller configuration is invalid."""

    pass


def _require_positive_int(name: str, value: object) -> None:
    # bool is a subclass of int
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be a positive integer, not a boolean")
    if not isinstance(value, int):
        raise ConfigError(f"{name} must be an integer, got {type(value).__name__}")
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")


@dataclass(frozen=True)
class MonitorConfig:
    """Settings for one monitored dependency.

    Attributes:
        health_check_url: Absolute http(s) address probed with GET.
        timeout_ms: Bound on a single probe, independent of the backoff delay.
        initial_delay_ms: Delay before the first automatic retry.
        max_delay_ms: Cap on the exponential retry delay.
        max_attempts: Consecutive failures after which automatic probing stops.
        error_history_capacity: Number of failures kept for diagnostics.

    Raises:
        ConfigError: If the URL is not an absolute http(s) URL, any numeric
            value is not a positive integer, or ``max_delay_ms`` is smaller
            than ``initial_delay_ms``.
    """

    health_check_url: str
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    initial_delay_ms: int = DEFAULT_INITIAL_DELAY_MS
    max_delay_ms: int = DEFAULT_MAX_DELAY_MS
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    error_history_capacity: int = DEFAULT_ERROR_HISTORY_CAPACITY

    def __post_init__(self) -> None:
        """Validate configuration values after initialization."""
        if not isinstance(self.health_check_url, str) or not self.health_check_url.strip():
            raise ConfigError("health_check_url must be a non-empty string")
        parsed = urlparse(self.health_check_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigError(
                f"health_check_url must be an absolute http(s) URL, got {self.health_check_url!r}"
            )

        for name in (
            "timeout_ms",
            "initial_delay_ms",
            "max_delay_ms",
            "max_attempts",
            "error_history_capacity",
        ):
            _require_positive_int(name, getattr(self, name))

        if self.max_delay_ms < self.initial_delay_ms:
            raise ConfigError(
                f"max_delay_ms ({self.max_delay_ms}) must not be smaller than "
                f"initial_delay_ms ({self.initial_delay_ms})"
            )

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    @classmethod
    def from_env(cls, health_check_url: str | None = None) -> MonitorConfig:
        """Load configuration from environment variables.

        Args:
            health_check_url: Optional URL that takes precedence over
                ``CONNWATCH_HEALTH_CHECK_URL``.

        Returns:
            MonitorConfig with values from environment or defaults.

        Raises:
            ConfigError: If a value is missing, unparsable or out of range.
        """
        url = health_check_url or os.getenv("CONNWATCH_HEALTH_CHECK_URL", "")
        return cls(
            health_check_url=url,
            timeout_ms=_parse_int_env("CONNWATCH_TIMEOUT_MS", DEFAULT_TIMEOUT_MS),
            initial_delay_ms=_parse_int_env("CONNWATCH_INITIAL_DELAY_MS", DEFAULT_INITIAL_DELAY_MS),
            max_delay_ms=_parse_int_env("CONNWATCH_MAX_DELAY_MS", DEFAULT_MAX_DELAY_MS),
            max_attempts=_parse_int_env("CONNWATCH_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS),
            error_history_capacity=_parse_int_env(
                "CONNWATCH_ERROR_HISTORY_CAPACITY", DEFAULT_ERROR_HISTORY_CAPACITY
            ),
        )


def _parse_int_env(name: str, default: int) -> int:
    """Read an integer environment variable.

    Unlike the logging settings, controller settings are never silently
    replaced by defaults: a bad value fails construction.

    Raises:
        ConfigError: If the variable is set but is not an integer.
    """
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _parse_bool(value: str) -> bool:
    """Parse a string as a boolean.

    Returns:
        True if value is "true", "1", or "yes" (case-insensitive), False otherwise.
    """
    return value.lower() in ("true", "1", "yes")


def _validate_log_level(value: str, default: str = "INFO") -> str:
    """Validate and normalize a log level string.

    Logs a warning and returns ``default`` if the value is invalid.
    """
    normalized = value.upper()
    if normalized not in VALID_LOG_LEVELS:
        logging.warning(
            "Invalid CONNWATCH_LOG_LEVEL: '%s' is not valid, using default '%s'. Valid values: %s",
            value,
            default,
            ", ".join(sorted(VALID_LOG_LEVELS)),
        )
        return default
    return normalized


@dataclass(frozen=True)
class AppSettings:
    """Process-level settings for the command-line entry point."""

    log_level: str = "INFO"
    log_json: bool = False
    diagnostic_tags: str = ""


def load_settings(env_file: Path | None = None) -> AppSettings:
    """Load application settings from the environment.

    Args:
        env_file: Optional path to a .env file. If not provided,
                  looks for .env in the current directory.

    Returns:
        AppSettings with loaded values.
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    return AppSettings(
        log_level=_validate_log_level(os.getenv("CONNWATCH_LOG_LEVEL", "INFO")),
        log_json=_parse_bool(os.getenv("CONNWATCH_LOG_JSON", "")),
        diagnostic_tags=os.getenv("CONNWATCH_DIAGNOSTIC_TAGS", ""),
    )


def load_config(
    env_file: Path | None = None, health_check_url: str | None = None
) -> MonitorConfig:
    """Load controller configuration, reading a .env file first.

    Args:
        env_file: Optional path to a .env file.
        health_check_url: Optional URL overriding the environment.

    Returns:
        Validated MonitorConfig.

    Raises:
        ConfigError: If the configuration is invalid.
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()
    return MonitorConfig.from_env(health_check_url=health_check_url)
