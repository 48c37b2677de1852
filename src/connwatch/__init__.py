"""connwatch - connectivity resilience controller for one HTTP dependency."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("connwatch")
except PackageNotFoundError:
    # Package is not installed (e.g., running from source without pip install)
    __version__ = "0.0.0.dev0"

# Re-export core public API
from connwatch.backoff import BackoffScheduler, compute_delay
from connwatch.config import ConfigError, MonitorConfig
from connwatch.controller import ConnectionController
from connwatch.history import ErrorHistory
from connwatch.prober import HealthProber, Prober
from connwatch.publisher import StatusPublisher
from connwatch.router import SourceSelector
from connwatch.types import (
    ConnectionMode,
    ConnectionState,
    ConnectionStatus,
    ErrorRecord,
    ProbeErrorKind,
    ProbeResult,
)

# NOTE: Update this list when adding new exports to this module.
__all__ = [
    "__version__",
    "BackoffScheduler",
    "ConfigError",
    "ConnectionController",
    "ConnectionMode",
    "ConnectionState",
    "ConnectionStatus",
    "ErrorHistory",
    "ErrorRecord",
    "HealthProber",
    "MonitorConfig",
    "ProbeErrorKind",
    "ProbeResult",
    "Prober",
    "SourceSelector",
    "StatusPublisher",
    "compute_delay",
]
