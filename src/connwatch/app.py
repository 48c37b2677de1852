"""Core application runner for the connwatch command line.

``probe`` performs one health check and prints it as JSON.  ``watch`` runs a
``ConnectionController`` against the dependency and logs every state change
until one of these happens:

- the controller exhausts its automatic retries (exit status 1)
- the dependency becomes available and ``--until-available`` was given (exit 0)
- SIGINT or SIGTERM is received (exit 0)

Configuration errors exit with status 2.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import signal
import sys
from typing import Any

from connwatch.cli import parse_args
from connwatch.config import ConfigError, MonitorConfig, load_config, load_settings
from connwatch.controller import ConnectionController
from connwatch.logging import get_logger, setup_logging
from connwatch.prober import HealthProber
from connwatch.types import ConnectionState, ConnectionStatus

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_UNAVAILABLE = 1
EXIT_CONFIG_ERROR = 2


def build_config(args: argparse.Namespace) -> MonitorConfig:
    """Merge environment configuration with command-line overrides.

    Raises:
        ConfigError: If the merged configuration is invalid.
    """
    config = load_config(env_file=args.env_file, health_check_url=args.url)
    overrides: dict[str, Any] = {}
    for field in ("timeout_ms", "initial_delay_ms", "max_delay_ms", "max_attempts"):
        value = getattr(args, field, None)
        if value is not None:
            overrides[field] = value
    # replace() re-runs validation
    return dataclasses.replace(config, **overrides) if overrides else config


async def run_probe(config: MonitorConfig) -> int:
    """Check the dependency once and print the result.

    Returns:
        Process exit status.
    """
    prober = HealthProber(config.health_check_url, default_timeout_ms=config.timeout_ms)
    result = await prober.probe()
    print(json.dumps(result.to_dict()))
    return EXIT_OK if result.available else EXIT_UNAVAILABLE


async def run_watch(
    config: MonitorConfig,
    *,
    recheck_ms: int = 0,
    until_available: bool = False,
    controller: ConnectionController | None = None,
) -> int:
    """Monitor the dependency until exhaustion, availability or a signal.

    Args:
        config: Monitor configuration.
        recheck_ms: Interval for forced re-checks while available, 0 to disable.
        until_available: Stop with exit status 0 once the dependency is available.
        controller: Optional pre-built controller (used by tests).

    Returns:
        Process exit status.
    """
    controller = controller or ConnectionController(config)
    done = asyncio.Event()
    outcome = {"status": EXIT_OK}

    def on_state(state: ConnectionState) -> None:
        if state.status == ConnectionStatus.CHECKING:
            return
        logger.info(
            "[WATCH] %s: %s (attempt %d/%d)%s",
            controller.name,
            state.status.value,
            state.attempt_count,
            state.max_attempts,
            f": {state.last_error}" if state.last_error else "",
        )
        if state.status == ConnectionStatus.EXHAUSTED:
            outcome["status"] = EXIT_UNAVAILABLE
            done.set()
        elif state.status == ConnectionStatus.AVAILABLE and until_available:
            done.set()

    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, done.set)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # add_signal_handler is unavailable on Windows event loops
            pass

    async with controller:
        controller.subscribe(on_state)
        try:
            await controller.check_availability(force=True)
            while not done.is_set():
                timeout = recheck_ms / 1000 if recheck_ms > 0 else None
                try:
                    await asyncio.wait_for(done.wait(), timeout=timeout)
                except TimeoutError:
                    if controller.snapshot().status == ConnectionStatus.AVAILABLE:
                        await controller.check_availability(force=True)
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)

    return outcome["status"]


def main(argv: list[str] | None = None) -> int:
    """Entry point for the ``connwatch`` console script.

    Args:
        argv: Optional argument list. If None, uses sys.argv.

    Returns:
        Process exit status.
    """
    args = parse_args(argv)
    settings = load_settings(args.env_file)
    setup_logging(
        level=args.log_level or settings.log_level,
        json_format=args.log_json or settings.log_json,
        diagnostic_tags=settings.diagnostic_tags,
    )

    try:
        config = build_config(args)
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return EXIT_CONFIG_ERROR

    if args.command == "probe":
        return asyncio.run(run_probe(config))
    return asyncio.run(
        run_watch(config, recheck_ms=args.recheck_ms, until_available=args.until_available)
    )


if __name__ == "__main__":
    sys.exit(main())
