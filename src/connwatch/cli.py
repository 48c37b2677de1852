"""Command-line interface argument parsing for connwatch.

This module provides the CLI argument parser that handles:
- ``probe``: a single health check printed as JSON
- ``watch``: the connection controller run until exhaustion or interruption
- Log level, log format and environment file overrides
"""

from __future__ import annotations

import argparse
from pathlib import Path


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "url",
        nargs="?",
        default=None,
        help="Health-check URL (overrides CONNWATCH_HEALTH_CHECK_URL)",
    )
    parser.add_argument(
        "--timeout-ms",
        type=int,
        default=None,
        help="Probe timeout in milliseconds (overrides CONNWATCH_TIMEOUT_MS)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level (overrides CONNWATCH_LOG_LEVEL)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Emit JSON log lines (overrides CONNWATCH_LOG_JSON)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to .env file (default: ./.env)",
    )


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: Optional list of arguments to parse. If None, uses sys.argv.

    Returns:
        Parsed arguments namespace. ``command`` is ``"probe"`` or ``"watch"``;
        the remaining attributes mirror the options below.
    """
    parser = argparse.ArgumentParser(
        prog="connwatch",
        description="connwatch - connectivity monitor for a single HTTP dependency",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    probe_parser = subparsers.add_parser(
        "probe",
        help="Check the dependency once and print the result as JSON",
    )
    _add_common_arguments(probe_parser)

    watch_parser = subparsers.add_parser(
        "watch",
        help="Monitor the dependency with exponential backoff",
    )
    _add_common_arguments(watch_parser)
    watch_parser.add_argument(
        "--initial-delay-ms",
        type=int,
        default=None,
        help="First retry delay in milliseconds (overrides CONNWATCH_INITIAL_DELAY_MS)",
    )
    watch_parser.add_argument(
        "--max-delay-ms",
        type=int,
        default=None,
        help="Retry delay cap in milliseconds (overrides CONNWATCH_MAX_DELAY_MS)",
    )
    watch_parser.add_argument(
        "--max-attempts",
        type=int,
        default=None,
        help="Failures before automatic retries stop (overrides CONNWATCH_MAX_ATTEMPTS)",
    )
    watch_parser.add_argument(
        "--recheck-ms",
        type=int,
        default=0,
        help="Force a re-check this often while available (default: 0, never)",
    )
    watch_parser.add_argument(
        "--until-available",
        action="store_true",
        help="Exit with status 0 as soon as the dependency is available",
    )

    return parser.parse_args(args)


__all__ = ["parse_args"]
