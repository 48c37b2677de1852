"""Tests for command-line argument parsing."""

from __future__ import annotations

from pathlib import Path

import pytest

from connwatch.cli import parse_args


class TestParseArgs:
    """Tests for parse_args."""

    def test_probe_defaults(self) -> None:
        args = parse_args(["probe"])
        assert args.command == "probe"
        assert args.url is None
        assert args.timeout_ms is None
        assert args.log_level is None
        assert args.log_json is False
        assert args.env_file is None

    def test_probe_with_url_and_timeout(self) -> None:
        args = parse_args(["probe", "http://tasks.test/health", "--timeout-ms", "250"])
        assert args.url == "http://tasks.test/health"
        assert args.timeout_ms == 250

    def test_watch_options(self) -> None:
        args = parse_args(
            [
                "watch",
                "http://tasks.test/health",
                "--initial-delay-ms",
                "200",
                "--max-delay-ms",
                "4000",
                "--max-attempts",
                "3",
                "--recheck-ms",
                "60000",
                "--until-available",
                "--log-level",
                "DEBUG",
                "--log-json",
                "--env-file",
                "custom.env",
            ]
        )
        assert args.command == "watch"
        assert args.initial_delay_ms == 200
        assert args.max_delay_ms == 4000
        assert args.max_attempts == 3
        assert args.recheck_ms == 60000
        assert args.until_available is True
        assert args.log_level == "DEBUG"
        assert args.log_json is True
        assert args.env_file == Path("custom.env")

    def test_watch_defaults(self) -> None:
        args = parse_args(["watch"])
        assert args.recheck_ms == 0
        assert args.until_available is False
        assert args.max_attempts is None

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            parse_args([])

    def test_invalid_log_level(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(["probe", "--log-level", "TRACE"])

    def test_probe_rejects_watch_options(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(["probe", "--max-attempts", "3"])
