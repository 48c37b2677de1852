"""Structured logging for connwatch.

Log records may carry the connection context fields ``dependency``, ``mode``,
``status`` and ``attempt``, either through ``extra`` or through a logger bound
with ``with_context``.  Both formatters render them after the component name.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import MutableMapping
from datetime import UTC, datetime
from typing import Any

CONTEXT_FIELDS: tuple[str, ...] = ("dependency", "mode", "status", "attempt")


def _component(record: logging.LogRecord) -> str:
    # "connwatch.controller" -> "controller"
    return record.name.rsplit(".", 1)[-1]


class DiagnosticFilter(logging.Filter):
    """Drops tagged DEBUG records whose tag is not enabled.

    The probe and timer paths emit high-volume debug lines tagged with
    ``extra={"diagnostic_tag": "probe"}`` or ``"timer"``.  They are shown only
    when listed in ``CONNWATCH_DIAGNOSTIC_TAGS``; ``"*"`` shows every tag.
    Untagged records and anything above DEBUG always pass.
    """

    def __init__(self, enabled_tags: frozenset[str] | None = None) -> None:
        super().__init__()
        self.enabled_tags: frozenset[str] = enabled_tags or frozenset()
        self.allow_all: bool = "*" in self.enabled_tags

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno != logging.DEBUG:
            return True
        tag: str | None = getattr(record, "diagnostic_tag", None)
        if tag is None or self.allow_all:
            return True
        return tag in self.enabled_tags

    @classmethod
    def from_config_string(cls, tags_csv: str) -> DiagnosticFilter:
        """Build a filter from a comma-separated tag list such as ``"probe,timer"``."""
        tags = frozenset(t.strip() for t in tags_csv.split(",") if t.strip())
        return cls(tags)


class StructuredFormatter(logging.Formatter):
    """Single-line text output: time, level, component, context, message."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=UTC).strftime("%Y-%m-%d %H:%M:%S.%f")[
            :-3
        ]
        parts = [timestamp, f"[{record.levelname:8}]", f"[{_component(record):10}]"]

        context = [f"{key}={getattr(record, key)}" for key in CONTEXT_FIELDS if hasattr(record, key)]
        if context:
            parts.append(f"[{' '.join(context)}]")

        parts.append(record.getMessage())
        if record.exc_info:
            parts.append(self.formatException(record.exc_info))
        return " ".join(parts)


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "component": _component(record),
            "message": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


class ContextAdapter(logging.LoggerAdapter[logging.Logger]):
    """Merges its bound context into the ``extra`` of every call."""

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        extra = kwargs.get("extra", {})
        if self.extra is not None:
            extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs


class ConnwatchLogger(logging.Logger):
    def with_context(self, **context: Any) -> ContextAdapter:
        """Bind context fields, e.g. ``logger.with_context(dependency="tasks-api")``."""
        return ContextAdapter(self, context)


logging.setLoggerClass(ConnwatchLogger)


def get_logger(name: str) -> ConnwatchLogger:
    return logging.getLogger(name)  # type: ignore[return-value]


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    diagnostic_tags: str = "",
) -> None:
    """Install a single stderr handler on the root logger.

    Args:
        level: Log level name; unknown names fall back to INFO.
        json_format: Emit JSON lines instead of structured text.
        diagnostic_tags: Comma-separated tags enabled in ``DiagnosticFilter``.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.setFormatter(JSONFormatter() if json_format else StructuredFormatter())
    handler.addFilter(DiagnosticFilter.from_config_string(diagnostic_tags))
    root_logger.addHandler(handler)

    logging.getLogger("connwatch").setLevel(numeric_level)
    # httpx logs every request at INFO, which drowns the probe loop.
    logging.getLogger("httpx").setLevel(max(numeric_level, logging.WARNING))
