"""Structured logging configuration.

Every line is one JSON object. The correlation keys in :data:`CONTEXT_KEYS`
are lifted into a ``context`` object that is present on every line, with
``null`` for keys that do not apply. Any remaining ``extra=`` fields go under
``extra``.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

CONTEXT_KEYS: tuple[str, ...] = ("workflow_run_id", "step_name", "component")

_RESERVED_LOG_RECORD_ATTRS: set[str] = {
    "args",
    "asctime",
    "created",
    "exc_info",
    "exc_text",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "msg",
    "name",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "stack_info",
    "taskName",
    "thread",
    "threadName",
}


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """Return the ``context`` object for ``record``.

    A mapping passed as ``extra={"context": ...}`` (as ``log_error`` does) is
    merged in. Attributes set directly on the record win over it.
    """

    context: dict[str, Any] = {}
    attached = getattr(record, "context", None)
    if isinstance(attached, Mapping):
        context.update(attached)
    for key in CONTEXT_KEYS:
        value = getattr(record, key, None)
        if value is not None or key not in context:
            context[key] = value
    return context


class JsonFormatter(logging.Formatter):
    """Formats records as ``{timestamp, level, logger, message, context, extra}``."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (record)
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "context": record_context(record),
        }

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_LOG_RECORD_ATTRS
            and key not in CONTEXT_KEYS
            and key != "context"
            and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str) -> None:
    """Send JSON lines to stdout at ``level`` and quiet the HTTP libraries."""

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
    root.setLevel(level.upper())

    # urllib3 logs every retry and connection at DEBUG.
    for name, floor in (("urllib3", logging.INFO), ("openai", logging.INFO), ("httpx", logging.WARNING)):
        logging.getLogger(name).setLevel(max(root.level, floor))
