"""Structured logging for workflow invocations.

Every circuitflow module logs through ``logging.getLogger(__name__)`` and
attaches invocation context with ``extra=``. :class:`JsonFormatter` lifts
the well-known context keys (``workflow_id``, ``thread_id``, ``node_id``,
``event``) to the top level of each JSON line so logs can be filtered per
workflow or node; any other ``extra`` values are nested under ``"extra"``.

Records go to stderr so command output on stdout stays machine-readable.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any, Literal

CONTEXT_KEYS: tuple[str, ...] = ("workflow_id", "thread_id", "node_id", "event")

# Attributes every LogRecord carries, whatever the interpreter version.
_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

_TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_NOISY_LOGGERS = ("openai", "httpx", "httpcore")


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class JsonFormatter(logging.Formatter):
    """One JSON object per record, invocation context first."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (record)
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra: dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key.startswith("_"):
                continue
            if key in CONTEXT_KEYS:
                if value is not None:
                    payload[key] = _jsonable(value)
            else:
                extra[key] = _jsonable(value)
        if extra:
            payload["extra"] = extra

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False)


def configure_logging(level: str, fmt: Literal["json", "text"] = "json") -> None:
    """Route all records to stderr with the chosen formatter.

    Calling it again replaces the previous configuration.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream=sys.stderr)
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT, datefmt="%H:%M:%S"))
    root.addHandler(handler)
    root.setLevel(level.upper())

    # HTTP client chatter from model providers stays at WARNING and above.
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(root.level, logging.WARNING))
