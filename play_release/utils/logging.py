"""Logging helpers."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, TextIO

_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """Render log records as compact JSON, carrying ``extra`` fields through."""

    default_time_format = "%Y-%m-%dT%H:%M:%S"
    default_msec_format = "%s.%03dZ"

    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - exercised indirectly
        data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.default_time_format),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        data.update(
            (key, value) for key, value in record.__dict__.items() if key not in _RESERVED_ATTRS
        )
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data, ensure_ascii=False, default=str)


def _build_formatter(structured: bool) -> logging.Formatter:
    return JsonFormatter() if structured else logging.Formatter(PLAIN_FORMAT)


def configure_logging(
    *,
    level: int = logging.INFO,
    structured: bool | None = None,
    stream: TextIO | None = None,
) -> None:
    """Configure root logging on stderr with optional JSON output.

    When handlers already exist only their formatter is swapped, and only if
    ``structured`` is given explicitly.
    """

    root = logging.getLogger()
    root.setLevel(level)

    if root.handlers:
        if structured is None:
            return
        formatter = _build_formatter(structured)
        for handler in root.handlers:
            handler.setFormatter(formatter)
        return

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(_build_formatter(bool(structured)))
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "JsonFormatter"]
