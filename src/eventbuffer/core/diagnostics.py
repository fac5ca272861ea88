"""
Structured internal diagnostics.

Components report non-fatal conditions through ``warn``/``info``/``debug``
with a component label and keyword fields. Records go through the stdlib
``logging`` tree under the ``eventbuffer`` namespace; ``configure_logging``
installs a stderr handler that renders them as JSON lines.
"""

from __future__ import annotations

import logging
import sys
import time
from typing import Any

import orjson

LOGGER_NAME = "eventbuffer"

_FIELDS_ATTR = "eventbuffer_fields"
_COMPONENT_ATTR = "eventbuffer_component"


class JsonLineFormatter(logging.Formatter):
    """Render a log record and its diagnostic fields as one JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": time.strftime(
                "%Y-%m-%dT%H:%M:%S", time.gmtime(record.created)
            )
            + f".{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        component = getattr(record, _COMPONENT_ATTR, None)
        if component:
            payload["component"] = component
        fields = getattr(record, _FIELDS_ATTR, None)
        if fields:
            payload["fields"] = fields
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=str).decode("utf-8")


def configure_logging(level: str = "INFO", *, stream: Any = None) -> logging.Logger:
    """Attach a JSON-lines handler to the package logger (idempotent)."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in logger.handlers:
        if isinstance(handler.formatter, JsonLineFormatter):
            return logger
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonLineFormatter())
    logger.addHandler(handler)
    return logger


def _emit(level: int, component: str, message: str, fields: dict[str, Any]) -> None:
    logger = logging.getLogger(f"{LOGGER_NAME}.{component}")
    if not logger.isEnabledFor(level):
        return
    logger.log(
        level,
        message,
        extra={_COMPONENT_ATTR: component, _FIELDS_ATTR: fields},
    )


def warn(component: str, message: str, **fields: Any) -> None:
    _emit(logging.WARNING, component, message, fields)


def info(component: str, message: str, **fields: Any) -> None:
    _emit(logging.INFO, component, message, fields)


def debug(component: str, message: str, **fields: Any) -> None:
    _emit(logging.DEBUG, component, message, fields)
