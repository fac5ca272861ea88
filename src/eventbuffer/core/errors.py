"""
Error hierarchy for the partition buffering engine.

Every error carries a category so callers (the router, the HTTP layer and
the diagnostics helpers) can map failures to rejection reasons and log
fields without string matching.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    PERSISTENCE = "persistence"
    SINK = "sink"
    CAPACITY = "capacity"
    CONFIGURATION = "configuration"


class EventBufferError(Exception):
    """Base error with a category and structured context."""

    category: ErrorCategory = ErrorCategory.VALIDATION

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        **context: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = dict(context)
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "context": dict(self.context),
        }


class InvalidPayload(EventBufferError):
    """Event is not a serializable value; rejected before buffering."""

    category = ErrorCategory.VALIDATION


class PersistenceFailed(EventBufferError):
    """A durable store read or write did not complete."""

    category = ErrorCategory.PERSISTENCE


class CorruptRecordError(PersistenceFailed):
    """A stored record exists but cannot be decoded."""


class SinkUnavailable(EventBufferError):
    """No sink is configured for the partition."""

    category = ErrorCategory.SINK


class SinkSendFailed(EventBufferError):
    """The sink raised, timed out or reported failure for a batch."""

    category = ErrorCategory.SINK


class BufferOverflow(EventBufferError):
    """The partition holds the maximum number of pending events."""

    category = ErrorCategory.CAPACITY


class ConfigurationError(EventBufferError):
    category = ErrorCategory.CONFIGURATION


__all__ = [
    "BufferOverflow",
    "ConfigurationError",
    "CorruptRecordError",
    "ErrorCategory",
    "EventBufferError",
    "InvalidPayload",
    "PersistenceFailed",
    "SinkSendFailed",
    "SinkUnavailable",
]
