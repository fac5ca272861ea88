"""Tests for the error hierarchy."""

from __future__ import annotations

from eventbuffer.core.errors import (
    BufferOverflow,
    ConfigurationError,
    CorruptRecordError,
    ErrorCategory,
    EventBufferError,
    InvalidPayload,
    PersistenceFailed,
    SinkSendFailed,
    SinkUnavailable,
)


def test_categories() -> None:
    assert InvalidPayload("x").category is ErrorCategory.VALIDATION
    assert PersistenceFailed("x").category is ErrorCategory.PERSISTENCE
    assert CorruptRecordError("x").category is ErrorCategory.PERSISTENCE
    assert SinkUnavailable("x").category is ErrorCategory.SINK
    assert SinkSendFailed("x").category is ErrorCategory.SINK
    assert BufferOverflow("x").category is ErrorCategory.CAPACITY
    assert ConfigurationError("x").category is ErrorCategory.CONFIGURATION


def test_corrupt_record_is_a_persistence_failure() -> None:
    assert issubclass(CorruptRecordError, PersistenceFailed)
    assert issubclass(PersistenceFailed, EventBufferError)


def test_context_and_cause() -> None:
    cause = OSError("disk full")
    err = PersistenceFailed("write failed", cause=cause, key="k")
    assert err.__cause__ is cause
    assert err.context == {"key": "k"}
    assert str(err) == "write failed"


def test_to_dict() -> None:
    err = BufferOverflow("full", partition="p1")
    assert err.to_dict() == {
        "error_type": "BufferOverflow",
        "message": "full",
        "category": "capacity",
        "context": {"partition": "p1"},
    }
