"""
Event and buffer-record serialization.

Events are opaque JSON values. Serializing with orjson both validates the
payload and yields the byte count used by the size trigger, so the bytes
returned here are the single source of truth for buffer size estimates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

import orjson

from .errors import CorruptRecordError, InvalidPayload

RECORD_VERSION = 1


def _default(obj: Any) -> Any:
    """Default hook for types orjson does not handle natively."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(exclude_none=True)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


@dataclass
class SerializedView:
    """Serialized bytes of a single event."""

    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def serialize_event(event: Any) -> SerializedView:
    """Serialize an event, raising ``InvalidPayload`` when it is not JSON."""
    try:
        data = orjson.dumps(event, default=_default)
    except (TypeError, orjson.JSONEncodeError) as e:
        raise InvalidPayload(
            "Event is not JSON serializable",
            cause=e,
            event_type=type(event).__name__,
        ) from e
    return SerializedView(data=data)


def estimate_size(event: Any) -> int:
    return serialize_event(event).size


def encode_record(
    events: Sequence[Any], *, last_flush_at: float | None
) -> dict[str, Any]:
    """Build the persisted buffer record for a partition."""
    return {
        "version": RECORD_VERSION,
        "events": list(events),
        "last_flush_at": last_flush_at,
    }


def decode_record(value: Any) -> tuple[list[Any], float | None]:
    """Return ``(events, last_flush_at)`` from a stored record.

    Accepts the versioned mapping written by ``encode_record`` and a bare
    JSON array. Anything else raises ``CorruptRecordError``.
    """
    if isinstance(value, list):
        return list(value), None
    if isinstance(value, dict) and isinstance(value.get("events"), list):
        last = value.get("last_flush_at")
        if last is not None and not isinstance(last, (int, float)):
            last = None
        return list(value["events"]), last
    raise CorruptRecordError(
        "Stored buffer record is malformed",
        record_type=type(value).__name__,
    )


def dumps(value: Any) -> bytes:
    return orjson.dumps(value, default=_default)


def loads(data: bytes | str) -> Any:
    try:
        return orjson.loads(data)
    except orjson.JSONDecodeError as e:
        raise CorruptRecordError("Stored record is not valid JSON", cause=e) from e


def encode_jsonl(batch: Sequence[Any]) -> bytes:
    """Join a batch into newline-delimited JSON bytes."""
    return b"".join(orjson.dumps(item, default=_default) + b"\n" for item in batch)
