from __future__ import annotations

from typing import Any, Protocol, Sequence, runtime_checkable

from .http import HttpSink, HttpSinkConfig
from .memory import MemorySink
from .object_store import ObjectStoreSink, ObjectStoreSinkConfig


@runtime_checkable
class BaseSink(Protocol):
    """Base async sink interface.

    A sink accepts one ordered batch per call. Returning ``None`` or
    ``True`` confirms the hand-off; returning ``False`` or raising reports
    failure, after which the batch is restored to the partition buffer and
    delivered again later. Sinks must therefore tolerate duplicates.
    """

    name: str

    async def start(self) -> None:  # Optional lifecycle hook
        ...

    async def stop(self) -> None:  # Optional lifecycle hook
        ...

    async def send(self, _batch: Sequence[Any]) -> bool | None:  # noqa: ARG002
        """Deliver an ordered batch of events."""
        ...


def sink_name(sink: Any) -> str:
    return getattr(sink, "name", type(sink).__name__)


__all__ = [
    "BaseSink",
    "HttpSink",
    "HttpSinkConfig",
    "MemorySink",
    "ObjectStoreSink",
    "ObjectStoreSinkConfig",
    "sink_name",
]
