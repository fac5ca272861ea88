from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from .file import FileStore
from .memory import MemoryStore


@runtime_checkable
class DurableStore(Protocol):
    """Async key-value persistence with one wake-up alarm per partition.

    Values are JSON-compatible structures. ``get`` returns ``None`` for an
    absent key. I/O failures raise ``PersistenceFailed``; a record that
    exists but cannot be decoded raises ``CorruptRecordError``.
    """

    async def get(self, key: str) -> Any | None: ...

    async def put(self, key: str, value: Any) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def get_alarm(self, partition: str) -> float | None: ...

    async def set_alarm(self, partition: str, when: float) -> None: ...

    async def delete_alarm(self, partition: str) -> None: ...


__all__ = [
    "DurableStore",
    "FileStore",
    "MemoryStore",
]
