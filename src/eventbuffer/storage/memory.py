"""
Process-local durable store.

Values are deep-copied through JSON on every put and get so callers never
share mutable state with the store, matching what a real backend returns.
"""

from __future__ import annotations

import asyncio
from typing import Any

from ..core.serialization import dumps, loads


class MemoryStore:
    """Dict-backed store; survives partition reactivation, not the process."""

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}
        self._alarms: dict[str, float] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            raw = self._data.get(key)
        if raw is None:
            return None
        return loads(raw)

    async def put(self, key: str, value: Any) -> None:
        raw = dumps(value)
        async with self._lock:
            self._data[key] = raw

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    async def get_alarm(self, partition: str) -> float | None:
        async with self._lock:
            return self._alarms.get(partition)

    async def set_alarm(self, partition: str, when: float) -> None:
        async with self._lock:
            self._alarms[partition] = float(when)

    async def delete_alarm(self, partition: str) -> None:
        async with self._lock:
            self._alarms.pop(partition, None)

    def keys(self) -> list[str]:
        return list(self._data)
