from __future__ import annotations

import asyncio
from typing import Any, Sequence


class MemorySink:
    """Sink that keeps every delivered batch in memory.

    Useful for local runs and tests; ``events`` flattens the batches in
    delivery order.
    """

    name = "memory"

    def __init__(self) -> None:
        self.batches: list[list[Any]] = []
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        return None

    async def send(self, batch: Sequence[Any]) -> bool:
        async with self._lock:
            self.batches.append(list(batch))
        return True

    @property
    def events(self) -> list[Any]:
        return [event for batch in self.batches for event in batch]
