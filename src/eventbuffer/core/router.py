"""
Partition table.

``PartitionRouter`` owns one ``BufferCore`` per partition identity and
creates it lazily on first use. How a partition identity is derived from
an event is the caller's decision; the router only maps identities to
buffers and fans lifecycle operations out to them.
"""

from __future__ import annotations

import asyncio
import time
import types
from typing import Any, Callable

from ..metrics.metrics import MetricsCollector
from . import diagnostics
from .buffer import BufferCore, BufferStats, FlushOutcome, IngestResult
from .settings import BufferSettings


class PartitionRouter:
    """Supervising map of partition identity to buffering engine.

    Usage:
        async with PartitionRouter(store=store, sink=sink) as router:
            result = await router.ingest("user-42", {"ev": "click"})
    """

    def __init__(
        self,
        *,
        store: Any,
        sink: Any | None,
        settings: BufferSettings | None = None,
        key_prefix: str = "eventbuffer",
        metrics: MetricsCollector | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._sink = sink
        self._settings = settings or BufferSettings()
        self._key_prefix = key_prefix
        self._metrics = metrics
        self._clock = clock
        self._partitions: dict[str, BufferCore] = {}
        self._closed = False

    @property
    def sink(self) -> Any | None:
        return self._sink

    @property
    def metrics(self) -> MetricsCollector | None:
        return self._metrics

    @property
    def settings(self) -> BufferSettings:
        return self._settings

    def __contains__(self, partition: object) -> bool:
        return partition in self._partitions

    def __len__(self) -> int:
        return len(self._partitions)

    def partitions(self) -> list[str]:
        return list(self._partitions)

    def get(self, partition: str) -> BufferCore:
        """Return the partition's buffer, creating it on first access."""
        if self._closed:
            raise RuntimeError("PartitionRouter is closed")
        core = self._partitions.get(partition)
        if core is None:
            core = BufferCore(
                partition,
                store=self._store,
                sink=self._sink,
                settings=self._settings,
                key_prefix=self._key_prefix,
                metrics=self._metrics,
                clock=self._clock,
            )
            self._partitions[partition] = core
            diagnostics.debug("router", "partition activated", partition=partition)
        return core

    async def activate(self, partition: str) -> BufferCore:
        """Create and rehydrate a partition ahead of its first ingest."""
        core = self.get(partition)
        await core.rehydrate()
        return core

    async def ingest(self, partition: str, event: Any) -> IngestResult:
        return await self.get(partition).ingest(event)

    async def flush(self, partition: str) -> FlushOutcome:
        return await self.get(partition).flush()

    async def flush_all(self) -> dict[str, FlushOutcome]:
        cores = list(self._partitions.values())
        outcomes = await asyncio.gather(*(core.flush() for core in cores))
        return {core.partition: outcome for core, outcome in zip(cores, outcomes)}

    async def wait_idle(self) -> None:
        await asyncio.gather(*(core.wait_idle() for core in self._partitions.values()))

    def stats(self) -> list[BufferStats]:
        return [core.stats() for core in self._partitions.values()]

    async def close(self, *, flush: bool = True) -> None:
        """Stop every partition; with ``flush`` make a final delivery attempt.

        Whatever cannot be delivered stays in the durable store and is
        rehydrated on the next activation.
        """
        if self._closed:
            return
        self._closed = True
        results = await asyncio.gather(
            *(core.close(flush=flush) for core in self._partitions.values()),
            return_exceptions=True,
        )
        for core, result in zip(list(self._partitions.values()), results):
            if isinstance(result, Exception):
                diagnostics.warn(
                    "router",
                    "partition close failed",
                    partition=core.partition,
                    error=str(result),
                )

    async def __aenter__(self) -> PartitionRouter:
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc: BaseException | None,
        _tb: types.TracebackType | None,
    ) -> None:
        await self.close()
