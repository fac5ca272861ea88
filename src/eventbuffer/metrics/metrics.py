"""
Async metrics collection for eventbuffer.

Implements a small Prometheus-compatible metric set for ingest and flush
paths.

Design goals:
- Pure async/await, no blocking I/O
- Zero global state; instances use an isolated registry
- Safe no-op export when metrics are disabled, while still tracking
  in-memory counters for tests
"""

from __future__ import annotations

import asyncio
from collections import Counter as _TallyCounter
from dataclasses import dataclass, field
from typing import Any

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram


@dataclass
class BufferMetrics:
    """Captured runtime metrics for quick assertions in tests."""

    events_ingested: int = 0
    events_rejected: dict[str, int] = field(default_factory=dict)
    flushes: dict[str, int] = field(default_factory=dict)
    events_flushed: int = 0
    sink_errors: int = 0


class MetricsCollector:
    """Container-scoped async metrics collector."""

    def __init__(self, *, enabled: bool = False) -> None:
        self._enabled = bool(enabled)
        self._lock = asyncio.Lock()
        self._ingested = 0
        self._flushed = 0
        self._sink_errors = 0
        self._rejected: _TallyCounter[str] = _TallyCounter()
        self._flush_outcomes: _TallyCounter[str] = _TallyCounter()

        self._c_ingested: Any | None = None
        self._c_rejected: Any | None = None
        self._c_flushes: Any | None = None
        self._c_flushed: Any | None = None
        self._c_sink_errors: Any | None = None
        self._g_pending: Any | None = None
        self._h_batch_size: Any | None = None
        self._h_flush_latency: Any | None = None
        self._registry: CollectorRegistry | None = None

        if self._enabled:
            # Isolated registry to avoid global duplication in tests
            self._registry = CollectorRegistry()
            self._c_ingested = Counter(
                "eventbuffer_events_ingested_total",
                "Total number of events accepted into partition buffers",
                registry=self._registry,
            )
            self._c_rejected = Counter(
                "eventbuffer_events_rejected_total",
                "Total number of ingests rejected",
                ["reason"],
                registry=self._registry,
            )
            self._c_flushes = Counter(
                "eventbuffer_flushes_total",
                "Total number of flush attempts by outcome",
                ["outcome"],
                registry=self._registry,
            )
            self._c_flushed = Counter(
                "eventbuffer_events_flushed_total",
                "Total number of events handed off to the sink",
                registry=self._registry,
            )
            self._c_sink_errors = Counter(
                "eventbuffer_sink_errors_total",
                "Total number of sink delivery errors",
                ["sink"],
                registry=self._registry,
            )
            self._g_pending = Gauge(
                "eventbuffer_pending_events",
                "Events currently pending per partition",
                ["partition"],
                registry=self._registry,
            )
            self._h_batch_size = Histogram(
                "eventbuffer_batch_size",
                "Number of events per flush attempt",
                buckets=(1, 5, 10, 25, 50, 100, 250, 500, 1000, 5000),
                registry=self._registry,
            )
            self._h_flush_latency = Histogram(
                "eventbuffer_flush_seconds",
                "Latency of a sink hand-off",
                buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
                registry=self._registry,
            )

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def registry(self) -> CollectorRegistry | None:
        """Expose the isolated Prometheus registry when enabled."""
        return self._registry

    async def record_ingested(self, count: int = 1) -> None:
        async with self._lock:
            self._ingested += count
        if self._c_ingested is not None:
            self._c_ingested.inc(count)

    async def record_rejected(self, reason: str) -> None:
        async with self._lock:
            self._rejected[reason] += 1
        if self._c_rejected is not None:
            self._c_rejected.labels(reason=reason).inc()

    async def record_flush(
        self,
        *,
        outcome: str,
        batch_size: int = 0,
        latency_seconds: float | None = None,
    ) -> None:
        async with self._lock:
            self._flush_outcomes[outcome] += 1
            if outcome == "sent":
                self._flushed += batch_size
        if not self._enabled:
            return
        if self._c_flushes is not None:
            self._c_flushes.labels(outcome=outcome).inc()
        if outcome == "sent" and self._c_flushed is not None:
            self._c_flushed.inc(batch_size)
        if batch_size and self._h_batch_size is not None:
            self._h_batch_size.observe(batch_size)
        if latency_seconds is not None and self._h_flush_latency is not None:
            self._h_flush_latency.observe(latency_seconds)

    async def record_sink_error(self, *, sink: str, count: int = 1) -> None:
        async with self._lock:
            self._sink_errors += count
        if self._c_sink_errors is not None:
            self._c_sink_errors.labels(sink=sink).inc(count)

    def set_pending(self, partition: str, count: int) -> None:
        if self._g_pending is not None:
            self._g_pending.labels(partition=partition).set(count)

    async def snapshot(self) -> BufferMetrics:
        async with self._lock:
            return BufferMetrics(
                events_ingested=self._ingested,
                events_rejected=dict(self._rejected),
                flushes=dict(self._flush_outcomes),
                events_flushed=self._flushed,
                sink_errors=self._sink_errors,
            )
