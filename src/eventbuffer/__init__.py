"""
Public entrypoints for eventbuffer.

Durable per-partition event batching: events are persisted as they are
ingested and handed to a sink in batches when a count, size or time
threshold trips. Failed batches are restored in order and retried on the
next trigger.
"""

from __future__ import annotations

from ._version import __version__
from .builder import RouterBuilder, build_router, build_sink, build_store
from .core.buffer import (
    BufferCore,
    BufferStats,
    FlushOutcome,
    FlushTrigger,
    IngestResult,
    RejectReason,
)
from .core.diagnostics import configure_logging
from .core.errors import (
    BufferOverflow,
    EventBufferError,
    InvalidPayload,
    PersistenceFailed,
    SinkSendFailed,
    SinkUnavailable,
)
from .core.router import PartitionRouter
from .core.scheduler import Scheduler
from .core.settings import BufferSettings, Settings
from .metrics.metrics import MetricsCollector
from .sinks import BaseSink, HttpSink, MemorySink, ObjectStoreSink
from .storage import DurableStore, FileStore, MemoryStore

__all__ = [
    "BaseSink",
    "BufferCore",
    "BufferOverflow",
    "BufferSettings",
    "BufferStats",
    "DurableStore",
    "EventBufferError",
    "FileStore",
    "FlushOutcome",
    "FlushTrigger",
    "HttpSink",
    "IngestResult",
    "InvalidPayload",
    "MemorySink",
    "MemoryStore",
    "MetricsCollector",
    "ObjectStoreSink",
    "PartitionRouter",
    "PersistenceFailed",
    "RejectReason",
    "RouterBuilder",
    "Scheduler",
    "Settings",
    "SinkSendFailed",
    "SinkUnavailable",
    "VERSION",
    "__version__",
    "build_router",
    "build_sink",
    "build_store",
    "configure_logging",
]

VERSION = __version__
