from .buffer import (
    Buffer,
    BufferCore,
    BufferStats,
    FlushAttempt,
    FlushOutcome,
    FlushTrigger,
    IngestResult,
    RejectReason,
)
from .errors import (
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
from .router import PartitionRouter
from .scheduler import Scheduler
from .settings import BufferSettings, Settings

__all__ = [
    "Buffer",
    "BufferCore",
    "BufferOverflow",
    "BufferSettings",
    "BufferStats",
    "ConfigurationError",
    "CorruptRecordError",
    "ErrorCategory",
    "EventBufferError",
    "FlushAttempt",
    "FlushOutcome",
    "FlushTrigger",
    "IngestResult",
    "InvalidPayload",
    "PartitionRouter",
    "PersistenceFailed",
    "RejectReason",
    "Scheduler",
    "Settings",
    "SinkSendFailed",
    "SinkUnavailable",
]
