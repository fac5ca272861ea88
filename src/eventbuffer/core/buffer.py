"""
Per-partition buffering engine.

``BufferCore`` owns the pending events of one partition and runs the
ingest/flush state machine:

- ingest: validate, persist, append, then apply the size and count
  triggers and make sure a time-based deadline exists
- flush: snapshot the buffer, hand the snapshot to the sink outside the
  partition lock, then either drop it (success) or put it back in front
  of anything ingested meanwhile (failure)

The durable record always holds ``in-flight snapshot + pending`` in
arrival order, so a crash at any point loses nothing that was
acknowledged. Delivery is at-least-once.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable

from . import diagnostics
from .concurrency import InitializationBarrier, TaskTracker
from .errors import (
    BufferOverflow,
    CorruptRecordError,
    EventBufferError,
    InvalidPayload,
    SinkSendFailed,
    SinkUnavailable,
)
from .policy import (
    RetryBackoff,
    at_capacity,
    exceeds_byte_ceiling,
    reached_event_count,
)
from .scheduler import Scheduler
from .serialization import (
    decode_record,
    encode_record,
    estimate_size,
    loads,
    serialize_event,
)
from .settings import BufferSettings


class RejectReason(str, Enum):
    INVALID_PAYLOAD = "invalid_payload"
    PERSISTENCE_FAILED = "persistence_failed"
    BUFFER_OVERFLOW = "buffer_overflow"


class FlushOutcome(str, Enum):
    EMPTY = "empty"
    SENT = "sent"
    FAILED = "failed"
    SINK_UNAVAILABLE = "sink_unavailable"


class FlushTrigger(str, Enum):
    COUNT = "count"
    SIZE = "size"
    TIMER = "timer"
    MANUAL = "manual"


@dataclass(frozen=True)
class IngestResult:
    accepted: bool
    reason: RejectReason | None = None
    detail: str | None = None

    @classmethod
    def ok(cls) -> IngestResult:
        return cls(accepted=True)

    @classmethod
    def rejected(cls, reason: RejectReason, detail: str | None = None) -> IngestResult:
        return cls(accepted=False, reason=reason, detail=detail)


@dataclass(slots=True)
class BufferedEvent:
    payload: Any
    size: int


class Buffer:
    """Ordered pending events with exact count and byte totals."""

    __slots__ = ("_events", "_byte_size", "last_flush_at")

    def __init__(
        self,
        events: Iterable[BufferedEvent] = (),
        *,
        last_flush_at: float | None = None,
    ) -> None:
        self._events: list[BufferedEvent] = list(events)
        self._byte_size = sum(e.size for e in self._events)
        self.last_flush_at = last_flush_at

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def byte_size(self) -> int:
        return self._byte_size

    @property
    def events(self) -> list[BufferedEvent]:
        return list(self._events)

    def payloads(self) -> list[Any]:
        return [e.payload for e in self._events]

    def append(self, event: BufferedEvent) -> None:
        self._events.append(event)
        self._byte_size += event.size

    def prepend(self, events: list[BufferedEvent]) -> None:
        self._events[:0] = events
        self._byte_size += sum(e.size for e in events)

    def take_all(self) -> list[BufferedEvent]:
        taken = self._events
        self._events = []
        self._byte_size = 0
        return taken


@dataclass
class FlushAttempt:
    events: list[BufferedEvent]
    trigger: FlushTrigger
    started_at: float
    done: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def count(self) -> int:
        return len(self.events)

    def payloads(self) -> list[Any]:
        return [e.payload for e in self.events]


@dataclass(frozen=True)
class BufferStats:
    partition: str
    pending_events: int
    pending_bytes: int
    in_flight_events: int
    consecutive_failures: int
    last_flush_at: float | None
    next_flush_at: float | None


class BufferCore:
    """Buffering engine for a single partition."""

    def __init__(
        self,
        partition: str,
        *,
        store: Any,
        sink: Any | None,
        settings: BufferSettings | None = None,
        key_prefix: str = "eventbuffer",
        metrics: Any | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._partition = partition
        self._store = store
        self._sink = sink
        self._settings = settings or BufferSettings()
        self._key = f"{key_prefix}:{partition}:buffer"
        self._metrics = metrics
        self._clock = clock
        self._lock = asyncio.Lock()
        self._barrier = InitializationBarrier()
        self._tasks = TaskTracker()
        self._buffer = Buffer()
        self._attempt: FlushAttempt | None = None
        self._backoff = RetryBackoff(
            self._settings.retry_base_delay_seconds,
            self._settings.retry_max_delay_seconds,
        )
        self.scheduler = Scheduler(
            partition,
            store=store,
            interval_seconds=self._settings.flush_interval_seconds,
            on_fire=self._timer_flush,
            clock=clock,
        )

    @property
    def partition(self) -> str:
        return self._partition

    @property
    def storage_key(self) -> str:
        return self._key

    @property
    def is_rehydrated(self) -> bool:
        return self._barrier.is_done

    @property
    def in_flight(self) -> FlushAttempt | None:
        return self._attempt

    def pending(self) -> list[Any]:
        """Payloads currently waiting in the buffer, in arrival order."""
        return self._buffer.payloads()

    def stats(self) -> BufferStats:
        return BufferStats(
            partition=self._partition,
            pending_events=self._buffer.count,
            pending_bytes=self._buffer.byte_size,
            in_flight_events=self._attempt.count if self._attempt else 0,
            consecutive_failures=self._backoff.failures,
            last_flush_at=self._buffer.last_flush_at,
            next_flush_at=self.scheduler.deadline,
        )

    # ------------------------------------------------------------------
    # Rehydration
    # ------------------------------------------------------------------

    async def rehydrate(self) -> None:
        """Load the persisted buffer once; concurrent callers wait for it."""
        await self._barrier.ensure(self._load)

    async def _load(self) -> None:
        try:
            value = await self._store.get(self._key)
        except CorruptRecordError as exc:
            diagnostics.warn(
                "buffer",
                "persisted buffer unreadable, starting empty",
                partition=self._partition,
                error=str(exc),
            )
            value = None

        events: list[Any] = []
        last_flush_at: float | None = None
        if value is not None:
            try:
                events, last_flush_at = decode_record(value)
            except CorruptRecordError as exc:
                diagnostics.warn(
                    "buffer",
                    "persisted buffer malformed, starting empty",
                    partition=self._partition,
                    error=str(exc),
                )

        restored: list[BufferedEvent] = []
        for payload in events:
            try:
                restored.append(BufferedEvent(payload, estimate_size(payload)))
            except InvalidPayload:
                # Decoded from JSON, so this only happens with a foreign codec
                diagnostics.warn(
                    "buffer",
                    "dropping unserializable persisted event",
                    partition=self._partition,
                )
        self._buffer = Buffer(restored, last_flush_at=last_flush_at)
        if restored:
            diagnostics.info(
                "buffer",
                "rehydrated pending events",
                partition=self._partition,
                count=len(restored),
            )
        self._report_pending()
        await self.scheduler.restore()
        if self._buffer.count:
            await self.scheduler.ensure_scheduled()

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    async def ingest(self, event: Any) -> IngestResult:
        """Buffer one event durably; returns once it is persisted."""
        try:
            await self.rehydrate()
        except Exception as exc:
            return await self._reject(
                RejectReason.PERSISTENCE_FAILED, "rehydration failed", exc
            )

        try:
            view = serialize_event(event)
        except InvalidPayload as exc:
            return await self._reject(RejectReason.INVALID_PAYLOAD, exc.message, exc)

        # Buffer the JSON form so memory, durable record and sinks agree
        item = BufferedEvent(loads(view.data), view.size)
        failure: tuple[RejectReason, str, BaseException | None] | None = None
        async with self._lock:
            buf = self._buffer
            held = buf.count + (self._attempt.count if self._attempt else 0)
            if at_capacity(held, self._settings.max_pending_events):
                detail = f"partition holds {held} pending events"
                failure = (
                    RejectReason.BUFFER_OVERFLOW,
                    detail,
                    BufferOverflow(detail, partition=self._partition, held=held),
                )
            else:
                try:
                    await self._persist([*self._in_flight_events(), *buf.events, item])
                except Exception as exc:
                    failure = (
                        RejectReason.PERSISTENCE_FAILED,
                        "durable write failed",
                        exc,
                    )
                else:
                    now = self._clock()
                    if exceeds_byte_ceiling(
                        buf.byte_size,
                        item.size,
                        self._settings.max_buffer_bytes,
                        buf.count,
                    ):
                        self._start_background_flush(FlushTrigger.SIZE, now)
                    buf.append(item)
                    if reached_event_count(buf.count, self._settings.max_event_count):
                        self._start_background_flush(FlushTrigger.COUNT, now)
                    self._report_pending()

        if failure is not None:
            reason, detail, exc = failure
            return await self._reject(reason, detail, exc)

        if self._metrics is not None:
            await self._metrics.record_ingested()
        await self.scheduler.ensure_scheduled()
        return IngestResult.ok()

    async def _reject(
        self, reason: RejectReason, detail: str, exc: BaseException | None
    ) -> IngestResult:
        fields: dict[str, Any] = {"partition": self._partition, "reason": reason.value}
        if exc is not None:
            fields["error"] = str(exc)
        if isinstance(exc, EventBufferError):
            fields["category"] = exc.category.value
        diagnostics.warn("buffer", f"ingest rejected: {detail}", **fields)
        if self._metrics is not None:
            await self._metrics.record_rejected(reason.value)
        return IngestResult.rejected(reason, detail)

    # ------------------------------------------------------------------
    # Flush
    # ------------------------------------------------------------------

    async def flush(self, trigger: FlushTrigger = FlushTrigger.MANUAL) -> FlushOutcome:
        """Hand the current buffer to the sink.

        Waits for an in-flight attempt to settle first, so at most one
        attempt exists per partition.
        """
        await self.rehydrate()
        while True:
            async with self._lock:
                current = self._attempt
                if current is None:
                    if self._buffer.count == 0:
                        return FlushOutcome.EMPTY
                    if self._sink is None:
                        return await self._sink_unavailable()
                    attempt = self._begin_attempt(trigger)
                    break
            await current.done.wait()
        return await self._complete_attempt(attempt)

    async def _timer_flush(self) -> FlushOutcome:
        return await self.flush(FlushTrigger.TIMER)

    async def _sink_unavailable(self) -> FlushOutcome:
        err = SinkUnavailable("no sink configured", partition=self._partition)
        diagnostics.warn(
            "buffer",
            "flush abandoned",
            partition=self._partition,
            pending=self._buffer.count,
            error=err.message,
            category=err.category.value,
        )
        if self._metrics is not None:
            await self._metrics.record_flush(outcome=FlushOutcome.SINK_UNAVAILABLE.value)
        return FlushOutcome.SINK_UNAVAILABLE

    def _in_flight_events(self) -> list[BufferedEvent]:
        return list(self._attempt.events) if self._attempt else []

    def _begin_attempt(self, trigger: FlushTrigger) -> FlushAttempt:
        # Caller holds self._lock
        attempt = FlushAttempt(
            events=self._buffer.take_all(),
            trigger=trigger,
            started_at=self._clock(),
        )
        self._attempt = attempt
        self._report_pending()
        return attempt

    def _start_background_flush(self, trigger: FlushTrigger, now: float) -> None:
        """Snapshot now and send in the background (caller holds the lock)."""
        if self._attempt is not None:
            diagnostics.debug(
                "buffer",
                "threshold reached while a flush is in flight",
                partition=self._partition,
                trigger=trigger.value,
            )
            return
        if not self._backoff.ready(now):
            diagnostics.debug(
                "buffer",
                "threshold flush deferred by backoff",
                partition=self._partition,
                trigger=trigger.value,
                failures=self._backoff.failures,
            )
            return
        if self._sink is None or self._buffer.count == 0:
            if self._sink is None:
                self._tasks.spawn(self._sink_unavailable())
            return
        attempt = self._begin_attempt(trigger)
        self._tasks.spawn(self._complete_attempt(attempt))

    async def _send(self, attempt: FlushAttempt) -> SinkSendFailed | None:
        """Run one sink hand-off; returns the failure, or None on success."""
        timeout = self._settings.sink_timeout_seconds
        try:
            result = await asyncio.wait_for(
                self._sink.send(attempt.payloads()), timeout=timeout
            )
        except asyncio.TimeoutError as exc:
            return SinkSendFailed(f"sink send timed out after {timeout}s", cause=exc)
        except Exception as exc:
            return SinkSendFailed(f"{type(exc).__name__}: {exc}", cause=exc)
        if result is False:
            return SinkSendFailed("sink reported failure")
        return None

    async def _complete_attempt(self, attempt: FlushAttempt) -> FlushOutcome:
        start = time.perf_counter()
        try:
            error = await self._send(attempt)
        except asyncio.CancelledError:
            # Durable record still holds the snapshot; restore memory only
            self._restore(attempt)
            raise
        latency = time.perf_counter() - start
        ok = error is None

        retry_in: float | None = None
        try:
            async with self._lock:
                try:
                    if ok:
                        self._attempt = None
                        self._buffer.last_flush_at = self._clock()
                        self._backoff.record_success()
                    else:
                        self._restore(attempt)
                        retry_in = self._backoff.record_failure(self._clock())
                    try:
                        await self._persist(self._buffer.events)
                    except Exception as exc:
                        diagnostics.warn(
                            "buffer",
                            "failed to persist buffer after flush",
                            partition=self._partition,
                            outcome="sent" if ok else "failed",
                            error=str(exc),
                        )
                    if ok and reached_event_count(
                        self._buffer.count, self._settings.max_event_count
                    ):
                        self._start_background_flush(FlushTrigger.COUNT, self._clock())
                    self._report_pending()
                finally:
                    attempt.done.set()
        except BaseException:
            # Interrupted before settling (e.g. cancelled waiting for the lock)
            self._abandon(attempt, delivered=ok)
            raise

        if ok:
            diagnostics.debug(
                "buffer",
                "flushed batch",
                partition=self._partition,
                trigger=attempt.trigger.value,
                count=attempt.count,
            )
            outcome = FlushOutcome.SENT
        else:
            diagnostics.warn(
                "buffer",
                "flush failed, events restored",
                partition=self._partition,
                trigger=attempt.trigger.value,
                count=attempt.count,
                error=str(error),
                retry_in_seconds=retry_in,
            )
            outcome = FlushOutcome.FAILED
        if self._metrics is not None:
            await self._metrics.record_flush(
                outcome=outcome.value,
                batch_size=attempt.count,
                latency_seconds=latency,
            )
        return outcome

    def _restore(self, attempt: FlushAttempt) -> None:
        if self._attempt is attempt:
            self._attempt = None
            self._buffer.prepend(attempt.events)
        attempt.done.set()

    def _abandon(self, attempt: FlushAttempt, *, delivered: bool) -> None:
        if not delivered:
            self._restore(attempt)
            return
        # Durable record still lists the batch; a restart redelivers it
        if self._attempt is attempt:
            self._attempt = None
        attempt.done.set()

    # ------------------------------------------------------------------
    # Persistence and lifecycle
    # ------------------------------------------------------------------

    async def _persist(self, events: list[BufferedEvent]) -> None:
        record = encode_record(
            [e.payload for e in events], last_flush_at=self._buffer.last_flush_at
        )
        await self._store.put(self._key, record)

    def _report_pending(self) -> None:
        if self._metrics is not None:
            self._metrics.set_pending(self._partition, self._buffer.count)

    async def wait_idle(self) -> None:
        """Wait for background (threshold-triggered) flushes to settle."""
        await self._tasks.join()

    async def close(self, *, flush: bool = False) -> None:
        """Stop the scheduler, settle background work and optionally flush."""
        await self.scheduler.cancel()
        await self.wait_idle()
        if flush and self._barrier.is_done and self._buffer.count:
            await self.flush(FlushTrigger.MANUAL)
