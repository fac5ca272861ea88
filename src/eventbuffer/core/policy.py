"""
Trigger-policy helpers for partition buffers.

Pure functions decide when size, count and capacity limits trip.
``RetryBackoff`` gates threshold-driven flushes after sink failures so a
partition that keeps crossing its count limit does not hit a failing sink
on every ingest.
"""

from __future__ import annotations


def exceeds_byte_ceiling(
    current_bytes: int, incoming_bytes: int, ceiling: int, count: int
) -> bool:
    """True when appending would pass the ceiling of a non-empty buffer."""
    return count > 0 and current_bytes + incoming_bytes > ceiling


def reached_event_count(count: int, max_event_count: int) -> bool:
    return count >= max_event_count


def at_capacity(count: int, max_pending_events: int | None) -> bool:
    if max_pending_events is None:
        return False
    return count >= max_pending_events


class RetryBackoff:
    """Bounded exponential backoff keyed on consecutive failures."""

    __slots__ = ("_base", "_max", "_failures", "_not_before")

    def __init__(self, base_delay: float, max_delay: float) -> None:
        self._base = base_delay
        self._max = max_delay
        self._failures = 0
        self._not_before = 0.0

    @property
    def failures(self) -> int:
        return self._failures

    def delay_for(self, failures: int) -> float:
        if failures <= 0:
            return 0.0
        return min(self._base * (2 ** (failures - 1)), self._max)

    def record_failure(self, now: float) -> float:
        """Register a failure and return the delay before the next attempt."""
        self._failures += 1
        delay = self.delay_for(self._failures)
        self._not_before = now + delay
        return delay

    def record_success(self) -> None:
        self._failures = 0
        self._not_before = 0.0

    def ready(self, now: float) -> bool:
        return now >= self._not_before
