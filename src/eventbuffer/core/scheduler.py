"""
Per-partition flush deadline.

A ``Scheduler`` keeps at most one outstanding deadline for its partition.
The deadline is mirrored to the durable store's alarm slot so a restarted
process can pick up where the previous one left off, and is driven locally
by an asyncio task that sleeps until it elapses.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable

from . import diagnostics


class Scheduler:
    """Time-based flush trigger for one partition.

    ``fire`` awaits the flush callback fully before arming the next
    deadline, so timer-driven flushes never overlap each other. Re-arming
    cancels a timer that is still sleeping; a timer that has already woken
    up detaches itself and is never cancelled mid-flush.
    """

    def __init__(
        self,
        partition: str,
        *,
        store: Any,
        interval_seconds: float,
        on_fire: Callable[[], Awaitable[Any]],
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._partition = partition
        self._store = store
        self._interval = interval_seconds
        self._on_fire = on_fire
        self._clock = clock
        self._deadline: float | None = None
        self._timer: asyncio.Task[None] | None = None
        self._fires: set[asyncio.Task[Any]] = set()
        self._closed = False

    @property
    def deadline(self) -> float | None:
        return self._deadline

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def ensure_scheduled(self) -> float | None:
        """Arm ``now + interval`` unless a deadline is already pending."""
        if self._closed:
            return None
        if self._deadline is not None:
            return self._deadline
        return await self._arm(self._clock() + self._interval)

    async def restore(self) -> float | None:
        """Adopt a deadline persisted by a previous activation, if any."""
        if self._closed or self._deadline is not None:
            return self._deadline
        try:
            persisted = await self._store.get_alarm(self._partition)
        except Exception as exc:
            diagnostics.warn(
                "scheduler",
                "failed to read persisted alarm",
                partition=self._partition,
                error=str(exc),
            )
            return None
        if persisted is None:
            return None
        self._deadline = float(persisted)
        self._start_timer(self._deadline)
        diagnostics.debug(
            "scheduler",
            "restored persisted alarm",
            partition=self._partition,
            deadline=self._deadline,
        )
        return self._deadline

    async def fire(self) -> None:
        """Run the flush callback, then re-arm regardless of its outcome."""
        task = asyncio.current_task()
        if task is not None:
            self._fires.add(task)
        try:
            await self._on_fire()
        except Exception as exc:
            diagnostics.warn(
                "scheduler",
                "scheduled flush raised",
                partition=self._partition,
                error=str(exc),
            )
        finally:
            if task is not None:
                self._fires.discard(task)
        if self._closed:
            return
        await self._arm(self._clock() + self._interval)

    async def cancel(self) -> None:
        """Drop the pending deadline, stop the timer and clear the alarm.

        A flush that is already running is awaited, not interrupted.
        """
        self._closed = True
        self._deadline = None
        timer = self._timer
        self._timer = None
        if timer is not None and not timer.done():
            timer.cancel()
            await asyncio.gather(timer, return_exceptions=True)
        current = asyncio.current_task()
        running = [t for t in self._fires if t is not current]
        if running:
            await asyncio.gather(*running, return_exceptions=True)
        try:
            await self._store.delete_alarm(self._partition)
        except Exception as exc:
            diagnostics.warn(
                "scheduler",
                "failed to delete persisted alarm",
                partition=self._partition,
                error=str(exc),
            )

    async def _arm(self, deadline: float) -> float:
        # Bookkeeping and local timer first; the persisted alarm is a mirror
        self._deadline = deadline
        self._start_timer(deadline)
        try:
            await self._store.set_alarm(self._partition, deadline)
        except Exception as exc:
            diagnostics.warn(
                "scheduler",
                "failed to persist alarm",
                partition=self._partition,
                deadline=deadline,
                error=str(exc),
            )
        return deadline

    def _start_timer(self, deadline: float) -> None:
        current = self._timer
        if current is not None and not current.done():
            current.cancel()
        self._timer = asyncio.get_running_loop().create_task(
            self._run_timer(deadline)
        )

    async def _run_timer(self, deadline: float) -> None:
        await asyncio.sleep(max(0.0, deadline - self._clock()))
        if self._timer is asyncio.current_task():
            # Awake: detach so re-arming cannot cancel the flush below
            self._timer = None
        await self.fire()
