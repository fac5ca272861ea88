"""
Concurrency primitives for per-partition state.

This module contains:
- InitializationBarrier: one-time async load that blocks every caller
  until it completes, then releases waiters in arrival order
- TaskTracker: owns fire-and-forget tasks so they can be awaited or
  cancelled on shutdown

Design:
- Async-first using asyncio primitives
- ``asyncio.Lock`` wakes waiters FIFO, which gives the barrier its
  arrival-order release
- A failed load leaves the barrier open for the next caller to retry
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Coroutine


class InitializationBarrier:
    """Scoped one-time initialization guard.

    Usage:
        barrier = InitializationBarrier()
        await barrier.ensure(load_state)  # runs load_state exactly once
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._done = False

    @property
    def is_done(self) -> bool:
        return self._done

    async def ensure(self, loader: Callable[[], Awaitable[None]]) -> None:
        if self._done:
            return
        async with self._lock:
            # Re-check after acquiring; another waiter may have finished the load
            if self._done:
                return
            await loader()
            self._done = True


class TaskTracker:
    """Keeps strong references to background tasks until they finish."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def join(self) -> None:
        """Wait until every tracked task, including ones spawned meanwhile, ends."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
