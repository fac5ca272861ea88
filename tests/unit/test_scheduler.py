"""Unit tests for the per-partition flush deadline."""

from __future__ import annotations

import asyncio

import pytest

from eventbuffer.core.scheduler import Scheduler
from eventbuffer.storage import MemoryStore
from tests.stubs import FakeClock


class _FailingAlarmStore(MemoryStore):
    async def set_alarm(self, partition: str, when: float) -> None:
        raise OSError("alarm slot unavailable")

    async def delete_alarm(self, partition: str) -> None:
        raise OSError("alarm slot unavailable")


def _scheduler(store, clock, on_fire=None, interval: float = 30.0) -> Scheduler:
    calls: list[float] = []

    async def _record() -> None:
        calls.append(clock())

    sched = Scheduler(
        "p1",
        store=store,
        interval_seconds=interval,
        on_fire=on_fire or _record,
        clock=clock,
    )
    sched.calls = calls  # type: ignore[attr-defined]
    return sched


class TestEnsureScheduled:
    @pytest.mark.asyncio
    async def test_arms_interval_from_now(self, store, clock) -> None:
        sched = _scheduler(store, clock)
        deadline = await sched.ensure_scheduled()
        assert deadline == clock.now + 30.0
        assert sched.deadline == deadline
        assert await store.get_alarm("p1") == deadline
        await sched.cancel()

    @pytest.mark.asyncio
    async def test_is_idempotent_while_pending(self, store, clock) -> None:
        sched = _scheduler(store, clock)
        first = await sched.ensure_scheduled()
        clock.advance(10)
        second = await sched.ensure_scheduled()
        assert first == second
        assert await store.get_alarm("p1") == first
        await sched.cancel()

    @pytest.mark.asyncio
    async def test_alarm_write_failure_keeps_local_deadline(self, clock) -> None:
        sched = _scheduler(_FailingAlarmStore(), clock)
        deadline = await sched.ensure_scheduled()
        assert sched.deadline == deadline
        await sched.cancel()
        assert sched.deadline is None


class TestFire:
    @pytest.mark.asyncio
    async def test_fire_flushes_then_rearms(self, store, clock) -> None:
        sched = _scheduler(store, clock)
        await sched.ensure_scheduled()
        clock.advance(30)
        await sched.fire()
        assert sched.calls == [clock.now]  # type: ignore[attr-defined]
        assert sched.deadline == clock.now + 30.0
        assert await store.get_alarm("p1") == clock.now + 30.0
        await sched.cancel()

    @pytest.mark.asyncio
    async def test_fire_rearms_even_when_flush_raises(self, store, clock) -> None:
        async def _boom() -> None:
            raise RuntimeError("flush exploded")

        sched = _scheduler(store, clock, on_fire=_boom)
        await sched.fire()
        assert sched.deadline == clock.now + 30.0
        await sched.cancel()

    @pytest.mark.asyncio
    async def test_timer_fires_after_interval(self, store) -> None:
        fired = asyncio.Event()

        async def _on_fire() -> None:
            fired.set()

        sched = Scheduler("p1", store=store, interval_seconds=0.01, on_fire=_on_fire)
        await sched.ensure_scheduled()
        await asyncio.wait_for(fired.wait(), timeout=2.0)
        await sched.cancel()

    @pytest.mark.asyncio
    async def test_next_deadline_is_armed_after_flush_completes(self, store) -> None:
        release = asyncio.Event()
        started = asyncio.Event()
        clock = FakeClock()

        async def _slow_flush() -> None:
            started.set()
            await release.wait()

        sched = Scheduler(
            "p1", store=store, interval_seconds=0.0, on_fire=_slow_flush, clock=clock
        )
        await sched.ensure_scheduled()
        await asyncio.wait_for(started.wait(), timeout=2.0)
        first_deadline = sched.deadline
        clock.advance(5)
        await asyncio.sleep(0)
        assert sched.deadline == first_deadline
        release.set()
        await sched.cancel()


class TestCancelAndRestore:
    @pytest.mark.asyncio
    async def test_cancel_clears_deadline_and_alarm(self, store, clock) -> None:
        sched = _scheduler(store, clock)
        await sched.ensure_scheduled()
        await sched.cancel()
        assert sched.deadline is None
        assert sched.is_closed
        assert await store.get_alarm("p1") is None
        assert await sched.ensure_scheduled() is None

    @pytest.mark.asyncio
    async def test_cancel_tolerates_alarm_delete_failure(self, clock) -> None:
        sched = _scheduler(_FailingAlarmStore(), clock)
        await sched.ensure_scheduled()
        await sched.cancel()
        assert sched.is_closed

    @pytest.mark.asyncio
    async def test_restore_adopts_persisted_alarm(self, store, clock) -> None:
        await store.set_alarm("p1", clock.now + 12.0)
        sched = _scheduler(store, clock)
        assert await sched.restore() == clock.now + 12.0
        assert await sched.ensure_scheduled() == clock.now + 12.0
        await sched.cancel()

    @pytest.mark.asyncio
    async def test_restore_without_alarm_is_none(self, store, clock) -> None:
        sched = _scheduler(store, clock)
        assert await sched.restore() is None
        assert sched.deadline is None

    @pytest.mark.asyncio
    async def test_overdue_alarm_fires_promptly(self, store) -> None:
        fired = asyncio.Event()
        clock = FakeClock()
        await store.set_alarm("p1", clock.now - 100.0)

        async def _on_fire() -> None:
            fired.set()

        sched = Scheduler(
            "p1", store=store, interval_seconds=30.0, on_fire=_on_fire, clock=clock
        )
        await sched.restore()
        await asyncio.wait_for(fired.wait(), timeout=2.0)
        await sched.cancel()
