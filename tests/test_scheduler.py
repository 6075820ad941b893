from __future__ import annotations

import asyncio
from collections import Counter

import pytest

from tasknotify.services.scheduler import NotificationScheduler

pytestmark = pytest.mark.anyio


class StubEngine:
    def __init__(self, failing: set[str] | None = None, delay: float = 0.0) -> None:
        self.calls: Counter[str] = Counter()
        self.failing = failing or set()
        self.delay = delay

    async def _record(self, name: str) -> None:
        self.calls[name] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if name in self.failing:
            raise RuntimeError(f"{name} exploded")

    async def run_completion_check(self):
        await self._record("completion")

    async def run_due_soon_check(self):
        await self._record("due_soon")

    async def run_overdue_check(self):
        await self._record("overdue")

    async def run_daily_summary_check(self):
        await self._record("daily_summary")


def _scheduler(engine, **overrides) -> NotificationScheduler:
    options = {
        "completion_interval": 0.01,
        "window_interval": 0.01,
        "daily_summary_interval": 0.01,
        "initial_delay": 0,
    }
    options.update(overrides)
    return NotificationScheduler(engine, **options)


async def test_runs_every_check_repeatedly():
    engine = StubEngine()
    scheduler = _scheduler(engine)

    scheduler.start()
    await asyncio.sleep(0.1)
    await scheduler.shutdown()

    for name in ("completion", "due_soon", "overdue", "daily_summary"):
        assert engine.calls[name] >= 2


async def test_failing_check_does_not_stop_loop():
    engine = StubEngine(failing={"overdue"})
    scheduler = _scheduler(engine)

    scheduler.start()
    await asyncio.sleep(0.1)
    await scheduler.shutdown()

    assert engine.calls["overdue"] >= 2
    assert engine.calls["completion"] >= 2


async def test_initial_delay_postpones_first_tick():
    engine = StubEngine()
    scheduler = _scheduler(engine, initial_delay=10)

    scheduler.start()
    await asyncio.sleep(0.05)
    await scheduler.shutdown()

    assert sum(engine.calls.values()) == 0


async def test_slow_ticks_overlap_instead_of_blocking():
    engine = StubEngine(delay=0.2)
    scheduler = _scheduler(engine, window_interval=10, daily_summary_interval=10)

    scheduler.start()
    await asyncio.sleep(0.1)
    await scheduler.shutdown()

    assert engine.calls["completion"] >= 3


async def test_shutdown_stops_all_work():
    engine = StubEngine()
    scheduler = _scheduler(engine)

    scheduler.start()
    assert scheduler.running
    await asyncio.sleep(0.03)
    await scheduler.shutdown()
    snapshot = sum(engine.calls.values())
    await asyncio.sleep(0.05)

    assert not scheduler.running
    assert sum(engine.calls.values()) == snapshot


async def test_start_twice_is_noop():
    engine = StubEngine()
    scheduler = _scheduler(engine, initial_delay=10)

    scheduler.start()
    scheduler.start()

    assert len(scheduler._loops) == 4
    await scheduler.shutdown()
