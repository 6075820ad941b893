"""Fixed-interval driver that runs every check as an asyncio task."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from .engine import NotificationEngine

logger = logging.getLogger(__name__)

COMPLETION_CHECK_INTERVAL_SECONDS = 30
WINDOW_CHECK_INTERVAL_SECONDS = 300
DAILY_SUMMARY_INTERVAL_SECONDS = 60
INITIAL_CHECK_DELAY_SECONDS = 30


@dataclass(frozen=True, slots=True)
class ScheduledCheck:
    name: str
    interval_seconds: float
    run: Callable[[], Awaitable[Any]]


class NotificationScheduler:
    """Run each check on its own interval until shutdown.

    A tick is spawned as its own task, so a slow sweep never delays the next
    one and overlapping sweeps rely on the dedup claims instead of on timing.
    """

    def __init__(
        self,
        engine: NotificationEngine,
        *,
        completion_interval: float = COMPLETION_CHECK_INTERVAL_SECONDS,
        window_interval: float = WINDOW_CHECK_INTERVAL_SECONDS,
        daily_summary_interval: float = DAILY_SUMMARY_INTERVAL_SECONDS,
        initial_delay: float = INITIAL_CHECK_DELAY_SECONDS,
    ):
        self._checks = (
            ScheduledCheck("completion", completion_interval, engine.run_completion_check),
            ScheduledCheck("due_soon", window_interval, engine.run_due_soon_check),
            ScheduledCheck("overdue", window_interval, engine.run_overdue_check),
            ScheduledCheck(
                "daily_summary", daily_summary_interval, engine.run_daily_summary_check
            ),
        )
        self._initial_delay = initial_delay
        self._loops: dict[str, asyncio.Task[None]] = {}
        self._ticks: set[asyncio.Task[None]] = set()
        self._shutdown = False

    @property
    def running(self) -> bool:
        return bool(self._loops) and not self._shutdown

    def start(self) -> None:
        """Start one loop per check; calling twice is a no-op."""
        if self._loops:
            return
        self._shutdown = False
        for check in self._checks:
            self._loops[check.name] = asyncio.create_task(self._loop(check))
        logger.info(
            "Notification scheduler started: "
            + ", ".join(f"{c.name} every {c.interval_seconds:g}s" for c in self._checks)
        )

    async def shutdown(self) -> None:
        """Cancel all loops and in-flight ticks."""
        self._shutdown = True

        tasks = [*self._loops.values(), *self._ticks]
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._loops.clear()
        self._ticks.clear()
        logger.info("Notification scheduler stopped")

    async def _loop(self, check: ScheduledCheck) -> None:
        try:
            if self._initial_delay > 0:
                await asyncio.sleep(self._initial_delay)
            while not self._shutdown:
                self._spawn_tick(check)
                await asyncio.sleep(check.interval_seconds)
        except asyncio.CancelledError:
            logger.debug(f"Scheduler loop for {check.name} was cancelled")
            raise

    def _spawn_tick(self, check: ScheduledCheck) -> None:
        task = asyncio.create_task(self._tick(check))
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)

    async def _tick(self, check: ScheduledCheck) -> None:
        try:
            await check.run()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Scheduled {check.name} check failed")


__all__ = ["NotificationScheduler", "ScheduledCheck"]
