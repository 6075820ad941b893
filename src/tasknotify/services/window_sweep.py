"""Interval-sweep evaluators for due-soon and overdue reminders.

Both evaluators share one algorithm: for every configured offset, look for
incomplete tasks whose due date falls inside a small window around
``now ± offset`` and send each owner a single reminder listing them. The
window is wider than the sweep cadence, so every task is seen by at least one
sweep per offset.
"""

from __future__ import annotations

import datetime
import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from ..messages import NotificationMessage, due_soon_message, overdue_message
from ..models import NotificationCategory, SweepReport, Task
from ..schemas.user_settings import parse_settings
from ..store.base import TaskStore
from ..utils.datetime_utils import ensure_utc, utc_now
from .dedup import OVERDUE_MIN_INTERVAL_SECONDS, NotificationDedupStore
from .delivery import NotificationDispatcher
from .recipients import RecipientResolver

logger = logging.getLogger(__name__)

DUE_SOON_OFFSETS: tuple[int, ...] = (105, 30, 15, 5)
OVERDUE_OFFSETS: tuple[int, ...] = (15, 30, 60)
WINDOW_MINUTES = 5


class SweepDirection(str, Enum):
    BEFORE_DUE = "before_due"
    AFTER_DUE = "after_due"


@dataclass(frozen=True, slots=True)
class WindowSweepConfig:
    name: str
    direction: SweepDirection
    offsets_minutes: tuple[int, ...]
    preference: str
    window_minutes: int = WINDOW_MINUTES
    dedup_category: Optional[NotificationCategory] = None
    min_interval_seconds: float = 0


def due_soon_config(
    offsets: Sequence[int] = DUE_SOON_OFFSETS, window_minutes: int = WINDOW_MINUTES
) -> WindowSweepConfig:
    return WindowSweepConfig(
        name="due_soon",
        direction=SweepDirection.BEFORE_DUE,
        offsets_minutes=tuple(offsets),
        preference="due_soon_notifications",
        window_minutes=window_minutes,
    )


def overdue_config(
    offsets: Sequence[int] = OVERDUE_OFFSETS,
    window_minutes: int = WINDOW_MINUTES,
    min_interval_seconds: float = OVERDUE_MIN_INTERVAL_SECONDS,
) -> WindowSweepConfig:
    return WindowSweepConfig(
        name="overdue",
        direction=SweepDirection.AFTER_DUE,
        offsets_minutes=tuple(offsets),
        preference="overdue_notifications",
        window_minutes=window_minutes,
        dedup_category=NotificationCategory.OVERDUE,
        min_interval_seconds=min_interval_seconds,
    )


def compute_window(
    now: datetime.datetime,
    offset_minutes: int,
    direction: SweepDirection,
    window_minutes: int,
) -> tuple[datetime.datetime, datetime.datetime]:
    """Inclusive due-date window around ``now ± offset``."""
    offset = datetime.timedelta(minutes=offset_minutes)
    target = now + offset if direction is SweepDirection.BEFORE_DUE else now - offset
    half_width = datetime.timedelta(minutes=window_minutes)
    return target - half_width, target + half_width


class WindowSweepEvaluator:
    """Find tasks entering a fixed window relative to now and remind their owners."""

    def __init__(
        self,
        store: TaskStore,
        recipients: RecipientResolver,
        dispatcher: NotificationDispatcher,
        dedup: NotificationDedupStore,
        config: WindowSweepConfig,
    ):
        self._store = store
        self._recipients = recipients
        self._dispatcher = dispatcher
        self._dedup = dedup
        self._config = config

    @property
    def config(self) -> WindowSweepConfig:
        return self._config

    async def run(self, now: Optional[datetime.datetime] = None) -> SweepReport:
        now = ensure_utc(now) if now is not None else utc_now()
        report = SweepReport(kind=self._config.name)

        for offset_minutes in self._config.offsets_minutes:
            window_start, window_end = compute_window(
                now, offset_minutes, self._config.direction, self._config.window_minutes
            )
            try:
                tasks = await self._store.query_tasks(
                    completed=False, due_from=window_start, due_to=window_end
                )
            except Exception:
                logger.exception(
                    f"{self._config.name}: task query failed for {offset_minutes}m window"
                )
                report.errors += 1
                continue

            if not tasks:
                continue

            by_owner: dict[str, list[Task]] = defaultdict(list)
            for task in tasks:
                by_owner[task.owner_id].append(task)

            for owner_id, owner_tasks in by_owner.items():
                try:
                    await self._notify_owner(
                        owner_id, owner_tasks, offset_minutes, now, report
                    )
                except Exception:
                    logger.exception(
                        f"{self._config.name}: failed to notify owner {owner_id}"
                    )
                    report.errors += 1

        if report.notified_tasks:
            logger.info(
                f"{self._config.name} sweep notified {len(report.notified_tasks)} task(s), "
                f"{report.deliveries_ok} delivered, {report.deliveries_failed} failed"
            )
        return report

    async def _notify_owner(
        self,
        owner_id: str,
        tasks: list[Task],
        offset_minutes: int,
        now: datetime.datetime,
        report: SweepReport,
    ) -> None:
        task_ids = [task.id for task in tasks]
        settings = parse_settings(
            owner_id, await self._store.get_user_settings(owner_id)
        )
        if settings is None:
            report.skipped_tasks.extend(task_ids)
            return

        if not getattr(settings, self._config.preference):
            logger.debug(f"{self._config.name} disabled for owner {owner_id}")
            report.skipped_tasks.extend(task_ids)
            return

        addresses = await self._recipients.resolve(owner_id, settings)
        if not addresses:
            report.skipped_tasks.extend(task_ids)
            return

        category = self._config.dedup_category
        if category is not None:
            granted: list[Task] = []
            for task in tasks:
                if await self._dedup.claim(
                    task.id, category, now, self._config.min_interval_seconds
                ):
                    granted.append(task)
                else:
                    report.skipped_tasks.append(task.id)
            tasks = granted
            if not tasks:
                return

        message = self._build_message(tasks, offset_minutes, now, settings.timezone_profile())
        delivery = await self._dispatcher.broadcast(addresses, message)

        report.notified_tasks.extend(task.id for task in tasks)
        report.notified_accounts.append(owner_id)
        report.merge_delivery(len(delivery.succeeded), len(delivery.failed))

    def _build_message(self, tasks, offset_minutes, now, profile) -> NotificationMessage:
        if self._config.direction is SweepDirection.BEFORE_DUE:
            return due_soon_message(tasks, offset_minutes, now, profile)
        return overdue_message(tasks, offset_minutes, now, profile)


__all__ = [
    "DUE_SOON_OFFSETS",
    "OVERDUE_OFFSETS",
    "SweepDirection",
    "WindowSweepConfig",
    "WindowSweepEvaluator",
    "compute_window",
    "due_soon_config",
    "overdue_config",
]
