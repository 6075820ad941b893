"""Completion notifications for owners and their watchers."""

from __future__ import annotations

import datetime
import logging
from typing import Optional

from ..messages import completion_message
from ..models import NotificationCategory, SweepReport, Task
from ..schemas.user_settings import parse_settings
from ..store.base import TaskStore
from ..utils.datetime_utils import ensure_utc, utc_now
from .dedup import COMPLETION_MIN_INTERVAL_SECONDS, NotificationDedupStore
from .delivery import NotificationDispatcher
from .recipients import RecipientResolver

logger = logging.getLogger(__name__)

RECENCY_SECONDS = 60


class CompletionEvaluator:
    """Notify once per completion, whether found by a sweep or a direct trigger."""

    def __init__(
        self,
        store: TaskStore,
        recipients: RecipientResolver,
        dispatcher: NotificationDispatcher,
        dedup: NotificationDedupStore,
        *,
        recency_seconds: float = RECENCY_SECONDS,
        min_interval_seconds: float = COMPLETION_MIN_INTERVAL_SECONDS,
    ):
        self._store = store
        self._recipients = recipients
        self._dispatcher = dispatcher
        self._dedup = dedup
        self._recency = datetime.timedelta(seconds=recency_seconds)
        self._min_interval = min_interval_seconds

    async def run(
        self,
        task_id: Optional[str] = None,
        now: Optional[datetime.datetime] = None,
    ) -> SweepReport:
        now = ensure_utc(now) if now is not None else utc_now()
        report = SweepReport(kind="completion")

        try:
            if task_id is not None:
                candidates = await self._targeted_candidates(task_id)
            else:
                candidates = await self._sweep_candidates(now)
        except Exception:
            logger.exception("Completion check could not load tasks")
            report.errors += 1
            return report

        for task in candidates:
            try:
                await self._notify(task, now, report)
            except Exception:
                logger.exception(f"Completion notification failed for task {task.id}")
                report.errors += 1

        if candidates:
            logger.info(
                f"Checked completed tasks: {len(candidates)} candidate(s), "
                f"{len(report.notified_tasks)} notified"
                + (f" (task {task_id})" if task_id else "")
            )
        return report

    async def _targeted_candidates(self, task_id: str) -> list[Task]:
        task = await self._store.get_task(task_id)
        if task is None:
            logger.info(f"Task {task_id} not found for completion check")
            return []
        if not task.completed:
            logger.info(f"Task {task_id} is not completed, skipping notification")
            return []
        return [task]

    async def _sweep_candidates(self, now: datetime.datetime) -> list[Task]:
        floor = now - self._recency
        return [
            task
            for task in await self._store.query_tasks(completed=True)
            if task.updated_at is not None and task.updated_at >= floor
        ]

    async def _notify(self, task: Task, now: datetime.datetime, report: SweepReport) -> None:
        settings = parse_settings(
            task.owner_id, await self._store.get_user_settings(task.owner_id)
        )
        if settings is None or not settings.completion_notifications:
            report.skipped_tasks.append(task.id)
            return

        granted = await self._dedup.claim(
            task.id,
            NotificationCategory.COMPLETION,
            now,
            self._min_interval,
            event_at=task.updated_at,
        )
        if not granted:
            report.skipped_tasks.append(task.id)
            return

        addresses = await self._recipients.resolve(task.owner_id, settings)
        if not addresses:
            logger.info(f"No recipients for completed task {task.id}")
            report.skipped_tasks.append(task.id)
            return

        message = completion_message(task, now, settings.timezone_profile())
        delivery = await self._dispatcher.broadcast(addresses, message)

        report.notified_tasks.append(task.id)
        report.notified_accounts.append(task.owner_id)
        report.merge_delivery(len(delivery.succeeded), len(delivery.failed))


__all__ = ["CompletionEvaluator", "RECENCY_SECONDS"]
