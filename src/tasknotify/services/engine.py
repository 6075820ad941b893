"""Facade wiring the evaluators and the consent protocol to one store."""

from __future__ import annotations

import datetime
import logging
from typing import Optional

from ..config import Settings
from ..models import ConsentOutcome, ConsentRequest, SweepReport
from ..store.base import TaskStore
from .completion_check import CompletionEvaluator
from .daily_summary import DailySummaryEvaluator
from .dedup import NotificationDedupStore
from .delivery import NotificationChannel, NotificationDispatcher
from .identity import IdentityResolver, StoreIdentityResolver
from .recipients import RecipientResolver
from .timezone_setup import TimezoneSetupService
from .watchers import WatcherService
from .window_sweep import WindowSweepEvaluator, due_soon_config, overdue_config

logger = logging.getLogger(__name__)


class NotificationEngine:
    """Driver-facing operations; the scheduler and routers call only these."""

    def __init__(
        self,
        *,
        due_soon: WindowSweepEvaluator,
        overdue: WindowSweepEvaluator,
        completion: CompletionEvaluator,
        daily_summary: DailySummaryEvaluator,
        watchers: WatcherService,
        timezone_setup: TimezoneSetupService,
    ):
        self._due_soon = due_soon
        self._overdue = overdue
        self._completion = completion
        self._daily_summary = daily_summary
        self._watchers = watchers
        self.timezone_setup = timezone_setup

    async def run_due_soon_check(
        self, now: Optional[datetime.datetime] = None
    ) -> SweepReport:
        return await self._due_soon.run(now)

    async def run_overdue_check(
        self, now: Optional[datetime.datetime] = None
    ) -> SweepReport:
        return await self._overdue.run(now)

    async def run_completion_check(
        self,
        task_id: Optional[str] = None,
        now: Optional[datetime.datetime] = None,
    ) -> SweepReport:
        return await self._completion.run(task_id=task_id, now=now)

    async def run_daily_summary_check(
        self, now: Optional[datetime.datetime] = None
    ) -> SweepReport:
        return await self._daily_summary.run(now)

    async def issue_watcher_request(
        self,
        owner_id: str,
        target_id: str,
        now: Optional[datetime.datetime] = None,
    ) -> ConsentRequest:
        return await self._watchers.issue_request(owner_id, target_id, now)

    async def resolve_watcher_request(
        self,
        owner_id: str,
        target_id: str,
        accepted: bool,
        now: Optional[datetime.datetime] = None,
    ) -> ConsentOutcome:
        return await self._watchers.resolve_request(owner_id, target_id, accepted, now)

    async def remove_watcher(self, owner_id: str, target_id: str) -> None:
        await self._watchers.remove_watcher(owner_id, target_id)

    async def list_watchers(self, owner_id: str) -> list[str]:
        return await self._watchers.list_watchers(owner_id)

    async def list_pending_requests(
        self, target_id: str, now: Optional[datetime.datetime] = None
    ) -> list[ConsentRequest]:
        return await self._watchers.list_pending_requests(target_id, now)


def build_engine(
    settings: Settings,
    store: TaskStore,
    channel: NotificationChannel,
    *,
    identity: Optional[IdentityResolver] = None,
) -> NotificationEngine:
    """Assemble an engine from configuration."""

    identity = identity or StoreIdentityResolver(store)
    dispatcher = NotificationDispatcher(
        channel, timeout_seconds=settings.delivery_timeout_seconds
    )
    recipients = RecipientResolver(identity)
    dedup = NotificationDedupStore(store)

    engine = NotificationEngine(
        due_soon=WindowSweepEvaluator(
            store,
            recipients,
            dispatcher,
            dedup,
            due_soon_config(settings.due_soon_offsets, settings.window_minutes),
        ),
        overdue=WindowSweepEvaluator(
            store,
            recipients,
            dispatcher,
            dedup,
            overdue_config(
                settings.overdue_offsets,
                settings.window_minutes,
                settings.overdue_min_interval_seconds,
            ),
        ),
        completion=CompletionEvaluator(
            store,
            recipients,
            dispatcher,
            dedup,
            recency_seconds=settings.completion_recency_seconds,
            min_interval_seconds=settings.completion_min_interval_seconds,
        ),
        daily_summary=DailySummaryEvaluator(
            store,
            recipients,
            dispatcher,
            digest_hour=settings.digest_hour,
            window_minutes=settings.digest_window_minutes,
            lookahead_days=settings.digest_lookahead_days,
        ),
        watchers=WatcherService(
            store,
            identity,
            dispatcher,
            request_ttl_hours=settings.watcher_request_ttl_hours,
        ),
        timezone_setup=TimezoneSetupService(
            store, ttl_seconds=settings.timezone_setup_ttl_seconds
        ),
    )
    logger.debug(
        f"Notification engine built (due-soon {settings.due_soon_offsets}, "
        f"overdue {settings.overdue_offsets}, window ±{settings.window_minutes}m)"
    )
    return engine


__all__ = ["NotificationEngine", "build_engine"]
