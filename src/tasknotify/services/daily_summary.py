"""Once-a-day task digest sent at a fixed local hour."""

from __future__ import annotations

import datetime
import logging
from typing import Any, Optional

from ..messages import daily_summary_message
from ..models import SweepReport, Task, TimezoneProfile
from ..schemas.user_settings import parse_settings
from ..store.base import TaskStore, Transaction
from ..utils.datetime_utils import ensure_utc, utc_now
from .delivery import NotificationDispatcher
from .recipients import RecipientResolver
from .timezones import resolve_profile_tz

logger = logging.getLogger(__name__)

DIGEST_HOUR = 17
DIGEST_WINDOW_MINUTES = 5
LOOKAHEAD_DAYS = 7


def partition_tasks(
    tasks: list[Task],
    now: datetime.datetime,
    tz: datetime.tzinfo,
    lookahead: datetime.timedelta,
) -> dict[str, list[Task]]:
    """Split tasks into the digest sections.

    ``completed_today`` uses the owner's local calendar day.
    """
    today = now.astimezone(tz).date()
    horizon = now + lookahead

    completed_today = [
        t
        for t in tasks
        if t.completed
        and t.updated_at is not None
        and t.updated_at.astimezone(tz).date() == today
    ]
    incomplete = [t for t in tasks if not t.completed]
    due_soon = [
        t for t in incomplete if t.due_date is not None and now <= t.due_date <= horizon
    ]
    overdue = [t for t in incomplete if t.due_date is not None and t.due_date < now]
    due_soon.sort(key=lambda t: t.due_date)  # type: ignore[arg-type, return-value]
    overdue.sort(key=lambda t: t.due_date)  # type: ignore[arg-type, return-value]
    return {
        "completed_today": completed_today,
        "due_soon": due_soon,
        "overdue": overdue,
        "incomplete": incomplete,
    }


class DailySummaryEvaluator:
    """Send each account one digest per local day during its digest window."""

    def __init__(
        self,
        store: TaskStore,
        recipients: RecipientResolver,
        dispatcher: NotificationDispatcher,
        *,
        digest_hour: int = DIGEST_HOUR,
        window_minutes: int = DIGEST_WINDOW_MINUTES,
        lookahead_days: int = LOOKAHEAD_DAYS,
    ):
        self._store = store
        self._recipients = recipients
        self._dispatcher = dispatcher
        self._digest_hour = digest_hour
        self._window_minutes = window_minutes
        self._lookahead = datetime.timedelta(days=lookahead_days)

    async def run(self, now: Optional[datetime.datetime] = None) -> SweepReport:
        now = ensure_utc(now) if now is not None else utc_now()
        report = SweepReport(kind="daily_summary")

        try:
            documents = await self._store.list_user_settings()
        except Exception:
            logger.exception("Daily summary could not list accounts")
            report.errors += 1
            return report

        for account_id, raw in documents.items():
            try:
                await self._maybe_send(account_id, raw, now, report)
            except Exception:
                logger.exception(f"Daily summary failed for account {account_id}")
                report.errors += 1

        return report

    def _in_window(self, local_now: datetime.datetime) -> bool:
        return (
            local_now.hour == self._digest_hour
            and local_now.minute <= self._window_minutes
        )

    async def _maybe_send(
        self,
        account_id: str,
        raw: dict[str, Any],
        now: datetime.datetime,
        report: SweepReport,
    ) -> None:
        settings = parse_settings(account_id, raw)
        if settings is None:
            return

        profile = settings.timezone_profile()
        tz = resolve_profile_tz(profile)
        if tz is None:
            return

        local_now = now.astimezone(tz)
        if not self._in_window(local_now):
            return

        today = local_now.date().isoformat()
        if settings.last_summary_date == today or not settings.daily_summary_enabled:
            return

        address = await self._recipients.owner_address(account_id)
        if address is None:
            logger.debug(f"Skipping daily summary for {account_id}: no address")
            return

        if not await self._claim_day(account_id, today):
            return

        await self._send(account_id, address, profile, tz, now, report)

    async def _claim_day(self, account_id: str, today: str) -> bool:
        """Atomically move ``lastSummaryDate`` to today; False if already there."""

        async def _claim(txn: Transaction) -> bool:
            current = await txn.get_user_settings(account_id)
            if current.get("lastSummaryDate") == today:
                return False
            await txn.set_user_settings(account_id, {"lastSummaryDate": today})
            return True

        return await self._store.run_transaction(_claim)

    async def _send(
        self,
        account_id: str,
        address: str,
        profile: Optional[TimezoneProfile],
        tz: datetime.tzinfo,
        now: datetime.datetime,
        report: SweepReport,
    ) -> None:
        tasks = await self._store.query_tasks(owner_id=account_id)
        sections = partition_tasks(tasks, now, tz, self._lookahead)

        message = daily_summary_message(
            local_date=now.astimezone(tz).date(),
            completed_today=sections["completed_today"],
            due_soon=sections["due_soon"],
            overdue=sections["overdue"],
            incomplete=sections["incomplete"],
            now=now,
            profile=profile,
        )
        delivered = await self._dispatcher.send(address, message)

        report.notified_accounts.append(account_id)
        report.merge_delivery(int(delivered), int(not delivered))
        logger.info(
            f"Daily summary for {account_id}: "
            f"{len(sections['completed_today'])} completed today, "
            f"{len(sections['due_soon'])} due soon, "
            f"{len(sections['overdue'])} overdue, "
            f"{len(sections['incomplete'])} incomplete"
        )


__all__ = ["DailySummaryEvaluator", "partition_tasks"]
