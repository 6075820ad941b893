"""At-most-once notification claims backed by per-task markers."""

from __future__ import annotations

import datetime
import logging
from typing import Optional

from ..models import NotificationCategory
from ..store.base import TaskStore, Transaction
from ..utils.datetime_utils import ensure_utc

logger = logging.getLogger(__name__)

COMPLETION_MIN_INTERVAL_SECONDS = 10
OVERDUE_MIN_INTERVAL_SECONDS = 600


class NotificationDedupStore:
    """Grant a notification for a (task, category) pair to exactly one caller.

    Every notification path claims before sending. The read of the marker and
    the write of the new value happen in one store transaction, so two
    evaluators that see the same stale marker cannot both win.
    """

    def __init__(self, store: TaskStore):
        self._store = store

    async def claim(
        self,
        task_id: str,
        category: NotificationCategory,
        now: datetime.datetime,
        min_interval_seconds: float,
        *,
        event_at: Optional[datetime.datetime] = None,
    ) -> bool:
        """Stamp ``now`` on the category marker if the interval has elapsed.

        When ``event_at`` is given, a marker at or after it means this event
        was already claimed and the claim is denied regardless of age. The
        stamp is never earlier than ``event_at`` so a skewed event clock
        cannot reopen an event that was already notified.
        """
        now = ensure_utc(now)
        interval = datetime.timedelta(seconds=min_interval_seconds)
        event_at = ensure_utc(event_at) if event_at is not None else None

        async def _claim(txn: Transaction) -> bool:
            task = await txn.get_task(task_id)
            if task is None:
                logger.debug(f"Claim on missing task {task_id} denied")
                return False

            marker = task.marker(category)
            if marker is not None:
                if now - marker < interval:
                    logger.debug(
                        f"{category.value} claim denied for {task_id}: "
                        f"notified {(now - marker).total_seconds():.0f}s ago"
                    )
                    return False
                if event_at is not None and marker >= event_at:
                    logger.debug(
                        f"{category.value} claim denied for {task_id}: "
                        "event already notified"
                    )
                    return False

            stamp = max(now, event_at) if event_at is not None else now
            await txn.update_task_markers(task_id, **{category.marker_field: stamp})
            return True

        return await self._store.run_transaction(_claim)


__all__ = [
    "COMPLETION_MIN_INTERVAL_SECONDS",
    "NotificationDedupStore",
    "OVERDUE_MIN_INTERVAL_SECONDS",
]
