"""Schema of the per-account settings document.

The document is shared with the task product, so keys keep their camelCase
names and unknown keys pass through untouched.
"""

from __future__ import annotations

import datetime
import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..models import ConsentRequest, TimezoneProfile
from ..utils.datetime_utils import ensure_utc

logger = logging.getLogger(__name__)


class PendingWatcherRequest(BaseModel):
    """Value stored under ``pendingWatcherRequests[requesterId]``."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    requested_at: datetime.datetime = Field(alias="requestedAt")


class UserSettingsDocument(BaseModel):
    """Watchers, pending consent requests, timezone profile and digest marker."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    task_watchers: list[str] = Field(default_factory=list, alias="taskWatchers")
    pending_watcher_requests: dict[str, PendingWatcherRequest] = Field(
        default_factory=dict, alias="pendingWatcherRequests"
    )

    timezone: Optional[str] = None
    timezone_offset: Optional[int] = Field(default=None, alias="timezoneOffset")
    timezone_display: Optional[str] = Field(default=None, alias="timezoneDisplay")
    timezone_abbreviation: Optional[str] = Field(
        default=None, alias="timezoneAbbreviation"
    )

    last_summary_date: Optional[str] = Field(default=None, alias="lastSummaryDate")

    due_soon_notifications: bool = Field(default=True, alias="dueSoonNotifications")
    overdue_notifications: bool = Field(default=True, alias="overdueNotifications")
    completion_notifications: bool = Field(
        default=True, alias="completionNotifications"
    )
    daily_summary_enabled: bool = Field(default=True, alias="dailySummaryEnabled")

    @classmethod
    def from_raw(cls, data: dict[str, Any] | None) -> "UserSettingsDocument":
        return cls.model_validate(data or {})

    def timezone_profile(self) -> TimezoneProfile | None:
        profile = TimezoneProfile(
            timezone=self.timezone,
            offset=self.timezone_offset,
            display=self.timezone_display,
            abbreviation=self.timezone_abbreviation or None,
        )
        return profile if profile.is_resolved else None

    def pending_requests(self, target_id: str) -> list[ConsentRequest]:
        return [
            ConsentRequest(
                target_id=target_id,
                requester_id=requester_id,
                requested_at=ensure_utc(entry.requested_at),
            )
            for requester_id, entry in self.pending_watcher_requests.items()
        ]


def parse_settings(
    account_id: str, data: dict[str, Any] | None
) -> Optional[UserSettingsDocument]:
    """Validate a raw settings document; malformed documents yield None."""

    try:
        return UserSettingsDocument.from_raw(data)
    except ValidationError as exc:
        logger.warning(f"Malformed settings document for {account_id}: {exc}")
        return None


def timezone_profile_fields(profile: TimezoneProfile) -> dict[str, Any]:
    """Settings keys written when a timezone profile is confirmed."""

    return {
        "timezone": profile.timezone,
        "timezoneOffset": profile.offset,
        "timezoneDisplay": profile.display,
        "timezoneAbbreviation": profile.abbreviation or "",
    }


__all__ = [
    "PendingWatcherRequest",
    "UserSettingsDocument",
    "parse_settings",
    "timezone_profile_fields",
]
