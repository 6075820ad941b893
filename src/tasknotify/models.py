"""Domain models for tasks, timezone guesses and watcher consent."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class NotificationCategory(str, Enum):
    """Notification kinds that carry a persisted dedup marker on the task."""

    COMPLETION = "completion"
    OVERDUE = "overdue"

    @property
    def marker_field(self) -> str:
        return f"last_{self.value}_notification"


MARKER_FIELDS = frozenset(category.marker_field for category in NotificationCategory)


@dataclass(slots=True)
class Task:
    """A schedulable unit of work owned by one account."""

    id: str
    owner_id: str
    text: str
    completed: bool = False
    description: Optional[str] = None
    due_date: Optional[datetime.datetime] = None
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None
    last_overdue_notification: Optional[datetime.datetime] = None
    last_completion_notification: Optional[datetime.datetime] = None

    def marker(self, category: NotificationCategory) -> Optional[datetime.datetime]:
        return getattr(self, category.marker_field)


@dataclass(frozen=True, slots=True)
class LocalTime:
    """Wall-clock hour and minute parsed from free text."""

    hours: int
    minutes: int


class GuessConfidence(str, Enum):
    EXACT = "exact"
    ESTIMATED = "estimated"


@dataclass(frozen=True, slots=True)
class TimezoneGuess:
    """Result of timezone detection; always requires user confirmation."""

    timezone: Optional[str]
    offset: int
    display: str
    abbreviation: Optional[str] = None
    confidence: GuessConfidence = GuessConfidence.ESTIMATED

    @property
    def needs_confirmation(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class TimezoneProfile:
    """Confirmed timezone of an account."""

    timezone: Optional[str]
    offset: Optional[int]
    display: Optional[str] = None
    abbreviation: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return bool(self.timezone) or self.offset is not None

    @classmethod
    def from_guess(cls, guess: TimezoneGuess) -> "TimezoneProfile":
        return cls(
            timezone=guess.timezone,
            offset=guess.offset,
            display=guess.display,
            abbreviation=guess.abbreviation,
        )


@dataclass(frozen=True, slots=True)
class ConsentRequest:
    """A pending request by ``requester_id`` to add ``target_id`` as a watcher."""

    target_id: str
    requester_id: str
    requested_at: datetime.datetime

    def is_expired(self, now: datetime.datetime, ttl: datetime.timedelta) -> bool:
        return now - self.requested_at >= ttl


class ConsentOutcome(str, Enum):
    ACCEPTED = "accepted"
    DECLINED = "declined"


@dataclass(slots=True)
class SweepReport:
    """Summary of one evaluator invocation."""

    kind: str
    notified_tasks: list[str] = field(default_factory=list)
    skipped_tasks: list[str] = field(default_factory=list)
    notified_accounts: list[str] = field(default_factory=list)
    deliveries_ok: int = 0
    deliveries_failed: int = 0
    errors: int = 0

    def merge_delivery(self, succeeded: int, failed: int) -> None:
        self.deliveries_ok += succeeded
        self.deliveries_failed += failed


__all__ = [
    "ConsentOutcome",
    "ConsentRequest",
    "GuessConfidence",
    "LocalTime",
    "MARKER_FIELDS",
    "NotificationCategory",
    "SweepReport",
    "Task",
    "TimezoneGuess",
    "TimezoneProfile",
]
