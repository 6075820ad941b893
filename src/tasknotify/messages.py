"""Structured notification messages.

Messages are plain values (title, description, ordered named fields and
optional actions); rendering them for a particular chat platform is the
channel's job.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional, Sequence

from .models import Task, TimezoneProfile
from .services.timezones import format_local
from .utils.datetime_utils import normalize_rfc3339

LIST_PREVIEW_LIMIT = 5


class MessageKind(str, Enum):
    DUE_SOON = "due_soon"
    OVERDUE = "overdue"
    COMPLETION = "completion"
    DAILY_SUMMARY = "daily_summary"
    WATCHER_REQUEST = "watcher_request"
    WATCHER_RESPONSE = "watcher_response"


@dataclass(frozen=True, slots=True)
class MessageField:
    name: str
    value: str
    inline: bool = False


@dataclass(frozen=True, slots=True)
class MessageAction:
    """An interactive choice offered to the recipient (e.g. a button)."""

    action_id: str
    label: str
    style: str = "secondary"


@dataclass(frozen=True, slots=True)
class NotificationMessage:
    kind: MessageKind
    title: str
    description: str
    fields: tuple[MessageField, ...] = ()
    actions: tuple[MessageAction, ...] = ()
    footer: Optional[str] = None
    timestamp: Optional[datetime.datetime] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def field_value(self, name: str) -> Optional[str]:
        for item in self.fields:
            if item.name == name:
                return item.value
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "kind": self.kind.value,
            "title": self.title,
            "description": self.description,
            "fields": [
                {"name": f.name, "value": f.value, "inline": f.inline}
                for f in self.fields
            ],
            "actions": [
                {"id": a.action_id, "label": a.label, "style": a.style}
                for a in self.actions
            ],
            "footer": self.footer,
            "timestamp": normalize_rfc3339(self.timestamp) if self.timestamp else None,
            "metadata": dict(self.metadata),
        }


REMINDER_FOOTER = "Task Reminders"
NOTIFICATION_FOOTER = "Task Notifications"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def _preview(lines: Sequence[str], empty: str) -> str:
    if not lines:
        return empty
    shown = "\n".join(f"• {line}" for line in lines[:LIST_PREVIEW_LIMIT])
    hidden = len(lines) - LIST_PREVIEW_LIMIT
    if hidden > 0:
        shown += f"\n+{hidden} more"
    return shown


def due_soon_message(
    tasks: Sequence[Task],
    minutes_before: int,
    now: datetime.datetime,
    profile: Optional[TimezoneProfile] = None,
) -> NotificationMessage:
    return NotificationMessage(
        kind=MessageKind.DUE_SOON,
        title=f"Task Due in {minutes_before} Minutes!",
        description=(
            f"You have {_plural(len(tasks), 'task')} due in {minutes_before} minutes:"
        ),
        fields=tuple(
            MessageField(
                name=task.text,
                value=f"Due: {format_local(task.due_date, profile)}" if task.due_date else "Due: unknown",
            )
            for task in tasks
        ),
        footer=REMINDER_FOOTER,
        timestamp=now,
        metadata={"task_ids": [task.id for task in tasks], "offset_minutes": minutes_before},
    )


def overdue_message(
    tasks: Sequence[Task],
    minutes_overdue: int,
    now: datetime.datetime,
    profile: Optional[TimezoneProfile] = None,
) -> NotificationMessage:
    fields = []
    for task in tasks:
        if task.due_date is None:
            continue
        days = max(0, (now - task.due_date).days)
        fields.append(
            MessageField(
                name=task.text,
                value=(
                    f"Due: {format_local(task.due_date, profile)} "
                    f"({_plural(days, 'day')} ago)"
                ),
            )
        )
    return NotificationMessage(
        kind=MessageKind.OVERDUE,
        title=f"Task Overdue by {minutes_overdue} Minutes!",
        description=f"You have {_plural(len(tasks), 'overdue task')}:",
        fields=tuple(fields),
        footer=REMINDER_FOOTER,
        timestamp=now,
        metadata={"task_ids": [task.id for task in tasks], "offset_minutes": minutes_overdue},
    )


def completion_message(
    task: Task,
    now: datetime.datetime,
    profile: Optional[TimezoneProfile] = None,
) -> NotificationMessage:
    completed_at = task.updated_at or now
    fields = [MessageField("Task", task.text)]
    if task.description:
        fields.append(MessageField("Description", task.description))
    if task.due_date:
        fields.append(MessageField("Was Due", format_local(task.due_date, profile), inline=True))
    fields.append(MessageField("Completed At", format_local(completed_at, profile), inline=True))
    return NotificationMessage(
        kind=MessageKind.COMPLETION,
        title="Task Completed!",
        description=f"{task.text} has been marked as completed!",
        fields=tuple(fields),
        footer=NOTIFICATION_FOOTER,
        timestamp=now,
        metadata={"task_ids": [task.id], "owner_id": task.owner_id},
    )


def daily_summary_message(
    *,
    local_date: datetime.date,
    completed_today: Sequence[Task],
    due_soon: Sequence[Task],
    overdue: Sequence[Task],
    incomplete: Sequence[Task],
    now: datetime.datetime,
    profile: Optional[TimezoneProfile] = None,
) -> NotificationMessage:
    def _due_line(task: Task) -> str:
        assert task.due_date is not None
        return f"{task.text} - {format_local(task.due_date, profile)}"

    incomplete_value = (
        f"You have {_plural(len(incomplete), 'task')} still to complete"
        if incomplete
        else "All tasks completed!"
    )
    return NotificationMessage(
        kind=MessageKind.DAILY_SUMMARY,
        title="Daily Task Summary",
        description=(
            f"Here's your task overview for {local_date.strftime('%A, %B')} "
            f"{local_date.day}, {local_date.year}:"
        ),
        fields=(
            MessageField(
                f"Completed Today ({len(completed_today)})",
                _preview([t.text for t in completed_today], "No tasks completed today"),
            ),
            MessageField(
                f"Due Soon ({len(due_soon)})",
                _preview([_due_line(t) for t in due_soon], "No tasks due soon"),
            ),
            MessageField(
                f"Overdue ({len(overdue)})",
                _preview([t.text for t in overdue], "No overdue tasks"),
            ),
            MessageField(f"Incomplete Tasks ({len(incomplete)})", incomplete_value),
        ),
        footer="Daily Summary",
        timestamp=now,
        metadata={"local_date": local_date.isoformat()},
    )


def consent_action_id(decision: str, owner_id: str, target_id: str) -> str:
    return f"watcher_consent:{decision}:{owner_id}:{target_id}"


def watcher_request_message(
    owner_id: str,
    target_id: str,
    now: datetime.datetime,
    requester_label: Optional[str] = None,
    expires_at: Optional[datetime.datetime] = None,
) -> NotificationMessage:
    who = requester_label or owner_id
    footer = "This request will expire if not responded to"
    if expires_at is not None:
        footer = f"This request expires at {normalize_rfc3339(expires_at)}"
    return NotificationMessage(
        kind=MessageKind.WATCHER_REQUEST,
        title="Task Completion Watcher Request",
        description=f"{who} wants to add you as a watcher for their tasks.",
        fields=(
            MessageField(
                "What does this mean?",
                "You will receive a notification whenever they complete a task "
                "or a task of theirs is due or overdue.",
            ),
            MessageField("Do you consent?", "Choose accept or decline below."),
        ),
        actions=(
            MessageAction(consent_action_id("accept", owner_id, target_id), "Accept", "success"),
            MessageAction(consent_action_id("decline", owner_id, target_id), "Decline", "danger"),
        ),
        footer=footer,
        timestamp=now,
        metadata={"owner_id": owner_id, "target_id": target_id},
    )


def watcher_response_message(
    target_id: str,
    accepted: bool,
    now: datetime.datetime,
    target_label: Optional[str] = None,
) -> NotificationMessage:
    who = target_label or target_id
    if accepted:
        title = "Consent Granted!"
        description = f"{who} has accepted your watcher request."
        fields: Iterable[MessageField] = (
            MessageField("Status", "They will now receive notifications for your tasks."),
        )
    else:
        title = "Consent Declined"
        description = f"{who} has declined your watcher request."
        fields = ()
    return NotificationMessage(
        kind=MessageKind.WATCHER_RESPONSE,
        title=title,
        description=description,
        fields=tuple(fields),
        footer=NOTIFICATION_FOOTER,
        timestamp=now,
        metadata={"target_id": target_id, "accepted": accepted},
    )


__all__ = [
    "MessageAction",
    "MessageField",
    "MessageKind",
    "NotificationMessage",
    "completion_message",
    "consent_action_id",
    "daily_summary_message",
    "due_soon_message",
    "overdue_message",
    "watcher_request_message",
    "watcher_response_message",
]
