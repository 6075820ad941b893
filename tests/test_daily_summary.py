from __future__ import annotations

import asyncio
import datetime
from zoneinfo import ZoneInfo

import pytest

from conftest import make_recipients, make_task
from tasknotify.messages import MessageKind
from tasknotify.services.daily_summary import DailySummaryEvaluator, partition_tasks
from tasknotify.services.delivery import NotificationDispatcher

pytestmark = pytest.mark.anyio

UTC = datetime.timezone.utc
NEW_YORK = {"timezone": "America/New_York", "timezoneOffset": -5}
# 17:02 in New York (EDT, UTC-4) on 2026-03-10
DIGEST_TIME = datetime.datetime(2026, 3, 10, 21, 2, tzinfo=UTC)


@pytest.fixture
def evaluator(store, channel):
    return DailySummaryEvaluator(
        store,
        make_recipients("alice", "bob"),
        NotificationDispatcher(channel, timeout_seconds=1.0),
    )


def test_partition_tasks_uses_local_day():
    tz = ZoneInfo("America/New_York")
    now = DIGEST_TIME
    tasks = [
        make_task(
            "done-today",
            completed=True,
            updated_at=now - datetime.timedelta(hours=3),
            now=now,
        ),
        # 23:30 local on the previous day
        make_task(
            "done-yesterday",
            completed=True,
            updated_at=datetime.datetime(2026, 3, 10, 3, 30, tzinfo=UTC),
            now=now,
        ),
        make_task("soon", due_in=datetime.timedelta(days=2), now=now),
        make_task("later", due_in=datetime.timedelta(days=8), now=now),
        make_task("late", due_in=datetime.timedelta(hours=-1), now=now),
        make_task("floating", now=now),
    ]

    sections = partition_tasks(tasks, now, tz, datetime.timedelta(days=7))

    assert [t.id for t in sections["completed_today"]] == ["done-today"]
    assert [t.id for t in sections["due_soon"]] == ["soon"]
    assert [t.id for t in sections["overdue"]] == ["late"]
    assert {t.id for t in sections["incomplete"]} == {
        "soon",
        "later",
        "late",
        "floating",
    }


async def test_digest_sent_inside_window(store, channel, evaluator):
    await store.set_user_settings("alice", dict(NEW_YORK))
    await store.put_task(
        make_task("t1", due_in=datetime.timedelta(days=1), now=DIGEST_TIME)
    )

    report = await evaluator.run(DIGEST_TIME)

    assert report.notified_accounts == ["alice"]
    address, message = channel.sent[0]
    assert address == "chan:alice"
    assert message.kind is MessageKind.DAILY_SUMMARY
    assert message.field_value("Due Soon (1)") is not None
    assert (await store.get_user_settings("alice"))["lastSummaryDate"] == "2026-03-10"


async def test_digest_goes_to_owner_only(store, channel, evaluator):
    await store.set_user_settings("alice", {**NEW_YORK, "taskWatchers": ["bob"]})

    await evaluator.run(DIGEST_TIME)

    assert channel.addresses() == ["chan:alice"]


async def test_digest_outside_window_is_skipped(store, channel, evaluator):
    await store.set_user_settings("alice", dict(NEW_YORK))

    await evaluator.run(DIGEST_TIME + datetime.timedelta(minutes=4))
    await evaluator.run(DIGEST_TIME - datetime.timedelta(minutes=3))

    assert channel.sent == []


async def test_digest_skipped_without_timezone(store, channel, evaluator):
    await store.set_user_settings("alice", {})

    report = await evaluator.run(DIGEST_TIME)

    assert report.notified_accounts == []


async def test_digest_respects_preference(store, channel, evaluator):
    await store.set_user_settings("alice", {**NEW_YORK, "dailySummaryEnabled": False})

    await evaluator.run(DIGEST_TIME)

    assert channel.sent == []


async def test_digest_skipped_for_unlinked_owner(store, channel, evaluator):
    await store.set_user_settings("carol", dict(NEW_YORK))

    await evaluator.run(DIGEST_TIME)

    assert channel.sent == []
    assert "lastSummaryDate" not in await store.get_user_settings("carol")


async def test_fixed_offset_profile_is_used(store, channel, evaluator):
    await store.set_user_settings("alice", {"timezoneOffset": 2})
    at_local_five_pm = datetime.datetime(2026, 3, 10, 15, 0, tzinfo=UTC)

    report = await evaluator.run(at_local_five_pm)

    assert report.notified_accounts == ["alice"]


async def test_digest_fires_once_per_day_over_minute_ticks(store, channel, evaluator):
    await store.set_user_settings("alice", dict(NEW_YORK))
    start = datetime.datetime(2026, 3, 10, 0, 0, tzinfo=UTC)

    for minute in range(24 * 60):
        await evaluator.run(start + datetime.timedelta(minutes=minute))

    assert len(channel.sent) == 1


async def test_concurrent_digest_runs_send_once(store, channel, evaluator):
    await store.set_user_settings("alice", dict(NEW_YORK))

    reports = await asyncio.gather(
        evaluator.run(DIGEST_TIME),
        evaluator.run(DIGEST_TIME + datetime.timedelta(minutes=1)),
    )

    assert sum(len(r.notified_accounts) for r in reports) == 1
    assert channel.addresses() == ["chan:alice"]
