from __future__ import annotations

import asyncio
import datetime

import pytest

from conftest import NOW, make_recipients, make_task
from tasknotify.messages import MessageKind
from tasknotify.services.completion_check import CompletionEvaluator
from tasknotify.services.dedup import NotificationDedupStore
from tasknotify.services.delivery import NotificationDispatcher

pytestmark = pytest.mark.anyio

JUST_NOW = NOW - datetime.timedelta(seconds=20)


@pytest.fixture
def evaluator(store, channel):
    return CompletionEvaluator(
        store,
        make_recipients("alice", "bob"),
        NotificationDispatcher(channel, timeout_seconds=1.0),
        NotificationDedupStore(store),
        recency_seconds=60,
        min_interval_seconds=10,
    )


async def test_sweep_notifies_recent_completion(store, channel, evaluator):
    await store.put_task(
        make_task(
            "t1",
            completed=True,
            updated_at=JUST_NOW,
            due_in=datetime.timedelta(hours=1),
            description="ship it",
        )
    )
    await store.set_user_settings("alice", {"taskWatchers": ["bob"]})

    report = await evaluator.run(now=NOW)

    assert report.kind == "completion"
    assert report.notified_tasks == ["t1"]
    assert channel.addresses() == ["chan:alice", "chan:bob"]
    message = channel.sent[0][1]
    assert message.kind is MessageKind.COMPLETION
    assert message.title == "Task Completed!"
    assert message.field_value("Task") == "Task t1"
    assert message.field_value("Description") == "ship it"
    assert message.field_value("Was Due") is not None


async def test_sweep_ignores_stale_completions(store, channel, evaluator):
    await store.put_task(
        make_task("t1", completed=True, updated_at=NOW - datetime.timedelta(minutes=5))
    )

    report = await evaluator.run(now=NOW)

    assert report.notified_tasks == []
    assert channel.sent == []


async def test_repeated_sweeps_notify_once_per_completion(store, channel, evaluator):
    await store.put_task(make_task("t1", completed=True, updated_at=JUST_NOW))

    await evaluator.run(now=NOW)
    await evaluator.run(now=NOW + datetime.timedelta(seconds=30))

    assert len(channel.sent) == 1


async def test_direct_trigger_and_sweep_do_not_duplicate(store, channel, evaluator):
    await store.put_task(make_task("t1", completed=True, updated_at=JUST_NOW))

    direct = await evaluator.run(task_id="t1", now=NOW)
    swept = await evaluator.run(now=NOW + datetime.timedelta(seconds=2))

    assert direct.notified_tasks == ["t1"]
    assert swept.notified_tasks == []
    assert len(channel.sent) == 1


async def test_direct_trigger_racing_sweep_notifies_once(store, channel, evaluator):
    await store.put_task(make_task("t1", completed=True, updated_at=JUST_NOW))

    direct, swept = await asyncio.gather(
        evaluator.run(task_id="t1", now=NOW),
        evaluator.run(now=NOW),
    )

    assert sorted(direct.notified_tasks + swept.notified_tasks) == ["t1"]
    assert len(channel.sent) == 1


async def test_direct_trigger_skips_recency_filter(store, channel, evaluator):
    await store.put_task(
        make_task("t1", completed=True, updated_at=NOW - datetime.timedelta(hours=2))
    )

    report = await evaluator.run(task_id="t1", now=NOW)

    assert report.notified_tasks == ["t1"]


async def test_direct_trigger_on_incomplete_task_is_noop(store, channel, evaluator):
    await store.put_task(make_task("t1"))

    report = await evaluator.run(task_id="t1", now=NOW)

    assert report.notified_tasks == []
    assert channel.sent == []


async def test_direct_trigger_on_missing_task_is_noop(channel, evaluator):
    report = await evaluator.run(task_id="missing", now=NOW)

    assert report.notified_tasks == []
    assert report.errors == 0


async def test_disabled_preference_skips_without_claiming(store, channel, evaluator):
    await store.put_task(make_task("t1", completed=True, updated_at=JUST_NOW))
    await store.set_user_settings("alice", {"completionNotifications": False})

    report = await evaluator.run(now=NOW)

    assert report.skipped_tasks == ["t1"]
    assert (await store.get_task("t1")).last_completion_notification is None


async def test_watchers_notified_when_owner_unreachable(store, channel):
    evaluator = CompletionEvaluator(
        store,
        make_recipients("bob"),
        NotificationDispatcher(channel, timeout_seconds=1.0),
        NotificationDedupStore(store),
    )
    await store.put_task(make_task("t1", completed=True, updated_at=JUST_NOW))
    await store.set_user_settings("alice", {"taskWatchers": ["bob"]})

    report = await evaluator.run(now=NOW)

    assert report.notified_tasks == ["t1"]
    assert channel.addresses() == ["chan:bob"]
