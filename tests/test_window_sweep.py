from __future__ import annotations

import asyncio
import datetime

import pytest

from conftest import NOW, FakeChannel, make_recipients, make_task
from tasknotify.messages import MessageKind
from tasknotify.services.dedup import NotificationDedupStore
from tasknotify.services.delivery import NotificationDispatcher
from tasknotify.services.window_sweep import (
    SweepDirection,
    WindowSweepEvaluator,
    compute_window,
    due_soon_config,
    overdue_config,
)

pytestmark = pytest.mark.anyio


def _evaluator(store, channel, config, *accounts):
    return WindowSweepEvaluator(
        store,
        make_recipients(*(accounts or ("alice",))),
        NotificationDispatcher(channel, timeout_seconds=1.0),
        NotificationDedupStore(store),
        config,
    )


def test_compute_window_directions():
    start, end = compute_window(NOW, 30, SweepDirection.BEFORE_DUE, 5)
    assert start == NOW + datetime.timedelta(minutes=25)
    assert end == NOW + datetime.timedelta(minutes=35)

    start, end = compute_window(NOW, 15, SweepDirection.AFTER_DUE, 5)
    assert start == NOW - datetime.timedelta(minutes=20)
    assert end == NOW - datetime.timedelta(minutes=10)


async def test_due_soon_catches_task_inside_window(store, channel):
    await store.put_task(make_task("t1", due_in=datetime.timedelta(minutes=32)))
    evaluator = _evaluator(store, channel, due_soon_config((105, 30, 15, 5), 5))

    report = await evaluator.run(NOW)

    assert report.notified_tasks == ["t1"]
    address, message = channel.sent[0]
    assert address == "chan:alice"
    assert message.kind is MessageKind.DUE_SOON
    assert message.title == "Task Due in 30 Minutes!"


async def test_due_soon_misses_task_outside_configured_offsets(store, channel):
    await store.put_task(make_task("t1", due_in=datetime.timedelta(minutes=32)))
    evaluator = _evaluator(store, channel, due_soon_config((5, 15), 5))

    report = await evaluator.run(NOW)

    assert report.notified_tasks == []
    assert channel.sent == []


async def test_due_soon_skips_completed_tasks(store, channel):
    await store.put_task(
        make_task("t1", completed=True, due_in=datetime.timedelta(minutes=30))
    )
    evaluator = _evaluator(store, channel, due_soon_config())

    report = await evaluator.run(NOW)

    assert report.notified_tasks == []


async def test_due_soon_groups_tasks_per_owner(store, channel):
    await store.put_task(make_task("a1", "alice", due_in=datetime.timedelta(minutes=14)))
    await store.put_task(make_task("a2", "alice", due_in=datetime.timedelta(minutes=16)))
    await store.put_task(make_task("b1", "bob", due_in=datetime.timedelta(minutes=15)))
    evaluator = _evaluator(store, channel, due_soon_config((15,), 5), "alice", "bob")

    report = await evaluator.run(NOW)

    assert sorted(report.notified_tasks) == ["a1", "a2", "b1"]
    assert sorted(channel.addresses()) == ["chan:alice", "chan:bob"]
    alice_message = next(m for a, m in channel.sent if a == "chan:alice")
    assert alice_message.metadata["task_ids"] == ["a1", "a2"]


async def test_due_soon_reaches_watchers(store, channel):
    await store.put_task(make_task("t1", due_in=datetime.timedelta(minutes=5)))
    await store.set_user_settings("alice", {"taskWatchers": ["bob", "carol"]})
    evaluator = _evaluator(store, channel, due_soon_config((5,), 5), "alice", "bob")

    report = await evaluator.run(NOW)

    assert channel.addresses() == ["chan:alice", "chan:bob"]
    assert report.deliveries_ok == 2


async def test_disabled_preference_skips_owner(store, channel):
    await store.put_task(make_task("t1", due_in=datetime.timedelta(minutes=5)))
    await store.set_user_settings("alice", {"dueSoonNotifications": False})
    evaluator = _evaluator(store, channel, due_soon_config((5,), 5))

    report = await evaluator.run(NOW)

    assert report.skipped_tasks == ["t1"]
    assert channel.sent == []


async def test_owner_without_recipients_is_skipped(store, channel):
    await store.put_task(make_task("t1", due_in=datetime.timedelta(minutes=5)))
    evaluator = _evaluator(store, channel, due_soon_config((5,), 5), "nobody")

    report = await evaluator.run(NOW)

    assert report.skipped_tasks == ["t1"]
    assert channel.sent == []


async def test_overdue_notifies_once_within_interval(store, channel):
    await store.put_task(make_task("t1", due_in=datetime.timedelta(minutes=-15)))
    evaluator = _evaluator(store, channel, overdue_config((15, 30, 60), 5, 600))

    first = await evaluator.run(NOW)
    second = await evaluator.run(NOW + datetime.timedelta(milliseconds=500))

    assert first.notified_tasks == ["t1"]
    assert second.notified_tasks == []
    assert second.skipped_tasks == ["t1"]
    assert len(channel.sent) == 1
    assert channel.sent[0][1].title == "Task Overdue by 15 Minutes!"

    task = await store.get_task("t1")
    assert task.last_overdue_notification == NOW


async def test_overdue_renotifies_at_next_offset(store, channel):
    await store.put_task(make_task("t1", due_in=datetime.timedelta(minutes=-15)))
    evaluator = _evaluator(store, channel, overdue_config((15, 30, 60), 5, 600))

    await evaluator.run(NOW)
    report = await evaluator.run(NOW + datetime.timedelta(minutes=15))

    assert report.notified_tasks == ["t1"]
    assert len(channel.sent) == 2


async def test_concurrent_overdue_sweeps_notify_once(store, channel):
    await store.put_task(make_task("t1", due_in=datetime.timedelta(minutes=-15)))
    first = _evaluator(store, channel, overdue_config((15, 30, 60), 5, 600))
    second = _evaluator(store, channel, overdue_config((15, 30, 60), 5, 600))

    reports = await asyncio.gather(first.run(NOW), second.run(NOW))

    assert sorted(r.notified_tasks for r in reports) == [[], ["t1"]]
    assert len(channel.sent) == 1


async def test_delivery_failure_is_counted(store):
    channel = FakeChannel(failing={"chan:alice"})
    await store.put_task(make_task("t1", due_in=datetime.timedelta(minutes=5)))
    evaluator = _evaluator(store, channel, due_soon_config((5,), 5))

    report = await evaluator.run(NOW)

    assert report.notified_tasks == ["t1"]
    assert report.deliveries_failed == 1
    assert report.errors == 0
