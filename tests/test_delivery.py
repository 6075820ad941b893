from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from conftest import NOW, FakeChannel
from tasknotify.messages import MessageKind, NotificationMessage
from tasknotify.services.delivery import (
    LogChannel,
    NotificationDispatcher,
    WebhookChannel,
)

pytestmark = pytest.mark.anyio

MESSAGE = NotificationMessage(
    kind=MessageKind.COMPLETION,
    title="Task Completed!",
    description="done",
    timestamp=NOW,
)


class SlowChannel:
    async def deliver(self, address, message):
        await asyncio.sleep(5)
        return True


class ExplodingChannel:
    async def deliver(self, address, message):
        raise RuntimeError("socket closed")


def _webhook(handler) -> tuple[WebhookChannel, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WebhookChannel("https://relay.example/notify", client=client), client


async def test_webhook_posts_structured_payload():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(204)

    channel, client = _webhook(handler)
    try:
        assert await channel.deliver("chan:alice", MESSAGE) is True
    finally:
        await client.aclose()

    payload = seen[0]
    assert payload["recipient"] == "chan:alice"
    assert payload["message"]["kind"] == "completion"
    assert payload["message"]["title"] == "Task Completed!"
    assert payload["message"]["timestamp"] == "2026-03-10T20:15:00Z"


async def test_webhook_rejection_is_failure():
    channel, client = _webhook(lambda request: httpx.Response(500))
    try:
        assert await channel.deliver("chan:alice", MESSAGE) is False
    finally:
        await client.aclose()


async def test_webhook_transport_error_is_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    channel, client = _webhook(handler)
    try:
        assert await channel.deliver("chan:alice", MESSAGE) is False
    finally:
        await client.aclose()


async def test_log_channel_always_succeeds():
    assert await LogChannel().deliver("chan:alice", MESSAGE) is True


async def test_dispatcher_times_out_slow_channel():
    dispatcher = NotificationDispatcher(SlowChannel(), timeout_seconds=0.05)

    assert await dispatcher.send("chan:alice", MESSAGE) is False


async def test_dispatcher_contains_channel_exceptions():
    dispatcher = NotificationDispatcher(ExplodingChannel(), timeout_seconds=1.0)

    assert await dispatcher.send("chan:alice", MESSAGE) is False


async def test_broadcast_dedupes_and_reports():
    channel = FakeChannel(failing={"chan:bob"})
    dispatcher = NotificationDispatcher(channel, timeout_seconds=1.0)

    report = await dispatcher.broadcast(
        ["chan:alice", "chan:bob", "chan:alice", "chan:carol"], MESSAGE
    )

    assert report.succeeded == ["chan:alice", "chan:carol"]
    assert report.failed == ["chan:bob"]
    assert report.ok is False
    assert channel.addresses() == ["chan:alice", "chan:carol"]


async def test_broadcast_isolates_slow_recipient():
    class MixedChannel:
        async def deliver(self, address, message):
            if address == "slow":
                await asyncio.sleep(5)
            return True

    dispatcher = NotificationDispatcher(MixedChannel(), timeout_seconds=0.05)

    report = await dispatcher.broadcast(["slow", "fast"], MESSAGE)

    assert report.succeeded == ["fast"]
    assert report.failed == ["slow"]
