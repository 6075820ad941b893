"""Outbound notification channels and the timeout-bounded dispatcher."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol

import httpx

from ..messages import NotificationMessage

logger = logging.getLogger(__name__)


class NotificationChannel(Protocol):
    """Deliver a message to one recipient address. Must not raise."""

    async def deliver(self, address: str, message: NotificationMessage) -> bool: ...


class WebhookChannel:
    """POST each notification as JSON to a rendering/relay webhook."""

    def __init__(
        self,
        url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self._url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def deliver(self, address: str, message: NotificationMessage) -> bool:
        payload = {"recipient": address, "message": message.to_dict()}
        try:
            response = await self._client.post(self._url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                f"Webhook rejected {message.kind.value} for {address}: "
                f"HTTP {exc.response.status_code}"
            )
            return False
        except httpx.HTTPError as exc:
            logger.error(f"Webhook delivery to {address} failed: {exc}")
            return False

        logger.debug(f"Delivered {message.kind.value} to {address}")
        return True

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class LogChannel:
    """Dry-run channel used when no webhook is configured."""

    async def deliver(self, address: str, message: NotificationMessage) -> bool:
        logger.info(f"[dry-run] {message.kind.value} -> {address}: {message.title}")
        return True


@dataclass(slots=True)
class DeliveryReport:
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class NotificationDispatcher:
    """Bound every delivery attempt and keep one recipient from stalling others."""

    def __init__(self, channel: NotificationChannel, timeout_seconds: float = 10.0):
        self._channel = channel
        self._timeout = timeout_seconds

    async def send(self, address: str, message: NotificationMessage) -> bool:
        try:
            delivered = await asyncio.wait_for(
                self._channel.deliver(address, message), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Delivery of {message.kind.value} to {address} timed out "
                f"after {self._timeout:.1f}s"
            )
            return False
        except Exception:
            logger.exception(f"Channel raised while delivering to {address}")
            return False
        if not delivered:
            logger.warning(f"Delivery of {message.kind.value} to {address} failed")
        return bool(delivered)

    async def broadcast(
        self, addresses: Iterable[str], message: NotificationMessage
    ) -> DeliveryReport:
        targets = list(dict.fromkeys(addresses))
        results = await asyncio.gather(
            *(self.send(address, message) for address in targets)
        )
        report = DeliveryReport()
        for address, delivered in zip(targets, results):
            (report.succeeded if delivered else report.failed).append(address)
        return report


__all__ = [
    "DeliveryReport",
    "LogChannel",
    "NotificationChannel",
    "NotificationDispatcher",
    "WebhookChannel",
]
