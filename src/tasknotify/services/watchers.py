"""Opt-in watcher consent protocol.

An owner asks a target account to watch their tasks. The request is stored
on the target's settings document under ``pendingWatcherRequests[owner]``
until the target accepts or declines it, or it expires. Only an accepted
request puts the target on the owner's ``taskWatchers`` list.
"""

from __future__ import annotations

import datetime
import logging
from typing import Any, Optional

from ..messages import watcher_request_message, watcher_response_message
from ..models import ConsentOutcome, ConsentRequest
from ..schemas.user_settings import (
    PendingWatcherRequest,
    UserSettingsDocument,
    parse_settings,
)
from ..store.base import TaskStore, Transaction
from ..utils.datetime_utils import ensure_utc, normalize_rfc3339, utc_now
from .delivery import NotificationDispatcher
from .identity import IdentityResolver

logger = logging.getLogger(__name__)

REQUEST_TTL_HOURS = 72


class WatcherError(RuntimeError):
    """Raised when a consent protocol operation is rejected."""

    reason = "watcher_error"


class SelfWatchError(WatcherError):
    reason = "self_watch"


class UnknownTargetError(WatcherError):
    reason = "unknown_target"


class AlreadyWatchingError(WatcherError):
    reason = "already_watching"


class RequestAlreadyPendingError(WatcherError):
    reason = "request_already_pending"


class NoPendingRequestError(WatcherError):
    reason = "no_pending_request"


class NotWatchingError(WatcherError):
    reason = "not_watching"


class ConsentDeliveryError(WatcherError):
    """The consent prompt could not be delivered; the request was withdrawn."""

    reason = "delivery_failed"


class MalformedSettingsError(WatcherError):
    """A settings document involved in the operation failed validation."""

    reason = "malformed_settings"


def _load(account_id: str, raw: dict[str, Any]) -> UserSettingsDocument:
    """Validated document for a read-modify-write; never an empty stand-in."""
    settings = parse_settings(account_id, raw)
    if settings is None:
        raise MalformedSettingsError(
            f"Settings document for {account_id} is malformed; nothing was changed"
        )
    return settings


def _pending_entries(
    account_id: str, raw: dict[str, Any]
) -> dict[str, PendingWatcherRequest]:
    return dict(_load(account_id, raw).pending_watcher_requests)


def _watchers(account_id: str, raw: dict[str, Any]) -> list[str]:
    return list(_load(account_id, raw).task_watchers)


def _serialize_pending(
    entries: dict[str, PendingWatcherRequest],
) -> dict[str, dict[str, Any]]:
    serialized = {}
    for requester_id, entry in entries.items():
        data = entry.model_dump(by_alias=True, mode="json")
        data["requestedAt"] = normalize_rfc3339(entry.requested_at)
        serialized[requester_id] = data
    return serialized


class WatcherService:
    """Issue, resolve and revoke watcher relationships."""

    def __init__(
        self,
        store: TaskStore,
        identity: IdentityResolver,
        dispatcher: NotificationDispatcher,
        *,
        request_ttl_hours: float = REQUEST_TTL_HOURS,
    ):
        self._store = store
        self._identity = identity
        self._dispatcher = dispatcher
        self._ttl = datetime.timedelta(hours=request_ttl_hours)

    def _is_expired(
        self, entry: PendingWatcherRequest, now: datetime.datetime
    ) -> bool:
        return now - ensure_utc(entry.requested_at) >= self._ttl

    async def issue_request(
        self,
        owner_id: str,
        target_id: str,
        now: Optional[datetime.datetime] = None,
    ) -> ConsentRequest:
        """Record a pending request and send the consent prompt to the target."""
        now = ensure_utc(now) if now is not None else utc_now()

        if owner_id == target_id:
            raise SelfWatchError("You cannot add yourself as a watcher")

        target_address = await self._identity.resolve_recipient(target_id)
        if target_address is None:
            raise UnknownTargetError(
                f"Account {target_id} has no linked messaging identity"
            )

        async def _record(txn: Transaction) -> None:
            if target_id in _watchers(owner_id, await txn.get_user_settings(owner_id)):
                raise AlreadyWatchingError(
                    f"{target_id} is already watching {owner_id}"
                )

            pending = _pending_entries(
                target_id, await txn.get_user_settings(target_id)
            )
            existing = pending.get(owner_id)
            if existing is not None and not self._is_expired(existing, now):
                raise RequestAlreadyPendingError(
                    f"A request from {owner_id} to {target_id} is already pending"
                )

            pending = {
                requester: entry
                for requester, entry in pending.items()
                if not self._is_expired(entry, now)
            }
            pending[owner_id] = PendingWatcherRequest(requested_at=now)
            await txn.set_user_settings(
                target_id, {"pendingWatcherRequests": _serialize_pending(pending)}
            )

        await self._store.run_transaction(_record)
        logger.info(f"Watcher request recorded: {owner_id} -> {target_id}")

        message = watcher_request_message(
            owner_id, target_id, now, expires_at=now + self._ttl
        )
        if not await self._dispatcher.send(target_address, message):
            await self._withdraw(owner_id, target_id, now)
            raise ConsentDeliveryError(
                f"Could not deliver the consent request to {target_id}"
            )

        return ConsentRequest(
            target_id=target_id, requester_id=owner_id, requested_at=now
        )

    async def _withdraw(
        self, owner_id: str, target_id: str, requested_at: datetime.datetime
    ) -> None:
        async def _remove(txn: Transaction) -> None:
            pending = _pending_entries(
                target_id, await txn.get_user_settings(target_id)
            )
            entry = pending.get(owner_id)
            if entry is None or ensure_utc(entry.requested_at) != requested_at:
                return
            del pending[owner_id]
            await txn.set_user_settings(
                target_id, {"pendingWatcherRequests": _serialize_pending(pending)}
            )

        await self._store.run_transaction(_remove)
        logger.warning(f"Withdrew undeliverable watcher request {owner_id} -> {target_id}")

    async def resolve_request(
        self,
        owner_id: str,
        target_id: str,
        accepted: bool,
        now: Optional[datetime.datetime] = None,
    ) -> ConsentOutcome:
        """Apply the target's decision and tell the requester about it."""
        now = ensure_utc(now) if now is not None else utc_now()

        async def _resolve(txn: Transaction) -> None:
            pending = _pending_entries(
                target_id, await txn.get_user_settings(target_id)
            )
            entry = pending.get(owner_id)
            if entry is None or self._is_expired(entry, now):
                raise NoPendingRequestError(
                    f"No pending request from {owner_id} for {target_id}"
                )

            # both documents are validated before either is written
            watchers = (
                _watchers(owner_id, await txn.get_user_settings(owner_id))
                if accepted
                else []
            )

            del pending[owner_id]
            await txn.set_user_settings(
                target_id, {"pendingWatcherRequests": _serialize_pending(pending)}
            )

            if accepted and target_id not in watchers:
                watchers.append(target_id)
                await txn.set_user_settings(owner_id, {"taskWatchers": watchers})

        await self._store.run_transaction(_resolve)
        outcome = ConsentOutcome.ACCEPTED if accepted else ConsentOutcome.DECLINED
        logger.info(f"Watcher request {owner_id} -> {target_id} {outcome.value}")

        owner_address = await self._identity.resolve_recipient(owner_id)
        if owner_address is None:
            logger.info(f"Requester {owner_id} has no address; response not sent")
        else:
            await self._dispatcher.send(
                owner_address, watcher_response_message(target_id, accepted, now)
            )

        return outcome

    async def remove_watcher(self, owner_id: str, target_id: str) -> None:
        async def _remove(txn: Transaction) -> None:
            watchers = _watchers(owner_id, await txn.get_user_settings(owner_id))
            if target_id not in watchers:
                raise NotWatchingError(f"{target_id} is not watching {owner_id}")
            watchers = [w for w in watchers if w != target_id]
            await txn.set_user_settings(owner_id, {"taskWatchers": watchers})

        await self._store.run_transaction(_remove)
        logger.info(f"Removed watcher {target_id} from {owner_id}")

    async def list_watchers(self, owner_id: str) -> list[str]:
        settings = parse_settings(
            owner_id, await self._store.get_user_settings(owner_id)
        )
        return list(settings.task_watchers) if settings is not None else []

    async def list_pending_requests(
        self, target_id: str, now: Optional[datetime.datetime] = None
    ) -> list[ConsentRequest]:
        """Unexpired requests waiting on ``target_id``, oldest first."""
        now = ensure_utc(now) if now is not None else utc_now()
        settings = parse_settings(
            target_id, await self._store.get_user_settings(target_id)
        )
        if settings is None:
            return []
        requests = [
            request
            for request in settings.pending_requests(target_id)
            if not request.is_expired(now, self._ttl)
        ]
        return sorted(requests, key=lambda r: r.requested_at)


__all__ = [
    "AlreadyWatchingError",
    "ConsentDeliveryError",
    "MalformedSettingsError",
    "NoPendingRequestError",
    "NotWatchingError",
    "REQUEST_TTL_HOURS",
    "RequestAlreadyPendingError",
    "SelfWatchError",
    "UnknownTargetError",
    "WatcherError",
    "WatcherService",
]
