"""Mapping from account ids to messaging-platform recipient addresses."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from ..store.base import TaskStore

logger = logging.getLogger(__name__)


class IdentityResolver(Protocol):
    async def resolve_recipient(self, account_id: str) -> Optional[str]: ...


class StoreIdentityResolver:
    """Resolve recipients from the ``account_links`` kept by the linking flow."""

    def __init__(self, store: TaskStore):
        self._store = store

    async def resolve_recipient(self, account_id: str) -> Optional[str]:
        address = await self._store.get_channel_address(account_id)
        if address is None:
            logger.debug(f"No linked channel address for account {account_id}")
        return address


__all__ = ["IdentityResolver", "StoreIdentityResolver"]
