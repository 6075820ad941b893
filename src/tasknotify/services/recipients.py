"""Resolve who receives an owner's notifications."""

from __future__ import annotations

import logging
from typing import Optional

from ..schemas.user_settings import UserSettingsDocument
from .identity import IdentityResolver

logger = logging.getLogger(__name__)


class RecipientResolver:
    """Owner plus consented watchers, mapped to channel addresses."""

    def __init__(self, identity: IdentityResolver):
        self._identity = identity

    async def owner_address(self, owner_id: str) -> Optional[str]:
        return await self._identity.resolve_recipient(owner_id)

    async def resolve(
        self, owner_id: str, settings: UserSettingsDocument
    ) -> list[str]:
        """Return unique addresses for ``{owner} ∪ watchers``, owner first."""
        addresses: list[str] = []

        owner_address = await self._identity.resolve_recipient(owner_id)
        if owner_address:
            addresses.append(owner_address)
        else:
            logger.info(f"Owner {owner_id} has no channel address")

        for watcher_id in settings.task_watchers:
            if watcher_id == owner_id:
                continue
            address = await self._identity.resolve_recipient(watcher_id)
            if address and address not in addresses:
                addresses.append(address)
            elif not address:
                logger.debug(f"Watcher {watcher_id} of {owner_id} has no address")

        return addresses


__all__ = ["RecipientResolver"]
