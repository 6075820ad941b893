"""Interfaces of the shared task store consumed by the notification engine."""

from __future__ import annotations

import datetime
from typing import Any, Awaitable, Callable, Optional, Protocol, TypeVar

from ..models import Task

T = TypeVar("T")


class StoreError(RuntimeError):
    """Raised when the backing store cannot complete an operation."""


class Transaction(Protocol):
    """Read-modify-write handle valid only inside ``TaskStore.run_transaction``."""

    async def get_task(self, task_id: str) -> Optional[Task]: ...

    async def update_task_markers(self, task_id: str, **markers: Any) -> None: ...

    async def get_user_settings(self, account_id: str) -> dict[str, Any]: ...

    async def set_user_settings(
        self, account_id: str, partial: dict[str, Any], *, merge: bool = True
    ) -> None: ...


class TaskStore(Protocol):
    """Document-style access to tasks, account settings and account links."""

    async def initialize(self) -> None: ...

    async def close(self) -> None: ...

    async def query_tasks(
        self,
        *,
        completed: Optional[bool] = None,
        owner_id: Optional[str] = None,
        due_from: Optional[datetime.datetime] = None,
        due_to: Optional[datetime.datetime] = None,
    ) -> list[Task]: ...

    async def get_task(self, task_id: str) -> Optional[Task]: ...

    async def put_task(self, task: Task) -> Task: ...

    async def run_transaction(
        self, fn: Callable[[Transaction], Awaitable[T]]
    ) -> T: ...

    async def get_user_settings(self, account_id: str) -> dict[str, Any]: ...

    async def set_user_settings(
        self, account_id: str, partial: dict[str, Any], *, merge: bool = True
    ) -> None: ...

    async def list_user_settings(self) -> dict[str, dict[str, Any]]: ...

    async def link_account(self, account_id: str, channel_address: str) -> None: ...

    async def get_channel_address(self, account_id: str) -> Optional[str]: ...


__all__ = ["StoreError", "TaskStore", "Transaction"]
