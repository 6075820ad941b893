"""SQLite-backed task store built on aiosqlite."""

from __future__ import annotations

import asyncio
import datetime
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import aiosqlite

from ..models import MARKER_FIELDS, Task
from ..utils.datetime_utils import (
    coerce_datetime,
    format_db_timestamp,
    parse_db_timestamp,
    utc_now,
)
from .base import StoreError, Transaction

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _row_to_task(row: aiosqlite.Row) -> Task:
    """Convert a database row to a Task object."""
    return Task(
        id=row["task_id"],
        owner_id=row["owner_id"],
        text=row["text"],
        description=row["description"],
        completed=bool(row["completed"]),
        due_date=parse_db_timestamp(row["due_date"]),
        created_at=parse_db_timestamp(row["created_at"]),
        updated_at=parse_db_timestamp(row["updated_at"]),
        last_overdue_notification=parse_db_timestamp(
            row["last_overdue_notification"]
        ),
        last_completion_notification=parse_db_timestamp(
            row["last_completion_notification"]
        ),
    )


async def _fetch_task(
    connection: aiosqlite.Connection, task_id: str
) -> Optional[Task]:
    cursor = await connection.execute(
        "SELECT * FROM tasks WHERE task_id = ?",
        (task_id,),
    )
    row = await cursor.fetchone()
    await cursor.close()
    if row is None:
        return None
    return _row_to_task(row)


async def _fetch_settings(
    connection: aiosqlite.Connection, account_id: str
) -> dict[str, Any]:
    cursor = await connection.execute(
        "SELECT data FROM user_settings WHERE account_id = ?",
        (account_id,),
    )
    row = await cursor.fetchone()
    await cursor.close()
    if row is None or not row["data"]:
        return {}
    try:
        data = json.loads(row["data"])
    except json.JSONDecodeError:
        logger.warning(f"Settings document for {account_id} is not valid JSON")
        return {}
    return data if isinstance(data, dict) else {}


async def _write_settings(
    connection: aiosqlite.Connection,
    account_id: str,
    partial: dict[str, Any],
    merge: bool,
) -> None:
    document = await _fetch_settings(connection, account_id) if merge else {}
    document.update(partial)
    await connection.execute(
        """
        INSERT INTO user_settings (account_id, data, updated_at)
        VALUES (?, ?, ?)
        ON CONFLICT(account_id) DO UPDATE SET
            data = excluded.data,
            updated_at = excluded.updated_at
        """,
        (account_id, json.dumps(document), format_db_timestamp(utc_now())),
    )


class _SqliteTransaction:
    """Operations bound to an open ``BEGIN IMMEDIATE`` transaction."""

    def __init__(self, connection: aiosqlite.Connection):
        self._connection = connection

    async def get_task(self, task_id: str) -> Optional[Task]:
        return await _fetch_task(self._connection, task_id)

    async def update_task_markers(self, task_id: str, **markers: Any) -> None:
        """Stamp notification markers; any other task field is refused."""
        if not markers:
            return
        unknown = set(markers) - MARKER_FIELDS
        if unknown:
            raise ValueError(
                f"Only notification markers may be written, got {sorted(unknown)}"
            )

        assignments = ", ".join(f"{name} = ?" for name in markers)
        values = [format_db_timestamp(coerce_datetime(v)) for v in markers.values()]
        await self._connection.execute(
            f"UPDATE tasks SET {assignments} WHERE task_id = ?",
            (*values, task_id),
        )

    async def get_user_settings(self, account_id: str) -> dict[str, Any]:
        return await _fetch_settings(self._connection, account_id)

    async def set_user_settings(
        self, account_id: str, partial: dict[str, Any], *, merge: bool = True
    ) -> None:
        await _write_settings(self._connection, account_id, partial, merge)


class SqliteTaskStore:
    """Persist tasks, per-account settings documents and account links.

    A single connection is shared by every evaluator, so all access goes
    through one lock; ``run_transaction`` holds it for the whole
    read-modify-write.
    """

    def __init__(self, database_path: Path):
        self._path = database_path
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open the SQLite connection and ensure tables exist."""
        if self._connection is not None:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._path, isolation_level=None)
        self._connection.row_factory = aiosqlite.Row
        await self._connection.execute("PRAGMA journal_mode=WAL;")
        await self._create_schema()

    async def _create_schema(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS tasks (
                task_id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL,
                text TEXT NOT NULL,
                description TEXT,
                completed INTEGER NOT NULL DEFAULT 0,
                due_date TEXT,
                created_at TEXT,
                updated_at TEXT,
                last_overdue_notification TEXT,
                last_completion_notification TEXT
            );

            CREATE TABLE IF NOT EXISTS user_settings (
                account_id TEXT PRIMARY KEY,
                data TEXT NOT NULL DEFAULT '{}',
                updated_at TEXT
            );

            CREATE TABLE IF NOT EXISTS account_links (
                account_id TEXT PRIMARY KEY,
                channel_address TEXT NOT NULL,
                linked_at TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_tasks_completed_due ON tasks(completed, due_date);
            CREATE INDEX IF NOT EXISTS idx_tasks_owner ON tasks(owner_id);
            """
        )

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    def _conn(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise StoreError("Task store is not initialized")
        return self._connection

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def query_tasks(
        self,
        *,
        completed: Optional[bool] = None,
        owner_id: Optional[str] = None,
        due_from: Optional[datetime.datetime] = None,
        due_to: Optional[datetime.datetime] = None,
    ) -> list[Task]:
        """Return tasks matching equality filters and an inclusive due-date range."""
        clauses: list[str] = []
        params: list[Any] = []
        if completed is not None:
            clauses.append("completed = ?")
            params.append(int(completed))
        if owner_id is not None:
            clauses.append("owner_id = ?")
            params.append(owner_id)
        if due_from is not None:
            clauses.append("due_date >= ?")
            params.append(format_db_timestamp(due_from))
        if due_to is not None:
            clauses.append("due_date <= ?")
            params.append(format_db_timestamp(due_to))

        query = "SELECT * FROM tasks"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY due_date ASC, task_id ASC"

        async with self._lock:
            cursor = await self._conn().execute(query, params)
            rows = await cursor.fetchall()
            await cursor.close()

        return [_row_to_task(row) for row in rows]

    async def get_task(self, task_id: str) -> Optional[Task]:
        async with self._lock:
            return await _fetch_task(self._conn(), task_id)

    async def put_task(self, task: Task) -> Task:
        """Insert or replace a task; used by the task CRUD collaborator."""
        async with self._lock:
            await self._conn().execute(
                """
                INSERT OR REPLACE INTO tasks (
                    task_id, owner_id, text, description, completed, due_date,
                    created_at, updated_at,
                    last_overdue_notification, last_completion_notification
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task.id,
                    task.owner_id,
                    task.text,
                    task.description,
                    int(task.completed),
                    format_db_timestamp(task.due_date),
                    format_db_timestamp(task.created_at),
                    format_db_timestamp(task.updated_at),
                    format_db_timestamp(task.last_overdue_notification),
                    format_db_timestamp(task.last_completion_notification),
                ),
            )
        return task

    async def run_transaction(
        self, fn: Callable[[Transaction], Awaitable[T]]
    ) -> T:
        """Run ``fn`` atomically; it must only touch the store through its argument."""
        async with self._lock:
            connection = self._conn()
            await connection.execute("BEGIN IMMEDIATE")
            try:
                result = await fn(_SqliteTransaction(connection))
            except BaseException:
                await connection.execute("ROLLBACK")
                raise
            await connection.execute("COMMIT")
            return result

    # ------------------------------------------------------------------
    # Settings documents
    # ------------------------------------------------------------------

    async def get_user_settings(self, account_id: str) -> dict[str, Any]:
        async with self._lock:
            return await _fetch_settings(self._conn(), account_id)

    async def set_user_settings(
        self, account_id: str, partial: dict[str, Any], *, merge: bool = True
    ) -> None:
        """Write ``partial`` into the account document (shallow merge by default)."""
        async with self._lock:
            await _write_settings(self._conn(), account_id, partial, merge)

    async def list_user_settings(self) -> dict[str, dict[str, Any]]:
        async with self._lock:
            cursor = await self._conn().execute(
                "SELECT account_id FROM user_settings ORDER BY account_id"
            )
            rows = await cursor.fetchall()
            await cursor.close()
            documents: dict[str, dict[str, Any]] = {}
            for row in rows:
                documents[row["account_id"]] = await _fetch_settings(
                    self._conn(), row["account_id"]
                )
        return documents

    # ------------------------------------------------------------------
    # Account links
    # ------------------------------------------------------------------

    async def link_account(self, account_id: str, channel_address: str) -> None:
        async with self._lock:
            await self._conn().execute(
                """
                INSERT INTO account_links (account_id, channel_address, linked_at)
                VALUES (?, ?, ?)
                ON CONFLICT(account_id) DO UPDATE SET
                    channel_address = excluded.channel_address,
                    linked_at = excluded.linked_at
                """,
                (account_id, channel_address, format_db_timestamp(utc_now())),
            )

    async def get_channel_address(self, account_id: str) -> Optional[str]:
        async with self._lock:
            cursor = await self._conn().execute(
                "SELECT channel_address FROM account_links WHERE account_id = ?",
                (account_id,),
            )
            row = await cursor.fetchone()
            await cursor.close()
        return row["channel_address"] if row else None


__all__ = ["SqliteTaskStore"]
