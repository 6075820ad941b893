import datetime
import pathlib
import sys
from typing import Optional

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from tasknotify.messages import NotificationMessage  # noqa: E402
from tasknotify.models import Task  # noqa: E402
from tasknotify.services.delivery import NotificationDispatcher  # noqa: E402
from tasknotify.services.recipients import RecipientResolver  # noqa: E402
from tasknotify.store.sqlite import SqliteTaskStore  # noqa: E402

NOW = datetime.datetime(2026, 3, 10, 20, 15, tzinfo=datetime.timezone.utc)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def store(tmp_path):
    task_store = SqliteTaskStore(tmp_path / "tasks.db")
    await task_store.initialize()
    try:
        yield task_store
    finally:
        await task_store.close()


class FakeChannel:
    """Records every delivery; addresses in ``failing`` are rejected."""

    def __init__(self, failing: Optional[set[str]] = None) -> None:
        self.sent: list[tuple[str, NotificationMessage]] = []
        self.failing = failing or set()

    async def deliver(self, address: str, message: NotificationMessage) -> bool:
        if address in self.failing:
            return False
        self.sent.append((address, message))
        return True

    def addresses(self) -> list[str]:
        return [address for address, _ in self.sent]


class FakeIdentity:
    """Maps account ids to addresses of the form ``chan:<account>``."""

    def __init__(self, *accounts: str) -> None:
        self.known = set(accounts)

    async def resolve_recipient(self, account_id: str) -> Optional[str]:
        return f"chan:{account_id}" if account_id in self.known else None


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def dispatcher(channel: FakeChannel) -> NotificationDispatcher:
    return NotificationDispatcher(channel, timeout_seconds=1.0)


def make_task(
    task_id: str,
    owner_id: str = "alice",
    *,
    text: Optional[str] = None,
    completed: bool = False,
    due_in: Optional[datetime.timedelta] = None,
    updated_at: Optional[datetime.datetime] = None,
    now: datetime.datetime = NOW,
    **extra,
) -> Task:
    return Task(
        id=task_id,
        owner_id=owner_id,
        text=text or f"Task {task_id}",
        completed=completed,
        due_date=now + due_in if due_in is not None else None,
        created_at=now - datetime.timedelta(days=1),
        updated_at=updated_at or now - datetime.timedelta(hours=1),
        **extra,
    )


def make_recipients(*accounts: str) -> RecipientResolver:
    return RecipientResolver(FakeIdentity(*accounts))
