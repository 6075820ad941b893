"""Task store interfaces and the SQLite implementation."""

from .base import StoreError, TaskStore, Transaction
from .sqlite import SqliteTaskStore

__all__ = ["SqliteTaskStore", "StoreError", "TaskStore", "Transaction"]
