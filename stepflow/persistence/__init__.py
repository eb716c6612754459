"""Persistence layer for stepflow state."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from ..config import StepflowConfig, load_config
from .inmemory import (
    InMemoryExecutionStore,
    InMemorySLAStore,
    InMemoryTaskStore,
    InMemoryWorkflowStore,
)
from .models import (
    Execution,
    ExecutionStatus,
    SLANotification,
    SLANotificationKind,
    SLARecord,
    StepHistoryEntry,
    Task,
    TaskComment,
    TaskStatus,
)
from .repository import ExecutionStore, SLAStore, TaskStore, WorkflowStore
from .sqlite import (
    SQLiteDatabase,
    SQLiteExecutionStore,
    SQLiteSLAStore,
    SQLiteTaskStore,
    SQLiteWorkflowStore,
)


@dataclass
class Stores:
    """The four stores the engine, sweeps and task service share."""

    workflows: WorkflowStore
    executions: ExecutionStore
    tasks: TaskStore
    sla: SLAStore

    @classmethod
    def in_memory(cls) -> "Stores":
        return cls(
            workflows=InMemoryWorkflowStore(),
            executions=InMemoryExecutionStore(),
            tasks=InMemoryTaskStore(),
            sla=InMemorySLAStore(),
        )

    @classmethod
    def sqlite(cls, db_path: str) -> "Stores":
        db = SQLiteDatabase(db_path)
        return cls(
            workflows=SQLiteWorkflowStore(db),
            executions=SQLiteExecutionStore(db),
            tasks=SQLiteTaskStore(db),
            sla=SQLiteSLAStore(db),
        )


_stores_instance: Stores | None = None
_stores_url: str | None = None


def get_stores(
    database_url: Optional[str] = None, config: Optional[StepflowConfig] = None
) -> Stores:
    """Factory function to obtain the state stores.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``STEPFLOW_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, in-memory stores are returned. The stores for the most
    recently resolved URL are cached and reused while the URL stays the same.
    """

    global _stores_instance, _stores_url
    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("STEPFLOW_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or getattr(config, "database_url", None)
    )
    if _stores_instance is not None and database_url == _stores_url:
        return _stores_instance

    if not database_url:
        stores = Stores.in_memory()
    elif database_url.startswith("sqlite://"):
        stores = Stores.sqlite(database_url.replace("sqlite://", "", 1))
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    _stores_instance, _stores_url = stores, database_url
    return stores


__all__ = [
    "Execution",
    "ExecutionStatus",
    "ExecutionStore",
    "InMemoryExecutionStore",
    "InMemorySLAStore",
    "InMemoryTaskStore",
    "InMemoryWorkflowStore",
    "SLANotification",
    "SLANotificationKind",
    "SLARecord",
    "SLAStore",
    "SQLiteDatabase",
    "SQLiteExecutionStore",
    "SQLiteSLAStore",
    "SQLiteTaskStore",
    "SQLiteWorkflowStore",
    "StepHistoryEntry",
    "Stores",
    "Task",
    "TaskComment",
    "TaskStatus",
    "TaskStore",
    "WorkflowStore",
    "get_stores",
]
