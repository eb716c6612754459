"""SQLite implementation of the stepflow stores."""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

from ..contracts import WorkflowVersion
from ..errors import InvalidWorkflow
from .models import Execution, ExecutionStatus, SLARecord, Task, TaskStatus
from .repository import ExecutionStore, SLAStore, TaskStore, WorkflowStore


def _ts(value: datetime | None) -> float | None:
    return value.timestamp() if value is not None else None


class SQLiteDatabase:
    """Shared connection and schema for the SQLite stores.

    Each entity is stored as its JSON document next to the columns the
    stores filter on.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        # The queue drain loop and the SLA sweeps may hit the DB from
        # different worker threads at the same time.
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_versions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                data TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS executions (
                id TEXT PRIMARY KEY,
                status TEXT NOT NULL,
                data TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS tasks (
                id TEXT PRIMARY KEY,
                execution_id TEXT NOT NULL,
                assigned_to TEXT NOT NULL,
                status TEXT NOT NULL,
                data TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS sla_records (
                id TEXT PRIMARY KEY,
                task_id TEXT,
                breached INTEGER NOT NULL DEFAULT 0,
                due_time REAL NOT NULL,
                completed_time REAL,
                data TEXT NOT NULL
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_sla_open ON sla_records (breached, due_time)"
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    async def execute(self, query: str, *params: Any) -> None:
        await asyncio.to_thread(self._execute, query, *params)

    async def fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        return await asyncio.to_thread(self._fetchone, query, *params)

    async def fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        return await asyncio.to_thread(self._fetchall, query, *params)

    def close(self) -> None:
        self._conn.close()


class SQLiteWorkflowStore(WorkflowStore):
    def __init__(self, db: SQLiteDatabase):
        self._db = db

    async def get_version(self, version_id: str) -> WorkflowVersion | None:
        row = await self._db.fetchone(
            "SELECT data FROM workflow_versions WHERE id = ?", version_id
        )
        return WorkflowVersion.model_validate_json(row["data"]) if row else None

    async def save_version(self, version: WorkflowVersion) -> None:
        try:
            await self._db.execute(
                "INSERT INTO workflow_versions (id, workflow_id, data) VALUES (?, ?, ?)",
                version.id,
                version.workflow_id,
                version.model_dump_json(),
            )
        except sqlite3.IntegrityError as exc:
            raise InvalidWorkflow(
                f"Workflow version {version.id} already exists"
            ) from exc

    async def list_versions(self) -> list[WorkflowVersion]:
        rows = await self._db.fetchall("SELECT data FROM workflow_versions")
        return [WorkflowVersion.model_validate_json(r["data"]) for r in rows]


class SQLiteExecutionStore(ExecutionStore):
    def __init__(self, db: SQLiteDatabase):
        self._db = db

    async def get(self, execution_id: str) -> Execution | None:
        row = await self._db.fetchone(
            "SELECT data FROM executions WHERE id = ?", execution_id
        )
        return Execution.model_validate_json(row["data"]) if row else None

    async def save(self, execution: Execution) -> None:
        await self._db.execute(
            "INSERT OR REPLACE INTO executions (id, status, data) VALUES (?, ?, ?)",
            execution.id,
            execution.status.value,
            execution.model_dump_json(),
        )

    async def list_executions(
        self, status: ExecutionStatus | None = None
    ) -> list[Execution]:
        if status is None:
            rows = await self._db.fetchall("SELECT data FROM executions")
        else:
            rows = await self._db.fetchall(
                "SELECT data FROM executions WHERE status = ?", status.value
            )
        return [Execution.model_validate_json(r["data"]) for r in rows]


class SQLiteTaskStore(TaskStore):
    def __init__(self, db: SQLiteDatabase):
        self._db = db

    async def create(self, task: Task) -> Task:
        await self.save(task)
        return task

    async def get(self, task_id: str) -> Task | None:
        row = await self._db.fetchone("SELECT data FROM tasks WHERE id = ?", task_id)
        return Task.model_validate_json(row["data"]) if row else None

    async def save(self, task: Task) -> None:
        await self._db.execute(
            "INSERT OR REPLACE INTO tasks (id, execution_id, assigned_to, status, data) "
            "VALUES (?, ?, ?, ?, ?)",
            task.id,
            task.execution_id,
            task.assigned_to,
            task.status.value,
            task.model_dump_json(),
        )

    async def list_tasks(
        self,
        assigned_to: str | None = None,
        status: TaskStatus | None = None,
        execution_id: str | None = None,
    ) -> list[Task]:
        query = "SELECT data FROM tasks WHERE 1 = 1"
        params: list[Any] = []
        if assigned_to is not None:
            query += " AND assigned_to = ?"
            params.append(assigned_to)
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        if execution_id is not None:
            query += " AND execution_id = ?"
            params.append(execution_id)
        rows = await self._db.fetchall(query, *params)
        return [Task.model_validate_json(r["data"]) for r in rows]


class SQLiteSLAStore(SLAStore):
    def __init__(self, db: SQLiteDatabase):
        self._db = db

    async def create(self, record: SLARecord) -> SLARecord:
        await self.save(record)
        return record

    async def get(self, record_id: str) -> SLARecord | None:
        row = await self._db.fetchone(
            "SELECT data FROM sla_records WHERE id = ?", record_id
        )
        return SLARecord.model_validate_json(row["data"]) if row else None

    async def save(self, record: SLARecord) -> None:
        await self._db.execute(
            """
            INSERT OR REPLACE INTO sla_records
                (id, task_id, breached, due_time, completed_time, data)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            record.id,
            record.task_id,
            int(record.breached),
            _ts(record.due_time),
            _ts(record.completed_time),
            record.model_dump_json(),
        )

    async def find_overdue(self, now: datetime) -> list[SLARecord]:
        rows = await self._db.fetchall(
            """
            SELECT data FROM sla_records
            WHERE breached = 0 AND completed_time IS NULL AND due_time < ?
            ORDER BY due_time
            """,
            _ts(now),
        )
        return [SLARecord.model_validate_json(r["data"]) for r in rows]

    async def find_due_between(
        self, start: datetime, end: datetime
    ) -> list[SLARecord]:
        rows = await self._db.fetchall(
            """
            SELECT data FROM sla_records
            WHERE breached = 0 AND completed_time IS NULL
              AND due_time > ? AND due_time < ?
            ORDER BY due_time
            """,
            _ts(start),
            _ts(end),
        )
        return [SLARecord.model_validate_json(r["data"]) for r in rows]

    async def list_for_task(self, task_id: str) -> list[SLARecord]:
        rows = await self._db.fetchall(
            "SELECT data FROM sla_records WHERE task_id = ?", task_id
        )
        return [SLARecord.model_validate_json(r["data"]) for r in rows]
