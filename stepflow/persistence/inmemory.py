"""In-memory implementations of the stepflow stores."""

from __future__ import annotations

from datetime import datetime
from typing import Dict

from ..contracts import WorkflowVersion
from ..errors import InvalidWorkflow
from .models import Execution, ExecutionStatus, SLARecord, Task, TaskStatus
from .repository import ExecutionStore, SLAStore, TaskStore, WorkflowStore


class InMemoryWorkflowStore(WorkflowStore):
    """Keep workflow versions in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._versions: Dict[str, WorkflowVersion] = {}

    async def get_version(self, version_id: str) -> WorkflowVersion | None:
        return self._versions.get(version_id)

    async def save_version(self, version: WorkflowVersion) -> None:
        if version.id in self._versions:
            raise InvalidWorkflow(f"Workflow version {version.id} already exists")
        self._versions[version.id] = version

    async def list_versions(self) -> list[WorkflowVersion]:
        return list(self._versions.values())


# Stored objects are copied on the way in and out so callers only ever
# change state through ``save``.


class InMemoryExecutionStore(ExecutionStore):
    def __init__(self) -> None:
        self._executions: Dict[str, Execution] = {}

    async def get(self, execution_id: str) -> Execution | None:
        execution = self._executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    async def save(self, execution: Execution) -> None:
        self._executions[execution.id] = execution.model_copy(deep=True)

    async def list_executions(
        self, status: ExecutionStatus | None = None
    ) -> list[Execution]:
        return [
            e.model_copy(deep=True)
            for e in self._executions.values()
            if status is None or e.status == status
        ]


class InMemoryTaskStore(TaskStore):
    def __init__(self) -> None:
        self._tasks: Dict[str, Task] = {}

    async def create(self, task: Task) -> Task:
        self._tasks[task.id] = task.model_copy(deep=True)
        return task

    async def get(self, task_id: str) -> Task | None:
        task = self._tasks.get(task_id)
        return task.model_copy(deep=True) if task else None

    async def save(self, task: Task) -> None:
        self._tasks[task.id] = task.model_copy(deep=True)

    async def list_tasks(
        self,
        assigned_to: str | None = None,
        status: TaskStatus | None = None,
        execution_id: str | None = None,
    ) -> list[Task]:
        return [
            t.model_copy(deep=True)
            for t in self._tasks.values()
            if (assigned_to is None or t.assigned_to == assigned_to)
            and (status is None or t.status == status)
            and (execution_id is None or t.execution_id == execution_id)
        ]


class InMemorySLAStore(SLAStore):
    def __init__(self) -> None:
        self._records: Dict[str, SLARecord] = {}

    async def create(self, record: SLARecord) -> SLARecord:
        self._records[record.id] = record.model_copy(deep=True)
        return record

    async def get(self, record_id: str) -> SLARecord | None:
        record = self._records.get(record_id)
        return record.model_copy(deep=True) if record else None

    async def save(self, record: SLARecord) -> None:
        self._records[record.id] = record.model_copy(deep=True)

    def _open(self) -> list[SLARecord]:
        return [
            r
            for r in self._records.values()
            if not r.breached and r.completed_time is None
        ]

    async def find_overdue(self, now: datetime) -> list[SLARecord]:
        return [r.model_copy(deep=True) for r in self._open() if r.due_time < now]

    async def find_due_between(
        self, start: datetime, end: datetime
    ) -> list[SLARecord]:
        return [
            r.model_copy(deep=True)
            for r in self._open()
            if start < r.due_time < end
        ]

    async def list_for_task(self, task_id: str) -> list[SLARecord]:
        return [
            r.model_copy(deep=True)
            for r in self._records.values()
            if r.task_id == task_id
        ]
