"""Store abstractions for workflow, execution, task and SLA state."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ..contracts import WorkflowVersion
from .models import Execution, ExecutionStatus, SLARecord, Task, TaskStatus


class WorkflowStore(Protocol):
    """Read access to immutable workflow versions."""

    async def get_version(self, version_id: str) -> WorkflowVersion | None:
        """Retrieve a workflow version by id."""

    async def save_version(self, version: WorkflowVersion) -> None:
        """Store a new version. Existing versions are never overwritten."""

    async def list_versions(self) -> list[WorkflowVersion]:
        """Return all stored versions."""


class ExecutionStore(Protocol):
    async def get(self, execution_id: str) -> Execution | None:
        """Retrieve an execution by id."""

    async def save(self, execution: Execution) -> None:
        """Insert or replace an execution."""

    async def list_executions(
        self, status: ExecutionStatus | None = None
    ) -> list[Execution]:
        """Return executions, optionally filtered by status."""


class TaskStore(Protocol):
    async def create(self, task: Task) -> Task:
        """Persist a new task."""

    async def get(self, task_id: str) -> Task | None:
        """Retrieve a task by id."""

    async def save(self, task: Task) -> None:
        """Persist task changes."""

    async def list_tasks(
        self,
        assigned_to: str | None = None,
        status: TaskStatus | None = None,
        execution_id: str | None = None,
    ) -> list[Task]:
        """Return tasks, optionally filtered by assignee, status and execution."""


class SLAStore(Protocol):
    async def create(self, record: SLARecord) -> SLARecord:
        """Persist a new SLA record."""

    async def get(self, record_id: str) -> SLARecord | None:
        """Retrieve an SLA record by id."""

    async def save(self, record: SLARecord) -> None:
        """Persist SLA record changes."""

    async def find_overdue(self, now: datetime) -> list[SLARecord]:
        """Unbreached, uncompleted records whose due time is before ``now``."""

    async def find_due_between(
        self, start: datetime, end: datetime
    ) -> list[SLARecord]:
        """Unbreached, uncompleted records due strictly between ``start`` and ``end``."""

    async def list_for_task(self, task_id: str) -> list[SLARecord]:
        """Records linked to ``task_id``."""
