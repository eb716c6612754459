"""Resolution of approval tasks.

Resolving a task is the only way a suspended execution moves on: approval
enqueues an advancement job anchored at the task's step, rejection fails the
execution.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .constants import ADVANCE_EXECUTION_JOB, EVENT_EXECUTION_FAILED
from .contracts import AdvanceRequest, LifecycleEvent
from .errors import NotAuthorized, TaskNotFound, TaskNotPending
from .events import EventBroadcaster
from .notifications import NotificationSink, Severity
from .persistence import (
    Execution,
    ExecutionStatus,
    ExecutionStore,
    SLAStore,
    Task,
    TaskComment,
    TaskStatus,
    TaskStore,
)
from .queue import JobQueue
from .utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)


class TaskService:
    def __init__(
        self,
        tasks: TaskStore,
        executions: ExecutionStore,
        sla: SLAStore,
        queue: JobQueue,
        notifier: NotificationSink,
        events: EventBroadcaster,
        clock: Clock = utc_now,
    ) -> None:
        self._tasks = tasks
        self._executions = executions
        self._sla = sla
        self._queue = queue
        self._notifier = notifier
        self._events = events
        self._clock = clock

    async def get(self, task_id: str) -> Task:
        task = await self._tasks.get(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    async def list_tasks(
        self, assigned_to: Optional[str] = None, status: Optional[TaskStatus] = None
    ) -> List[Task]:
        return await self._tasks.list_tasks(assigned_to=assigned_to, status=status)

    async def approve(
        self, task_id: str, user_id: str, comment: Optional[str] = None
    ) -> Task:
        task = await self._resolve(task_id, user_id, TaskStatus.APPROVED, comment)
        await self._update_execution(task)
        await self._notify_owner(task, "approved")
        logger.info(f"Task approved: {task_id} by user: {user_id}")
        return task

    async def reject(
        self, task_id: str, user_id: str, comment: Optional[str] = None
    ) -> Task:
        task = await self._resolve(
            task_id, user_id, TaskStatus.REJECTED, comment or "Rejected"
        )
        await self._update_execution(task)
        await self._notify_owner(task, "rejected")
        logger.info(f"Task rejected: {task_id} by user: {user_id}")
        return task

    async def add_comment(self, task_id: str, user_id: str, comment: str) -> Task:
        task = await self.get(task_id)
        task.comments.append(
            TaskComment(user_id=user_id, comment=comment, created_at=self._clock())
        )
        await self._tasks.save(task)
        return task

    # ------------------------------------------------------------------
    async def _resolve(
        self,
        task_id: str,
        user_id: str,
        status: TaskStatus,
        comment: Optional[str],
    ) -> Task:
        task = await self.get(task_id)
        if task.assigned_to != user_id:
            raise NotAuthorized(f"User {user_id} is not assigned to task {task_id}")
        if task.status != TaskStatus.PENDING:
            raise TaskNotPending(task_id, task.status.value)

        now = self._clock()
        task.status = status
        task.completed_at = now
        task.completed_by = user_id
        if comment:
            task.comments.append(TaskComment(user_id=user_id, comment=comment, created_at=now))
        await self._tasks.save(task)

        for record in await self._sla.list_for_task(task.id):
            if record.completed_time is None:
                record.completed_time = now
                await self._sla.save(record)
        return task

    async def _update_execution(self, task: Task) -> Optional[Execution]:
        execution = await self._executions.get(task.execution_id)
        if execution is None:
            logger.warning(
                f"Execution {task.execution_id} for task {task.id} no longer exists"
            )
            return None
        if execution.is_terminal:
            logger.warning(
                f"Execution {execution.id} is {execution.status.value}; "
                f"task {task.id} resolution leaves it unchanged"
            )
            return execution

        result = task.status.value
        execution.record_step(
            task.step_id,
            result,
            task.completed_at,
            result=result,
            executed_by=task.completed_by,
            started_at=task.created_at,
        )

        if task.status == TaskStatus.REJECTED:
            execution.status = ExecutionStatus.FAILED
            execution.error = "Task rejected by user"
            execution.completed_at = self._clock()
            await self._executions.save(execution)
            await self._events.broadcast(
                LifecycleEvent(
                    event=EVENT_EXECUTION_FAILED,
                    execution_id=execution.id,
                    workflow_id=execution.workflow_id,
                    data={"error": execution.error, "task_id": task.id},
                    timestamp=execution.completed_at,
                )
            )
        else:
            await self._executions.save(execution)
            request = AdvanceRequest(
                execution_id=execution.id,
                workflow_id=execution.workflow_id,
                from_step_id=task.step_id,
            )
            await self._queue.enqueue(ADVANCE_EXECUTION_JOB, request.model_dump())
        return execution

    async def _notify_owner(self, task: Task, action: str) -> None:
        execution = await self._executions.get(task.execution_id)
        if execution is None or not execution.triggered_by:
            return
        await self._notifier.notify(
            execution.triggered_by,
            f"Task {action}",
            f"A task in your workflow has been {action}",
            Severity.MEDIUM,
        )
