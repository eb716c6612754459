"""Execution engine that advances workflow executions step by step."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

from .conditions import ConditionEvaluator
from .constants import (
    ADVANCE_EXECUTION_JOB,
    EVENT_EXECUTION_COMPLETED,
    EVENT_EXECUTION_FAILED,
    EVENT_TASK_CREATED,
)
from .contracts import (
    AdvanceRequest,
    ApprovalStep,
    AutoStep,
    ConditionStep,
    ExecutionInit,
    Job,
    LifecycleEvent,
    NotificationStep,
    Step,
    WorkflowVersion,
)
from .directory import Directory
from .errors import (
    AssigneeUnresolved,
    ExecutionNotFound,
    InvalidWorkflow,
    WorkflowVersionNotFound,
)
from .events import EventBroadcaster
from .notifications import NotificationSink, Severity
from .persistence import (
    Execution,
    ExecutionStatus,
    ExecutionStore,
    SLARecord,
    SLAStore,
    Task,
    TaskStatus,
    TaskStore,
    WorkflowStore,
)
from .queue import JobQueue
from .utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)

StepHandler = Callable[[Execution, Any, WorkflowVersion], Awaitable[None]]


class ExecutionEngine:
    """Consumes advancement jobs and moves executions through their graph.

    Only one step of an execution is active at a time. Approval steps suspend
    the execution until a task resolution enqueues the next advancement job;
    every other known step kind enqueues its own continuation.

    Nothing serialises two advancement jobs for the same execution. New jobs
    are only produced by the previous step handler or by a task resolution,
    and the engine relies on that convention.
    """

    def __init__(
        self,
        queue: JobQueue,
        workflows: WorkflowStore,
        executions: ExecutionStore,
        tasks: TaskStore,
        sla: SLAStore,
        directory: Directory,
        notifier: NotificationSink,
        events: EventBroadcaster,
        evaluator: ConditionEvaluator,
        clock: Clock = utc_now,
    ) -> None:
        self._queue = queue
        self._workflows = workflows
        self._executions = executions
        self._tasks = tasks
        self._sla = sla
        self._directory = directory
        self._notifier = notifier
        self._events = events
        self._evaluator = evaluator
        self._clock = clock
        self._step_handlers: Dict[type, StepHandler] = {
            ApprovalStep: self._run_approval,
            NotificationStep: self._run_notification,
            AutoStep: self._run_auto,
            ConditionStep: self._run_condition,
        }
        queue.register_handler(ADVANCE_EXECUTION_JOB, self._handle_job)

    async def trigger(self, init: ExecutionInit) -> str:
        """Create a running execution and enqueue its first advancement job."""
        version = await self._workflows.get_version(init.workflow_version_id)
        if version is None:
            raise WorkflowVersionNotFound(init.workflow_version_id)
        first = version.first_step()
        if first is None:
            raise InvalidWorkflow(f"Workflow version {version.id} has no steps")

        execution = Execution(
            workflow_id=version.workflow_id,
            workflow_version_id=version.id,
            triggered_by=init.triggered_by,
            execution_data=dict(init.execution_data),
            current_step_id=first.id,
            started_at=self._clock(),
        )
        await self._executions.save(execution)
        await self._enqueue_advance(execution, from_step_id=None)
        logger.info(
            f"Workflow {version.workflow_id} triggered by {init.triggered_by}: execution {execution.id}"
        )
        return execution.id

    async def advance(self, execution_id: str, from_step_id: Optional[str] = None) -> None:
        """Run the step that follows ``from_step_id`` (or the first step).

        Any error other than a missing execution fails the execution. Errors
        raised while recording that failure propagate to the job queue.
        """
        try:
            await self._advance(execution_id, from_step_id)
        except ExecutionNotFound as exc:
            logger.error(f"Cannot advance: {exc}")
        except Exception as exc:
            logger.exception(f"Error executing workflow for execution {execution_id}: {exc}")
            await self._fail(execution_id, str(exc))

    def select_next_step(
        self, version: WorkflowVersion, from_step_id: str, execution: Execution
    ) -> Optional[Step]:
        """First outgoing edge whose condition is absent or true wins."""
        snapshot = execution.snapshot()
        for edge in version.outgoing_edges(from_step_id):
            if not edge.condition or self._evaluator.evaluate(edge.condition, snapshot):
                return version.get_step(edge.target)
        return None

    # ------------------------------------------------------------------
    async def _handle_job(self, job: Job) -> None:
        request = AdvanceRequest.model_validate(job.payload)
        logger.info(
            f"Processing workflow execution job {job.id}: execution={request.execution_id} "
            f"from_step={request.from_step_id}"
        )
        await self.advance(request.execution_id, request.from_step_id)

    async def _advance(self, execution_id: str, from_step_id: Optional[str]) -> None:
        execution = await self._executions.get(execution_id)
        if execution is None:
            raise ExecutionNotFound(execution_id)
        if execution.status != ExecutionStatus.RUNNING:
            logger.info(
                f"Execution {execution_id} is {execution.status.value}, skipping"
            )
            return

        version = await self._workflows.get_version(execution.workflow_version_id)
        if version is None:
            raise WorkflowVersionNotFound(execution.workflow_version_id)

        if from_step_id is None:
            step = version.first_step()
        else:
            step = self.select_next_step(version, from_step_id, execution)

        if step is None:
            await self._complete(execution)
            return

        execution.current_step_id = step.id
        await self._executions.save(execution)

        handler = self._step_handlers.get(type(step))
        if handler is None:
            logger.warning(
                f"Unknown step type '{step.kind}' at step {step.id} of execution "
                f"{execution.id}; execution will not advance"
            )
            return

        logger.info(f"Executing step: {step.id} of type: {step.kind}")
        await handler(execution, step, version)

    async def _complete(self, execution: Execution) -> None:
        execution.status = ExecutionStatus.COMPLETED
        execution.completed_at = self._clock()
        await self._executions.save(execution)
        logger.info(f"Workflow execution completed: {execution.id}")
        await self._emit(EVENT_EXECUTION_COMPLETED, execution, status="completed")

    async def _fail(self, execution_id: str, error: str) -> None:
        execution = await self._executions.get(execution_id)
        if execution is None or execution.is_terminal:
            return
        now = self._clock()
        await self._close_pending_tasks(execution.id, now)
        if execution.current_step_id:
            execution.record_step(execution.current_step_id, "failed", now, error=error)
        execution.status = ExecutionStatus.FAILED
        execution.error = error
        execution.completed_at = now
        await self._executions.save(execution)
        logger.error(f"Workflow execution failed: {execution.id}: {error}")
        await self._emit(EVENT_EXECUTION_FAILED, execution, error=error)

    async def _close_pending_tasks(self, execution_id: str, now: datetime) -> None:
        """Fail the execution's open tasks and stop their SLA clocks."""
        pending = await self._tasks.list_tasks(
            status=TaskStatus.PENDING, execution_id=execution_id
        )
        for task in pending:
            task.status = TaskStatus.FAILED
            task.completed_at = now
            await self._tasks.save(task)
            for record in await self._sla.list_for_task(task.id):
                if record.completed_time is None:
                    record.completed_time = now
                    await self._sla.save(record)
            logger.info(f"Task {task.id} failed with execution {execution_id}")

    async def _enqueue_advance(
        self, execution: Execution, from_step_id: Optional[str]
    ) -> None:
        request = AdvanceRequest(
            execution_id=execution.id,
            workflow_id=execution.workflow_id,
            from_step_id=from_step_id,
        )
        await self._queue.enqueue(ADVANCE_EXECUTION_JOB, request.model_dump())

    async def _emit(self, name: str, execution: Execution, **data: Any) -> None:
        await self._events.broadcast(
            LifecycleEvent(
                event=name,
                execution_id=execution.id,
                workflow_id=execution.workflow_id,
                data=data,
                timestamp=self._clock(),
            )
        )

    # ------------------------------------------------------------------
    # Step handlers
    async def _resolve_assignee(self, step: ApprovalStep) -> Optional[str]:
        if step.assignee:
            return step.assignee
        if step.assignee_role:
            return await self._directory.find_active_user_by_role(step.assignee_role)
        return None

    async def _run_approval(
        self, execution: Execution, step: ApprovalStep, version: WorkflowVersion
    ) -> None:
        assignee = await self._resolve_assignee(step)
        if not assignee:
            raise AssigneeUnresolved(f"No assignee found for approval step {step.id}")

        now = self._clock()
        due = now + timedelta(hours=step.sla_hours) if step.sla_hours else None
        task = Task(
            workflow_id=execution.workflow_id,
            execution_id=execution.id,
            workflow_version_id=version.id,
            step_id=step.id,
            step_kind=step.kind,
            assigned_to=assignee,
            due_date=due,
            metadata=dict(step.config),
            created_at=now,
        )
        task = await self._tasks.create(task)

        if due is not None:
            await self._sla.create(
                SLARecord(
                    workflow_id=execution.workflow_id,
                    execution_id=execution.id,
                    step_id=step.id,
                    task_id=task.id,
                    sla_hours=step.sla_hours,
                    start_time=now,
                    due_time=due,
                )
            )

        await self._notifier.notify(
            assignee,
            "New Task Assigned",
            f"You have a new approval task: {step.display_name}",
            Severity.HIGH,
        )
        await self._emit(
            EVENT_TASK_CREATED,
            execution,
            task_id=task.id,
            assigned_to=assignee,
            step_id=step.id,
        )
        # Suspended until the task is resolved.
        logger.info(f"Approval task created: {task.id} for execution {execution.id}")

    async def _run_notification(
        self, execution: Execution, step: NotificationStep, version: WorkflowVersion
    ) -> None:
        config = step.config
        user_id = config.get("user_id")
        if user_id:
            await self._notifier.notify(
                user_id,
                config.get("title") or "Workflow Notification",
                config.get("message") or "A workflow step has been executed",
                Severity.MEDIUM,
            )
            result = f"Notification sent to {user_id}"
        else:
            result = "No recipient configured"

        execution.record_step(step.id, "completed", self._clock(), result=result)
        await self._executions.save(execution)
        await self._enqueue_advance(execution, from_step_id=step.id)

    async def _run_auto(
        self, execution: Execution, step: AutoStep, version: WorkflowVersion
    ) -> None:
        logger.info(f"Executing auto step {step.id} with config: {step.config}")
        execution.record_step(step.id, "completed", self._clock(), result="Auto-executed")
        await self._executions.save(execution)
        await self._enqueue_advance(execution, from_step_id=step.id)

    async def _run_condition(
        self, execution: Execution, step: ConditionStep, version: WorkflowVersion
    ) -> None:
        # The branch itself is chosen by select_next_step on the next advance.
        logger.info(f"Evaluating condition step: {step.id}")
        execution.record_step(step.id, "completed", self._clock(), result="Condition evaluated")
        await self._executions.save(execution)
        await self._enqueue_advance(execution, from_step_id=step.id)
