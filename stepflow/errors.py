"""Exception types raised by stepflow services."""

from __future__ import annotations


class StepflowError(Exception):
    """Base class for all stepflow errors."""


class ExecutionNotFound(StepflowError):
    def __init__(self, execution_id: str) -> None:
        super().__init__(f"Execution not found: {execution_id}")
        self.execution_id = execution_id


class WorkflowVersionNotFound(StepflowError):
    def __init__(self, version_id: str) -> None:
        super().__init__(f"Workflow version not found: {version_id}")
        self.version_id = version_id


class InvalidWorkflow(StepflowError):
    """Workflow definition cannot be stored or started."""


class AssigneeUnresolved(StepflowError):
    """No user could be assigned to an approval step."""


class TaskNotFound(StepflowError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class TaskNotPending(StepflowError):
    def __init__(self, task_id: str, status: str) -> None:
        super().__init__(f"Task {task_id} is not pending (status: {status})")
        self.task_id = task_id
        self.status = status


class NotAuthorized(StepflowError):
    """Caller may not act on the requested resource."""
