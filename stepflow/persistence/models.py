"""Data models for persisted execution, task and SLA state."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..utils.clock import utc_now


def _new_id() -> str:
    return str(uuid.uuid4())


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED}
)


class StepHistoryEntry(BaseModel):
    """Record of an individual step execution."""

    step_id: str
    status: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    executed_by: Optional[str] = None
    result: Any = None
    error: Optional[str] = None


class Execution(BaseModel):
    """One run of a workflow version."""

    id: str = Field(default_factory=_new_id)
    workflow_id: str
    workflow_version_id: str
    triggered_by: str
    status: ExecutionStatus = ExecutionStatus.RUNNING
    current_step_id: Optional[str] = None
    execution_data: Dict[str, Any] = Field(default_factory=dict)
    step_history: List[StepHistoryEntry] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def record_step(
        self,
        step_id: str,
        status: str,
        at: datetime,
        result: Any = None,
        error: Optional[str] = None,
        executed_by: Optional[str] = None,
        started_at: Optional[datetime] = None,
    ) -> StepHistoryEntry:
        entry = StepHistoryEntry(
            step_id=step_id,
            status=status,
            started_at=started_at or at,
            completed_at=at,
            executed_by=executed_by,
            result=result,
            error=error,
        )
        self.step_history.append(entry)
        return entry

    def snapshot(self) -> Dict[str, Any]:
        """Read-only view handed to condition evaluators."""
        return self.model_dump(mode="json")


class TaskStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskComment(BaseModel):
    user_id: str
    comment: str
    created_at: datetime = Field(default_factory=utc_now)


class Task(BaseModel):
    """Pending human decision bound to one approval step of one execution."""

    id: str = Field(default_factory=_new_id)
    workflow_id: str
    execution_id: str
    workflow_version_id: str
    step_id: str
    step_kind: str = "approval"
    assigned_to: str
    status: TaskStatus = TaskStatus.PENDING
    priority: str = "medium"
    metadata: Dict[str, Any] = Field(default_factory=dict)
    comments: List[TaskComment] = Field(default_factory=list)
    due_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None


class SLANotificationKind(str, Enum):
    WARNING = "warning"
    BREACH = "breach"


class SLANotification(BaseModel):
    kind: SLANotificationKind
    sent_at: datetime


class SLARecord(BaseModel):
    """Deadline tracked for one approval-step instance."""

    id: str = Field(default_factory=_new_id)
    workflow_id: str
    execution_id: str
    step_id: str
    task_id: Optional[str] = None
    sla_hours: float
    start_time: datetime
    due_time: datetime
    completed_time: Optional[datetime] = None
    breached: bool = False
    breach_duration: Optional[int] = None
    notifications_sent: List[SLANotification] = Field(default_factory=list)

    def has_notification(self, kind: SLANotificationKind) -> bool:
        return any(sent.kind == kind for sent in self.notifications_sent)

    def record_notification(self, kind: SLANotificationKind, at: datetime) -> None:
        if self.has_notification(kind):
            raise ValueError(f"SLA record {self.id} already has a {kind.value} entry")
        self.notifications_sent.append(SLANotification(kind=kind, sent_at=at))
