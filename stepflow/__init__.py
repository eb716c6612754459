"""stepflow: approval workflow execution with SLA tracking."""

from .conditions import ConditionEvaluator, DataFieldEvaluator
from .contracts import (
    ApprovalStep,
    AutoStep,
    ConditionStep,
    Edge,
    ExecutionInit,
    Job,
    LifecycleEvent,
    NotificationStep,
    WorkflowVersion,
)
from .engine import ExecutionEngine
from .events import get_broadcaster
from .persistence import get_stores
from .queue import JobQueue
from .runtime import Runtime
from .sla import SLAScheduler
from .tasks import TaskService

__version__ = "0.1.0"
__all__ = [
    "ApprovalStep",
    "AutoStep",
    "ConditionEvaluator",
    "ConditionStep",
    "DataFieldEvaluator",
    "Edge",
    "ExecutionEngine",
    "ExecutionInit",
    "Job",
    "JobQueue",
    "LifecycleEvent",
    "NotificationStep",
    "Runtime",
    "SLAScheduler",
    "TaskService",
    "WorkflowVersion",
    "get_broadcaster",
    "get_stores",
]
