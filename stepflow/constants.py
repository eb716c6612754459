"""Shared constants for stepflow."""

ADVANCE_EXECUTION_JOB = "workflow-execution"

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_BASE = 2.0

DEFAULT_BREACH_INTERVAL = 300.0
DEFAULT_WARNING_INTERVAL = 900.0
DEFAULT_WARNING_WINDOW_MINUTES = 60

EVENT_EXECUTION_COMPLETED = "execution:completed"
EVENT_EXECUTION_FAILED = "execution:failed"
EVENT_TASK_CREATED = "task:created"
EVENT_SLA_WARNING = "sla:warning"
EVENT_SLA_BREACH = "sla:breach"
