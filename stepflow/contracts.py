"""Workflow definition, job and event contracts for stepflow."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    model_validator,
)

from .constants import DEFAULT_MAX_ATTEMPTS
from .utils.clock import utc_now


def _new_id() -> str:
    return str(uuid.uuid4())


class StepKind(str, Enum):
    APPROVAL = "approval"
    NOTIFICATION = "notification"
    AUTO = "auto"
    CONDITION = "condition"


class BaseStep(BaseModel):
    """Fields shared by every step variant."""

    id: str
    label: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return self.label or self.id


class ApprovalStep(BaseStep):
    """Human decision; suspends the execution until the task is resolved."""

    kind: Literal["approval"] = "approval"
    assignee: Optional[str] = None
    assignee_role: Optional[str] = None
    sla_hours: Optional[float] = Field(default=None, gt=0)


class NotificationStep(BaseStep):
    """Sends ``config.title``/``config.message`` to ``config.user_id``."""

    kind: Literal["notification"] = "notification"


class AutoStep(BaseStep):
    kind: Literal["auto"] = "auto"


class ConditionStep(BaseStep):
    kind: Literal["condition"] = "condition"


class UnknownStep(BaseStep):
    """Step of a kind this engine cannot run. Loaded so the version stays readable."""

    kind: str


_KNOWN_KINDS = {kind.value for kind in StepKind}


def _step_tag(value: Any) -> str:
    kind = value.get("kind") if isinstance(value, dict) else getattr(value, "kind", None)
    return kind if kind in _KNOWN_KINDS else "unknown"


Step = Annotated[
    Union[
        Annotated[ApprovalStep, Tag("approval")],
        Annotated[NotificationStep, Tag("notification")],
        Annotated[AutoStep, Tag("auto")],
        Annotated[ConditionStep, Tag("condition")],
        Annotated[UnknownStep, Tag("unknown")],
    ],
    Discriminator(_step_tag),
]


class Edge(BaseModel):
    """Directed, optionally conditional transition between two steps."""

    id: Optional[str] = None
    source: str
    target: str
    condition: Optional[str] = None
    label: Optional[str] = None


class WorkflowVersion(BaseModel):
    """Immutable snapshot of a workflow's step graph."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    workflow_id: str
    version_number: int = 1
    steps: List[Step] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _check_graph(self) -> "WorkflowVersion":
        seen: set[str] = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"duplicate step id '{step.id}'")
            seen.add(step.id)
        for edge in self.edges:
            for end in (edge.source, edge.target):
                if end not in seen:
                    raise ValueError(f"edge references unknown step '{end}'")
        return self

    def first_step(self) -> Optional[Step]:
        return self.steps[0] if self.steps else None

    def get_step(self, step_id: str) -> Optional[Step]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def outgoing_edges(self, step_id: str) -> List[Edge]:
        """Edges leaving ``step_id`` in declaration order."""
        return [edge for edge in self.edges if edge.source == step_id]


class ExecutionInit(BaseModel):
    """Input for starting a new execution of a workflow version."""

    workflow_version_id: str
    triggered_by: str
    execution_data: Dict[str, Any] = Field(default_factory=dict)


class AdvanceRequest(BaseModel):
    """Payload of an advancement job."""

    execution_id: str
    workflow_id: Optional[str] = None
    from_step_id: Optional[str] = None


class Job(BaseModel):
    """Unit of work held by the job queue."""

    id: str = Field(default_factory=_new_id)
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    created_at: datetime = Field(default_factory=utc_now)


class LifecycleEvent(BaseModel):
    """Execution, task or SLA lifecycle event published to subscribers."""

    event: str
    execution_id: str
    workflow_id: str
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "LifecycleEvent":
        return cls.model_validate_json(data)
