from __future__ import annotations

import os
from pathlib import Path
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_BACKOFF_BASE,
    DEFAULT_BREACH_INTERVAL,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_WARNING_INTERVAL,
    DEFAULT_WARNING_WINDOW_MINUTES,
)
from .contracts import WorkflowVersion


class QueueConfig(BaseModel):
    """Retry policy of the job queue."""

    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    backoff_base: float = DEFAULT_BACKOFF_BASE
    backoff_unit: float = Field(default=1.0, ge=0, description="Seconds per backoff unit")


class SLAConfig(BaseModel):
    """Periods of the SLA sweeps, in seconds, and the warning lookahead."""

    breach_interval: float = Field(default=DEFAULT_BREACH_INTERVAL, gt=0)
    warning_interval: float = Field(default=DEFAULT_WARNING_INTERVAL, gt=0)
    warning_window_minutes: int = Field(default=DEFAULT_WARNING_WINDOW_MINUTES, gt=0)


class RedisConfig(BaseModel):
    """Configuration for the Redis event broadcaster."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    channel_prefix: str = "stepflow"


class EventsConfig(BaseModel):
    backend: Literal["inmemory", "redis"] = "inmemory"
    redis: RedisConfig = RedisConfig()


class DirectoryUser(BaseModel):
    id: str
    role: str
    is_active: bool = True


class DirectoryConfig(BaseModel):
    users: List[DirectoryUser] = Field(default_factory=list)


class StepflowConfig(BaseModel):
    """Top-level configuration model."""

    queue: QueueConfig = QueueConfig()
    sla: SLAConfig = SLAConfig()
    events: EventsConfig = EventsConfig()
    directory: DirectoryConfig = DirectoryConfig()
    database_url: Optional[str] = None
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> StepflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to STEPFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("STEPFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = StepflowConfig(**data)
    else:
        config = StepflowConfig()

    env_db_url = os.getenv("STEPFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config


def load_workflow_version(path: str | Path) -> WorkflowVersion:
    """Read a workflow version definition (steps and edges) from YAML."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return WorkflowVersion.model_validate(data)
