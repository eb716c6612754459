"""Notification sinks for task assignment, SLA and workflow messages."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from enum import Enum
from typing import List, Protocol

from pydantic import BaseModel, Field

from .utils.clock import utc_now

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Notification(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    title: str
    message: str
    severity: Severity = Severity.MEDIUM
    created_at: datetime = Field(default_factory=utc_now)
    read: bool = False


class NotificationSink(Protocol):
    async def notify(
        self, user_id: str, title: str, message: str, severity: Severity
    ) -> None:
        """Deliver a notification to ``user_id``."""


class InMemoryNotificationSink(NotificationSink):
    """Collects notifications in memory, newest last."""

    def __init__(self) -> None:
        self.notifications: List[Notification] = []

    async def notify(
        self, user_id: str, title: str, message: str, severity: Severity
    ) -> None:
        self.notifications.append(
            Notification(user_id=user_id, title=title, message=message, severity=severity)
        )

    def for_user(self, user_id: str) -> List[Notification]:
        return [n for n in self.notifications if n.user_id == user_id]


class LoggingNotificationSink(NotificationSink):
    """Writes notifications to the log instead of delivering them."""

    async def notify(
        self, user_id: str, title: str, message: str, severity: Severity
    ) -> None:
        level = logging.WARNING if severity == Severity.HIGH else logging.INFO
        logger.log(level, f"Notify {user_id} [{severity.value}] {title}: {message}")
