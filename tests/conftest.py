"""Shared fixtures: an in-memory stepflow wired with a controllable clock."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping

import pytest

import stepflow.persistence as persistence
from stepflow.contracts import WorkflowVersion
from stepflow.directory import InMemoryDirectory, User
from stepflow.engine import ExecutionEngine
from stepflow.events import InMemoryBroadcaster
from stepflow.notifications import InMemoryNotificationSink
from stepflow.persistence import Stores
from stepflow.queue import JobQueue
from stepflow.sla import SLAScheduler
from stepflow.tasks import TaskService


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class TableEvaluator:
    """Condition evaluator answering from a fixed expression table."""

    def __init__(self, results: Dict[str, bool] | None = None) -> None:
        self.results = results or {}
        self.calls: List[str] = []

    def evaluate(self, expression: str, snapshot: Mapping[str, Any]) -> bool:
        self.calls.append(expression)
        return self.results.get(expression, False)


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records delays and returns at once."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class Harness:
    def __init__(self) -> None:
        self.clock = FakeClock()
        self.stores = Stores.in_memory()
        self.directory = InMemoryDirectory(
            [
                User(id="dormant-manager", role="manager", is_active=False),
                User(id="mary", role="manager"),
                User(id="mark", role="manager"),
            ]
        )
        self.notifier = InMemoryNotificationSink()
        self.events = InMemoryBroadcaster()
        self.evaluator = TableEvaluator()
        self.sleep = RecordingSleep()
        self.queue = JobQueue(sleep=self.sleep)
        self.engine = ExecutionEngine(
            queue=self.queue,
            workflows=self.stores.workflows,
            executions=self.stores.executions,
            tasks=self.stores.tasks,
            sla=self.stores.sla,
            directory=self.directory,
            notifier=self.notifier,
            events=self.events,
            evaluator=self.evaluator,
            clock=self.clock,
        )
        self.scheduler = SLAScheduler(
            sla=self.stores.sla,
            tasks=self.stores.tasks,
            notifier=self.notifier,
            events=self.events,
            clock=self.clock,
        )
        self.tasks = TaskService(
            tasks=self.stores.tasks,
            executions=self.stores.executions,
            sla=self.stores.sla,
            queue=self.queue,
            notifier=self.notifier,
            events=self.events,
            clock=self.clock,
        )

    async def add_version(self, steps: list, edges: list | None = None) -> WorkflowVersion:
        version = WorkflowVersion(workflow_id="wf-1", steps=steps, edges=edges or [])
        await self.stores.workflows.save_version(version)
        return version


@pytest.fixture
def harness() -> Harness:
    return Harness()


@pytest.fixture
def linear_steps() -> Dict[str, list]:
    """``notify -> approval (1h SLA) -> final`` without conditions."""
    return {
        "steps": [
            {
                "id": "notify",
                "kind": "notification",
                "config": {"user_id": "alice", "title": "Started"},
            },
            {
                "id": "approval",
                "kind": "approval",
                "label": "Manager approval",
                "assignee": "bob",
                "sla_hours": 1,
            },
            {"id": "final", "kind": "notification", "config": {"user_id": "alice"}},
        ],
        "edges": [
            {"source": "notify", "target": "approval"},
            {"source": "approval", "target": "final"},
        ],
    }


@pytest.fixture(autouse=True)
def _reset_store_singleton():
    persistence._stores_instance = None
    persistence._stores_url = None
    yield
    persistence._stores_instance = None
    persistence._stores_url = None
