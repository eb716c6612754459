"""Wiring of stores, queue, engine, sweeps and task service for a host process."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from .conditions import ConditionEvaluator, DataFieldEvaluator
from .config import StepflowConfig, load_config
from .directory import Directory, InMemoryDirectory, User
from .engine import ExecutionEngine
from .events import EventBroadcaster, get_broadcaster
from .notifications import LoggingNotificationSink, NotificationSink
from .persistence import Stores, get_stores
from .queue import JobQueue
from .sla import SLAScheduler
from .tasks import TaskService
from .utils.clock import Clock, utc_now


@dataclass
class Runtime:
    config: StepflowConfig
    stores: Stores
    directory: Directory
    notifier: NotificationSink
    events: EventBroadcaster
    queue: JobQueue
    engine: ExecutionEngine
    scheduler: SLAScheduler
    tasks: TaskService

    @classmethod
    def from_config(
        cls,
        config: Optional[StepflowConfig] = None,
        *,
        stores: Optional[Stores] = None,
        directory: Optional[Directory] = None,
        notifier: Optional[NotificationSink] = None,
        events: Optional[EventBroadcaster] = None,
        evaluator: Optional[ConditionEvaluator] = None,
        clock: Clock = utc_now,
    ) -> "Runtime":
        """Build every component from ``config``; keyword arguments override defaults."""
        config = config or load_config()
        if stores is None:
            stores = get_stores(config=config)
        directory = directory or InMemoryDirectory(
            User(id=u.id, role=u.role, is_active=u.is_active)
            for u in config.directory.users
        )
        notifier = notifier or LoggingNotificationSink()
        events = events or get_broadcaster(config=config)

        queue = JobQueue(
            max_attempts=config.queue.max_attempts,
            backoff_base=config.queue.backoff_base,
            backoff_unit=config.queue.backoff_unit,
        )
        engine = ExecutionEngine(
            queue=queue,
            workflows=stores.workflows,
            executions=stores.executions,
            tasks=stores.tasks,
            sla=stores.sla,
            directory=directory,
            notifier=notifier,
            events=events,
            evaluator=evaluator or DataFieldEvaluator(),
            clock=clock,
        )
        scheduler = SLAScheduler(
            sla=stores.sla,
            tasks=stores.tasks,
            notifier=notifier,
            events=events,
            clock=clock,
            breach_interval=config.sla.breach_interval,
            warning_interval=config.sla.warning_interval,
            warning_window=timedelta(minutes=config.sla.warning_window_minutes),
        )
        tasks = TaskService(
            tasks=stores.tasks,
            executions=stores.executions,
            sla=stores.sla,
            queue=queue,
            notifier=notifier,
            events=events,
            clock=clock,
        )
        return cls(
            config=config,
            stores=stores,
            directory=directory,
            notifier=notifier,
            events=events,
            queue=queue,
            engine=engine,
            scheduler=scheduler,
            tasks=tasks,
        )
