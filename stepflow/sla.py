"""Periodic SLA sweeps: breach detection and early warnings.

Sweeps read and update SLA records and tasks without locking. A task that is
resolved while a sweep is looking at it simply wins: the sweep skips records
whose task is no longer pending.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional

from .constants import (
    DEFAULT_BREACH_INTERVAL,
    DEFAULT_WARNING_INTERVAL,
    DEFAULT_WARNING_WINDOW_MINUTES,
    EVENT_SLA_BREACH,
    EVENT_SLA_WARNING,
)
from .contracts import LifecycleEvent
from .events import EventBroadcaster
from .notifications import NotificationSink, Severity
from .persistence import (
    SLANotificationKind,
    SLARecord,
    SLAStore,
    Task,
    TaskStatus,
    TaskStore,
)
from .utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)


def _minutes(delta: timedelta) -> int:
    return round(delta.total_seconds() / 60)


class SLAScheduler:
    """Runs the breach sweep and the warning sweep on independent timers."""

    def __init__(
        self,
        sla: SLAStore,
        tasks: TaskStore,
        notifier: NotificationSink,
        events: EventBroadcaster,
        clock: Clock = utc_now,
        breach_interval: float = DEFAULT_BREACH_INTERVAL,
        warning_interval: float = DEFAULT_WARNING_INTERVAL,
        warning_window: timedelta = timedelta(minutes=DEFAULT_WARNING_WINDOW_MINUTES),
    ) -> None:
        self._sla = sla
        self._tasks = tasks
        self._notifier = notifier
        self._events = events
        self._clock = clock
        self.breach_interval = breach_interval
        self.warning_interval = warning_interval
        self.warning_window = warning_window
        self._timers: List[asyncio.Task] = []

    # ------------------------------------------------------------------
    # Sweeps
    async def sweep_breaches(self) -> int:
        """Flag overdue records whose task is still pending. Returns the count."""
        now = self._clock()
        records = await self._sla.find_overdue(now)
        breached = 0

        for record in records:
            task = await self._pending_task(record)
            if task is None or record.has_notification(SLANotificationKind.BREACH):
                continue

            record.breached = True
            record.breach_duration = _minutes(now - record.due_time)
            record.record_notification(SLANotificationKind.BREACH, now)
            await self._sla.save(record)

            await self._notifier.notify(
                task.assigned_to,
                "SLA Breach",
                f"Task has breached its SLA by {record.breach_duration} minutes",
                Severity.HIGH,
            )
            await self._publish(
                EVENT_SLA_BREACH,
                record,
                now,
                task_id=task.id,
                breach_duration=record.breach_duration,
            )
            logger.warning(f"SLA breach detected for task: {task.id}")
            breached += 1

        if records:
            logger.info(f"Checked {len(records)} SLA breaches, {breached} flagged")
        return breached

    async def sweep_warnings(self) -> int:
        """Warn once per record that falls due within the warning window."""
        now = self._clock()
        records = await self._sla.find_due_between(now, now + self.warning_window)
        warned = 0

        for record in records:
            if record.has_notification(SLANotificationKind.WARNING):
                continue
            task = await self._pending_task(record)
            if task is None:
                continue

            record.record_notification(SLANotificationKind.WARNING, now)
            await self._sla.save(record)

            minutes_remaining = _minutes(record.due_time - now)
            await self._notifier.notify(
                task.assigned_to,
                "SLA Warning",
                f"Task SLA will breach in {minutes_remaining} minutes",
                Severity.HIGH,
            )
            await self._publish(
                EVENT_SLA_WARNING,
                record,
                now,
                task_id=task.id,
                minutes_remaining=minutes_remaining,
            )
            logger.info(f"SLA warning sent for task: {task.id}")
            warned += 1

        if warned:
            logger.info(f"Sent {warned} SLA warnings")
        return warned

    async def run_breach_tick(self) -> int:
        try:
            return await self.sweep_breaches()
        except Exception as exc:
            logger.exception(f"Error checking SLA breaches: {exc}")
            return 0

    async def run_warning_tick(self) -> int:
        try:
            return await self.sweep_warnings()
        except Exception as exc:
            logger.exception(f"Error sending SLA warnings: {exc}")
            return 0

    # ------------------------------------------------------------------
    # Scheduling
    def start(self) -> None:
        """Start both sweep timers on the running event loop."""
        if self._timers:
            return
        loop = asyncio.get_running_loop()
        self._timers = [
            loop.create_task(self._every(self.breach_interval, self.run_breach_tick)),
            loop.create_task(self._every(self.warning_interval, self.run_warning_tick)),
        ]
        logger.info(
            f"SLA sweeps started (breach every {self.breach_interval}s, "
            f"warning every {self.warning_interval}s)"
        )

    async def stop(self) -> None:
        timers, self._timers = self._timers, []
        for timer in timers:
            timer.cancel()
        for timer in timers:
            with contextlib.suppress(asyncio.CancelledError):
                await timer
        if timers:
            logger.info("SLA sweeps stopped")

    async def run(self, lifespan: Optional[float] = None) -> None:
        """Run the sweeps until cancelled or until ``lifespan`` seconds pass."""
        self.start()
        try:
            if lifespan is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(lifespan)
        finally:
            await self.stop()

    @staticmethod
    async def _every(interval: float, tick: Callable[[], Awaitable[int]]) -> None:
        while True:
            await asyncio.sleep(interval)
            await tick()

    # ------------------------------------------------------------------
    async def _pending_task(self, record: SLARecord) -> Optional[Task]:
        if not record.task_id:
            return None
        task = await self._tasks.get(record.task_id)
        if task is None or task.status != TaskStatus.PENDING:
            return None
        return task

    async def _publish(
        self, name: str, record: SLARecord, now: datetime, **data
    ) -> None:
        await self._events.broadcast(
            LifecycleEvent(
                event=name,
                execution_id=record.execution_id,
                workflow_id=record.workflow_id,
                data={"step_id": record.step_id, **data},
                timestamp=now,
            )
        )
