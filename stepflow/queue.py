"""In-process job queue driving workflow advancement.

A single consumer drains jobs in FIFO order and awaits each handler before
taking the next job. A failed job is retried with exponential backoff: after
``2 ** attempts`` backoff units it re-enters at the *tail* of the queue, so a
retried job may run after jobs that were enqueued later. Jobs whose attempts
are exhausted are dropped and only show up in the log.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Set

from .constants import DEFAULT_BACKOFF_BASE, DEFAULT_MAX_ATTEMPTS
from .contracts import Job
from .utils.retry import compute_backoff

logger = logging.getLogger(__name__)

JobHandler = Callable[[Job], Awaitable[Any]]
Sleep = Callable[[float], Awaitable[Any]]


class JobQueue:
    """Single-consumer FIFO queue with bounded retry."""

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        backoff_unit: float = 1.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_unit = backoff_unit
        self._sleep = sleep
        self._jobs: Deque[Job] = deque()
        self._handlers: Dict[str, JobHandler] = {}
        self._drain_task: Optional[asyncio.Task] = None
        self._retry_tasks: Set[asyncio.Task] = set()
        self._active: Optional[Job] = None

    def register_handler(self, job_type: str, handler: JobHandler) -> None:
        """Register the handler for ``job_type``, replacing any previous one."""
        if job_type in self._handlers:
            logger.warning(f"Replacing handler for job type: {job_type}")
        self._handlers[job_type] = handler
        logger.info(f"Handler registered for job type: {job_type}")

    async def enqueue(
        self,
        job_type: str,
        payload: Optional[Dict[str, Any]] = None,
        max_attempts: Optional[int] = None,
    ) -> Job:
        """Append a job to the tail and start draining if the queue is idle."""
        job = Job(
            type=job_type,
            payload=payload or {},
            max_attempts=self.max_attempts if max_attempts is None else max_attempts,
        )
        self._append(job)
        logger.info(f"Job added to queue: {job.id} ({job.type})")
        return job

    @property
    def is_idle(self) -> bool:
        return self._drain_task is None or self._drain_task.done()

    def counts(self) -> Dict[str, int]:
        return {
            "waiting": len(self._jobs),
            "active": 1 if self._active is not None else 0,
            "delayed": len(self._retry_tasks),
        }

    async def join(self) -> None:
        """Wait until no job is waiting, running or scheduled for retry.

        Must not be awaited from inside a job handler.
        """
        while True:
            pending = [t for t in self._retry_tasks if not t.done()]
            if not self.is_idle:
                pending.append(self._drain_task)
            if not pending:
                return
            await asyncio.wait(pending)

    async def close(self) -> None:
        """Cancel the drain loop and pending retries; waiting jobs are discarded."""
        tasks = list(self._retry_tasks)
        if not self.is_idle:
            tasks.append(self._drain_task)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        dropped = len(self._jobs)
        self._jobs.clear()
        if dropped:
            logger.warning(f"Queue closed with {dropped} waiting jobs discarded")

    # ------------------------------------------------------------------
    def _append(self, job: Job) -> None:
        self._jobs.append(job)
        if self.is_idle:
            self._drain_task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while self._jobs:
            job = self._jobs.popleft()
            await self._process(job)

    async def _process(self, job: Job) -> None:
        handler = self._handlers.get(job.type)
        if handler is None:
            logger.warning(f"No handler registered for job type {job.type}, dropping job {job.id}")
            return

        self._active = job
        try:
            logger.info(f"Processing job: {job.id} ({job.type})")
            await handler(job)
        except Exception as exc:
            job.attempts += 1
            logger.error(
                f"Job failed: {job.id} (attempt {job.attempts}/{job.max_attempts}): {exc}"
            )
            if job.attempts < job.max_attempts:
                delay = compute_backoff(
                    job.attempts, base=self.backoff_base, unit=self.backoff_unit
                )
                logger.info(f"Retrying job {job.id} in {delay:.2f}s")
                self._schedule_retry(job, delay)
            else:
                logger.error(
                    f"Job failed permanently after {job.attempts} attempts: {job.id}"
                )
        else:
            logger.info(f"Job completed: {job.id}")
        finally:
            self._active = None

    def _schedule_retry(self, job: Job, delay: float) -> None:
        task = asyncio.get_running_loop().create_task(self._requeue_after(job, delay))
        self._retry_tasks.add(task)
        task.add_done_callback(self._retry_tasks.discard)

    async def _requeue_after(self, job: Job, delay: float) -> None:
        await self._sleep(delay)
        self._append(job)
