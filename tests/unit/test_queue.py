"""Job queue tests."""

import logging

import pytest

from stepflow.queue import JobQueue
from stepflow.utils.retry import compute_backoff


def _messages(caplog, text):
    return [r for r in caplog.records if r.name == "stepflow.queue" and text in r.getMessage()]


def test_compute_backoff_doubles_per_attempt():
    assert compute_backoff(1) == 2
    assert compute_backoff(2) == 4
    assert compute_backoff(3, unit=0.5) == 4
    assert compute_backoff(2, base=2, jitter=0) > compute_backoff(1, base=2, jitter=0)


@pytest.mark.asyncio
async def test_jobs_run_in_fifo_order(harness):
    queue = JobQueue(sleep=harness.sleep)
    seen = []

    async def handler(job):
        seen.append(job.payload["n"])

    queue.register_handler("count", handler)
    for n in range(5):
        await queue.enqueue("count", {"n": n})
    await queue.join()

    assert seen == [0, 1, 2, 3, 4]
    assert queue.is_idle
    assert queue.counts() == {"waiting": 0, "active": 0, "delayed": 0}


@pytest.mark.asyncio
async def test_retry_succeeds_after_k_failures(harness, caplog):
    caplog.set_level(logging.INFO, logger="stepflow.queue")
    queue = JobQueue(max_attempts=3, sleep=harness.sleep)
    calls = []

    async def flaky(job):
        calls.append(job.attempts)
        if len(calls) <= 2:
            raise RuntimeError("boom")

    queue.register_handler("flaky", flaky)
    job = await queue.enqueue("flaky")
    await queue.join()

    assert calls == [0, 1, 2]
    assert job.attempts == 2
    assert harness.sleep.delays == [2.0, 4.0]
    assert len(_messages(caplog, "Job completed")) == 1
    assert len(_messages(caplog, "Job failed:")) == 2
    assert not _messages(caplog, "failed permanently")


@pytest.mark.asyncio
async def test_job_dropped_after_max_attempts(harness, caplog):
    caplog.set_level(logging.INFO, logger="stepflow.queue")
    queue = JobQueue(max_attempts=3, sleep=harness.sleep)
    calls = []

    async def broken(job):
        calls.append(job.attempts)
        raise RuntimeError("always")

    queue.register_handler("broken", broken)
    await queue.enqueue("broken")
    await queue.join()

    assert len(calls) == 3
    assert harness.sleep.delays == [2.0, 4.0]
    assert len(_messages(caplog, "failed permanently")) == 1
    assert not _messages(caplog, "Job completed")
    assert queue.counts()["waiting"] == 0


@pytest.mark.asyncio
async def test_retried_job_reenters_at_tail(harness):
    queue = JobQueue(sleep=harness.sleep)
    order = []
    failed_once = set()

    async def handler(job):
        order.append(job.payload["name"])
        if job.payload["name"] == "a" and "a" not in failed_once:
            failed_once.add("a")
            raise RuntimeError("transient")

    queue.register_handler("work", handler)
    await queue.enqueue("work", {"name": "a"})
    await queue.enqueue("work", {"name": "b"})
    await queue.join()

    assert order == ["a", "b", "a"]


@pytest.mark.asyncio
async def test_unregistered_job_type_is_dropped(harness, caplog):
    caplog.set_level(logging.INFO, logger="stepflow.queue")
    queue = JobQueue(sleep=harness.sleep)

    await queue.enqueue("mystery", {"x": 1})
    await queue.join()

    assert len(_messages(caplog, "No handler registered")) == 1
    assert harness.sleep.delays == []


@pytest.mark.asyncio
async def test_handler_can_enqueue_follow_up_jobs(harness):
    queue = JobQueue(sleep=harness.sleep)
    seen = []

    async def first(job):
        seen.append("first")
        await queue.enqueue("second")

    async def second(job):
        seen.append("second")

    queue.register_handler("first", first)
    queue.register_handler("second", second)
    await queue.enqueue("first")
    await queue.join()

    assert seen == ["first", "second"]


@pytest.mark.asyncio
async def test_drain_restarts_after_idle(harness):
    queue = JobQueue(sleep=harness.sleep)
    seen = []

    async def handler(job):
        seen.append(job.id)

    queue.register_handler("t", handler)
    first = await queue.enqueue("t")
    await queue.join()
    assert queue.is_idle

    second = await queue.enqueue("t")
    await queue.join()
    assert seen == [first.id, second.id]


@pytest.mark.asyncio
async def test_per_job_max_attempts_override(harness):
    queue = JobQueue(max_attempts=3, sleep=harness.sleep)
    calls = []

    async def broken(job):
        calls.append(1)
        raise RuntimeError("nope")

    queue.register_handler("once", broken)
    await queue.enqueue("once", max_attempts=1)
    await queue.join()

    assert len(calls) == 1
    assert harness.sleep.delays == []


@pytest.mark.asyncio
async def test_zero_max_attempts_is_kept(harness):
    queue = JobQueue(max_attempts=3, sleep=harness.sleep)
    calls = []

    async def broken(job):
        calls.append(1)
        raise RuntimeError("nope")

    queue.register_handler("no-retry", broken)
    job = await queue.enqueue("no-retry", max_attempts=0)
    await queue.join()

    assert job.max_attempts == 0
    assert len(calls) == 1
    assert harness.sleep.delays == []
