"""
Dispatcher tests: due-job selection, concurrency, retries to exhaustion,
stale-claim recovery and the end-to-end scenarios.

Ticks are driven by hand (run_once / tick) and time by ManualClock, so
nothing here waits on the poll interval.
"""

import asyncio
from collections import Counter
from datetime import timedelta

import pytest

from jobs.registry import HandlerRegistry
from models.enums import JobStatus
from scheduler.backoff import BackoffPolicy
from worker.dispatcher import Dispatcher
from worker.executor import JobExecutor
from worker.retry import RetryHandler


class Calls:
    """Registry of test handlers that records every run."""

    def __init__(self):
        self.runs = Counter()
        self.registry = HandlerRegistry()
        self.registry.register("ok", self._ok)
        self.registry.register("boom", self._boom)
        self.registry.register("send_email", self._ok)
        self.registry.register("rental_reminder", self._ok)

    async def _ok(self, payload):
        self.runs[payload.get("n")] += 1

    async def _boom(self, payload):
        raise RuntimeError("always fails")


def _dispatcher(store, clock, registry, redis=None, **kwargs):
    retry = RetryHandler(store, BackoffPolicy(base_delay=1.0, max_delay=60.0, jitter=0), redis, clock)
    executor = JobExecutor(registry, store, retry, timeout=5.0)
    return Dispatcher(store, executor, clock=clock, **kwargs)


@pytest.mark.asyncio
async def test_enqueue_then_one_tick_succeeds(scheduler, store, clock):
    calls = Calls()
    dispatcher = _dispatcher(store, clock, calls.registry)
    job_id = await scheduler.schedule_email("welcome", {"userId": "u1"})

    claimed = await dispatcher.run_once()

    job = await store.get(job_id)
    assert claimed == 1
    assert job.status == JobStatus.SUCCEEDED
    assert job.attempts == 1


@pytest.mark.asyncio
async def test_future_job_stays_pending_until_due(scheduler, store, clock):
    calls = Calls()
    dispatcher = _dispatcher(store, clock, calls.registry)
    job_id = await scheduler.schedule_rental_reminder("r1", clock.now() + timedelta(days=1))
    assert (await scheduler.get_stats()).pending_count == 1

    for _ in range(5):
        await dispatcher.run_once()
        clock.advance(3600)

    job = await store.get(job_id)
    assert job.status == JobStatus.PENDING
    assert job.attempts == 0

    clock.advance(86400)
    await dispatcher.run_once()
    assert (await store.get(job_id)).status == JobStatus.SUCCEEDED


@pytest.mark.asyncio
async def test_stats_after_mixed_outcomes(scheduler, clock, store):
    calls = Calls()
    dispatcher = _dispatcher(store, clock, calls.registry)
    for n in range(3):
        await scheduler.add_job("ok", {"n": n})
    await scheduler.add_job("boom", {}, max_attempts=1)
    for n in range(2):
        await scheduler.add_job("ok", {"n": 10 + n}, delay_ms=3_600_000)

    await dispatcher.run_once()

    stats = await scheduler.get_stats()
    assert stats.pending_count == 2
    assert stats.running_count == 0
    assert stats.succeeded_count == 3
    assert stats.failed_count == 1


@pytest.mark.asyncio
async def test_always_failing_job_uses_every_attempt(scheduler, store, clock, fake_redis):
    calls = Calls()
    dispatcher = _dispatcher(store, clock, calls.registry, fake_redis)
    job_id = await scheduler.add_job("boom", {}, max_attempts=4)

    for _ in range(10):
        await dispatcher.run_once()
        clock.advance(120)

    job = await store.get(job_id)
    assert job.status == JobStatus.FAILED
    assert job.attempts == 4
    assert job.last_error == "RuntimeError: always fails"
    assert await fake_redis.llen(RetryHandler.REDIS_DLQ_KEY) == 1


@pytest.mark.asyncio
async def test_retry_waits_for_backoff(scheduler, store, clock):
    calls = Calls()
    dispatcher = _dispatcher(store, clock, calls.registry)
    job_id = await scheduler.add_job("boom", {}, max_attempts=3)

    await dispatcher.run_once()
    assert await dispatcher.run_once() == 0  # not due for another second

    clock.advance(1)
    assert await dispatcher.run_once() == 1
    assert (await store.get(job_id)).attempts == 2


@pytest.mark.asyncio
async def test_cancelled_job_is_never_run(scheduler, store, clock):
    calls = Calls()
    dispatcher = _dispatcher(store, clock, calls.registry)
    job_id = await scheduler.add_job("ok", {"n": 1})
    await scheduler.cancel_job(job_id)

    assert await dispatcher.run_once() == 0
    assert calls.runs == Counter()
    assert (await store.get(job_id)).status == JobStatus.CANCELLED


@pytest.mark.asyncio
async def test_two_dispatchers_never_run_a_job_twice(scheduler, store, clock):
    calls = Calls()
    first = _dispatcher(store, clock, calls.registry, concurrency=10)
    second = _dispatcher(store, clock, calls.registry, concurrency=10)
    for n in range(8):
        await scheduler.add_job("ok", {"n": n})

    claimed = await asyncio.gather(first.run_once(), second.run_once())

    assert sum(claimed) == 8
    assert calls.runs == Counter({n: 1 for n in range(8)})


@pytest.mark.asyncio
async def test_tick_claims_no_more_than_free_slots(scheduler, store, clock):
    release = asyncio.Event()

    async def blocking(payload):
        await release.wait()

    registry = HandlerRegistry()
    registry.register("block", blocking)
    dispatcher = _dispatcher(store, clock, registry, concurrency=2, batch_size=10)
    for _ in range(5):
        await scheduler.add_job("block", {})

    assert await dispatcher.tick() == 2
    assert dispatcher.in_flight == 2
    assert await dispatcher.tick() == 0

    stats = await scheduler.get_stats()
    assert (stats.running_count, stats.pending_count) == (2, 3)

    release.set()
    await dispatcher.drain()
    assert dispatcher.in_flight == 0


@pytest.mark.asyncio
async def test_housekeeping_recovers_stale_claims(scheduler, store, clock):
    calls = Calls()
    dispatcher = _dispatcher(store, clock, calls.registry, stale_after=300)
    job_id = await scheduler.add_job("ok", {"n": 1})
    await store.claim(job_id)  # a worker that died mid-handler

    clock.advance(301)
    await dispatcher.housekeeping()
    assert (await store.get(job_id)).status == JobStatus.PENDING

    await dispatcher.run_once()
    job = await store.get(job_id)
    assert job.status == JobStatus.SUCCEEDED
    assert job.attempts == 2


@pytest.mark.asyncio
async def test_housekeeping_prunes_old_history(scheduler, store, clock):
    calls = Calls()
    dispatcher = _dispatcher(store, clock, calls.registry, retention_days=7)
    job_id = await scheduler.add_job("ok", {"n": 1})
    await dispatcher.run_once()

    clock.advance(8 * 86400)
    await dispatcher.housekeeping()

    assert await store.get(job_id) is None


@pytest.mark.asyncio
async def test_start_and_stop_runs_jobs_in_background(scheduler, store, clock):
    calls = Calls()
    dispatcher = _dispatcher(store, clock, calls.registry, poll_interval=0.01)
    job_id = await scheduler.add_job("ok", {"n": 1})

    await dispatcher.start()
    assert dispatcher.running
    for _ in range(200):
        if (await store.get(job_id)).status == JobStatus.SUCCEEDED:
            break
        await asyncio.sleep(0.01)
    await dispatcher.stop(timeout=1.0)

    assert not dispatcher.running
    assert (await store.get(job_id)).status == JobStatus.SUCCEEDED


@pytest.mark.asyncio
async def test_stop_cancels_handlers_past_timeout(scheduler, store, clock):
    async def stuck(payload):
        await asyncio.sleep(60)

    registry = HandlerRegistry()
    registry.register("stuck", stuck)
    dispatcher = _dispatcher(store, clock, registry)
    job_id = await scheduler.add_job("stuck", {})
    await dispatcher.tick()

    await dispatcher.stop(timeout=0.05)

    assert dispatcher.in_flight == 0
    # left for stale recovery on the next start
    assert (await store.get(job_id)).status == JobStatus.RUNNING


def test_concurrency_must_be_positive(store):
    with pytest.raises(ValueError):
        Dispatcher(store, executor=None, concurrency=0)
