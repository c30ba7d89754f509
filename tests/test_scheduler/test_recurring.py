"""Tests for RecurringJobs: cron registration and the per-minute Redis lock."""

import pytest

from models.enums import JobStatus
from scheduler.recurring import DEFAULT_SCHEDULES, RecurringJobs, RecurringSchedule

CLEANUP = RecurringSchedule("daily_cleanup", "0 2 * * *", "cleanup_expired_tokens")


def test_default_schedules():
    by_name = {s.name: s for s in DEFAULT_SCHEDULES}

    assert by_name["daily_cleanup"].crontab == "0 2 * * *"
    assert by_name["daily_cleanup"].job_type == "cleanup_expired_tokens"
    assert by_name["daily_stats"].crontab == "0 6 * * *"
    assert by_name["daily_stats"].job_type == "daily_stats"


def test_add_registers_and_replaces(scheduler):
    recurring = RecurringJobs(scheduler)

    recurring.add(CLEANUP)
    recurring.add(RecurringSchedule("daily_cleanup", "30 3 * * *", "cleanup_expired_tokens"))

    assert [s.crontab for s in recurring.schedules] == ["30 3 * * *"]


def test_invalid_crontab_rejected(scheduler):
    with pytest.raises(ValueError):
        RecurringJobs(scheduler).add(RecurringSchedule("broken", "every day", "daily_stats"))


@pytest.mark.asyncio
async def test_fire_enqueues_a_normal_job(scheduler, store, clock):
    recurring = RecurringJobs(scheduler, clock=clock)

    job_id = await recurring.fire(CLEANUP)

    job = await store.get(job_id)
    assert job.job_type == "cleanup_expired_tokens"
    assert job.status == JobStatus.PENDING
    assert job.run_at == clock.now()


@pytest.mark.asyncio
async def test_fire_once_per_minute_across_workers(scheduler, store, clock, fake_redis):
    worker_a = RecurringJobs(scheduler, fake_redis, clock=clock)
    worker_b = RecurringJobs(scheduler, fake_redis, clock=clock)

    assert await worker_a.fire(CLEANUP) is not None
    assert await worker_b.fire(CLEANUP) is None
    assert (await store.counts()).pending_count == 1

    clock.advance(24 * 3600)
    assert await worker_b.fire(CLEANUP) is not None
    assert (await store.counts()).pending_count == 2


@pytest.mark.asyncio
async def test_without_redis_every_fire_enqueues(scheduler, store, clock):
    recurring = RecurringJobs(scheduler, clock=clock)

    await recurring.fire(CLEANUP)
    await recurring.fire(CLEANUP)

    assert (await store.counts()).pending_count == 2


@pytest.mark.asyncio
async def test_start_and_shutdown(scheduler):
    recurring = RecurringJobs(scheduler)
    recurring.add(CLEANUP)

    recurring.start()
    recurring.start()  # already running, no-op
    recurring.shutdown()
    recurring.shutdown()
