"""
Tests for JobScheduler: enqueue validation, run_at arithmetic, cancel and stats.
"""

import math
import uuid
from datetime import timedelta

import pytest

from models.enums import JobStatus, JobType
from scheduler.errors import InvalidJobSpec, InvalidTransition, JobNotFound


@pytest.mark.asyncio
async def test_add_job_sets_run_at_from_delay(scheduler, store, clock):
    job_id = await scheduler.add_job("send_email", {"kind": "welcome"}, delay_ms=1500)

    job = await store.get(job_id)
    assert job.status == JobStatus.PENDING
    assert job.run_at == clock.now() + timedelta(milliseconds=1500)
    assert job.attempts == 0
    assert job.max_attempts == 3


@pytest.mark.asyncio
async def test_negative_delay_means_now(scheduler, store, clock):
    job_id = await scheduler.add_job("send_email", {"kind": "welcome"}, delay_ms=-5000)

    assert (await store.get(job_id)).run_at == clock.now()


@pytest.mark.asyncio
async def test_accepts_job_type_enum(scheduler, store):
    job_id = await scheduler.add_job(JobType.DAILY_STATS, {})

    assert (await store.get(job_id)).job_type == "daily_stats"


@pytest.mark.asyncio
@pytest.mark.parametrize("requested, stored", [(None, 3), (0, 1), (5, 5), (50, 10)])
async def test_max_attempts_is_clamped(scheduler, store, requested, stored):
    job_id = await scheduler.add_job("send_email", {"kind": "x"}, max_attempts=requested)

    assert (await store.get(job_id)).max_attempts == stored


@pytest.mark.asyncio
@pytest.mark.parametrize("job_type", ["", "   ", None])
async def test_empty_job_type_rejected(scheduler, store, job_type):
    with pytest.raises(InvalidJobSpec):
        await scheduler.add_job(job_type, {})

    assert (await store.counts()).pending_count == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [["a", "b"], "text", {"when": object()}, {"ratio": math.nan}])
async def test_bad_payload_rejected(scheduler, payload):
    with pytest.raises(InvalidJobSpec):
        await scheduler.add_job("send_email", payload)


@pytest.mark.asyncio
async def test_non_integer_max_attempts_rejected(scheduler):
    with pytest.raises(InvalidJobSpec):
        await scheduler.add_job("send_email", {}, max_attempts="many")


@pytest.mark.asyncio
@pytest.mark.parametrize("delay_ms", [1e15, 1e300, math.inf, -math.inf, math.nan, "soon"])
async def test_unusable_delay_rejected(scheduler, store, delay_ms):
    with pytest.raises(InvalidJobSpec):
        await scheduler.add_job("send_email", {"kind": "welcome"}, delay_ms=delay_ms)

    assert (await store.counts()).pending_count == 0


@pytest.mark.asyncio
async def test_schedule_email_builds_payload(scheduler, store):
    job_id = await scheduler.schedule_email("password_reset", {"userId": "u1"})

    job = await store.get(job_id)
    assert job.job_type == "send_email"
    assert job.payload == {"kind": "password_reset", "args": {"userId": "u1"}}


@pytest.mark.asyncio
async def test_schedule_rental_reminder_at_time(scheduler, store, clock):
    when = clock.now() + timedelta(days=1)
    job_id = await scheduler.schedule_rental_reminder("r_42", when)

    job = await store.get(job_id)
    assert job.job_type == "rental_reminder"
    assert job.payload == {"rentalId": "r_42"}
    assert job.run_at == when


@pytest.mark.asyncio
async def test_schedule_review_request_in_past_runs_now(scheduler, store, clock):
    job_id = await scheduler.schedule_review_request("r_42", clock.now() - timedelta(hours=2))

    assert (await store.get(job_id)).run_at == clock.now()


@pytest.mark.asyncio
async def test_naive_datetime_rejected(scheduler, clock):
    with pytest.raises(InvalidJobSpec):
        await scheduler.schedule_rental_reminder("r_42", clock.now().replace(tzinfo=None))


@pytest.mark.asyncio
async def test_cancel_pending_job(scheduler, store):
    job_id = await scheduler.add_job("send_email", {"kind": "welcome"})

    await scheduler.cancel_job(job_id)

    job = await store.get(job_id)
    assert job.status == JobStatus.CANCELLED
    assert job.completed_at is not None


@pytest.mark.asyncio
async def test_cancel_running_job_is_invalid(scheduler, store):
    job_id = await scheduler.add_job("send_email", {"kind": "welcome"})
    await store.claim(job_id)

    with pytest.raises(InvalidTransition):
        await scheduler.cancel_job(job_id)
    assert (await store.get(job_id)).status == JobStatus.RUNNING


@pytest.mark.asyncio
async def test_cancel_twice_is_invalid(scheduler):
    job_id = await scheduler.add_job("send_email", {"kind": "welcome"})
    await scheduler.cancel_job(job_id)

    with pytest.raises(InvalidTransition):
        await scheduler.cancel_job(job_id)


@pytest.mark.asyncio
async def test_cancel_missing_job(scheduler):
    with pytest.raises(JobNotFound):
        await scheduler.cancel_job(str(uuid.uuid4()))


@pytest.mark.asyncio
async def test_stats_on_empty_store(scheduler):
    stats = await scheduler.get_stats()

    assert (stats.pending_count, stats.running_count, stats.succeeded_count, stats.failed_count) == (0, 0, 0, 0)


@pytest.mark.asyncio
async def test_stats_do_not_count_cancelled(scheduler, store):
    keep = await scheduler.add_job("send_email", {"kind": "a"})
    drop = await scheduler.add_job("send_email", {"kind": "b"})
    await scheduler.cancel_job(drop)
    await store.claim(keep)

    stats = await scheduler.get_stats()
    assert stats.pending_count == 0
    assert stats.running_count == 1


@pytest.mark.asyncio
async def test_prune_uses_days(scheduler, store, clock):
    job_id = await scheduler.add_job("send_email", {"kind": "a"})
    await scheduler.cancel_job(job_id)

    clock.advance(2 * 86400)
    assert await scheduler.prune(older_than_days=3) == 0
    assert await scheduler.prune(older_than_days=1) == 1
    assert await store.get(job_id) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("days", [1e9, math.inf, math.nan, 0, -1])
async def test_prune_rejects_unusable_days(scheduler, days):
    with pytest.raises(ValueError):
        await scheduler.prune(older_than_days=days)
