"""Tests for JobRuntime wiring."""

import pytest

from config.settings import Settings
from jobs.registry import HandlerRegistry
from worker.runtime import JobRuntime


def _settings(**overrides):
    values = {
        "DISPATCH_POLL_INTERVAL": 0.01,
        "ENABLE_RECURRING_JOBS": True,
        "SHUTDOWN_TIMEOUT": 1.0,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.mark.asyncio
async def test_start_runs_dispatcher_and_recurring(session_factory, fake_redis, clock):
    runtime = JobRuntime(session_factory, HandlerRegistry(), fake_redis, _settings(), clock)

    await runtime.start()
    try:
        assert runtime.dispatcher.running
        assert {s.name for s in runtime.recurring.schedules} == {"daily_cleanup", "daily_stats"}
    finally:
        await runtime.stop()

    assert not runtime.dispatcher.running


@pytest.mark.asyncio
async def test_enqueue_only_mode(session_factory, clock):
    runtime = JobRuntime(session_factory, HandlerRegistry(), config=_settings(), clock=clock)

    await runtime.start(run_dispatcher=False)

    assert not runtime.dispatcher.running
    job_id = await runtime.scheduler.add_job("send_email", {"kind": "welcome"})
    assert (await runtime.store.get(job_id)) is not None
    await runtime.stop()


def test_recurring_can_be_disabled(session_factory):
    runtime = JobRuntime(session_factory, HandlerRegistry(), config=_settings(ENABLE_RECURRING_JOBS=False))

    assert runtime.recurring is None


@pytest.mark.asyncio
async def test_attempt_settings_reach_the_scheduler(session_factory, clock):
    runtime = JobRuntime(
        session_factory,
        HandlerRegistry(),
        config=_settings(MAX_ATTEMPTS_DEFAULT=5, MAX_ATTEMPTS_LIMIT=7),
        clock=clock,
    )

    default_id = await runtime.scheduler.add_job("send_email", {"kind": "a"})
    capped_id = await runtime.scheduler.add_job("send_email", {"kind": "b"}, max_attempts=9)

    assert (await runtime.store.get(default_id)).max_attempts == 5
    assert (await runtime.store.get(capped_id)).max_attempts == 7
