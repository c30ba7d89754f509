"""
JobRuntime — builds and owns one process's job-scheduling objects.

    store ─┬─ JobScheduler   (enqueue, cancel, stats)
           ├─ Dispatcher     (poll → claim → JobExecutor → RetryHandler)
           └─ RecurringJobs  (cron → JobScheduler.add_job)

Both entry points use it: worker/main.py starts everything, and the API's
lifespan starts the dispatcher only when RUN_DISPATCHER_IN_API is set.
On shutdown the dispatcher stops polling and waits for in-flight handlers.
"""

import logging
from typing import Optional

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import async_sessionmaker

from config.settings import Settings, settings as default_settings
from jobs.registry import HandlerRegistry
from scheduler.backoff import BackoffPolicy
from scheduler.clock import Clock
from scheduler.recurring import DEFAULT_SCHEDULES, RecurringJobs
from scheduler.service import JobScheduler
from scheduler.store import JobStore
from worker.dispatcher import Dispatcher
from worker.executor import JobExecutor
from worker.retry import RetryHandler

logger = logging.getLogger(__name__)


class JobRuntime:

    def __init__(
        self,
        session_factory: async_sessionmaker,
        registry: HandlerRegistry,
        redis_client: Optional[Redis] = None,
        config: Settings = default_settings,
        clock: Clock | None = None,
    ):
        self._config = config
        self.registry = registry
        self.redis = redis_client
        self.store = JobStore(session_factory, clock)
        self.scheduler = JobScheduler(
            self.store,
            clock,
            default_max_attempts=config.MAX_ATTEMPTS_DEFAULT,
            max_attempts_limit=config.MAX_ATTEMPTS_LIMIT,
        )

        policy = BackoffPolicy(config.RETRY_BASE_DELAY, config.RETRY_MAX_DELAY, config.RETRY_JITTER)
        retry_handler = RetryHandler(self.store, policy, redis_client, clock)
        executor = JobExecutor(registry, self.store, retry_handler, config.HANDLER_TIMEOUT)
        self.dispatcher = Dispatcher(
            self.store,
            executor,
            poll_interval=config.DISPATCH_POLL_INTERVAL,
            batch_size=config.DISPATCH_BATCH_SIZE,
            concurrency=config.DISPATCH_CONCURRENCY,
            stale_after=config.STALE_CLAIM_TIMEOUT,
            housekeeping_interval=config.RECOVERY_INTERVAL,
            retention_days=config.JOB_RETENTION_DAYS,
            clock=clock,
        )

        self.recurring: Optional[RecurringJobs] = None
        if config.ENABLE_RECURRING_JOBS:
            self.recurring = RecurringJobs(
                self.scheduler, redis_client, timezone=config.RECURRING_TIMEZONE, clock=clock
            )

    async def start(self, run_dispatcher: bool = True) -> None:
        if not run_dispatcher:
            logger.info("Job runtime started in enqueue-only mode")
            return

        await self.dispatcher.start()
        if self.recurring is not None:
            for schedule in DEFAULT_SCHEDULES:
                self.recurring.add(schedule)
            self.recurring.start()
        logger.info(f"Job runtime started, handlers: {self.registry.types}")

    async def stop(self) -> None:
        if self.recurring is not None:
            self.recurring.shutdown()
        if self.dispatcher.running:
            await self.dispatcher.stop(timeout=self._config.SHUTDOWN_TIMEOUT)
