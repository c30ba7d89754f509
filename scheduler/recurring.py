"""
Recurring schedules — cron expressions that enqueue ordinary jobs.

APScheduler's AsyncIOScheduler keeps the cron timing; every time a schedule
fires, it calls JobScheduler.add_job(), so the work itself goes through the
normal queue with the same retries, timeouts and stats as any other job.

Default schedules:
    daily_cleanup  "0 2 * * *"  → cleanup_expired_tokens
    daily_stats    "0 6 * * *"  → daily_stats

When several worker processes run, each has its own AsyncIOScheduler and
all of them fire. A Redis SET NX EX lock per (schedule name, minute) lets
only the first one enqueue. Without Redis every firing enqueues.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from redis.asyncio import Redis
from redis.exceptions import RedisError

from models.enums import JobType
from scheduler.clock import Clock
from scheduler.service import JobScheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecurringSchedule:
    name: str
    crontab: str           # standard 5-field crontab, e.g. "0 2 * * *"
    job_type: str
    payload: dict = field(default_factory=dict)


DEFAULT_SCHEDULES: list[RecurringSchedule] = [
    RecurringSchedule("daily_cleanup", "0 2 * * *", JobType.CLEANUP_EXPIRED_TOKENS.value),
    RecurringSchedule("daily_stats", "0 6 * * *", JobType.DAILY_STATS.value),
]


class RecurringJobs:

    LOCK_KEY_PREFIX = "rentaljobs:recurring"

    def __init__(
        self,
        scheduler: JobScheduler,
        redis_client: Optional[Redis] = None,
        timezone: str = "UTC",
        lock_ttl: int = 300,
        clock: Clock | None = None,
    ):
        self._scheduler = scheduler
        self._redis = redis_client
        self._timezone = timezone
        self._lock_ttl = lock_ttl
        self._clock = clock or Clock()
        self._aps = AsyncIOScheduler(timezone=timezone)
        self._schedules: dict[str, RecurringSchedule] = {}

    @property
    def schedules(self) -> list[RecurringSchedule]:
        return list(self._schedules.values())

    def add(self, schedule: RecurringSchedule) -> None:
        """Register (or replace) a schedule. Raises ValueError on a bad crontab."""
        trigger = CronTrigger.from_crontab(schedule.crontab, timezone=self._timezone)
        self._aps.add_job(
            self.fire,
            trigger,
            args=[schedule],
            id=schedule.name,
            name=schedule.name,
            replace_existing=True,
            coalesce=True,
            misfire_grace_time=300,
        )
        self._schedules[schedule.name] = schedule
        logger.info(f"Recurring job {schedule.name} registered ({schedule.crontab} → {schedule.job_type})")

    def start(self) -> None:
        """Must be called from inside a running event loop."""
        if not self._aps.running:
            self._aps.start()

    def shutdown(self) -> None:
        if self._aps.running:
            self._aps.shutdown(wait=False)

    async def fire(self, schedule: RecurringSchedule) -> Optional[str]:
        """Enqueue one job for `schedule`, unless another process already did this minute."""
        if not await self._acquire_lock(schedule.name):
            logger.debug(f"Recurring job {schedule.name} already enqueued by another worker")
            return None

        job_id = await self._scheduler.add_job(schedule.job_type, schedule.payload)
        logger.info(f"Recurring job {schedule.name} enqueued as {job_id}")
        return job_id

    async def _acquire_lock(self, name: str) -> bool:
        if self._redis is None:
            return True
        minute = self._clock.now().strftime("%Y%m%d%H%M")
        key = f"{self.LOCK_KEY_PREFIX}:{name}:{minute}"
        try:
            return bool(await self._redis.set(key, "1", nx=True, ex=self._lock_ttl))
        except RedisError as e:
            logger.warning(f"Recurring lock for {name} unavailable ({e}), enqueueing anyway")
            return True
