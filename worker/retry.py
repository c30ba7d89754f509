"""
Retry handler — decides what happens when a job fails.

Two outcomes:
1. attempts < max_attempts → back to PENDING with run_at pushed out by
   the backoff policy; the dispatcher picks it up again once it is due
2. attempts >= max_attempts → FAILED, plus an entry on the dead-letter list

The dead-letter list (DLQ) is a Redis list of permanently failed jobs, shown
by GET /jobs/dead-letter. Someone reviews it and either fixes the cause and
schedules a fresh job, or accepts the loss. Failed jobs are never retried
automatically.

Lifecycle on failure (attempts was already incremented by the claim):
    RUNNING → (exception) → PENDING, run_at = now + backoff   (attempts left)
    RUNNING → (exception) → FAILED → DLQ                      (exhausted)

Every write is guarded by the attempts value the worker claimed with. If the
write matches no row, the claim went stale and was handed to someone else;
that worker owns the outcome now, so nothing is written here.
"""

import json
import logging
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from models.enums import JobStatus
from scheduler.backoff import BackoffPolicy
from scheduler.clock import Clock
from scheduler.store import JobRecord, JobStore

logger = logging.getLogger(__name__)


class RetryHandler:

    REDIS_DLQ_KEY = "rentaljobs:dead_letter"

    def __init__(
        self,
        store: JobStore,
        policy: BackoffPolicy,
        redis_client: Optional[Redis] = None,
        clock: Clock | None = None,
    ):
        self._store = store
        self._policy = policy
        self._redis = redis_client
        self._clock = clock or Clock()

    async def handle_failure(self, job: JobRecord, error_msg: str) -> Optional[JobStatus]:
        """
        Called by JobExecutor when a handler raised or timed out.

        Returns the job's new status, or None if the write was blocked
        because the claim is no longer ours.
        """
        if job.attempts >= job.max_attempts:
            return await self.fail_permanently(job, error_msg)

        run_at = self._clock.now() + self._policy.next_delay(job.attempts)
        if not await self._store.requeue(job.id, job.attempts, run_at, error_msg):
            logger.warning(f"Job {job.id} retry not recorded: claim is no longer held")
            return None

        logger.warning(
            f"Job {job.id} [{job.job_type}] failed "
            f"(attempt {job.attempts}/{job.max_attempts}), "
            f"retrying at {run_at.isoformat()}: {error_msg}"
        )
        return JobStatus.PENDING

    async def fail_permanently(self, job: JobRecord, error_msg: str) -> Optional[JobStatus]:
        """RUNNING → FAILED without consulting the retry budget."""
        if not await self._store.mark_failed(job.id, job.attempts, error_msg):
            logger.warning(f"Job {job.id} failure not recorded: claim is no longer held")
            return None

        logger.error(
            f"Job {job.id} [{job.job_type}] failed permanently "
            f"after {job.attempts} attempt(s): {error_msg}"
        )
        await self._push_to_dead_letter(job, error_msg)
        return JobStatus.FAILED

    async def _push_to_dead_letter(self, job: JobRecord, error_msg: str) -> None:
        """Push a failed job's info to the Redis dead-letter list."""
        if self._redis is None:
            return
        dlq_entry = json.dumps({
            "job_id": job.id,
            "job_type": job.job_type,
            "payload": job.payload,
            "error": error_msg,
            "attempts": job.attempts,
            "failed_at": self._clock.now().isoformat(),
        })
        try:
            await self._redis.rpush(self.REDIS_DLQ_KEY, dlq_entry)
        except RedisError as e:
            # the job row is already FAILED; the DLQ is only a review list
            logger.error(f"Could not push job {job.id} to dead-letter list: {e}")
