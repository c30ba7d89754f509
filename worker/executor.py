"""
Job executor — runs a single claimed job.

This is the code that actually DOES THE WORK. The dispatcher claims a job
and starts executor.execute(job) as its own asyncio task; this method
handles the rest of the lifecycle:

    1. Find the handler for job.job_type in the registry
       (none registered → FAILED right away, no retry)
    2. Await handler(payload), bounded by the handler timeout
    3. On success: mark SUCCEEDED
    4. On InvalidPayload: FAILED right away, the payload will not get better
    5. On any other exception or timeout: delegate to RetryHandler
       (which decides retry vs. permanent failure)

Nothing here raises back to the code that enqueued the job. Errors end up
in the job's last_error column and in the log.
"""

import asyncio
import logging
import time
from typing import Optional

from jobs.registry import Handler, HandlerRegistry
from models.enums import JobStatus
from scheduler.errors import HandlerFailure, InvalidPayload, UnknownJobType
from scheduler.store import JobRecord, JobStore
from worker.retry import RetryHandler

logger = logging.getLogger(__name__)


def describe_error(exc: BaseException) -> str:
    message = str(exc)
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__


async def _invoke(handler: Handler, payload: dict) -> Optional[Exception]:
    """Await the handler and hand back what it raised, so a TimeoutError from
    inside the handler is never mistaken for the executor's own timeout."""
    try:
        await handler(payload)
    except Exception as e:
        return e
    return None


class JobExecutor:

    def __init__(
        self,
        registry: HandlerRegistry,
        store: JobStore,
        retry_handler: RetryHandler,
        timeout: float = 30.0,
    ):
        self._registry = registry
        self._store = store
        self._retry_handler = retry_handler
        self._timeout = timeout

    async def execute(self, job: JobRecord) -> Optional[JobStatus]:
        """
        Run one claimed job to an outcome.

        Returns the status the job ended up in, or None when the final
        write was blocked because the claim had gone stale.
        """
        handler = self._registry.resolve(job.job_type)
        if handler is None:
            error = UnknownJobType(job.job_type)
            logger.error(f"Job {job.id}: {error}")
            return await self._retry_handler.fail_permanently(job, str(error))

        start_time = time.monotonic()
        try:
            error = await asyncio.wait_for(_invoke(handler, dict(job.payload)), timeout=self._timeout)
        except asyncio.TimeoutError:
            error = None
            failure = HandlerFailure(job.id, f"Handler timed out after {self._timeout}s")
        else:
            failure = HandlerFailure(job.id, describe_error(error)) if error is not None else None

        if isinstance(error, InvalidPayload):
            return await self._retry_handler.fail_permanently(job, failure.reason)
        if failure is not None:
            return await self._retry_handler.handle_failure(job, failure.reason)

        elapsed = time.monotonic() - start_time
        if not await self._store.mark_succeeded(job.id, job.attempts):
            logger.warning(f"Job {job.id} success not recorded: claim is no longer held")
            return None
        logger.info(f"Job {job.id} [{job.job_type}] succeeded in {elapsed:.3f}s")
        return JobStatus.SUCCEEDED
