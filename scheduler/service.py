"""
JobScheduler — the public API for putting work on the queue.

Callers (registration, rental creation, the admin endpoint) do:

    job_id = await scheduler.add_job("send_email", {...}, delay_ms=60_000)

add_job validates the request, writes ONE pending row and returns. It never
runs anything: the dispatcher picks the row up once run_at has passed. A
failure inside the handler later on is recorded on the row, never raised
back here, so a failed welcome email cannot break the registration that
scheduled it.

One JobScheduler is built per process (see worker/runtime.py) and passed to
whoever needs it.
"""

import json
import math
import logging
from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any, Optional

from models.enums import JobStatus, JobType
from scheduler.clock import Clock
from scheduler.errors import InvalidJobSpec, InvalidTransition, JobNotFound
from scheduler.store import JobRecord, JobStats, JobStore

logger = logging.getLogger(__name__)


class JobScheduler:

    def __init__(
        self,
        store: JobStore,
        clock: Clock | None = None,
        default_max_attempts: int = 3,
        max_attempts_limit: int = 10,
    ):
        self._store = store
        self._clock = clock or Clock()
        self._default_max_attempts = default_max_attempts
        self._max_attempts_limit = max_attempts_limit

    @property
    def store(self) -> JobStore:
        return self._store

    # ── Enqueue ─────────────────────────────────────────────────

    async def add_job(
        self,
        job_type: str,
        payload: Mapping[str, Any],
        *,
        delay_ms: float = 0,
        max_attempts: Optional[int] = None,
    ) -> str:
        """
        Persist a pending job and return its id.

        Args:
            job_type: handler name, e.g. "send_email"
            payload: JSON-serializable mapping handed to the handler
            delay_ms: milliseconds until the job becomes due (negative → 0)
            max_attempts: clamped to 1..max_attempts_limit, defaults to policy

        Raises:
            InvalidJobSpec: empty type, a payload that isn't a JSON mapping,
                or a delay that isn't a finite number of representable size.
        """
        if isinstance(job_type, JobType):
            job_type = job_type.value
        if not isinstance(job_type, str) or not job_type.strip():
            raise InvalidJobSpec("Job type must be a non-empty string")
        payload = self._validate_payload(payload)

        attempts = self._clamp_attempts(max_attempts)
        run_at = self._run_at_after(delay_ms)

        job = await self._store.insert(job_type, payload, run_at, attempts)
        logger.info(
            f"Job {job.id} [{job_type}] added, run_at={run_at.isoformat()} "
            f"max_attempts={attempts}"
        )
        return job.id

    async def schedule_email(
        self, kind: str, args: Any = None, delay_ms: float = 0
    ) -> str:
        """send_email job; the handler forwards {kind, args} to the email service."""
        return await self.add_job(
            JobType.SEND_EMAIL.value,
            {"kind": kind, "args": args if args is not None else {}},
            delay_ms=delay_ms,
        )

    async def schedule_rental_reminder(self, rental_id: str, when: datetime) -> str:
        return await self.add_job(
            JobType.RENTAL_REMINDER.value,
            {"rentalId": rental_id},
            delay_ms=self._delay_until(when),
        )

    async def schedule_review_request(self, rental_id: str, when: datetime) -> str:
        return await self.add_job(
            JobType.REVIEW_REQUEST.value,
            {"rentalId": rental_id},
            delay_ms=self._delay_until(when),
        )

    # ── Admin ───────────────────────────────────────────────────

    async def cancel_job(self, job_id: str) -> None:
        """
        pending → cancelled.

        Running jobs can't be cancelled: nothing interrupts a handler once
        it has started.
        """
        if await self._store.cancel(job_id):
            logger.info(f"Job {job_id} cancelled")
            return

        job = await self._store.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        raise InvalidTransition(job_id, job.status.value, JobStatus.CANCELLED.value)

    async def get_stats(self) -> JobStats:
        return await self._store.counts()

    async def get_job(self, job_id: str) -> Optional[JobRecord]:
        return await self._store.get(job_id)

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        job_type: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[JobRecord], int]:
        return await self._store.list_jobs(status, job_type, limit, offset)

    async def prune(self, older_than_days: float) -> int:
        """Delete finished jobs (succeeded/failed/cancelled) older than N days."""
        try:
            days = float(older_than_days)
            if not math.isfinite(days) or days <= 0:
                raise ValueError(f"older_than_days must be a positive number, got {older_than_days!r}")
            cutoff = self._clock.now() - timedelta(days=days)
        except OverflowError as e:
            raise ValueError(f"older_than_days out of range: {older_than_days!r}") from e
        deleted = await self._store.prune(cutoff)
        if deleted:
            logger.info(f"Pruned {deleted} finished jobs older than {older_than_days} days")
        return deleted

    # ── Helpers ─────────────────────────────────────────────────

    def _clamp_attempts(self, max_attempts: Optional[int]) -> int:
        if max_attempts is None:
            max_attempts = self._default_max_attempts
        try:
            max_attempts = int(max_attempts)
        except (TypeError, ValueError) as e:
            raise InvalidJobSpec(f"max_attempts must be an integer, got {max_attempts!r}") from e
        return max(1, min(max_attempts, self._max_attempts_limit))

    def _run_at_after(self, delay_ms: Any) -> datetime:
        try:
            delay = float(delay_ms or 0)
        except (TypeError, ValueError) as e:
            raise InvalidJobSpec(f"delay must be a number of milliseconds, got {delay_ms!r}") from e
        if not math.isfinite(delay):
            raise InvalidJobSpec(f"delay must be finite, got {delay_ms!r}")
        try:
            return self._clock.now() + timedelta(milliseconds=max(delay, 0.0))
        except OverflowError as e:
            raise InvalidJobSpec(f"delay is out of range: {delay_ms!r}") from e

    def _delay_until(self, when: datetime) -> float:
        if when.tzinfo is None:
            raise InvalidJobSpec(f"Naive datetime not allowed: {when!r}")
        delay = (when - self._clock.now()).total_seconds() * 1000
        return max(delay, 0.0)

    @staticmethod
    def _validate_payload(payload: Any) -> dict:
        if payload is None:
            return {}
        if not isinstance(payload, Mapping):
            raise InvalidJobSpec(f"Payload must be a mapping, got {type(payload).__name__}")
        try:
            # round-trip so the stored payload is exactly what a handler reads back
            return json.loads(json.dumps(dict(payload), allow_nan=False))
        except (TypeError, ValueError) as e:
            raise InvalidJobSpec(f"Payload is not JSON-serializable: {e}") from e
