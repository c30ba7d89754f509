"""
Job Record Store — the only code that reads or writes the jobs table.

Every status change is ONE conditional UPDATE:

    UPDATE jobs SET status = <target>, ...
    WHERE id = :id AND status = <expected> [AND attempts = :attempts]

and the caller looks at the rowcount. rowcount == 1 means this process
made the transition; rowcount == 0 means someone else got there first (or
the job was never in the expected state). There is no read-then-write pair
anywhere, so two workers racing for the same job cannot both win, even in
different processes.

The extra `attempts` guard on finishing writes works like a fencing token:
if a claim went stale and the job was recovered and claimed again, the
original worker's late success/failure write matches zero rows.

Callers get JobRecord DTOs back, never live ORM objects, so nothing outside
this module depends on session state.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from models.enums import JobStatus, TERMINAL_STATUSES
from models.job import Job
from scheduler.clock import Clock
from scheduler.errors import InvalidTransition


@dataclass
class JobRecord:
    """Snapshot of one job row."""
    id: str
    job_type: str
    status: JobStatus
    payload: dict
    run_at: datetime
    attempts: int
    max_attempts: int
    last_error: Optional[str]
    created_at: datetime
    updated_at: datetime
    claimed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, job: Job) -> "JobRecord":
        return cls(
            id=str(job.id),
            job_type=job.job_type,
            status=JobStatus(job.status),
            payload=dict(job.payload or {}),
            run_at=job.run_at,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            last_error=job.last_error,
            created_at=job.created_at,
            updated_at=job.updated_at,
            claimed_at=job.claimed_at,
            completed_at=job.completed_at,
        )


@dataclass
class JobStats:
    pending_count: int
    running_count: int
    succeeded_count: int
    failed_count: int


def _parse_id(job_id) -> Optional[uuid.UUID]:
    if isinstance(job_id, uuid.UUID):
        return job_id
    try:
        return uuid.UUID(str(job_id))
    except ValueError:
        return None


class JobStore:

    def __init__(self, session_factory: async_sessionmaker, clock: Clock | None = None):
        self._session_factory = session_factory
        self._clock = clock or Clock()

    # ── Writes ──────────────────────────────────────────────────

    async def insert(
        self,
        job_type: str,
        payload: dict,
        run_at: datetime,
        max_attempts: int,
    ) -> JobRecord:
        now = self._clock.now()
        job = Job(
            id=uuid.uuid4(),
            job_type=job_type,
            status=JobStatus.PENDING.value,
            payload=payload,
            run_at=run_at,
            attempts=0,
            max_attempts=max_attempts,
            created_at=now,
            updated_at=now,
        )
        async with self._session_factory() as session, session.begin():
            session.add(job)
        return JobRecord.from_row(job)

    async def claim(self, job_id: str) -> Optional[JobRecord]:
        """
        pending → running, attempts + 1.

        Returns the claimed job, or None if another worker won the race
        (or the job was cancelled in the meantime).
        """
        uid = _parse_id(job_id)
        if uid is None:
            return None
        now = self._clock.now()
        stmt = (
            update(Job)
            .where(Job.id == uid, Job.status == JobStatus.PENDING.value)
            .values(
                status=JobStatus.RUNNING.value,
                attempts=Job.attempts + 1,
                claimed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session, session.begin():
            result = await session.execute(stmt)
            if result.rowcount != 1:
                return None
            # same transaction, so this reads our own write
            job = (await session.execute(select(Job).where(Job.id == uid))).scalar_one()
            return JobRecord.from_row(job)

    async def mark_succeeded(self, job_id: str, attempts: int) -> bool:
        now = self._clock.now()
        return await self._transition(
            job_id, JobStatus.RUNNING, JobStatus.SUCCEEDED,
            {"completed_at": now, "updated_at": now, "last_error": None},
            attempts=attempts,
        )

    async def requeue(self, job_id: str, attempts: int, run_at: datetime, error: str) -> bool:
        """running → pending with a new run_at (retry path)."""
        return await self._transition(
            job_id, JobStatus.RUNNING, JobStatus.PENDING,
            {"run_at": run_at, "last_error": error, "claimed_at": None, "updated_at": self._clock.now()},
            attempts=attempts,
        )

    async def mark_failed(self, job_id: str, attempts: int, error: str) -> bool:
        now = self._clock.now()
        return await self._transition(
            job_id, JobStatus.RUNNING, JobStatus.FAILED,
            {"last_error": error, "completed_at": now, "updated_at": now},
            attempts=attempts,
        )

    async def cancel(self, job_id: str) -> bool:
        now = self._clock.now()
        return await self._transition(
            job_id, JobStatus.PENDING, JobStatus.CANCELLED,
            {"completed_at": now, "updated_at": now},
        )

    async def recover_stale(self, cutoff: datetime) -> tuple[int, int]:
        """
        Reconcile running jobs whose claim is older than `cutoff`.

        The worker holding them most likely died mid-handler. Jobs with
        attempts left go back to pending (due immediately); jobs that
        already used their last attempt are failed, because running them
        again would exceed max_attempts.

        Returns (requeued, failed).
        """
        now = self._clock.now()
        stale = (
            Job.status == JobStatus.RUNNING.value,
            Job.claimed_at.is_not(None),
            Job.claimed_at < cutoff,
        )
        message = f"Claim went stale (claimed before {cutoff.isoformat()})"
        async with self._session_factory() as session, session.begin():
            requeued = await session.execute(
                update(Job)
                .where(*stale, Job.attempts < Job.max_attempts)
                .values(
                    status=JobStatus.PENDING.value,
                    run_at=now,
                    claimed_at=None,
                    last_error=message,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            failed = await session.execute(
                update(Job)
                .where(*stale, Job.attempts >= Job.max_attempts)
                .values(
                    status=JobStatus.FAILED.value,
                    last_error=message,
                    completed_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
        return requeued.rowcount, failed.rowcount

    async def prune(self, older_than: datetime) -> int:
        """Delete terminal jobs last touched before `older_than`."""
        stmt = (
            delete(Job)
            .where(
                Job.status.in_([s.value for s in TERMINAL_STATUSES]),
                Job.updated_at < older_than,
            )
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session, session.begin():
            result = await session.execute(stmt)
        return result.rowcount

    async def _transition(
        self,
        job_id: str,
        expected: JobStatus,
        target: JobStatus,
        values: dict,
        attempts: Optional[int] = None,
    ) -> bool:
        if not expected.can_transition_to(target):
            raise InvalidTransition(str(job_id), expected.value, target.value)

        uid = _parse_id(job_id)
        if uid is None:
            return False

        conditions = [Job.id == uid, Job.status == expected.value]
        if attempts is not None:
            conditions.append(Job.attempts == attempts)

        stmt = (
            update(Job)
            .where(*conditions)
            .values(status=target.value, **values)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session, session.begin():
            result = await session.execute(stmt)
        return result.rowcount == 1

    # ── Reads ───────────────────────────────────────────────────

    async def get(self, job_id: str) -> Optional[JobRecord]:
        uid = _parse_id(job_id)
        if uid is None:
            return None
        async with self._session_factory() as session:
            job = (await session.execute(select(Job).where(Job.id == uid))).scalar_one_or_none()
            return JobRecord.from_row(job) if job is not None else None

    async def find_due(self, now: datetime, limit: int) -> list[str]:
        """Ids of pending jobs with run_at <= now, oldest-due first."""
        if limit <= 0:
            return []
        query = (
            select(Job.id)
            .where(Job.status == JobStatus.PENDING.value, Job.run_at <= now)
            .order_by(Job.run_at, Job.created_at)
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(query)
            return [str(job_id) for job_id in result.scalars().all()]

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        job_type: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[JobRecord], int]:
        """One page of jobs (newest first) plus the total matching count."""
        conditions = []
        if status:
            conditions.append(Job.status == status.value)
        if job_type:
            conditions.append(Job.job_type == job_type)

        count_query = select(func.count(Job.id)).where(*conditions)
        query = (
            select(Job)
            .where(*conditions)
            .order_by(Job.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        async with self._session_factory() as session:
            total = (await session.execute(count_query)).scalar() or 0
            jobs = (await session.execute(query)).scalars().all()
            return [JobRecord.from_row(j) for j in jobs], total

    async def counts(self) -> JobStats:
        """Per-status counts in a single conditional-aggregation query."""
        query = select(
            func.count(Job.id).filter(Job.status == JobStatus.PENDING.value).label("pending"),
            func.count(Job.id).filter(Job.status == JobStatus.RUNNING.value).label("running"),
            func.count(Job.id).filter(Job.status == JobStatus.SUCCEEDED.value).label("succeeded"),
            func.count(Job.id).filter(Job.status == JobStatus.FAILED.value).label("failed"),
        )
        async with self._session_factory() as session:
            row = (await session.execute(query)).one()
        return JobStats(
            pending_count=row.pending or 0,
            running_count=row.running or 0,
            succeeded_count=row.succeeded or 0,
            failed_count=row.failed or 0,
        )
