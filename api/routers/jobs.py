"""
Admin job endpoints. Every route here requires the X-Admin-Token header.

POST   /jobs/schedule     → Enqueue a job (type, data, delay ms, maxAttempts)
GET    /jobs/schedule     → Per-status job counts
GET    /jobs/             → List jobs with filtering + pagination
GET    /jobs/dead-letter  → Permanently failed jobs from the Redis DLQ
DELETE /jobs/history      → Delete finished jobs older than N days
GET    /jobs/{job_id}     → Get a single job by ID
DELETE /jobs/{job_id}     → Cancel a pending job

The API layer is intentionally thin: it validates input and calls
JobScheduler. It never runs handlers; that happens in the dispatcher.
The fixed paths are declared before /{job_id} so they aren't read as ids.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from redis.asyncio import Redis
from sqlalchemy.exc import SQLAlchemyError

from api.dependencies import get_redis, get_scheduler, require_admin
from api.schemas.job import (
    JobListResponse,
    JobResponse,
    JobStats,
    JobStatsResponse,
    MAX_HISTORY_DAYS,
    PruneResponse,
    ScheduleJobRequest,
    ScheduleJobResponse,
)
from models.enums import JobStatus
from scheduler.errors import InvalidJobSpec, InvalidTransition, JobNotFound
from scheduler.service import JobScheduler
from worker.retry import RetryHandler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"], dependencies=[Depends(require_admin)])


@router.post("/schedule", response_model=ScheduleJobResponse)
async def schedule_job(
    job_in: ScheduleJobRequest,
    scheduler: JobScheduler = Depends(get_scheduler),
) -> ScheduleJobResponse:
    """
    Enqueue a job.

    The row is committed before this returns, so the jobId is durable.
    Handler failures later on show up on the job row, not here.
    """
    try:
        job_id = await scheduler.add_job(
            job_in.type.value,
            job_in.data,
            delay_ms=job_in.delay or 0,
            max_attempts=job_in.max_attempts,
        )
    except InvalidJobSpec as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SQLAlchemyError as e:
        logger.error(f"Failed to schedule {job_in.type.value} job: {e}")
        raise HTTPException(status_code=500, detail="Failed to schedule job")

    return ScheduleJobResponse(job_id=job_id, message="Job scheduled successfully")


@router.get("/schedule", response_model=JobStatsResponse)
async def get_job_stats(
    scheduler: JobScheduler = Depends(get_scheduler),
) -> JobStatsResponse:
    stats = await scheduler.get_stats()
    return JobStatsResponse(stats=JobStats.model_validate(stats))


@router.get("/", response_model=JobListResponse)
async def list_jobs(
    status: Optional[JobStatus] = Query(None, description="Filter by job status"),
    job_type: Optional[str] = Query(None, description="Filter by job type"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Jobs per page"),
    scheduler: JobScheduler = Depends(get_scheduler),
) -> JobListResponse:
    """
    List jobs, newest first.

    page=1, page_size=20 → rows 0-19; page=2 → rows 20-39. `total` is the
    number of matching jobs ignoring pagination.
    """
    records, total = await scheduler.list_jobs(
        status=status,
        job_type=job_type,
        limit=page_size,
        offset=(page - 1) * page_size,
    )
    return JobListResponse(
        jobs=[JobResponse.model_validate(r) for r in records],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/dead-letter")
async def get_dead_letter_jobs(
    limit: int = Query(100, ge=1, le=1000),
    redis: Redis = Depends(get_redis),
) -> dict:
    """
    Jobs that failed permanently, oldest first.

    The authoritative state is the job row (status=failed); this list is
    for review. Fix the cause and schedule a fresh job, or accept the loss.
    """
    total = await redis.llen(RetryHandler.REDIS_DLQ_KEY)
    raw_entries = await redis.lrange(RetryHandler.REDIS_DLQ_KEY, 0, limit - 1)
    return {"total": total, "jobs": [json.loads(entry) for entry in raw_entries]}


@router.delete("/history", response_model=PruneResponse)
async def prune_history(
    days: float = Query(
        ..., gt=0, le=MAX_HISTORY_DAYS, description="Delete finished jobs older than this"
    ),
    scheduler: JobScheduler = Depends(get_scheduler),
) -> PruneResponse:
    try:
        deleted = await scheduler.prune(days)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return PruneResponse(deleted=deleted)


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    scheduler: JobScheduler = Depends(get_scheduler),
) -> JobResponse:
    job = await scheduler.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return JobResponse.model_validate(job)


@router.delete("/{job_id}", status_code=204)
async def cancel_job(
    job_id: str,
    scheduler: JobScheduler = Depends(get_scheduler),
) -> None:
    """
    Cancel a job.

    Only PENDING jobs can be cancelled. Once a job is RUNNING the handler
    is already executing and nothing interrupts it.

    The row is kept with status=cancelled so it still shows in history.
    """
    try:
        await scheduler.cancel_job(job_id)
    except JobNotFound:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
