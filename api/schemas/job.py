"""
Pydantic schemas for the /jobs endpoints.

These are NOT database models — they define the HTTP API contract:
- ScheduleJobRequest: body of POST /jobs/schedule
- ScheduleJobResponse: what POST /jobs/schedule sends back
- JobResponse: a single job (GET /jobs/{id}, rows of GET /jobs/)
- JobListResponse: paginated list of jobs
- JobStatsResponse: per-status counts (GET /jobs/schedule)

The request body keeps the marketplace's camelCase names (`maxAttempts`),
responses use `jobId` the same way. A body that fails validation is
answered with 400 (see api/main.py).
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models.enums import JobStatus, JobType

# upper bounds for admin input
MAX_DELAY_MS = 366 * 24 * 60 * 60 * 1000
MAX_HISTORY_DAYS = 36500


class ScheduleJobRequest(BaseModel):
    """Request body for POST /jobs/schedule."""

    model_config = ConfigDict(populate_by_name=True)

    type: JobType  # must be a known handler name
    data: dict = Field(
        default_factory=dict,
        examples=[{"kind": "welcome", "args": {"userId": "u_123"}}],
    )
    delay: Optional[float] = Field(
        default=None,
        ge=0,
        le=MAX_DELAY_MS,
        allow_inf_nan=False,
        description="Milliseconds until the job becomes due (at most a year)",
    )
    max_attempts: Optional[int] = Field(
        default=None,
        alias="maxAttempts",
        ge=1,
        le=10,
    )


class ScheduleJobResponse(BaseModel):
    """Response body for POST /jobs/schedule."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    job_id: str = Field(alias="jobId")
    message: str


class JobResponse(BaseModel):
    """A single job. Built from a scheduler.store.JobRecord."""

    id: str
    job_type: str
    status: JobStatus
    payload: dict
    run_at: datetime
    attempts: int
    max_attempts: int
    last_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    claimed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    # JobRecord is a dataclass, read it attribute by attribute
    model_config = ConfigDict(from_attributes=True)


class JobListResponse(BaseModel):
    """Paginated list of jobs — returned by GET /jobs/."""

    jobs: list[JobResponse]
    total: int       # total matching jobs (ignoring pagination)
    page: int
    page_size: int


class JobStats(BaseModel):
    pending_count: int
    running_count: int
    succeeded_count: int
    failed_count: int

    model_config = ConfigDict(from_attributes=True)


class JobStatsResponse(BaseModel):
    """Response body for GET /jobs/schedule."""

    success: bool = True
    stats: JobStats


class PruneResponse(BaseModel):
    success: bool = True
    deleted: int
