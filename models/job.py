"""
Job ORM model — maps to the "jobs" table.

Key design decisions:
- UUID primary key, exposed to callers as a string
- JSON payload: each job type stores different keys without schema changes
- run_at: the dispatcher only picks up rows where run_at <= now
- attempts is incremented by the claim itself, so it counts executions
  that actually started
- claimed_at: when the current claim was taken; stale-claim recovery
  compares it against a timeout
- (status, run_at) index: the dispatcher's due-jobs query filters and
  sorts on exactly these two columns
"""

import uuid
from datetime import datetime

from sqlalchemy import Index, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, JSONPayload, UTCDateTime
from models.enums import JobStatus


class Job(Base):
    __tablename__ = "jobs"
    __table_args__ = (
        Index("ix_jobs_status_run_at", "status", "run_at"),
    )

    # ── Identity ────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    job_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    # ── Scheduling fields ───────────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(20), default=JobStatus.PENDING.value, nullable=False
    )
    run_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    # ── Payload ─────────────────────────────────────────────────
    #   send_email:      {"kind": "welcome", "args": {"userId": "u1"}}
    #   rental_reminder: {"rentalId": "r42"}
    payload: Mapped[dict] = mapped_column(JSONPayload, default=dict, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # ── Retry tracking ──────────────────────────────────────────
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3, nullable=False)

    # ── Lifecycle timestamps ────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), nullable=False
    )
    claimed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<Job {self.id} [{self.job_type}] {self.status}>"
