"""
Shared enumerations used across the entire project.

Using Python enums (inheriting from str) means:
- They serialize to JSON automatically ("pending", not "JobStatus.PENDING")
- They work as SQLAlchemy column values
- They work as FastAPI query parameters

JobType lists the types the marketplace enqueues today. The database column
is a plain string: the handler registry decides which types can actually run.
"""

import enum


class JobStatus(str, enum.Enum):
    PENDING = "pending"        # waiting for run_at, or re-queued for a retry
    RUNNING = "running"        # claimed by a worker, handler executing
    SUCCEEDED = "succeeded"    # handler returned normally
    FAILED = "failed"          # attempts exhausted, or no handler registered
    CANCELLED = "cancelled"    # cancelled by an admin while still pending

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    def can_transition_to(self, target: "JobStatus") -> bool:
        return target in ALLOWED_TRANSITIONS[self]


TERMINAL_STATUSES = frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLED})

# running → pending covers both the retry path and stale-claim recovery
ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING, JobStatus.CANCELLED}),
    JobStatus.RUNNING: frozenset({JobStatus.SUCCEEDED, JobStatus.PENDING, JobStatus.FAILED}),
    JobStatus.SUCCEEDED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


class JobType(str, enum.Enum):
    SEND_EMAIL = "send_email"                          # transactional email via the marketplace
    RENTAL_REMINDER = "rental_reminder"                # day-before reminder to the renter
    REVIEW_REQUEST = "review_request"                  # ask the renter to review a finished rental
    PAYMENT_PROCESSING = "payment_processing"          # confirm a rental after payment
    CLEANUP_EXPIRED_TOKENS = "cleanup_expired_tokens"  # purge expired password reset tokens
    DAILY_STATS = "daily_stats"                        # yesterday's numbers, mailed to admins
