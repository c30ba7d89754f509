"""
Exceptions raised by the job scheduling core.

Two families:
- Enqueue/admin time (InvalidJobSpec, InvalidTransition, JobNotFound):
  raised straight back to the caller, e.g. the admin API turns them into
  400 / 409 / 404 responses.
- Execution time (UnknownJobType, InvalidPayload, HandlerFailure, ClaimConflict):
  never reach the code that enqueued the job. The dispatcher records
  them on the job row (last_error) and in the logs.
"""


class JobSchedulerError(Exception):
    """Base class for every scheduler error."""


class InvalidJobSpec(JobSchedulerError, ValueError):
    """Malformed job type or payload at enqueue time. Nothing is persisted."""


class InvalidTransition(JobSchedulerError):
    """An operation is not allowed in the job's current status."""

    def __init__(self, job_id: str, current: str, target: str):
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(f"Job {job_id} cannot move from {current} to {target}")


class JobNotFound(JobSchedulerError, LookupError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class UnknownJobType(JobSchedulerError):
    """A claimed job has no registered handler. Terminal, never retried."""

    def __init__(self, job_type: str):
        self.job_type = job_type
        super().__init__(f"No handler registered for job type '{job_type}'")


class HandlerFailure(JobSchedulerError):
    """A handler raised or timed out. Retried until max_attempts is reached."""

    def __init__(self, job_id: str, reason: str):
        self.job_id = job_id
        self.reason = reason
        super().__init__(reason)


class ClaimConflict(JobSchedulerError):
    """Another worker claimed the job first. The loser skips it this tick."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} was claimed by another worker")


class InvalidPayload(JobSchedulerError, ValueError):
    """
    Raised by a handler when the payload itself is unusable.

    Running the same payload again cannot succeed, so the job fails
    permanently on the first attempt instead of going through retries.
    """
