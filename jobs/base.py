"""
Abstract base class for job handlers.

Each job type (send_email, rental_reminder, ...) implements this interface.
The executor looks the handler up in the registry by job_type string and
awaits handler.run(payload) without knowing which type it is.

To add a new job type:
1. Create a class that inherits AbstractJobHandler
2. Implement run() and job_type
3. Register it in jobs/registry.py (build_default_registry)

Delivery is AT-LEAST-ONCE. If the worker dies after run() returns but
before the job is marked succeeded, the job is recovered and run again.
Handlers must therefore tolerate running twice for the same payload:
check state before acting (has the review already been written? does the
rental still start tomorrow?) rather than assuming a first run.
"""

from abc import ABC, abstractmethod

from jobs.marketplace import MarketplaceClient
from scheduler.clock import Clock


class AbstractJobHandler(ABC):

    def __init__(self, client: MarketplaceClient, clock: Clock | None = None):
        self._client = client
        self._clock = clock or Clock()

    @abstractmethod
    async def run(self, payload: dict) -> None:
        """
        Execute the job.

        Args:
            payload: job-specific parameters from the job row.
                     Each job type expects different keys in here.

        Raises:
            InvalidPayload → the job fails at once, no retry.
            Any other exception → the dispatcher applies the retry policy.
        """
        ...

    @property
    @abstractmethod
    def job_type(self) -> str:
        """Unique identifier matching JobType (e.g., 'send_email')."""
        ...

    async def __call__(self, payload: dict) -> None:
        await self.run(payload)
