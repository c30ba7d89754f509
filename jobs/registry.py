"""
Job handler registry — maps job_type strings to async handlers.

When the dispatcher claims a job, it knows the job_type ("send_email",
"rental_reminder", ...) but needs the function that does the work. This
registry does that lookup.

A handler is any async callable taking the payload dict. AbstractJobHandler
instances qualify (they are callable), and so does a plain `async def`.
Registration happens once at startup; the registry is not meant to change
while the dispatcher runs.
"""

from collections.abc import Awaitable, Callable
from typing import Optional

from jobs.base import AbstractJobHandler
from jobs.cleanup_tokens import CleanupExpiredTokensJob
from jobs.daily_stats import DailyStatsJob
from jobs.marketplace import MarketplaceClient
from jobs.payment_processing import PaymentProcessingJob
from jobs.rental_reminder import RentalReminderJob
from jobs.review_request import ReviewRequestJob
from jobs.send_email import SendEmailJob
from scheduler.clock import Clock

Handler = Callable[[dict], Awaitable[None]]


class HandlerRegistry:

    def __init__(self):
        self._handlers: dict[str, Handler] = {}

    def register(self, job_type: str, handler: Handler) -> None:
        if not job_type:
            raise ValueError("job_type must be a non-empty string")
        if job_type in self._handlers:
            raise ValueError(f"Handler for '{job_type}' is already registered")
        self._handlers[job_type] = handler

    def register_handler(self, handler: AbstractJobHandler) -> None:
        self.register(handler.job_type, handler)

    def resolve(self, job_type: str) -> Optional[Handler]:
        return self._handlers.get(job_type)

    @property
    def types(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, job_type: str) -> bool:
        return job_type in self._handlers


_DEFAULT_HANDLERS: list[type[AbstractJobHandler]] = [
    SendEmailJob,
    RentalReminderJob,
    ReviewRequestJob,
    PaymentProcessingJob,
    CleanupExpiredTokensJob,
    DailyStatsJob,
]


def build_default_registry(
    client: MarketplaceClient, clock: Optional[Clock] = None
) -> HandlerRegistry:
    """Registry with every marketplace handler, all sharing one client and clock."""
    registry = HandlerRegistry()
    for handler_cls in _DEFAULT_HANDLERS:
        registry.register_handler(handler_cls(client, clock))
    return registry
