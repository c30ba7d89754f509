"""
Rental reminder job — reminds the renter the day before pickup.

Example payload:
    {"rentalId": "r_42"}

The reminder only goes out if the rental still starts on the next UTC
calendar day when the job runs. A rental that was moved, or a job that
ran late, sends nothing and succeeds. A rental that no longer exists is
an error (and retried, in case the lookup raced with its creation).
"""

import logging
from datetime import date, datetime, timedelta, timezone

from jobs.base import AbstractJobHandler
from scheduler.errors import InvalidPayload

logger = logging.getLogger(__name__)


def _start_date(rental: dict) -> date:
    raw = rental.get("startDate")
    if not raw:
        raise ValueError(f"Rental {rental.get('id')} has no startDate")
    start = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    if start.tzinfo is not None:
        start = start.astimezone(timezone.utc)
    return start.date()


class RentalReminderJob(AbstractJobHandler):

    async def run(self, payload: dict) -> None:
        rental_id = payload.get("rentalId")
        if not rental_id:
            raise InvalidPayload("Missing 'rentalId' in payload")

        rental = await self._client.get_rental(rental_id)
        if rental is None:
            raise LookupError(f"Rental {rental_id} not found")

        tomorrow = self._clock.now().date() + timedelta(days=1)
        if _start_date(rental) != tomorrow:
            logger.info(f"Rental {rental_id} does not start tomorrow, no reminder sent")
            return

        await self._client.send_email("rental_reminder", {"rentalId": rental_id})

    @property
    def job_type(self) -> str:
        return "rental_reminder"
