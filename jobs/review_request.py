"""
Review request job — asks the renter to review a finished rental.

Example payload:
    {"rentalId": "r_42"}

Skips silently (success, nothing sent) when the rental is gone, not yet
completed, or the renter already left a review. The last check is also
what makes a duplicate run harmless.
"""

from jobs.base import AbstractJobHandler
from scheduler.errors import InvalidPayload


class ReviewRequestJob(AbstractJobHandler):

    async def run(self, payload: dict) -> None:
        rental_id = payload.get("rentalId")
        if not rental_id:
            raise InvalidPayload("Missing 'rentalId' in payload")

        rental = await self._client.get_rental(rental_id)
        if rental is None or rental.get("status") != "completed":
            return

        if await self._client.has_review(rental_id, rental.get("renterId")):
            return

        await self._client.send_email("review_request", {"rentalId": rental_id})

    @property
    def job_type(self) -> str:
        return "review_request"
