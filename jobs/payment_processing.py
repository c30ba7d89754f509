"""
Payment processing job — confirms a rental once its payment went through.

Example payload:
    {"rentalId": "r_42", "amount": 45.0, "paymentMethodId": "pm_123"}

The marketplace performs the provider call and the status update; a
repeated confirmation of an already confirmed rental is a no-op there.
"""

import logging

from jobs.base import AbstractJobHandler
from scheduler.errors import InvalidPayload

logger = logging.getLogger(__name__)


class PaymentProcessingJob(AbstractJobHandler):

    async def run(self, payload: dict) -> None:
        rental_id = payload.get("rentalId")
        if not rental_id:
            raise InvalidPayload("Missing 'rentalId' in payload")

        amount = payload.get("amount")
        logger.info(f"Processing payment for rental {rental_id} (amount={amount})")
        await self._client.confirm_payment(rental_id, amount, payload.get("paymentMethodId"))

    @property
    def job_type(self) -> str:
        return "payment_processing"
