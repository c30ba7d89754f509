"""
Transactional email job.

Example payload (built by JobScheduler.schedule_email):
    {"kind": "welcome", "args": {"userId": "u_123"}}

The marketplace renders and sends the email; this handler only forwards
the request. A non-2xx answer raises and the job is retried.
"""

from jobs.base import AbstractJobHandler
from scheduler.errors import InvalidPayload


class SendEmailJob(AbstractJobHandler):

    async def run(self, payload: dict) -> None:
        kind = payload.get("kind")
        if not kind:
            raise InvalidPayload("Missing 'kind' in payload")

        await self._client.send_email(kind, payload.get("args", {}))

    @property
    def job_type(self) -> str:
        return "send_email"
