"""
Housekeeping job: delete expired password reset tokens.

Scheduled daily at 02:00 by scheduler/recurring.py. Takes no payload.
"""

import logging

from jobs.base import AbstractJobHandler

logger = logging.getLogger(__name__)


class CleanupExpiredTokensJob(AbstractJobHandler):

    async def run(self, payload: dict) -> None:
        deleted = await self._client.delete_expired_tokens()
        logger.info(f"Cleaned up {deleted} expired password reset tokens")

    @property
    def job_type(self) -> str:
        return "cleanup_expired_tokens"
