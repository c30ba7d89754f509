"""
Daily statistics job — mails yesterday's marketplace numbers to the admins.

Scheduled daily at 06:00 by scheduler/recurring.py. An optional payload
{"date": "YYYY-MM-DD"} reports a specific day instead of yesterday.

Example email args:
    {"type": "daily_stats", "date": "2026-10-18",
     "newUsers": 12, "newItems": 30, "newRentals": 9, "totalRevenue": 410.5}
"""

from datetime import date, timedelta

from jobs.base import AbstractJobHandler
from scheduler.errors import InvalidPayload


class DailyStatsJob(AbstractJobHandler):

    async def run(self, payload: dict) -> None:
        day = self._report_day(payload.get("date"))

        stats = await self._client.get_daily_stats(day)
        await self._client.send_email(
            "admin_notification",
            {"type": "daily_stats", "date": day.isoformat(), **stats},
        )

    def _report_day(self, raw) -> date:
        if not raw:
            return self._clock.now().date() - timedelta(days=1)
        try:
            return date.fromisoformat(str(raw))
        except ValueError as e:
            raise InvalidPayload(f"Invalid 'date' in payload: {raw!r}") from e

    @property
    def job_type(self) -> str:
        return "daily_stats"
