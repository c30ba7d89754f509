"""
HTTP client for the marketplace's internal API.

Handlers don't touch the marketplace database or the email transport
directly. They ask the main application over HTTP, which owns the rentals,
reviews, password reset tokens and the configured email provider:

    POST /internal/emails                            {"kind", "args"}
    GET  /internal/rentals/{id}                      → rental JSON, 404 if gone
    GET  /internal/reviews?rentalId=&reviewerId=     → {"exists": bool}
    POST /internal/rentals/{id}/confirm-payment      {"amount", "paymentMethodId"}
    POST /internal/password-reset-tokens/cleanup     → {"deleted": n}
    GET  /internal/stats/daily?date=YYYY-MM-DD       → stats JSON

Any non-2xx response (other than the 404 on rental lookup) raises
httpx.HTTPStatusError, which the dispatcher treats as a handler failure and
retries.
"""

import logging
from datetime import date
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class MarketplaceClient:

    def __init__(self, http: httpx.AsyncClient):
        self._http = http

    @classmethod
    def from_url(cls, base_url: str, token: str = "", timeout: float = 10.0) -> "MarketplaceClient":
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        return cls(httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout))

    async def close(self) -> None:
        await self._http.aclose()

    # ── Email ───────────────────────────────────────────────────

    async def send_email(self, kind: str, args: Any) -> None:
        response = await self._http.post("/internal/emails", json={"kind": kind, "args": args})
        response.raise_for_status()
        logger.debug(f"Email '{kind}' handed to marketplace")

    # ── Rentals & reviews ───────────────────────────────────────

    async def get_rental(self, rental_id: str) -> Optional[dict]:
        response = await self._http.get(f"/internal/rentals/{rental_id}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    async def has_review(self, rental_id: str, reviewer_id: str) -> bool:
        response = await self._http.get(
            "/internal/reviews",
            params={"rentalId": rental_id, "reviewerId": reviewer_id},
        )
        response.raise_for_status()
        return bool(response.json().get("exists"))

    async def confirm_payment(
        self, rental_id: str, amount: Any = None, payment_method_id: Optional[str] = None
    ) -> None:
        response = await self._http.post(
            f"/internal/rentals/{rental_id}/confirm-payment",
            json={"amount": amount, "paymentMethodId": payment_method_id},
        )
        response.raise_for_status()

    # ── Housekeeping & reporting ────────────────────────────────

    async def delete_expired_tokens(self) -> int:
        response = await self._http.post("/internal/password-reset-tokens/cleanup")
        response.raise_for_status()
        return int(response.json().get("deleted", 0))

    async def get_daily_stats(self, day: date) -> dict:
        response = await self._http.get("/internal/stats/daily", params={"date": day.isoformat()})
        response.raise_for_status()
        return response.json()
