"""
Seed script — schedules a handful of sample jobs through the admin API.

Usage:
    ADMIN_API_TOKEN=... python -m scripts.seed_jobs

This creates:
- 1 welcome email, due right away
- 1 rental reminder and 1 review request for a demo rental, due in 10s
- 1 token cleanup
- 1 email without a "kind" (fails every attempt, demos retry + dead-letter list)

Run this after `docker compose up` with the worker running.
"""

import httpx

from config.settings import settings

BASE_URL = f"http://localhost:{settings.API_PORT}"


def seed():
    client = httpx.Client(
        base_url=BASE_URL,
        timeout=10.0,
        headers={"X-Admin-Token": settings.ADMIN_API_TOKEN},
    )

    jobs = [
        {"type": "send_email", "data": {"kind": "welcome", "args": {"userId": "demo-user"}}},
        {"type": "rental_reminder", "data": {"rentalId": "demo-rental"}, "delay": 10_000},
        {"type": "review_request", "data": {"rentalId": "demo-rental"}, "delay": 10_000},
        {"type": "cleanup_expired_tokens", "data": {}},
        {"type": "send_email", "data": {"args": {}}, "maxAttempts": 2},
    ]

    print(f"Scheduling {len(jobs)} jobs at {BASE_URL}...\n")

    for job in jobs:
        resp = client.post("/jobs/schedule", json=job)
        resp.raise_for_status()
        data = resp.json()
        print(f"  [{job['type']}] scheduled (id: {data['jobId'][:8]}...)")

    print("\nDone! The dispatcher picks the jobs up once they are due.")
    print(f"Check status:  curl -H 'X-Admin-Token: ...' {BASE_URL}/jobs/schedule")
    print(f"List jobs:     curl -H 'X-Admin-Token: ...' {BASE_URL}/jobs/")


if __name__ == "__main__":
    seed()
