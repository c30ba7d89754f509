"""
FastAPI dependency injection.

Everything an endpoint needs is built once in the lifespan (api/main.py)
and stored on app.state. The functions here hand those objects to
endpoints:

    scheduler: JobScheduler = Depends(get_scheduler)

Tests replace them through app.dependency_overrides, so no endpoint ever
reads app.state directly.
"""

import secrets
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, HTTPException, Request
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from scheduler.service import JobScheduler
from worker.runtime import JobRuntime


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yields an async database session, auto-closes when the request ends."""
    async with request.app.state.session_factory() as session:
        yield session


async def get_redis(request: Request) -> Redis:
    """Returns the Redis client stored on the app during startup."""
    return request.app.state.redis


async def get_runtime(request: Request) -> JobRuntime:
    return request.app.state.runtime


async def get_scheduler(runtime: JobRuntime = Depends(get_runtime)) -> JobScheduler:
    return runtime.scheduler


async def require_admin(x_admin_token: Optional[str] = Header(default=None)) -> None:
    """
    Check the X-Admin-Token header.

    Missing → 401, present but wrong → 403.
    """
    if not x_admin_token:
        raise HTTPException(status_code=401, detail="Admin token required")
    if not secrets.compare_digest(x_admin_token, settings.ADMIN_API_TOKEN):
        raise HTTPException(status_code=403, detail="Invalid admin token")
