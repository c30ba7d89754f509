"""
Health check endpoint (no admin token).

Checks the database and Redis, and reports whether this process runs a
dispatcher. Load balancers and orchestrators use it to decide whether the
service should receive traffic, so any failed dependency turns it into a 503.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db, get_redis, get_runtime
from worker.runtime import JobRuntime

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
    runtime: JobRuntime = Depends(get_runtime),
) -> JSONResponse:
    body = {"status": "healthy", "database": "ok", "redis": "ok"}

    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning(f"Health check: database unreachable: {e}")
        body["database"] = "error"

    try:
        await redis.ping()
    except RedisError as e:
        logger.warning(f"Health check: Redis unreachable: {e}")
        body["redis"] = "error"

    body["dispatcher"] = "running" if runtime.dispatcher.running else "stopped"

    if body["database"] != "ok" or body["redis"] != "ok":
        body["status"] = "unhealthy"
        return JSONResponse(body, status_code=503)
    return JSONResponse(body)
