"""
FastAPI application factory.

This file:
1. Creates the FastAPI app
2. Runs startup logic (create DB tables, connect to Redis, build the job runtime)
3. Registers the routers (jobs, health)
4. Runs shutdown logic (stop the runtime, close connections)

By default the API only enqueues; the worker process (worker/main.py) runs
the dispatcher. Set RUN_DISPATCHER_IN_API=true to run both in one process,
which is handy for a single-container deployment.

To run:  uvicorn api.main:app --host 0.0.0.0 --port 8000 --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from redis.asyncio import Redis as AsyncRedis

from config.settings import settings
from jobs.marketplace import MarketplaceClient
from jobs.registry import build_default_registry
from models.base import Base, create_engine_from_url, create_session_factory
from api.routers import health, jobs
from worker.runtime import JobRuntime

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Runs on startup (before yield) and shutdown (after yield).

    Startup:
    - Creates all DB tables if they don't exist (safe to run multiple times)
    - Connects to Redis and builds the marketplace client
    - Builds the JobRuntime; starts its dispatcher if RUN_DISPATCHER_IN_API

    Shutdown:
    - Stops the runtime (waits for in-flight handlers)
    - Closes the clients and disposes the DB engine
    """
    # ── Startup ─────────────────────────────────────────────────
    engine = create_engine_from_url(settings.database_url)
    logger.info("Creating database tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.state.session_factory = create_session_factory(engine)
    app.state.redis = AsyncRedis.from_url(settings.redis_url)
    client = MarketplaceClient.from_url(
        settings.MARKETPLACE_API_URL,
        settings.MARKETPLACE_API_TOKEN,
        settings.MARKETPLACE_TIMEOUT,
    )
    app.state.runtime = JobRuntime(
        app.state.session_factory,
        build_default_registry(client),
        redis_client=app.state.redis,
    )
    await app.state.runtime.start(run_dispatcher=settings.RUN_DISPATCHER_IN_API)
    logger.info("API ready")

    yield  # app is running and serving requests between startup and shutdown

    # ── Shutdown ────────────────────────────────────────────────
    await app.state.runtime.stop()
    await client.close()
    await app.state.redis.aclose()
    await engine.dispose()
    logger.info("API shut down")


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Invalid request bodies and query params are a 400, not FastAPI's default 422."""
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request data", "details": jsonable_encoder(exc.errors())},
    )


def create_app() -> FastAPI:
    """Factory function that builds and configures the FastAPI application."""
    app = FastAPI(
        title="Rental Jobs",
        description="Delayed and recurring background jobs for the rental marketplace",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    app.include_router(health.router)
    app.include_router(jobs.router)

    return app


# This is what uvicorn imports: `uvicorn api.main:app`
app = create_app()
