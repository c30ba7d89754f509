"""
Worker process entry point.

This is a SEPARATE process from the FastAPI API server. It runs the whole
job runtime on one asyncio event loop:

    1. Dispatcher — polls the jobs table for due PENDING jobs, claims
       them and runs their handlers (up to DISPATCH_CONCURRENCY at once)
    2. RecurringJobs — enqueues the daily cleanup / stats jobs on cron

The loop waits for Ctrl+C (SIGINT) or a kill signal (SIGTERM), then stops
polling and gives in-flight handlers SHUTDOWN_TIMEOUT seconds to finish.

To run:
    python -m worker.main
"""

import asyncio
import logging
import signal

from redis.asyncio import Redis

from config.settings import settings
from jobs.marketplace import MarketplaceClient
from jobs.registry import build_default_registry
from models.base import Base, create_engine_from_url, create_session_factory
from worker.runtime import JobRuntime

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def run() -> None:
    engine = create_engine_from_url(settings.database_url)

    # No-op when the API already created the tables
    logger.info("Ensuring database tables exist...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    redis_client = Redis.from_url(settings.redis_url)
    client = MarketplaceClient.from_url(
        settings.MARKETPLACE_API_URL,
        settings.MARKETPLACE_API_TOKEN,
        settings.MARKETPLACE_TIMEOUT,
    )
    runtime = JobRuntime(
        create_session_factory(engine),
        build_default_registry(client),
        redis_client=redis_client,
    )

    # ── Graceful shutdown on Ctrl+C or SIGTERM ──────────────────
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_event.set)

    await runtime.start()
    logger.info("Worker process running. Press Ctrl+C to stop.")

    try:
        await shutdown_event.wait()
        logger.info("Shutdown signal received, stopping...")
    finally:
        await runtime.stop()
        await client.close()
        await redis_client.aclose()
        await engine.dispose()

    logger.info("Worker process exited")


def main():
    asyncio.run(run())


if __name__ == "__main__":
    main()
