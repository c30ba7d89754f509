"""
Dispatcher — the polling loop that turns due rows into running handlers.

This runs as an asyncio task inside the worker process (or inside the API
process when RUN_DISPATCHER_IN_API is set). Every poll interval it executes
one tick:

    1. Query the store for PENDING jobs with run_at <= now,
       oldest-due first, at most min(batch size, free slots)
    2. Claim each one with a conditional UPDATE (pending → running)
       → losing the race to another worker just skips the job
    3. Start executor.execute(job) as its own task and move on;
       the loop never waits for a handler before the next tick

         jobs table                 Dispatcher                  handlers
    ┌──────────────┐  find_due  ┌──────────────┐  create_task ┌───────────┐
    │ PENDING, due │───────────>│ claim (CAS)  │─────────────>│ execute() │
    └──────────────┘            └──────────────┘              └───────────┘

At most `concurrency` handlers run at once. Slots are counted before
claiming, so a job is only claimed when it can start right away.

Housekeeping runs on start and then every `housekeeping_interval` seconds:
- stale-claim recovery: RUNNING jobs whose claim is older than
  `stale_after` seconds (the worker holding them died) go back to PENDING,
  or to FAILED if they already used their last attempt
- retention: finished jobs older than `retention_days` are deleted
"""

import asyncio
import logging
import time
from datetime import timedelta
from typing import Optional

from scheduler.clock import Clock
from scheduler.errors import ClaimConflict
from scheduler.store import JobRecord, JobStore
from worker.executor import JobExecutor

logger = logging.getLogger(__name__)


class Dispatcher:

    def __init__(
        self,
        store: JobStore,
        executor: JobExecutor,
        *,
        poll_interval: float = 1.0,
        batch_size: int = 20,
        concurrency: int = 5,
        stale_after: float = 300.0,
        housekeeping_interval: float = 60.0,
        retention_days: Optional[float] = None,
        clock: Clock | None = None,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._store = store
        self._executor = executor
        self._poll_interval = poll_interval
        self._batch_size = batch_size
        self._concurrency = concurrency
        self._stale_after = stale_after
        self._housekeeping_interval = housekeeping_interval
        self._retention_days = retention_days
        self._clock = clock or Clock()

        self._in_flight: set[asyncio.Task] = set()
        self._loop_task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._last_housekeeping = 0.0

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> None:
        """Reconcile stale claims, then start the polling loop in a task."""
        if self.running:
            return
        self._stop_event = asyncio.Event()
        await self.housekeeping()
        self._loop_task = asyncio.create_task(self._run_loop(), name="job-dispatcher")
        logger.info(
            f"Dispatcher started (poll={self._poll_interval}s, "
            f"batch={self._batch_size}, concurrency={self._concurrency})"
        )

    async def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop polling, then wait for in-flight handlers to finish.

        Handlers still running after `timeout` seconds are cancelled. Their
        jobs stay RUNNING in the database and are picked up again by
        stale-claim recovery on the next start.
        """
        if self._stop_event is not None:
            self._stop_event.set()
        if self._loop_task is not None:
            await self._loop_task
            self._loop_task = None
        await self.drain(timeout)
        logger.info("Dispatcher stopped")

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for every in-flight handler task."""
        if not self._in_flight:
            return
        done, pending = await asyncio.wait(set(self._in_flight), timeout=timeout)
        if pending:
            logger.warning(
                f"{len(pending)} handler(s) still running after {timeout}s, cancelling; "
                f"their jobs will be recovered as stale"
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    # ── Loop ────────────────────────────────────────────────────

    async def _run_loop(self) -> None:
        """
        The main loop. Runs until stop() is called.

        An error in one tick (database briefly unreachable, ...) is logged
        and the loop carries on with the next tick.
        """
        while not self._stop_event.is_set():
            try:
                await self.tick()
                if time.monotonic() - self._last_housekeeping >= self._housekeeping_interval:
                    await self.housekeeping()
            except Exception as e:
                logger.error(f"Dispatcher loop error: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._poll_interval)
            except asyncio.TimeoutError:
                pass  # poll interval elapsed

    async def tick(self) -> int:
        """Claim due jobs and start their handlers. Returns how many were claimed."""
        free_slots = self._concurrency - len(self._in_flight)
        if free_slots <= 0:
            return 0

        due = await self._store.find_due(self._clock.now(), min(self._batch_size, free_slots))
        claimed = 0
        for job_id in due:
            job = await self._store.claim(job_id)
            if job is None:
                logger.debug(str(ClaimConflict(job_id)))
                continue
            claimed += 1
            self._launch(job)

        if claimed:
            logger.info(f"Claimed {claimed} due job(s)")
        return claimed

    async def run_once(self) -> int:
        """One tick, then wait until every handler it started has finished."""
        claimed = await self.tick()
        await self.drain()
        return claimed

    async def housekeeping(self) -> None:
        self._last_housekeeping = time.monotonic()
        now = self._clock.now()

        requeued, failed = await self._store.recover_stale(now - timedelta(seconds=self._stale_after))
        if requeued or failed:
            logger.warning(f"Recovered stale claims: {requeued} re-queued, {failed} failed")

        if self._retention_days:
            pruned = await self._store.prune(now - timedelta(days=self._retention_days))
            if pruned:
                logger.info(f"Pruned {pruned} finished jobs older than {self._retention_days} days")

    # ── Handler tasks ───────────────────────────────────────────

    def _launch(self, job: JobRecord) -> None:
        task = asyncio.create_task(self._executor.execute(job), name=f"job-{job.id}")
        self._in_flight.add(task)
        task.add_done_callback(self._on_job_done)

    def _on_job_done(self, task: asyncio.Task) -> None:
        """
        Fired when an execute() task finishes.

        Normal success/failure handling happens inside JobExecutor. An
        exception here means the outcome could not be written (e.g. the
        database went away); the job stays RUNNING until stale recovery.
        """
        self._in_flight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Unhandled executor exception in {task.get_name()}: {exc}", exc_info=exc)
