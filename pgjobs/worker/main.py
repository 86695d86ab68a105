"""
Worker process for executing jobs.

A Worker performs single passes: claim the next job, run it, clean up. The
WorkerPool drives several workers in a loop, idling between passes when
there is nothing to do.
"""

import asyncio
import logging
import os
import signal

from sqlalchemy.ext.asyncio import AsyncConnection

from pgjobs.config import get_settings
from pgjobs.constants import SPAN_LOCK_JOB
from pgjobs.db import close_db
from pgjobs.db.connection import checkout_connection
from pgjobs.db.repository import JobRepository
from pgjobs.jobs.runner import JobRunner
from pgjobs.observability.logging import bind_context, setup_logging
from pgjobs.observability.metrics import get_metrics, setup_metrics
from pgjobs.observability.tracing import get_tracer, instrument_sqlalchemy, setup_tracing
from pgjobs.runtime import QueueConfig, build_default_config
from pgjobs.types.job import JobRecord
from pgjobs.worker.retry import RetryPolicy

logger = logging.getLogger(__name__)


class Worker:
    """
    Works one job per pass.

    Each pass holds one dedicated connection: the advisory lock taken when
    claiming a job belongs to that connection's session, so the claim, the
    run, the delete or failure update, and the unlock all go over it.
    """

    def __init__(self, config: QueueConfig, worker_id: str | None = None):
        """
        Initialize the worker.

        Args:
            config: Queue configuration; must have an engine.
            worker_id: Identifier used in logs. Defaults to hostname + PID.
        """
        self.worker_id = worker_id or f"{os.uname().nodename}-{os.getpid()}"
        self._config = config
        self._metrics = get_metrics()
        self._runner = JobRunner(config.registry, self._metrics)
        self._retry = RetryPolicy(config.error_handler, self._metrics)

    async def work(self) -> bool:
        """
        Make one pass: claim, run, and clean up at most one job.

        Never raises.

        Returns:
            True if the caller should look for more work right away (a job
            was worked, failed with an ordinary error, or had already been
            worked by someone else). False if there was nothing to do or the
            database failed, in which case the caller should wait.
        """
        try:
            async with checkout_connection(self._config.require_engine()) as conn:
                return await self._work_on(conn)
        except Exception:
            logger.exception(
                "Worker could not reach the database",
                extra={"worker_id": self.worker_id},
            )
            self._metrics.record_work_pass("store_error")
            return False

    async def _work_on(self, conn: AsyncConnection) -> bool:
        repo = JobRepository(conn)
        job: JobRecord | None = None

        try:
            with get_tracer().start_as_current_span(SPAN_LOCK_JOB):
                job = await repo.lock_job()

            if job is None:
                logger.info("No jobs available...", extra={"worker_id": self.worker_id})
                self._metrics.record_work_pass("idle")
                return False

            # The lock walk can lock a row that another worker deleted right
            # after the walk took its snapshot.
            if not await repo.check_job(job.priority, job.run_at, job.job_id):
                logger.info(
                    "Locked job was already worked",
                    extra={"worker_id": self.worker_id, "job_id": job.job_id},
                )
                self._metrics.record_work_pass("vanished")
                return True

            await self._runner.run(job, repo)
            self._metrics.record_work_pass("worked")
            return True

        except Exception as error:
            keep_going = await self._retry.handle(repo, job, error)
            self._metrics.record_work_pass("job_error" if keep_going else "store_error")
            return keep_going

        finally:
            if job is not None:
                await self._unlock(conn, repo, job.job_id)

    async def _unlock(self, conn: AsyncConnection, repo: JobRepository, job_id: int) -> None:
        if conn.invalidated:
            # The connection is gone, and its session's locks went with it.
            return
        try:
            await repo.unlock_job(job_id)
        except Exception:
            logger.warning(
                "Could not release job lock; discarding connection",
                exc_info=True,
                extra={"worker_id": self.worker_id, "job_id": job_id},
            )
            # The session may still hold the lock. Closing it is the only
            # other way to release it.
            await conn.invalidate()


class WorkerPool:
    """
    Runs several workers concurrently in one process.

    Features:
    - One asyncio task per worker, each with its own connection per pass
    - Idle workers sleep until woken or until the wake interval passes
    - wake_worker() for enqueuers in the same process
    - Graceful shutdown on SIGTERM/SIGINT
    """

    def __init__(
        self,
        config: QueueConfig,
        worker_count: int | None = None,
        wake_interval: float | None = None,
    ):
        """
        Initialize the pool.

        Args:
            config: Queue configuration shared by all workers.
            worker_count: Number of concurrent workers.
            wake_interval: Seconds an idle worker waits before polling again.
        """
        settings = get_settings()

        self.worker_count = worker_count or settings.worker_count
        self.wake_interval = wake_interval or settings.worker_wake_interval_seconds

        base_id = f"{os.uname().nodename}-{os.getpid()}"
        self._workers = [
            Worker(config, worker_id=f"{base_id}-{index}")
            for index in range(self.worker_count)
        ]
        self._wake_events = [asyncio.Event() for _ in range(self.worker_count)]
        self._idle: set[int] = set()
        self.job_types = config.registry.names()
        self._running = False

    @property
    def workers(self) -> list[Worker]:
        return list(self._workers)

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Run the workers until stop() is called."""
        logger.info(
            "Worker pool starting",
            extra={
                "worker_count": self.worker_count,
                "wake_interval": self.wake_interval,
                "job_types": self.job_types,
            },
        )
        self._running = True

        tasks = [
            asyncio.create_task(self._work_loop(index))
            for index in range(self.worker_count)
        ]
        await asyncio.gather(*tasks)

        logger.info("Worker pool stopped")

    async def stop(self) -> None:
        """Stop the pool gracefully; jobs in progress run to completion."""
        logger.info("Worker pool stopping")
        self._running = False
        self.wake_all()

    def wake_worker(self) -> bool:
        """
        Wake one idle worker so it looks for work immediately.

        Returns:
            True if an idle worker was woken.
        """
        for index in sorted(self._idle):
            self._idle.discard(index)
            self._wake_events[index].set()
            return True
        return False

    def wake_all(self) -> None:
        """Wake every idle worker."""
        for index in list(self._idle):
            self._idle.discard(index)
            self._wake_events[index].set()

    async def _work_loop(self, index: int) -> None:
        worker = self._workers[index]
        wake_event = self._wake_events[index]
        bind_context(worker_id=worker.worker_id)

        while self._running:
            if await worker.work():
                continue

            wake_event.clear()
            self._idle.add(index)
            try:
                await asyncio.wait_for(wake_event.wait(), timeout=self.wake_interval)
            except TimeoutError:
                pass
            finally:
                self._idle.discard(index)


async def run_async(worker_count: int | None = None, wake_interval: float | None = None) -> None:
    """Run a worker pool until interrupted."""
    setup_logging()
    setup_metrics()
    setup_tracing()

    config = build_default_config()
    instrument_sqlalchemy(config.require_engine().sync_engine)
    pool = WorkerPool(config, worker_count=worker_count, wake_interval=wake_interval)
    # Jobs queued from this process wake the pool directly.
    config.wake = pool.wake_worker

    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(pool.stop())
        )

    try:
        await pool.start()
    finally:
        await close_db()


def run(worker_count: int | None = None, wake_interval: float | None = None) -> None:
    """Run the worker pool."""
    asyncio.run(run_async(worker_count=worker_count, wake_interval=wake_interval))


if __name__ == "__main__":
    run()
