"""
Failure handling for worked jobs.

A failed job is never deleted. Its error_count goes up, its run_at moves
into the future by a backoff delay, and the error text is kept in
last_error. It is retried indefinitely.
"""

import inspect
import logging
import traceback

from pgjobs.constants import BACKOFF_EXPONENT, BACKOFF_OFFSET_SECONDS, ErrorKind
from pgjobs.db.repository import JobRepository
from pgjobs.errors import is_store_error
from pgjobs.observability.metrics import MetricsCollector, get_metrics
from pgjobs.runtime import ErrorHandler
from pgjobs.types.job import JobRecord

logger = logging.getLogger(__name__)


def backoff_delay(error_count: int) -> int:
    """
    Seconds to wait before retrying a job that has failed error_count times.

    1 -> 4s, 2 -> 19s, 3 -> 84s, 4 -> 259s, ...
    """
    return error_count**BACKOFF_EXPONENT + BACKOFF_OFFSET_SECONDS


def format_error(error: BaseException) -> str:
    """Error message followed by its traceback, as stored in last_error."""
    trace = "".join(traceback.format_tb(error.__traceback__))
    return f"{error}\n{trace}".rstrip("\n")


class RetryPolicy:
    """
    Records job failures and decides whether the worker may continue.

    Nothing here raises: a failing update or error handler is logged and
    swallowed so the work loop keeps running.
    """

    def __init__(
        self,
        error_handler: ErrorHandler | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Args:
            error_handler: Optional hook called with each error.
            metrics: Metrics collector; defaults to the global one.
        """
        self._error_handler = error_handler
        self._metrics = metrics or get_metrics()

    async def handle(
        self,
        repository: JobRepository,
        job: JobRecord | None,
        error: Exception,
    ) -> bool:
        """
        Handle an error raised during a work pass.

        Args:
            repository: Repository on the worker's connection.
            job: The locked job, or None if the error came before a lock.
            error: The raised exception.

        Returns:
            True if it is an ordinary job error and the worker can look for
            more work right away; False for store errors, which call for a
            back-off.
        """
        kind = ErrorKind.STORE if is_store_error(error) else ErrorKind.JOB
        job_class = job.job_class if job is not None else "unknown"

        logger.error(
            f"Error while working job: {error}",
            exc_info=error,
            extra={
                "job_id": job.job_id if job is not None else None,
                "job_class": job_class,
                "error_kind": kind.value,
            },
        )
        self._metrics.record_job_error(job_class, kind)

        if job is not None:
            await self._record_failure(repository, job, error)

        await self._notify(error)

        return kind == ErrorKind.JOB

    async def _record_failure(
        self,
        repository: JobRepository,
        job: JobRecord,
        error: Exception,
    ) -> None:
        count = job.error_count + 1
        delay = backoff_delay(count)
        try:
            await repository.set_error(
                count,
                delay,
                format_error(error),
                job.priority,
                job.run_at,
                job.job_id,
            )
        except Exception:
            # The job stays as it was and will be retried once a worker locks
            # it again.
            logger.warning(
                "Could not record job failure",
                exc_info=True,
                extra={"job_id": job.job_id},
            )

    async def _notify(self, error: Exception) -> None:
        if self._error_handler is None:
            return
        try:
            result = self._error_handler(error)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.warning("Error handler raised", exc_info=True)
