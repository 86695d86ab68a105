"""
Job execution: turns a claimed row into a running job.
"""

import logging
import time

from pgjobs.constants import SPAN_RUN_JOB, JobOutcome
from pgjobs.db.repository import JobRepository
from pgjobs.jobs.base import Job
from pgjobs.jobs.registry import JobRegistry
from pgjobs.observability.metrics import MetricsCollector, get_metrics
from pgjobs.observability.tracing import get_tracer
from pgjobs.types.job import JobRecord

logger = logging.getLogger(__name__)


class JobRunner:
    """
    Runs a single job.

    Resolves the stored job_class through the registry, instantiates the
    job, awaits its run() with the decoded arguments and deletes the row on
    success. Errors propagate to the caller, which owns retry handling.
    """

    def __init__(self, registry: JobRegistry, metrics: MetricsCollector | None = None):
        self._registry = registry
        self._metrics = metrics or get_metrics()

    def build(self, record: JobRecord, repository: JobRepository | None = None) -> Job:
        """
        Instantiate the job for a record.

        Raises:
            UnknownJobTypeError: If record.job_class is not registered.
        """
        job_type = self._registry.resolve(record.job_class)
        return job_type.job_class(record, repository)

    async def run(self, record: JobRecord, repository: JobRepository | None = None) -> Job:
        """
        Run a job to completion.

        Args:
            record: The claimed (or inline) job row.
            repository: Repository on the worker's locked connection, or None
                for inline jobs.

        Returns:
            The job instance after it ran.
        """
        start_time = time.perf_counter()
        status = JobOutcome.FAILED
        try:
            job = self.build(record, repository)
            with get_tracer().start_as_current_span(SPAN_RUN_JOB) as span:
                span.set_attribute("job_class", record.job_class)
                if record.job_id is not None:
                    span.set_attribute("job_id", record.job_id)
                await job.perform()
            status = JobOutcome.SUCCEEDED
        finally:
            duration = time.perf_counter() - start_time
            self._metrics.record_job_worked(record.job_class, status, duration)

        logger.info(
            f"Worked job in {duration * 1000:.1f} ms: {job!r}",
            extra={
                "job_id": record.job_id,
                "job_class": record.job_class,
                "duration_ms": round(duration * 1000, 1),
            },
        )
        return job
