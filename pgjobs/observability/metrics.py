"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from pgjobs.constants import (
    METRIC_JOB_DURATION,
    METRIC_JOB_ERRORS,
    METRIC_JOBS_QUEUED,
    METRIC_JOBS_WORKED,
    METRIC_WORK_PASSES,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the job queue.

    Collects metrics for:
    - Job enqueues
    - Worked jobs and their duration
    - Job errors by kind (job vs store)
    - Worker passes by result
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.jobs_queued = Counter(
            METRIC_JOBS_QUEUED,
            "Total number of jobs inserted into the queue",
            ["job_class"],
            registry=self._registry,
        )

        self.jobs_worked = Counter(
            METRIC_JOBS_WORKED,
            "Total number of jobs run by workers or inline",
            ["job_class", "status"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job execution duration in seconds",
            ["job_class", "status"],
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )

        self.job_errors = Counter(
            METRIC_JOB_ERRORS,
            "Total number of errors raised while working jobs",
            ["job_class", "kind"],
            registry=self._registry,
        )

        self.work_passes = Counter(
            METRIC_WORK_PASSES,
            "Total number of worker passes by result",
            ["result"],
            registry=self._registry,
        )

    def record_job_queued(self, job_class: str) -> None:
        """Record a job insert."""
        self.jobs_queued.labels(job_class=job_class).inc()

    def record_job_worked(
        self,
        job_class: str,
        status: str,
        duration_seconds: float,
    ) -> None:
        """Record a finished job run."""
        self.jobs_worked.labels(job_class=job_class, status=status).inc()
        self.job_duration.labels(job_class=job_class, status=status).observe(
            duration_seconds
        )

    def record_job_error(self, job_class: str, kind: str) -> None:
        """Record a job error."""
        self.job_errors.labels(job_class=job_class, kind=kind).inc()

    def record_work_pass(self, result: str) -> None:
        """Record the result of one worker pass."""
        self.work_passes.labels(result=result).inc()

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
