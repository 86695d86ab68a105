"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class ExecutionMode(StrEnum):
    """
    How Enqueuer.queue() treats a new job.

    - ASYNC: persist the job for a worker to pick up later
    - SYNC: run the job inline in the caller, without touching the store,
      unless it is scheduled for a specific time
    """

    ASYNC = "async"
    SYNC = "sync"


class JobOutcome(StrEnum):
    """Outcome labels recorded for a worked job."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ErrorKind(StrEnum):
    """Classification of an error raised during a work pass."""

    JOB = "job"
    STORE = "store"


# Table
JOBS_TABLE = "queue_jobs"

# Store-side default priority, mirrored here for inline (sync) jobs
DEFAULT_PRIORITY = 1

# Backoff: delay_seconds = error_count ** BACKOFF_EXPONENT + BACKOFF_OFFSET_SECONDS
BACKOFF_EXPONENT = 4
BACKOFF_OFFSET_SECONDS = 3

# Worker pool defaults
DEFAULT_WORKER_COUNT = 4
DEFAULT_WAKE_INTERVAL_SECONDS = 5.0

# API constants
API_V1_PREFIX = "/v1"

# Metrics names
METRIC_JOBS_QUEUED = "pgjobs_jobs_queued_total"
METRIC_JOBS_WORKED = "pgjobs_jobs_worked_total"
METRIC_JOB_DURATION = "pgjobs_job_duration_seconds"
METRIC_JOB_ERRORS = "pgjobs_job_errors_total"
METRIC_WORK_PASSES = "pgjobs_work_passes_total"

# Trace span names
SPAN_ENQUEUE_JOB = "enqueue_job"
SPAN_LOCK_JOB = "lock_job"
SPAN_RUN_JOB = "run_job"
