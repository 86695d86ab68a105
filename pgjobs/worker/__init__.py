"""
Worker module.
Contains the job worker, the worker pool and failure handling.
"""

from pgjobs.worker.main import Worker, WorkerPool, run
from pgjobs.worker.retry import RetryPolicy, backoff_delay

__all__ = ["Worker", "WorkerPool", "RetryPolicy", "backoff_delay", "run"]
