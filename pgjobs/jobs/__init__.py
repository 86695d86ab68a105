"""
Jobs module.
Contains the Job base class, the job type registry, execution and enqueueing.
"""

from pgjobs.jobs.base import Job
from pgjobs.jobs.enqueue import Enqueuer
from pgjobs.jobs.registry import JobRegistry, JobType, register_job, registry
from pgjobs.jobs.runner import JobRunner

__all__ = [
    "Job",
    "Enqueuer",
    "JobRegistry",
    "JobType",
    "JobRunner",
    "register_job",
    "registry",
]
