"""
Type definitions for the job queue.
Contains input/output type definitions, grouped by module.
"""

from pgjobs.types.api import (
    HealthResponse,
    JobStatsResponse,
    WorkerStatesResponse,
)
from pgjobs.types.job import (
    JobRecord,
    JobStats,
    WorkerState,
    decode_args,
    load_json,
)

__all__ = [
    # API types
    "HealthResponse",
    "JobStatsResponse",
    "WorkerStatesResponse",
    # Job types
    "JobRecord",
    "JobStats",
    "WorkerState",
    "decode_args",
    "load_json",
]
