"""
API request and response type definitions.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from pgjobs.types.job import JobStats, WorkerState


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Overall service status")
    version: str
    database: str = Field(..., description="Database connection status")
    timestamp: datetime


class JobStatsResponse(BaseModel):
    """Queue summary grouped by job class."""

    stats: list[JobStats]
    total: int = Field(..., description="Total number of jobs in the queue")
    working: int = Field(..., description="Jobs currently locked by a worker")


class WorkerStatesResponse(BaseModel):
    """Jobs currently being worked, with their worker backend state."""

    workers: list[WorkerState]
