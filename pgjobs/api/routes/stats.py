"""
Queue diagnostics routes.

Read-only views for operators. Producers and workers never go through the
API; they talk to the database directly.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pgjobs.constants import API_V1_PREFIX
from pgjobs.db import get_async_session
from pgjobs.db.repository import JobRepository
from pgjobs.types.api import JobStatsResponse, WorkerStatesResponse

router = APIRouter(prefix=f"{API_V1_PREFIX}/stats", tags=["Stats"])


@router.get(
    "/jobs",
    response_model=JobStatsResponse,
    summary="Queue summary",
    description="Job counts per job class, including how many are being worked right now.",
)
async def job_stats(
    session: AsyncSession = Depends(get_async_session),
) -> JobStatsResponse:
    """
    Summarize the queue by job class.

    Args:
        session: Database session.

    Returns:
        JobStatsResponse with per-class stats and totals.
    """
    stats = await JobRepository(session).job_stats()
    return JobStatsResponse(
        stats=stats,
        total=sum(s.count for s in stats),
        working=sum(s.count_working for s in stats),
    )


@router.get(
    "/workers",
    response_model=WorkerStatesResponse,
    summary="Worker states",
    description="Jobs currently locked by workers, with each worker's backend state.",
)
async def worker_states(
    session: AsyncSession = Depends(get_async_session),
) -> WorkerStatesResponse:
    """List jobs being worked and the state of the workers holding them."""
    workers = await JobRepository(session).worker_states()
    return WorkerStatesResponse(workers=workers)
