"""
Schema management for the job table.

Production deployments normally run the Alembic migration; these helpers
back the `pgjobs create|drop|clear` commands and the test suite.
"""

import logging

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncEngine

from pgjobs.db.models import Base, QueueJob

logger = logging.getLogger(__name__)


async def create_tables(engine: AsyncEngine) -> None:
    """Create the job table if it does not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Created job table", extra={"table": QueueJob.__tablename__})


async def drop_tables(engine: AsyncEngine) -> None:
    """Drop the job table if it exists."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.info("Dropped job table", extra={"table": QueueJob.__tablename__})


async def clear_jobs(engine: AsyncEngine) -> int:
    """
    Delete every job in the queue.

    Returns:
        Number of jobs deleted.
    """
    async with engine.begin() as conn:
        result = await conn.execute(delete(QueueJob))
    count = result.rowcount
    logger.info(f"Cleared {count} jobs", extra={"table": QueueJob.__tablename__})
    return count
