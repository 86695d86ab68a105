"""
Job repository for database operations.
Implements the data access patterns the queue is built on.
"""

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import (
    BigInteger,
    DateTime,
    Integer,
    Text,
    and_,
    delete,
    func,
    insert,
    select,
    text,
    update,
)
from sqlalchemy.dialects.postgresql import JSON
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession

from pgjobs.constants import JOBS_TABLE
from pgjobs.db.models import QueueJob
from pgjobs.types.job import JobRecord, JobStats, WorkerState, load_json

logger = logging.getLogger(__name__)

# Walks the eligible rows in (priority, run_at, job_id) order, trying a
# non-blocking advisory lock on each one, and stops at the first lock it gets.
# Candidate selection and lock attempts are interleaved row by row inside a
# single statement.
LOCK_JOB_SQL = text(f"""
    WITH RECURSIVE job AS (
        SELECT (j).*, pg_try_advisory_lock((j).job_id) AS locked
        FROM (
            SELECT j
            FROM {JOBS_TABLE} AS j
            WHERE run_at <= now()
            ORDER BY priority, run_at, job_id
            LIMIT 1
        ) AS t1
        UNION ALL (
            SELECT (j).*, pg_try_advisory_lock((j).job_id) AS locked
            FROM (
                SELECT (
                    SELECT j
                    FROM {JOBS_TABLE} AS j
                    WHERE run_at <= now()
                    AND (priority, run_at, job_id) > (job.priority, job.run_at, job.job_id)
                    ORDER BY priority, run_at, job_id
                    LIMIT 1
                ) AS j
                FROM job
                WHERE NOT job.locked
                LIMIT 1
            ) AS t1
        )
    )
    SELECT priority, run_at, job_id, job_class, args, error_count
    FROM job
    WHERE locked
    LIMIT 1
""").columns(
    priority=Integer,
    run_at=DateTime(timezone=True),
    job_id=BigInteger,
    job_class=Text,
    args=JSON,
    error_count=Integer,
)

# Advisory lock keys are split across classid (high 32 bits) and objid (low 32 bits).
JOB_STATS_SQL = text(f"""
    SELECT job_class,
           count(*)                    AS count,
           count(locks.job_id)         AS count_working,
           sum((error_count > 0)::int) AS count_errored,
           max(error_count)            AS highest_error_count,
           min(run_at)                 AS oldest_run_at
    FROM {JOBS_TABLE}
    LEFT JOIN (
        SELECT (classid::bigint << 32) + objid::bigint AS job_id
        FROM pg_locks
        WHERE locktype = 'advisory'
    ) locks USING (job_id)
    GROUP BY job_class
    ORDER BY count(*) DESC
""")

WORKER_STATES_SQL = text(f"""
    SELECT {JOBS_TABLE}.*,
           pg.pid                                   AS pg_backend_pid,
           pg.state                                 AS pg_state,
           pg.state_change                          AS pg_state_changed_at,
           pg.query                                 AS pg_last_query,
           pg.query_start                           AS pg_last_query_started_at,
           pg.xact_start                            AS pg_transaction_started_at,
           coalesce(pg.wait_event_type = 'Lock', false) AS pg_waiting_on_lock
    FROM {JOBS_TABLE}
    JOIN (
        SELECT (classid::bigint << 32) + objid::bigint AS job_id, pg_stat_activity.*
        FROM pg_locks
        JOIN pg_stat_activity USING (pid)
        WHERE locktype = 'advisory'
    ) pg USING (job_id)
""")


class JobRepository:
    """
    Repository for job database operations.

    Implements:
    - Job insertion with store-side defaults
    - Job claiming through an advisory-lock walk (lock_job)
    - Existence check, deletion and failure bookkeeping keyed by the full
      primary key
    - Advisory lock release
    - Read-only diagnostics

    Locking operations must run on the same connection for the whole claim,
    run, unlock span; pass a dedicated AsyncConnection for those.
    """

    def __init__(self, conn: AsyncConnection | AsyncSession):
        """
        Initialize the repository with a database connection or session.

        Args:
            conn: The async connection or session to execute on.
        """
        self._conn = conn

    async def insert_job(
        self,
        job_class: str,
        args: list[Any],
        priority: int | None = None,
        run_at: datetime | None = None,
    ) -> JobRecord:
        """
        Insert a new job.

        priority and run_at are only sent when given, so the column
        defaults (1 and now()) apply otherwise.

        Args:
            job_class: Registered name of the job type.
            args: Positional arguments for the job.
            priority: Optional priority; lower runs first.
            run_at: Optional earliest run time.

        Returns:
            The inserted job, with store-assigned values filled in.
        """
        values: dict[str, Any] = {"job_class": job_class, "args": args}
        if priority is not None:
            values["priority"] = priority
        if run_at is not None:
            values["run_at"] = run_at

        stmt = insert(QueueJob).values(**values).returning(*QueueJob.__table__.columns)
        result = await self._conn.execute(stmt)
        job = JobRecord.from_row(result.one())

        logger.info(
            "Queued job",
            extra={
                "job_id": job.job_id,
                "job_class": job_class,
                "priority": job.priority,
            },
        )
        return job

    async def lock_job(self) -> JobRecord | None:
        """
        Claim the first eligible job that no other session has locked.

        Never waits on another session's lock. The advisory lock taken
        here is held by this connection until unlock_job() is called or the
        connection closes.

        Returns:
            The locked job, or None if nothing eligible was lockable.
        """
        result = await self._conn.execute(LOCK_JOB_SQL)
        row = result.first()
        if row is None:
            return None

        job = JobRecord.from_row(row)
        logger.debug(
            "Locked job",
            extra={"job_id": job.job_id, "job_class": job.job_class},
        )
        return job

    async def check_job(self, priority: int, run_at: datetime, job_id: int) -> bool:
        """
        Check that a job still exists.

        A lock walk can lock a row whose worker finished and deleted it just
        after the walk's snapshot was taken; this catches that case.

        Returns:
            True if the row is still present.
        """
        stmt = select(QueueJob.job_id).where(self._key_filter(priority, run_at, job_id))
        result = await self._conn.execute(stmt)
        return result.first() is not None

    async def destroy_job(self, priority: int, run_at: datetime, job_id: int) -> bool:
        """
        Delete a job by its primary key.

        Deleting a row that is already gone is not an error.

        Returns:
            True if a row was deleted.
        """
        stmt = delete(QueueJob).where(self._key_filter(priority, run_at, job_id))
        result = await self._conn.execute(stmt)
        return result.rowcount > 0

    async def set_error(
        self,
        error_count: int,
        delay_seconds: int,
        message: str,
        priority: int,
        run_at: datetime,
        job_id: int,
    ) -> bool:
        """
        Record a failed attempt and push the job back by delay_seconds.

        Args:
            error_count: The new consecutive error count.
            delay_seconds: Seconds from now until the job is eligible again.
            message: Error message and traceback text.
            priority: Primary key part.
            run_at: Primary key part (the run_at the job was claimed with).
            job_id: Primary key part.

        Returns:
            True if the row was updated.
        """
        stmt = (
            update(QueueJob)
            .where(self._key_filter(priority, run_at, job_id))
            .values(
                error_count=error_count,
                run_at=func.now() + timedelta(seconds=delay_seconds),
                last_error=message,
            )
        )
        result = await self._conn.execute(stmt)
        updated = result.rowcount > 0

        if updated:
            logger.info(
                f"Job rescheduled in {delay_seconds}s",
                extra={"job_id": job_id, "error_count": error_count},
            )
        return updated

    async def unlock_job(self, job_id: int) -> bool:
        """
        Release this session's advisory lock on a job.

        Returns:
            True if the lock was held and released.
        """
        result = await self._conn.execute(select(func.pg_advisory_unlock(job_id)))
        return bool(result.scalar())

    async def job_stats(self) -> list[JobStats]:
        """
        Summarize the queue by job class.

        Returns:
            One entry per job class, largest first.
        """
        result = await self._conn.execute(JOB_STATS_SQL)
        return [JobStats.model_validate(dict(row._mapping)) for row in result.all()]

    async def worker_states(self) -> list[WorkerState]:
        """
        List jobs that are locked right now, with the state of the backend
        holding each lock.
        """
        result = await self._conn.execute(WORKER_STATES_SQL)
        states = []
        for row in result.all():
            data = dict(row._mapping)
            data["args"] = load_json(data.get("args"))
            states.append(WorkerState.model_validate(data))
        return states

    async def count_jobs(self) -> int:
        """Get the number of jobs in the queue, eligible or not."""
        result = await self._conn.execute(select(func.count()).select_from(QueueJob))
        return result.scalar() or 0

    @staticmethod
    def _key_filter(priority: int, run_at: datetime, job_id: int):
        return and_(
            QueueJob.priority == priority,
            QueueJob.run_at == run_at,
            QueueJob.job_id == job_id,
        )
