"""
Enqueuing jobs.
"""

import json
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from pgjobs.constants import DEFAULT_PRIORITY, SPAN_ENQUEUE_JOB, ExecutionMode
from pgjobs.db.repository import JobRepository
from pgjobs.jobs.base import Job
from pgjobs.jobs.runner import JobRunner
from pgjobs.observability.metrics import get_metrics
from pgjobs.observability.tracing import get_tracer
from pgjobs.types.job import JobRecord, decode_args

if TYPE_CHECKING:
    from pgjobs.runtime import QueueConfig

logger = logging.getLogger(__name__)

# Session.info keys
_PENDING_WAKES = "pgjobs.pending_wakes"
_WAKE_LISTENING = "pgjobs.wake_listening"


class Enqueuer:
    """
    Public entry point for producers.

    Without a session, each queue() call inserts and commits on its own
    pooled session. With a session, the insert joins the caller's
    transaction and the caller commits it.
    """

    def __init__(self, config: "QueueConfig", session: AsyncSession | None = None):
        """
        Args:
            config: Queue configuration.
            session: Optional caller-owned session to insert with.
        """
        self._config = config
        self._session = session
        self._metrics = get_metrics()

    async def queue(
        self,
        job_type: type[Job] | str,
        /,
        *args: Any,
        run_at: datetime | None = None,
        priority: int | None = None,
        **kwargs: Any,
    ) -> Job:
        """
        Queue a job.

        Extra keyword arguments are folded into the argument list as one
        trailing dict; run_at and priority are queueing options and are never
        passed to the job.

        Args:
            job_type: A registered Job subclass or its registered name.
            *args: Positional arguments for the job's run().
            run_at: Earliest time to run; defaults to the type's default_run_at,
                then to now.
            priority: Lower runs first; defaults to the type's
                default_priority, then to 1.
            **kwargs: Folded into the arguments as a trailing dict.

        Returns:
            The job. In SYNC mode an unscheduled job has already run.

        Raises:
            UnknownJobTypeError: If job_type is not registered.
            StoreNotConfiguredError: If the job must be persisted and no
                engine is configured.
        """
        entry = self._config.registry.lookup(job_type)

        job_args = list(args)
        if kwargs:
            job_args.append(kwargs)

        if run_at is None and entry.default_run_at is not None:
            run_at = entry.default_run_at()
        if priority is None:
            priority = entry.default_priority

        if self._config.mode == ExecutionMode.SYNC and run_at is None:
            return await self._run_inline(entry.name, job_args, priority)

        with get_tracer().start_as_current_span(SPAN_ENQUEUE_JOB) as span:
            span.set_attribute("job_class", entry.name)
            record = await self._insert(entry.name, job_args, priority, run_at)

        self._metrics.record_job_queued(entry.name)
        return entry.job_class(record)

    async def _insert(
        self,
        job_class: str,
        job_args: list[Any],
        priority: int | None,
        run_at: datetime | None,
    ) -> JobRecord:
        # Jobs due now may be picked up immediately, so poke an idle worker.
        wake = run_at is None

        if self._session is not None:
            repo = JobRepository(self._session)
            record = await repo.insert_job(job_class, job_args, priority, run_at)
            if wake:
                self._wake_after_commit(self._session)
            return record

        async with self._config.session_factory() as session:
            repo = JobRepository(session)
            record = await repo.insert_job(job_class, job_args, priority, run_at)
            await session.commit()

        if wake:
            self._wake()
        return record

    async def _run_inline(self, job_class: str, job_args: list[Any], priority: int | None) -> Job:
        # Round-trip through JSON so inline jobs see the same arguments a
        # worker would.
        record = JobRecord(
            job_class=job_class,
            args=decode_args(json.dumps(job_args)),
            priority=priority if priority is not None else DEFAULT_PRIORITY,
        )
        runner = JobRunner(self._config.registry, self._metrics)
        return await runner.run(record)

    def _wake_after_commit(self, session: AsyncSession) -> None:
        # One pending wake per job queued in the current transaction. Commit
        # delivers them; rollback discards them. The listeners are attached
        # once per session.
        if self._config.wake is None:
            return
        info = session.sync_session.info
        info[_PENDING_WAKES] = info.get(_PENDING_WAKES, 0) + 1
        if info.get(_WAKE_LISTENING):
            return
        info[_WAKE_LISTENING] = True

        def on_commit(sync_session: Session) -> None:
            for _ in range(sync_session.info.pop(_PENDING_WAKES, 0)):
                self._wake()

        def on_rollback(sync_session: Session) -> None:
            sync_session.info.pop(_PENDING_WAKES, None)

        event.listen(session.sync_session, "after_commit", on_commit)
        event.listen(session.sync_session, "after_rollback", on_rollback)

    def _wake(self) -> None:
        if self._config.wake is None:
            return
        try:
            self._config.wake()
        except Exception:
            logger.warning("Wake notification failed", exc_info=True)
