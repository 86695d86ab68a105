"""
Base class for job types.

Job types must be idempotent: a worker that crashes mid-run releases its
lock, and another worker will run the same job again.
"""

import logging
from typing import TYPE_CHECKING, Any

from pgjobs.jobs.registry import register_job
from pgjobs.types.job import JobRecord, decode_args

if TYPE_CHECKING:
    from pgjobs.db.repository import JobRepository

logger = logging.getLogger(__name__)


@register_job
class Job:
    """
    A queued unit of work.

    Subclasses implement run(), which receives the job's positional
    arguments. After run() returns, the job's row is deleted, unless run()
    already called destroy() itself.
    """

    def __init__(self, record: JobRecord, repository: "JobRepository | None" = None):
        """
        Args:
            record: The job's row.
            repository: Repository bound to the worker's connection. None for
                inline jobs and for handles returned by Enqueuer.queue().
        """
        self.record = record
        self.args = decode_args(record.args)
        self._repository = repository
        self._destroyed = False

    async def run(self, *args: Any) -> None:
        """
        Do the job's work.

        The base implementation does nothing, so a bare Job can be queued
        and worked in tests.
        """

    async def perform(self) -> None:
        """Run the job and delete its row unless run() already did."""
        await self.run(*self.args)
        if not self._destroyed:
            await self.destroy()

    async def destroy(self) -> None:
        """
        Delete the job's row.

        Inline jobs were never persisted and handles have no repository, so
        for those this only marks the job as destroyed.
        """
        if self._repository is not None and self.record.is_persisted:
            await self._repository.destroy_job(*self.record.key)
        self._destroyed = True

    @property
    def destroyed(self) -> bool:
        """Whether destroy() has been called."""
        return self._destroyed

    @property
    def job_id(self) -> int | None:
        return self.record.job_id

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(job_id={self.record.job_id}, "
            f"priority={self.record.priority}, args={self.args!r})"
        )
