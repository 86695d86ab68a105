"""
Job type registry.

Maps the job_class string stored with each job to the class that runs it,
along with that type's queueing defaults. Workers resolve stored names
through the registry, so every job type must be registered in the worker
process before it starts working.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, TypeVar

from pgjobs.errors import UnknownJobTypeError

if TYPE_CHECKING:
    from pgjobs.jobs.base import Job

logger = logging.getLogger(__name__)

JobClassT = TypeVar("JobClassT", bound=type)

# Zero-argument callable producing a default run_at
RunAtFactory = Callable[[], datetime]


@dataclass(frozen=True)
class JobType:
    """A registered job type and its queueing defaults."""

    name: str
    job_class: type["Job"]
    default_priority: int | None = None
    default_run_at: RunAtFactory | None = None


class JobRegistry:
    """
    Registry of job types keyed by their stored name.

    Example:
        registry = JobRegistry()

        @registry.register(default_priority=3)
        class SendEmail(Job):
            async def run(self, user_id):
                ...
    """

    def __init__(self) -> None:
        self._types: dict[str, JobType] = {}
        self._by_class: dict[type, JobType] = {}

    def register(
        self,
        job_class: JobClassT | None = None,
        *,
        name: str | None = None,
        default_priority: int | None = None,
        default_run_at: RunAtFactory | None = None,
    ) -> JobClassT | Callable[[JobClassT], JobClassT]:
        """
        Register a job class. Usable as a bare decorator or with options.

        Args:
            job_class: The class, when used as a bare decorator.
            name: Stored name; defaults to the class name.
            default_priority: Priority used when queue() is not given one.
            default_run_at: Callable producing the run_at used when queue()
                is not given one.

        Returns:
            The class itself, or a decorator.
        """

        def decorator(cls: JobClassT) -> JobClassT:
            job_name = name or cls.__name__
            existing = self._types.get(job_name)
            if existing is not None and existing.job_class is not cls:
                logger.warning(
                    f"Replacing job type registered as {job_name}",
                    extra={"job_class": job_name},
                )
                self._by_class.pop(existing.job_class, None)

            entry = JobType(
                name=job_name,
                job_class=cls,
                default_priority=default_priority,
                default_run_at=default_run_at,
            )
            self._types[job_name] = entry
            self._by_class[cls] = entry
            logger.debug(f"Registered job type: {job_name}")
            return cls

        if job_class is not None:
            return decorator(job_class)
        return decorator

    def resolve(self, name: str) -> JobType:
        """
        Resolve a stored job_class name.

        Raises:
            UnknownJobTypeError: If nothing is registered under the name.
        """
        entry = self._types.get(name)
        if entry is None:
            raise UnknownJobTypeError(name)
        return entry

    def lookup(self, job_type: "type[Job] | str") -> JobType:
        """
        Find the entry for a job class or a stored name.

        Raises:
            UnknownJobTypeError: If the class or name is not registered.
        """
        if isinstance(job_type, str):
            return self.resolve(job_type)
        entry = self._by_class.get(job_type)
        if entry is None:
            raise UnknownJobTypeError(getattr(job_type, "__name__", repr(job_type)))
        return entry

    def names(self) -> list[str]:
        """List all registered job names."""
        return list(self._types.keys())


# Process-wide registry used unless a QueueConfig supplies its own
registry = JobRegistry()
register_job = registry.register
