"""
Queue runtime configuration.

Enqueuers and workers receive a QueueConfig instead of reading global
state. build_default_config() assembles one from Settings at the outermost
composition point (CLI, application startup).
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from pgjobs.config import get_settings
from pgjobs.constants import ExecutionMode
from pgjobs.db.connection import get_engine, make_session_factory
from pgjobs.errors import StoreNotConfiguredError
from pgjobs.jobs.registry import JobRegistry, registry

# Called with the exception raised while working a job; may return an awaitable
ErrorHandler = Callable[[BaseException], Any]


@dataclass
class QueueConfig:
    """
    Everything an Enqueuer or Worker needs.

    Attributes:
        engine: Database engine. May be None for inline (SYNC) use.
        mode: ASYNC persists jobs; SYNC runs unscheduled jobs inline.
        error_handler: Optional hook invoked with every job error.
        registry: Job types that can be queued and worked.
        wake: Optional callback signalling that new work is available,
            normally WorkerPool.wake_worker.
    """

    engine: AsyncEngine | None = None
    mode: ExecutionMode = ExecutionMode.ASYNC
    error_handler: ErrorHandler | None = None
    registry: JobRegistry = field(default_factory=lambda: registry)
    wake: Callable[[], Any] | None = None
    _session_factory: async_sessionmaker[AsyncSession] | None = field(
        default=None, init=False, repr=False
    )

    def require_engine(self) -> AsyncEngine:
        """
        Get the engine for an operation that needs the store.

        Raises:
            StoreNotConfiguredError: If no engine was configured.
        """
        if self.engine is None:
            raise StoreNotConfiguredError(
                "This operation needs a database engine; set QueueConfig.engine"
            )
        return self.engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Session factory for short-lived pooled work such as enqueueing."""
        if self._session_factory is None:
            self._session_factory = make_session_factory(self.require_engine())
        return self._session_factory


def build_default_config(**overrides: Any) -> QueueConfig:
    """
    Build a QueueConfig from application settings.

    Args:
        **overrides: QueueConfig fields to set explicitly.

    Returns:
        QueueConfig: The assembled configuration.
    """
    settings = get_settings()
    values: dict[str, Any] = {"mode": settings.queue_mode}
    values.update(overrides)
    if "engine" not in values:
        values["engine"] = get_engine()
    return QueueConfig(**values)
