"""
Unit tests for the Enqueuer.

The database is replaced with in-memory fakes; tests/integration covers the
real insert path.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from pgjobs.constants import ExecutionMode
from pgjobs.errors import StoreNotConfiguredError, UnknownJobTypeError
from pgjobs.jobs import Enqueuer, Job, JobRegistry
from pgjobs.runtime import QueueConfig
from pgjobs.types.job import JobRecord


class FakeSession:
    def __init__(self):
        self.commits = 0

    async def __aenter__(self) -> "FakeSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None

    async def commit(self) -> None:
        self.commits += 1


class FakeRepository:
    """Stands in for JobRepository; remembers every insert."""

    inserts: list[tuple] = []

    def __init__(self, conn: Any):
        self.conn = conn

    async def insert_job(self, job_class, args, priority=None, run_at=None) -> JobRecord:
        FakeRepository.inserts.append((job_class, args, priority, run_at))
        return JobRecord(
            job_class=job_class,
            args=args,
            priority=priority if priority is not None else 1,
            run_at=run_at or datetime.now(timezone.utc),
            job_id=len(FakeRepository.inserts),
        )


@pytest.fixture
def calls() -> list[tuple]:
    return []


@pytest.fixture
def job_registry(calls: list[tuple]) -> JobRegistry:
    reg = JobRegistry()

    @reg.register
    class ArgsJob(Job):
        async def run(self, *args):
            calls.append(args)

    @reg.register(default_priority=3)
    class PrioritizedJob(Job):
        async def run(self, *args):
            calls.append(args)

    @reg.register(
        default_run_at=lambda: datetime.now(timezone.utc) + timedelta(seconds=60)
    )
    class ScheduledJob(Job):
        async def run(self, *args):
            calls.append(args)

    return reg


class TestInlineMode:
    """Tests for SYNC mode, where unscheduled jobs run inside queue()."""

    @pytest.fixture
    def config(self, job_registry: JobRegistry) -> QueueConfig:
        return QueueConfig(mode=ExecutionMode.SYNC, registry=job_registry)

    async def test_runs_immediately_without_store(
        self,
        config: QueueConfig,
        calls: list[tuple],
    ):
        """Unscheduled jobs run inline and need no engine."""
        job = await Enqueuer(config).queue("ArgsJob", 1, "two")

        assert calls == [(1, "two")]
        assert job.destroyed is True
        assert job.job_id is None
        assert job.record.priority == 1

    async def test_keyword_arguments_folded(
        self,
        config: QueueConfig,
        calls: list[tuple],
    ):
        """Keyword arguments arrive as one trailing dict; options are stripped."""
        await Enqueuer(config).queue("ArgsJob", 1, priority=4, name="x", count=2)

        assert calls == [(1, {"name": "x", "count": 2})]

    async def test_arguments_round_trip_through_json(
        self,
        config: QueueConfig,
        calls: list[tuple],
    ):
        """Inline jobs see JSON-normalized arguments, as workers would."""
        await Enqueuer(config).queue("ArgsJob", (1, 2), {"nested": (3,)})

        assert calls == [([1, 2], {"nested": [3]})]

    async def test_registered_default_priority(
        self,
        config: QueueConfig,
        calls: list[tuple],
    ):
        job = await Enqueuer(config).queue("PrioritizedJob")

        assert job.record.priority == 3
        assert calls == [()]

    async def test_scheduled_job_needs_store(
        self,
        config: QueueConfig,
        calls: list[tuple],
    ):
        """Jobs with a run_at are persisted even in SYNC mode."""
        with pytest.raises(StoreNotConfiguredError):
            await Enqueuer(config).queue(
                "ArgsJob", 1, run_at=datetime.now(timezone.utc) + timedelta(minutes=5)
            )

        assert calls == []

    async def test_default_run_at_counts_as_scheduled(
        self,
        config: QueueConfig,
        calls: list[tuple],
    ):
        with pytest.raises(StoreNotConfiguredError):
            await Enqueuer(config).queue("ScheduledJob")

        assert calls == []

    async def test_inline_errors_propagate(self, job_registry: JobRegistry):
        """A failing inline job raises to the caller."""

        @job_registry.register
        class Exploding(Job):
            async def run(self, *args):
                raise ValueError("inline failure")

        config = QueueConfig(mode=ExecutionMode.SYNC, registry=job_registry)

        with pytest.raises(ValueError, match="inline failure"):
            await Enqueuer(config).queue(Exploding)


class TestPersistentMode:
    """Tests for ASYNC mode with the repository faked out."""

    @pytest.fixture(autouse=True)
    def fake_repository(self, monkeypatch: pytest.MonkeyPatch) -> type[FakeRepository]:
        FakeRepository.inserts = []
        monkeypatch.setattr("pgjobs.jobs.enqueue.JobRepository", FakeRepository)
        return FakeRepository

    @pytest.fixture
    def session(self) -> FakeSession:
        return FakeSession()

    @pytest.fixture
    def wakes(self) -> list[bool]:
        return []

    @pytest.fixture
    def config(
        self,
        job_registry: JobRegistry,
        session: FakeSession,
        wakes: list[bool],
    ) -> QueueConfig:
        config = QueueConfig(registry=job_registry, wake=lambda: wakes.append(True))
        config._session_factory = lambda: session
        return config

    async def test_insert_with_defaults(
        self,
        config: QueueConfig,
        session: FakeSession,
        wakes: list[bool],
        calls: list[tuple],
    ):
        """Omitted priority and run_at are left to the column defaults."""
        job = await Enqueuer(config).queue("ArgsJob", 1, "two")

        assert FakeRepository.inserts == [("ArgsJob", [1, "two"], None, None)]
        assert session.commits == 1
        assert wakes == [True]
        assert calls == []
        assert job.job_id == 1
        assert job.destroyed is False

    async def test_insert_by_class(self, config: QueueConfig, job_registry: JobRegistry):
        job_class = job_registry.resolve("ArgsJob").job_class

        job = await Enqueuer(config).queue(job_class, a=1)

        assert FakeRepository.inserts == [("ArgsJob", [{"a": 1}], None, None)]
        assert isinstance(job, job_class)

    async def test_explicit_priority_overrides_default(self, config: QueueConfig):
        await Enqueuer(config).queue("PrioritizedJob", priority=4)

        assert FakeRepository.inserts[0][2] == 4

    async def test_scheduled_job_does_not_wake(
        self,
        config: QueueConfig,
        wakes: list[bool],
    ):
        """Only jobs due now poke a worker."""
        await Enqueuer(config).queue("ScheduledJob")

        (_, _, priority, run_at) = FakeRepository.inserts[0]
        assert priority is None
        assert run_at > datetime.now(timezone.utc) + timedelta(seconds=30)
        assert wakes == []

    async def test_failing_wake_is_swallowed(self, config: QueueConfig):
        """A broken wake callback does not fail the enqueue."""

        def broken_wake() -> None:
            raise RuntimeError("no pool")

        config.wake = broken_wake

        job = await Enqueuer(config).queue("ArgsJob")

        assert job.job_id == 1

    async def test_unknown_job_type(self, config: QueueConfig):
        with pytest.raises(UnknownJobTypeError):
            await Enqueuer(config).queue("NotRegistered")

        assert FakeRepository.inserts == []

    async def test_unregistered_class(self, config: QueueConfig):
        class Stray(Job):
            pass

        with pytest.raises(UnknownJobTypeError):
            await Enqueuer(config).queue(Stray)

    async def test_no_engine(self, job_registry: JobRegistry):
        """Persisting without an engine is a configuration error."""
        config = QueueConfig(registry=job_registry)

        with pytest.raises(StoreNotConfiguredError):
            await Enqueuer(config).queue("ArgsJob")
