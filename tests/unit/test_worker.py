"""
Unit tests for Worker passes and the WorkerPool loop.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from pgjobs.jobs import Job, JobRegistry
from pgjobs.runtime import QueueConfig
from pgjobs.types.job import JobRecord
from pgjobs.worker.main import Worker, WorkerPool

RUN_AT = datetime(2024, 1, 1, tzinfo=timezone.utc)


def connection_error() -> OperationalError:
    return OperationalError("SELECT 1", {}, ConnectionRefusedError("refused"))


class FakeConnection:
    def __init__(self):
        self.invalidated = False
        self.invalidate_calls = 0

    async def invalidate(self):
        self.invalidate_calls += 1
        self.invalidated = True


class FakeStore:
    """In-memory stand-in for JobRepository on one connection."""

    def __init__(self):
        self.next_job: JobRecord | None = None
        self.exists = True
        self.lock_error: Exception | None = None
        self.unlock_error: Exception | None = None
        self.destroyed: list[tuple] = []
        self.errors: list[tuple] = []
        self.unlocked: list[int] = []

    async def lock_job(self) -> JobRecord | None:
        if self.lock_error is not None:
            raise self.lock_error
        return self.next_job

    async def check_job(self, priority, run_at, job_id) -> bool:
        return self.exists

    async def destroy_job(self, *key) -> bool:
        self.destroyed.append(key)
        return True

    async def set_error(self, *args) -> bool:
        self.errors.append(args)
        return True

    async def unlock_job(self, job_id: int) -> bool:
        if self.unlock_error is not None:
            raise self.unlock_error
        self.unlocked.append(job_id)
        return True


@pytest.fixture
def conn() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def store(monkeypatch: pytest.MonkeyPatch, conn: FakeConnection) -> FakeStore:
    store = FakeStore()

    @asynccontextmanager
    async def fake_checkout(engine: Any):
        yield conn

    monkeypatch.setattr("pgjobs.worker.main.checkout_connection", fake_checkout)
    monkeypatch.setattr("pgjobs.worker.main.JobRepository", lambda _conn: store)
    return store


@pytest.fixture
def ran() -> list[tuple]:
    return []


@pytest.fixture
def job_registry(ran: list[tuple], conn: FakeConnection) -> JobRegistry:
    reg = JobRegistry()

    @reg.register
    class Succeeding(Job):
        async def run(self, *args):
            ran.append(args)

    @reg.register
    class Failing(Job):
        async def run(self, *args):
            raise ValueError("job failed")

    @reg.register
    class SelfDestroying(Job):
        async def run(self, *args):
            await self.destroy()

    @reg.register
    class LosesConnection(Job):
        async def run(self, *args):
            conn.invalidated = True
            raise connection_error()

    @reg.register
    class CallsWebhook(Job):
        async def run(self, *args):
            raise ConnectionRefusedError("webhook host refused connection")

    return reg


@pytest.fixture
def handled() -> list[BaseException]:
    return []


@pytest.fixture
def worker(job_registry: JobRegistry, handled: list[BaseException]) -> Worker:
    config = QueueConfig(
        engine=object(),
        registry=job_registry,
        error_handler=handled.append,
    )
    return Worker(config, worker_id="test-worker")


def record(job_class: str, error_count: int = 0, args: Any = None) -> JobRecord:
    return JobRecord(
        job_class=job_class,
        args=[1, {"k": "v"}] if args is None else args,
        priority=1,
        run_at=RUN_AT,
        job_id=42,
        error_count=error_count,
    )


class TestWorkerPass:
    """Tests for Worker.work()."""

    async def test_idle_when_nothing_to_lock(self, worker: Worker, store: FakeStore):
        assert await worker.work() is False
        assert store.unlocked == []

    async def test_works_and_deletes_job(
        self,
        worker: Worker,
        store: FakeStore,
        ran: list[tuple],
    ):
        store.next_job = record("Succeeding")

        assert await worker.work() is True
        assert ran == [(1, {"k": "v"})]
        assert store.destroyed == [(1, RUN_AT, 42)]
        assert store.unlocked == [42]

    async def test_self_destroying_job_deleted_once(self, worker: Worker, store: FakeStore):
        store.next_job = record("SelfDestroying")

        assert await worker.work() is True
        assert store.destroyed == [(1, RUN_AT, 42)]

    async def test_vanished_job_not_run(
        self,
        worker: Worker,
        store: FakeStore,
        ran: list[tuple],
    ):
        """A locked row that was deleted meanwhile is skipped, and its lock released."""
        store.next_job = record("Succeeding")
        store.exists = False

        assert await worker.work() is True
        assert ran == []
        assert store.destroyed == []
        assert store.unlocked == [42]

    async def test_job_error_retried_later(
        self,
        worker: Worker,
        store: FakeStore,
        handled: list[BaseException],
    ):
        """A failing job is kept with a backoff and the worker keeps going."""
        store.next_job = record("Failing", error_count=1)

        assert await worker.work() is True
        assert store.destroyed == []
        assert len(store.errors) == 1
        count, delay, message = store.errors[0][:3]
        assert (count, delay) == (2, 19)
        assert message.startswith("job failed")
        assert [str(error) for error in handled] == ["job failed"]
        assert store.unlocked == [42]

    async def test_unknown_job_class_is_a_job_error(
        self,
        worker: Worker,
        store: FakeStore,
        handled: list[BaseException],
    ):
        store.next_job = record("Unregistered")

        assert await worker.work() is True
        assert store.errors[0][0] == 1
        assert "Unregistered" in store.errors[0][2]
        assert len(handled) == 1
        assert store.unlocked == [42]

    async def test_store_error_during_lock(
        self,
        worker: Worker,
        store: FakeStore,
        handled: list[BaseException],
    ):
        """A database error before any lock backs off without touching rows."""
        store.lock_error = connection_error()

        assert await worker.work() is False
        assert store.errors == []
        assert store.unlocked == []
        assert len(handled) == 1

    async def test_invalidated_connection_skips_unlock(
        self,
        worker: Worker,
        store: FakeStore,
    ):
        """Locks on a dead connection are gone already; unlock is not attempted."""
        store.next_job = record("LosesConnection")

        assert await worker.work() is False
        assert store.unlocked == []

    async def test_unlock_failure_is_swallowed(self, worker: Worker, store: FakeStore):
        store.next_job = record("Succeeding")
        store.unlock_error = connection_error()

        assert await worker.work() is True

    async def test_unlock_failure_discards_connection(
        self,
        worker: Worker,
        store: FakeStore,
        conn: FakeConnection,
    ):
        """A lock that could not be released goes away with its connection."""
        store.next_job = record("Succeeding")
        store.unlock_error = OperationalError(
            "SELECT pg_advisory_unlock($1)",
            {},
            Exception("canceling statement due to statement timeout"),
        )

        assert await worker.work() is True
        assert store.unlocked == []
        assert conn.invalidated is True
        assert conn.invalidate_calls == 1

    async def test_successful_unlock_keeps_connection(
        self,
        worker: Worker,
        store: FakeStore,
        conn: FakeConnection,
    ):
        store.next_job = record("Succeeding")

        assert await worker.work() is True
        assert conn.invalidate_calls == 0

    async def test_handler_network_error_is_a_job_error(
        self,
        worker: Worker,
        store: FakeStore,
        handled: list[BaseException],
    ):
        """A handler failing to reach another service is retried like any job error."""
        store.next_job = record("CallsWebhook")

        assert await worker.work() is True
        assert len(store.errors) == 1
        assert store.errors[0][0] == 1
        assert "webhook host refused connection" in store.errors[0][2]
        assert isinstance(handled[0], ConnectionRefusedError)
        assert store.unlocked == [42]

    async def test_non_array_args_is_a_job_error(
        self,
        worker: Worker,
        store: FakeStore,
        ran: list[tuple],
    ):
        """A JSON object payload is recorded as a failure, not run with its keys."""
        store.next_job = record("Succeeding", args={"a": 1})

        assert await worker.work() is True
        assert ran == []
        assert len(store.errors) == 1
        assert "JSON array" in store.errors[0][2]
        assert store.unlocked == [42]

    async def test_checkout_failure(
        self,
        monkeypatch: pytest.MonkeyPatch,
        worker: Worker,
    ):
        """An unreachable database makes the pass report no work."""

        @asynccontextmanager
        async def broken_checkout(engine: Any):
            raise connection_error()
            yield

        monkeypatch.setattr("pgjobs.worker.main.checkout_connection", broken_checkout)

        assert await worker.work() is False

    async def test_missing_engine(self, job_registry: JobRegistry):
        """Without an engine a pass fails quietly."""
        worker = Worker(QueueConfig(registry=job_registry), worker_id="no-engine")

        assert await worker.work() is False


class TestWorkerPool:
    """Tests for WorkerPool scheduling."""

    @pytest.fixture
    def pool(self, job_registry: JobRegistry) -> WorkerPool:
        return WorkerPool(
            QueueConfig(engine=object(), registry=job_registry),
            worker_count=2,
            wake_interval=30,
        )

    def test_builds_workers(self, pool: WorkerPool):
        assert len(pool.workers) == 2
        assert pool.workers[0].worker_id != pool.workers[1].worker_id
        assert pool.running is False

    def test_lists_job_types(self, pool: WorkerPool):
        assert set(pool.job_types) == {
            "Succeeding",
            "Failing",
            "SelfDestroying",
            "LosesConnection",
            "CallsWebhook",
        }

    def test_wake_without_idle_workers(self, pool: WorkerPool):
        assert pool.wake_worker() is False

    async def test_idle_worker_woken_by_wake(self, pool: WorkerPool):
        """An idle worker polls again as soon as it is woken."""
        passes: list[int] = []

        async def fake_work() -> bool:
            passes.append(1)
            return False

        for worker in pool.workers:
            worker.work = fake_work

        task = asyncio.create_task(pool.start())
        await asyncio.sleep(0.05)
        assert len(passes) == 2

        assert pool.wake_worker() is True
        await asyncio.sleep(0.05)
        assert len(passes) == 3

        await pool.stop()
        await asyncio.wait_for(task, timeout=1)
        assert pool.running is False

    async def test_busy_worker_keeps_polling(self, pool: WorkerPool):
        """Workers that find work do not wait between passes."""
        busy = AsyncMock(side_effect=[True, True, True, False])
        idle = AsyncMock(return_value=False)
        pool.workers[0].work = busy
        pool.workers[1].work = idle

        task = asyncio.create_task(pool.start())
        await asyncio.sleep(0.05)

        assert busy.await_count == 4
        assert idle.await_count == 1

        await pool.stop()
        await asyncio.wait_for(task, timeout=1)
