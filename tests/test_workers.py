"""Tests for background worker building blocks.

Tests cover:
- WorkerResult serialization
- WorkerBase fan-out status and failure isolation
- WorkerPool draining, backpressure, error isolation and submit/stop races
"""

import threading
from unittest.mock import Mock
from uuid import UUID, uuid4

from kanban_notify.workers.base import WorkerBase, WorkerResult, WorkerStatus
from kanban_notify.workers.pool import WorkerPool


# ============================================================================
# WorkerResult Tests
# ============================================================================

class TestWorkerResult:
    """Tests for WorkerResult dataclass."""

    def test_worker_result_defaults(self):
        """WorkerResult initializes with correct defaults."""
        result = WorkerResult(status=WorkerStatus.NO_WORK)

        assert result.processed_count == 0
        assert result.failed_count == 0
        assert result.skipped_count == 0
        assert result.errors == []

    def test_worker_result_to_dict(self):
        """WorkerResult converts to dict correctly."""
        result = WorkerResult(
            status=WorkerStatus.PARTIAL,
            processed_count=3,
            failed_count=1,
            skipped_count=2,
        )

        d = result.to_dict()

        assert d["status"] == "partial"
        assert d["processed_count"] == 3
        assert d["failed_count"] == 1
        assert d["skipped_count"] == 2


# ============================================================================
# WorkerBase Tests
# ============================================================================

class _FakeSession:
    def __init__(self) -> None:
        self.commits = 0
        self.rollbacks = 0

    def __enter__(self) -> "_FakeSession":
        return self

    def __exit__(self, *exc_info) -> None:
        pass

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1


class _Item:
    def __init__(self, name: str, fail: bool = False, wanted: bool = True) -> None:
        self.id = uuid4()
        self.name = name
        self.fail = fail
        self.wanted = wanted


class _RecordingWorker(WorkerBase[_Item, str]):
    def __init__(self, items: list[_Item]) -> None:
        self.session = _FakeSession()
        super().__init__(lambda: self.session)
        self.items = items
        self.completed: list[str] = []
        self.failed: list[str] = []

    @property
    def worker_name(self) -> str:
        return "RecordingWorker"

    def fetch_pending(self, session, job: str) -> list[_Item]:
        return self.items

    def should_process(self, item: _Item, job: str) -> bool:
        return item.wanted

    def process_item(self, session, item: _Item, job: str) -> None:
        if item.fail:
            raise RuntimeError(f"{item.name} exploded")

    def mark_completed(self, session, item: _Item) -> None:
        self.completed.append(item.name)

    def mark_failed(self, session, item: _Item, error: str) -> None:
        self.failed.append(item.name)

    def get_item_id(self, item: _Item) -> UUID:
        return item.id


class TestWorkerBase:
    """Tests for the fan-out lifecycle."""

    def test_no_items_is_no_work(self):
        """Nothing to fan out to reports NO_WORK."""
        result = _RecordingWorker([]).run("job")

        assert result.status == WorkerStatus.NO_WORK

    def test_failure_is_isolated(self):
        """A failing item is recorded and the rest still run."""
        worker = _RecordingWorker([_Item("a"), _Item("b", fail=True), _Item("c")])

        result = worker.run("job")

        assert result.status == WorkerStatus.PARTIAL
        assert worker.completed == ["a", "c"]
        assert worker.failed == ["b"]
        assert result.errors[0]["error"] == "b exploded"
        assert worker.session.rollbacks == 1

    def test_skipped_items_are_counted(self):
        """Items that do not want the job are skipped, not failed."""
        worker = _RecordingWorker([_Item("a", wanted=False), _Item("b")])

        result = worker.run("job")

        assert result.status == WorkerStatus.SUCCESS
        assert result.skipped_count == 1
        assert worker.completed == ["b"]

    def test_fetch_failure_reports_failed(self):
        """An error loading items is contained in the result."""
        worker = _RecordingWorker([])
        worker.fetch_pending = Mock(side_effect=RuntimeError("db down"))

        result = worker.run("job")

        assert result.status == WorkerStatus.FAILED
        assert result.errors == [{"error": "db down"}]


# ============================================================================
# WorkerPool Tests
# ============================================================================

class TestWorkerPool:
    """Tests for the bounded worker pool."""

    def test_stop_drains_queued_jobs(self):
        """Every accepted job is handled before stop() returns."""
        handled: list[int] = []
        lock = threading.Lock()

        def handler(job: int) -> None:
            with lock:
                handled.append(job)

        pool = WorkerPool("test", handler, worker_count=3, queue_size=100)
        pool.start()
        for n in range(40):
            assert pool.submit(n)
        pool.stop(drain=True)

        assert sorted(handled) == list(range(40))
        assert pool.stats.processed == 40
        assert not pool.running

    def test_full_queue_drops_without_blocking(self):
        """Submitting to a full queue returns False immediately."""
        release = threading.Event()
        started = threading.Event()

        def handler(job: int) -> None:
            started.set()
            release.wait(timeout=5)

        pool = WorkerPool("test", handler, worker_count=1, queue_size=2)
        pool.start()
        assert pool.submit(0)
        started.wait(timeout=5)
        assert pool.submit(1)
        assert pool.submit(2)

        assert pool.submit(3) is False
        assert pool.stats.dropped == 1

        release.set()
        pool.stop(drain=True)
        assert pool.stats.processed == 3

    def test_handler_errors_do_not_kill_workers(self):
        """A raising handler is counted and the thread keeps going."""
        handled: list[int] = []

        def handler(job: int) -> None:
            if job == 0:
                raise ValueError("bad job")
            handled.append(job)

        pool = WorkerPool("test", handler, worker_count=1, queue_size=10)
        pool.start()
        pool.submit(0)
        pool.submit(1)
        pool.stop(drain=True)

        assert handled == [1]
        assert pool.stats.failed == 1
        assert pool.stats.processed == 1

    def test_submit_after_stop_is_dropped(self):
        """A stopped pool rejects new jobs."""
        pool = WorkerPool("test", lambda job: None, worker_count=1)
        pool.start()
        pool.stop()

        assert pool.submit("late") is False

    def test_stop_without_drain_discards_queue(self):
        """stop(drain=False) throws away jobs that have not started."""
        release = threading.Event()
        started = threading.Event()
        handled: list[int] = []

        def handler(job: int) -> None:
            started.set()
            release.wait(timeout=5)
            handled.append(job)

        pool = WorkerPool("test", handler, worker_count=1, queue_size=10)
        pool.start()
        pool.submit(0)
        started.wait(timeout=5)
        for n in range(1, 5):
            pool.submit(n)

        threading.Timer(0.1, release.set).start()
        pool.stop(drain=False)

        assert handled == [0]
        assert pool.stats.dropped == 4

    def test_jobs_submitted_during_stop_are_processed_or_dropped(self):
        """A job racing stop() is either handled before shutdown or rejected, never stranded."""
        pool = WorkerPool("test", lambda job: None, worker_count=2, queue_size=10_000)
        pool.start()
        barrier = threading.Barrier(5)

        def submitter() -> None:
            barrier.wait()
            for n in range(500):
                pool.submit(n)

        threads = [threading.Thread(target=submitter) for _ in range(4)]
        for thread in threads:
            thread.start()
        barrier.wait()
        pool.stop(drain=True)
        for thread in threads:
            thread.join(timeout=10)

        stats = pool.stats
        assert stats.submitted + stats.dropped == 2000
        assert stats.processed == stats.submitted
        assert pool.queue_depth == 0
