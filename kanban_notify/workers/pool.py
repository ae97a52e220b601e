"""Bounded work queue consumed by a fixed-size pool of worker threads.

Provides:
- Non-blocking submit with an explicit drop when the queue is full
- Per-job error isolation (a failing job never kills its thread)
- Graceful shutdown that drains queued jobs before stopping
- Aggregated counters for health reporting
"""

import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

J = TypeVar("J")

# Queued after the real jobs to tell a thread to exit
_STOP = object()


@dataclass
class PoolStats:
    """Counters for a worker pool.

    Attributes:
        submitted: Jobs accepted onto the queue
        processed: Jobs whose handler returned
        failed: Jobs whose handler raised
        dropped: Jobs rejected because the queue was full or the pool stopped
    """

    submitted: int = 0
    processed: int = 0
    failed: int = 0
    dropped: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "submitted": self.submitted,
            "processed": self.processed,
            "failed": self.failed,
            "dropped": self.dropped,
        }


class WorkerPool(Generic[J]):
    """Fixed-size thread pool over a bounded FIFO queue.

    Usage:
        pool = WorkerPool("webhooks", handler, worker_count=4, queue_size=1000)
        pool.start()
        pool.submit(job)
        pool.stop()  # drains queued jobs first
    """

    def __init__(
        self,
        name: str,
        handler: Callable[[J], Any],
        worker_count: int = 4,
        queue_size: int = 1000,
    ) -> None:
        self.name = name
        self.handler = handler
        self.worker_count = worker_count
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._threads: list[threading.Thread] = []
        self._stats = PoolStats()
        self._stats_lock = threading.Lock()
        self._accepting = False
        # Guards _accepting together with enqueueing so no job lands behind _STOP
        self._submit_lock = threading.Lock()
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    @property
    def queue_depth(self) -> int:
        return self._queue.qsize()

    @property
    def stats(self) -> PoolStats:
        with self._stats_lock:
            return PoolStats(**self._stats.to_dict())

    def start(self) -> None:
        """Start the worker threads."""
        if self.running:
            return
        with self._submit_lock:
            self._accepting = True
        self._threads = [
            threading.Thread(
                target=self._work,
                name=f"{self.name}-worker-{i}",
                daemon=True,
            )
            for i in range(self.worker_count)
        ]
        for thread in self._threads:
            thread.start()
        self._logger.info(
            f"[{self.name}] Worker pool started",
            extra={"worker_count": self.worker_count, "queue_size": self._queue.maxsize},
        )

    def submit(self, job: J) -> bool:
        """Queue a job without blocking.

        Returns:
            True if queued, False if the job was dropped
        """
        with self._submit_lock:
            if not self._accepting:
                self._count("dropped")
                self._logger.warning(f"[{self.name}] Pool not accepting jobs, dropping job")
                return False
            try:
                self._queue.put_nowait(job)
            except queue.Full:
                self._count("dropped")
                self._logger.warning(
                    f"[{self.name}] Queue full, dropping job",
                    extra={"queue_size": self._queue.maxsize},
                )
                return False
            self._count("submitted")
            return True

    def stop(self, drain: bool = True, timeout: float | None = 30.0) -> None:
        """Stop the pool.

        Args:
            drain: Process every queued job before stopping (default). When
                False, queued jobs are discarded.
            timeout: Seconds to wait for each thread to finish
        """
        with self._submit_lock:
            self._accepting = False
        if not drain:
            discarded = 0
            while True:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    break
                self._queue.task_done()
                discarded += 1
            if discarded:
                self._count("dropped", discarded)

        for _ in self._threads:
            self._queue.put(_STOP)
        for thread in self._threads:
            thread.join(timeout=timeout)

        self._logger.info(
            f"[{self.name}] Worker pool stopped",
            extra=self.stats.to_dict(),
        )
        self._threads = []

    def join(self) -> None:
        """Block until every queued job has been handled."""
        self._queue.join()

    def _work(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is _STOP:
                    return
                self.handler(job)
                self._count("processed")
            except Exception as e:
                self._count("failed")
                self._logger.error(
                    f"[{self.name}] Job handler failed",
                    extra={"error": str(e)},
                    exc_info=True,
                )
            finally:
                self._queue.task_done()

    def _count(self, counter: str, amount: int = 1) -> None:
        with self._stats_lock:
            setattr(self._stats, counter, getattr(self._stats, counter) + amount)


def configure_worker_logging(level: int | str = logging.INFO) -> None:
    """Configure logging for the service and its worker threads.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Set specific loggers
    logging.getLogger("kanban_notify").setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
