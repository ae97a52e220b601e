"""Background worker module.

Provides in-process background worker functionality:
- WorkerBase: fan-out of one job to many items with failure isolation
- WorkerPool: bounded queue consumed by a fixed-size thread pool
"""

from kanban_notify.workers.base import (
    WorkerBase,
    WorkerResult,
    WorkerStatus,
)
from kanban_notify.workers.pool import (
    PoolStats,
    WorkerPool,
    configure_worker_logging,
)

__all__ = [
    # Base classes
    "WorkerBase",
    "WorkerResult",
    "WorkerStatus",
    # Pool
    "WorkerPool",
    "PoolStats",
    "configure_worker_logging",
]
