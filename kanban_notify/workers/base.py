"""Base fan-out worker abstraction.

A worker receives one job (for example a published board event), loads the
items the job fans out to, and handles each item in isolation:

1. fetch_pending() - Load the items this job applies to
2. should_process() - Skip items that are not interested in the job
3. process_item() - Do the actual work
4. mark_completed() or mark_failed() - Record the outcome

One item failing never stops the others, and nothing raised by an item
escapes ``run()``.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlmodel import Session

logger = logging.getLogger(__name__)


class WorkerStatus(str, Enum):
    """Status of a worker run."""

    SUCCESS = "success"
    PARTIAL = "partial"  # Some items processed, some failed
    FAILED = "failed"
    NO_WORK = "no_work"


@dataclass
class WorkerResult:
    """Result of processing one job.

    Attributes:
        status: Overall status of the run
        processed_count: Number of items successfully processed
        failed_count: Number of items that failed
        skipped_count: Number of items filtered out by should_process()
        duration_ms: Time taken for the run
        errors: List of error details for failed items
        metadata: Additional worker-specific metadata
    """

    status: WorkerStatus
    processed_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    duration_ms: float = 0.0
    errors: list[dict[str, Any]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "status": self.status.value,
            "processed_count": self.processed_count,
            "failed_count": self.failed_count,
            "skipped_count": self.skipped_count,
            "duration_ms": self.duration_ms,
            "errors": self.errors,
            "metadata": self.metadata,
        }


# Generic types for fan-out items and the job being fanned out
T = TypeVar("T")
J = TypeVar("J")


class WorkerBase(ABC, Generic[T, J]):
    """Abstract base class for fan-out workers.

    Subclasses must implement all abstract methods.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        """Initialize the worker.

        Args:
            session_factory: Returns a new database session per run
        """
        self.session_factory = session_factory
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    @abstractmethod
    def worker_name(self) -> str:
        """Return the worker name for logging."""
        pass

    @abstractmethod
    def fetch_pending(self, session: Session, job: J) -> list[T]:
        """Load the items this job fans out to."""
        pass

    def should_process(self, item: T, job: J) -> bool:
        """Check whether an item wants this job. Defaults to every item."""
        return True

    @abstractmethod
    def process_item(self, session: Session, item: T, job: J) -> None:
        """Process a single item.

        Raises:
            Exception: If processing fails
        """
        pass

    @abstractmethod
    def mark_completed(self, session: Session, item: T) -> None:
        """Record a successful outcome for an item."""
        pass

    @abstractmethod
    def mark_failed(self, session: Session, item: T, error: str) -> None:
        """Record a failed outcome for an item."""
        pass

    @abstractmethod
    def get_item_id(self, item: T) -> UUID:
        """Get the unique identifier for an item."""
        pass

    def run(self, job: J) -> WorkerResult:
        """Fan one job out to every pending item.

        This is the main entry point for worker execution.

        Args:
            job: The job to process

        Returns:
            WorkerResult with processing statistics
        """
        start_time = datetime.now(timezone.utc)
        processed = 0
        failed = 0
        skipped = 0
        errors: list[dict[str, Any]] = []

        try:
            with self.session_factory() as session:
                items = self.fetch_pending(session, job)

                if not items:
                    self._logger.debug(f"[{self.worker_name}] No pending items")
                    return WorkerResult(
                        status=WorkerStatus.NO_WORK,
                        duration_ms=self._elapsed_ms(start_time),
                    )

                # Capture ids before any commit or rollback expires the items
                for item_id, item in [(self.get_item_id(i), i) for i in items]:
                    try:
                        if not self.should_process(item, job):
                            skipped += 1
                            continue

                        self.process_item(session, item, job)
                        self.mark_completed(session, item)
                        session.commit()
                        processed += 1

                    except Exception as e:
                        session.rollback()
                        failed += 1
                        error_msg = str(e)[:500]  # Truncate long errors
                        errors.append({"item_id": str(item_id), "error": error_msg})

                        self._logger.warning(
                            f"[{self.worker_name}] Failed to process item {item_id}",
                            extra={"item_id": str(item_id), "error": error_msg},
                        )
                        self._record_failure(session, item, item_id, error_msg)

        except Exception as e:
            self._logger.error(
                f"[{self.worker_name}] Worker run failed",
                extra={"error": str(e)},
                exc_info=True,
            )
            return WorkerResult(
                status=WorkerStatus.FAILED,
                processed_count=processed,
                failed_count=failed,
                skipped_count=skipped,
                duration_ms=self._elapsed_ms(start_time),
                errors=errors + [{"error": str(e)}],
            )

        # Determine overall status
        if failed == 0 and processed > 0:
            status = WorkerStatus.SUCCESS
        elif processed > 0 and failed > 0:
            status = WorkerStatus.PARTIAL
        elif failed > 0:
            status = WorkerStatus.FAILED
        else:
            status = WorkerStatus.NO_WORK

        result = WorkerResult(
            status=status,
            processed_count=processed,
            failed_count=failed,
            skipped_count=skipped,
            duration_ms=self._elapsed_ms(start_time),
            errors=errors,
        )

        self._logger.debug(
            f"[{self.worker_name}] Run complete",
            extra=result.to_dict(),
        )

        return result

    def _record_failure(self, session: Session, item: T, item_id: UUID, error: str) -> None:
        try:
            self.mark_failed(session, item, error)
            session.commit()
        except Exception:
            session.rollback()
            self._logger.error(
                f"[{self.worker_name}] Could not record failure for item {item_id}",
                extra={"item_id": str(item_id)},
                exc_info=True,
            )

    def _elapsed_ms(self, start: datetime) -> float:
        """Calculate elapsed time in milliseconds."""
        return (datetime.now(timezone.utc) - start).total_seconds() * 1000
