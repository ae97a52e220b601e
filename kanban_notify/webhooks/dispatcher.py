"""Asynchronous webhook dispatcher.

For each published board event:
1. Loads the board's targets that are active and below the failure threshold
2. Skips targets whose allowlist excludes the event type
3. Signs the JSON body with each target's secret and POSTs it once
4. Resets the failure counter on 2xx, increments it on anything else

Delivery is best-effort: no retries, no ordering across targets, and no
outcome ever reaches the request that caused the event. A target whose
failure counter reaches the threshold stays excluded until it is
reactivated. Events are handed over through a bounded queue consumed by a
fixed pool of worker threads, so publishers never wait on the network.

The threshold is checked when a worker loads targets, not at POST time.
With several workers, events loaded while a target sat just below the
threshold can still be sent, so a failing target may receive up to
``worker_count - 1`` requests past the threshold before the breaker holds.
The counter itself never loses an increment: it is updated in SQL.
"""

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

import httpx
from sqlalchemy import update
from sqlmodel import Session, select

from kanban_notify.config import get_settings
from kanban_notify.events.types import BoardEvent
from kanban_notify.models.webhook import WebhookTarget
from kanban_notify.webhooks.signing import build_headers, sign_payload
from kanban_notify.workers.base import WorkerBase, WorkerResult
from kanban_notify.workers.pool import WorkerPool

logger = logging.getLogger(__name__)


class WebhookDeliveryError(Exception):
    """A webhook target answered with a non-2xx status."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"webhook target responded with HTTP {status_code}")
        self.status_code = status_code


@dataclass(frozen=True)
class DeliveryJob:
    """One event prepared for delivery: the body is serialized exactly once."""

    event: BoardEvent
    body: bytes

    @classmethod
    def from_event(cls, event: BoardEvent, delivered_at: datetime | None = None) -> "DeliveryJob":
        payload = event.to_webhook_payload(delivered_at)
        body = json.dumps(payload, separators=(",", ":"), default=str).encode("utf-8")
        return cls(event=event, body=body)


def default_session_factory() -> Session:
    from kanban_notify.db.session import engine

    return Session(engine, expire_on_commit=False)


class WebhookDispatcher(WorkerBase[WebhookTarget, DeliveryJob]):
    """Signs and delivers board events to registered webhook targets."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = default_session_factory,
        client: httpx.Client | None = None,
        failure_threshold: int | None = None,
        timeout_seconds: float | None = None,
        worker_count: int | None = None,
        queue_size: int | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            session_factory: Returns a new database session per event
            client: HTTP client (created lazily when omitted)
            failure_threshold: Consecutive failures that open the breaker
            timeout_seconds: Hard timeout for one delivery
            worker_count: Number of delivery threads
            queue_size: Maximum events waiting for delivery
        """
        super().__init__(session_factory)
        settings = get_settings()
        self.failure_threshold = failure_threshold or settings.WEBHOOK_FAILURE_THRESHOLD
        self.timeout_seconds = timeout_seconds or settings.WEBHOOK_TIMEOUT_SECONDS
        self._client = client
        self._owns_client = client is None
        self.pool: WorkerPool[BoardEvent] = WorkerPool(
            "webhooks",
            self.deliver,
            worker_count=worker_count or settings.WEBHOOK_WORKER_COUNT,
            queue_size=queue_size or settings.WEBHOOK_QUEUE_SIZE,
        )

    @property
    def worker_name(self) -> str:
        return "WebhookDispatcher"

    @property
    def client(self) -> httpx.Client:
        """Lazy-initialize HTTP client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout_seconds)
        return self._client

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self.pool.start()

    def submit(self, event: BoardEvent) -> bool:
        """Queue an event for delivery without blocking the publisher."""
        return self.pool.submit(event)

    def stop(self, drain: bool = True, timeout: float | None = 30.0) -> None:
        """Stop delivery threads, by default after draining queued events."""
        self.pool.stop(drain=drain, timeout=timeout)
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def deliver(self, event: BoardEvent) -> WorkerResult:
        """Deliver one event to every eligible target of its board."""
        result = self.run(DeliveryJob.from_event(event))
        result.metadata.update({"scope_id": event.scope_id, "event_type": event.type.value})
        if result.failed_count:
            logger.info(
                "Webhook dispatch finished with failures",
                extra=result.to_dict(),
            )
        return result

    def fetch_pending(self, session: Session, job: DeliveryJob) -> list[WebhookTarget]:
        """Load active targets on the event's board whose breaker is closed."""
        targets = session.exec(
            select(WebhookTarget).where(
                WebhookTarget.scope_id == job.event.scope_id,
                WebhookTarget.active == True,  # noqa: E712
                WebhookTarget.failure_count < self.failure_threshold,
            )
        ).all()
        return list(targets)

    def should_process(self, item: WebhookTarget, job: DeliveryJob) -> bool:
        return item.wants(job.event.type.value)

    def process_item(self, session: Session, item: WebhookTarget, job: DeliveryJob) -> None:
        """POST the signed body once. Raises on timeout, transport error or non-2xx."""
        signature = sign_payload(item.secret, job.body)
        headers = build_headers(job.event.type.value, job.event.scope_id, signature)

        response = self.client.post(
            item.callback_url,
            content=job.body,
            headers=headers,
            timeout=self.timeout_seconds,
        )
        if not response.is_success:
            raise WebhookDeliveryError(response.status_code)

        logger.debug(
            "Webhook delivered",
            extra={
                "webhook_id": str(item.id),
                "event_type": job.event.type.value,
                "status_code": response.status_code,
            },
        )

    def mark_completed(self, session: Session, item: WebhookTarget) -> None:
        """Close the breaker: reset the failure counter."""
        session.execute(
            update(WebhookTarget)
            .where(WebhookTarget.id == item.id)
            .values(failure_count=0, last_attempt_at=datetime.now(timezone.utc))
        )

    def mark_failed(self, session: Session, item: WebhookTarget, error: str) -> None:
        """Increment the failure counter in the database, not in Python."""
        session.execute(
            update(WebhookTarget)
            .where(WebhookTarget.id == item.id)
            .values(
                failure_count=WebhookTarget.failure_count + 1,
                last_attempt_at=datetime.now(timezone.utc),
            )
        )

    def get_item_id(self, item: WebhookTarget) -> UUID:
        return item.id
