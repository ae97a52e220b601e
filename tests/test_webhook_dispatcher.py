"""Tests for webhook signing and delivery.

Webhook receivers are simulated with httpx.MockTransport; targets live in
an in-memory SQLite database.
"""

import hashlib
import hmac
import json
from collections.abc import Callable

import httpx
import pytest
from sqlmodel import Session

from kanban_notify.events.bus import EventBus
from kanban_notify.events.types import BoardEvent, EventType
from kanban_notify.models.webhook import WebhookTarget
from kanban_notify.services.webhooks import reactivate_webhook
from kanban_notify.webhooks.dispatcher import DeliveryJob, WebhookDispatcher
from kanban_notify.webhooks.signing import (
    EVENT_HEADER,
    SCOPE_HEADER,
    SIGNATURE_HEADER,
    sign_payload,
    verify_signature,
)
from kanban_notify.workers.base import WorkerStatus

SECRET = "s3cret-signing-key-0001"


class Receiver:
    """Records requests and answers with a configurable status."""

    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code
        self.requests: list[httpx.Request] = []
        self.raise_error: Exception | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raise_error is not None:
            raise self.raise_error
        return httpx.Response(self.status_code)

    def for_url(self, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if str(r.url) == url]


def _target(session: Session, url: str = "https://hooks.example.com/a", **kwargs) -> WebhookTarget:
    target = WebhookTarget(
        scope_id=kwargs.pop("scope_id", "board-1"),
        callback_url=url,
        secret=kwargs.pop("secret", SECRET),
        **kwargs,
    )
    session.add(target)
    session.commit()
    session.refresh(target)
    return target


def _event(type_: EventType = EventType.ITEM_CREATED, scope_id: str = "board-1") -> BoardEvent:
    return BoardEvent(type=type_, scope_id=scope_id, data={"title": "X"})


@pytest.fixture
def receiver() -> Receiver:
    return Receiver()


@pytest.fixture
def make_dispatcher(session_factory, receiver) -> Callable[..., WebhookDispatcher]:
    def make(**kwargs) -> WebhookDispatcher:
        client = httpx.Client(transport=httpx.MockTransport(receiver))
        return WebhookDispatcher(session_factory=session_factory, client=client, **kwargs)

    return make


# ============================================================================
# Signing Tests
# ============================================================================

class TestSigning:
    """Tests for HMAC signing helpers."""

    def test_sign_payload_matches_hmac_sha256(self):
        """Signatures are hex HMAC-SHA256 over the raw bytes."""
        body = b'{"type":"item.created"}'
        expected = hmac.new(SECRET.encode(), body, hashlib.sha256).hexdigest()

        assert sign_payload(SECRET, body) == expected

    def test_verify_signature(self):
        """verify_signature accepts the right header and rejects tampering."""
        body = b'{"a":1}'
        header = f"sha256={sign_payload(SECRET, body)}"

        assert verify_signature(SECRET, body, header)
        assert not verify_signature(SECRET, b'{"a":2}', header)
        assert not verify_signature("another-secret-value", body, header)
        assert not verify_signature(SECRET, body, sign_payload(SECRET, body))

    def test_delivery_job_body(self):
        """The webhook body carries type, board, data and delivery time."""
        job = DeliveryJob.from_event(_event(EventType.ITEM_MOVED))
        payload = json.loads(job.body)

        assert set(payload) == {"type", "scope_id", "data", "delivered_at"}
        assert payload["type"] == "item.moved"
        assert payload["scope_id"] == "board-1"
        assert payload["data"] == {"title": "X"}


# ============================================================================
# Delivery Tests
# ============================================================================

class TestDelivery:
    """Tests for WebhookDispatcher.deliver."""

    def test_signed_request_format(self, db_session, receiver, make_dispatcher):
        """Each POST carries JSON, a verifiable signature, type and board headers."""
        _target(db_session)
        dispatcher = make_dispatcher()

        result = dispatcher.deliver(_event())

        assert result.status == WorkerStatus.SUCCESS
        assert len(receiver.requests) == 1
        request = receiver.requests[0]
        assert request.method == "POST"
        assert request.headers["content-type"] == "application/json"
        assert request.headers[EVENT_HEADER] == "item.created"
        assert request.headers[SCOPE_HEADER] == "board-1"
        expected = hmac.new(SECRET.encode(), request.content, hashlib.sha256).hexdigest()
        assert request.headers[SIGNATURE_HEADER] == f"sha256={expected}"

    def test_each_target_signed_with_own_secret(self, db_session, receiver, make_dispatcher):
        """Two targets with different secrets each get a valid signature."""
        _target(db_session, "https://hooks.example.com/a", secret="first-secret-abcdef")
        _target(db_session, "https://hooks.example.com/b", secret="second-secret-abcdef")
        dispatcher = make_dispatcher()

        dispatcher.deliver(_event())

        [a] = receiver.for_url("https://hooks.example.com/a")
        [b] = receiver.for_url("https://hooks.example.com/b")
        assert verify_signature("first-secret-abcdef", a.content, a.headers[SIGNATURE_HEADER])
        assert verify_signature("second-secret-abcdef", b.content, b.headers[SIGNATURE_HEADER])

    def test_empty_allowlist_receives_every_type(self, db_session, receiver, make_dispatcher):
        """A target with no allowlist is attempted for all event types."""
        _target(db_session)
        dispatcher = make_dispatcher()

        for event_type in EventType:
            dispatcher.deliver(_event(event_type))

        assert [r.headers[EVENT_HEADER] for r in receiver.requests] == [t.value for t in EventType]

    def test_allowlist_filters_event_types(self, db_session, receiver, make_dispatcher):
        """Only allowlisted types are delivered."""
        _target(db_session, event_allowlist=["item.moved"])
        dispatcher = make_dispatcher()

        skipped = dispatcher.deliver(_event(EventType.ITEM_CREATED))
        dispatcher.deliver(_event(EventType.ITEM_MOVED))

        assert skipped.skipped_count == 1
        assert len(receiver.requests) == 1
        request = receiver.requests[0]
        assert request.headers[EVENT_HEADER] == "item.moved"
        assert verify_signature(SECRET, request.content, request.headers[SIGNATURE_HEADER])

    def test_other_boards_and_inactive_targets_skipped(self, db_session, receiver, make_dispatcher):
        """Only active targets of the event's board are loaded."""
        _target(db_session, "https://hooks.example.com/other", scope_id="board-2")
        _target(db_session, "https://hooks.example.com/off", active=False)
        dispatcher = make_dispatcher()

        result = dispatcher.deliver(_event())

        assert result.status == WorkerStatus.NO_WORK
        assert receiver.requests == []

    def test_success_resets_failure_count(self, db_session, receiver, make_dispatcher):
        """A 2xx response clears earlier failures and stamps the attempt."""
        target = _target(db_session, failure_count=4)
        dispatcher = make_dispatcher()

        dispatcher.deliver(_event())

        db_session.refresh(target)
        assert target.failure_count == 0
        assert target.last_attempt_at is not None

    @pytest.mark.parametrize(
        "error",
        [
            httpx.ConnectError("connection refused"),
            httpx.ReadTimeout("timed out"),
        ],
    )
    def test_transport_errors_count_as_failures(self, db_session, receiver, make_dispatcher, error):
        """Timeouts and connection errors increment the failure counter."""
        target = _target(db_session)
        receiver.raise_error = error
        dispatcher = make_dispatcher()

        result = dispatcher.deliver(_event())

        assert result.status == WorkerStatus.FAILED
        db_session.refresh(target)
        assert target.failure_count == 1
        assert target.last_attempt_at is not None

    def test_one_failing_target_does_not_block_others(self, db_session, make_dispatcher, session_factory):
        """A broken target fails alone; the healthy one is still delivered."""
        good = _target(db_session, "https://hooks.example.com/good")
        bad = _target(db_session, "https://hooks.example.com/bad")

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500 if request.url.path == "/bad" else 204)

        dispatcher = WebhookDispatcher(
            session_factory=session_factory,
            client=httpx.Client(transport=httpx.MockTransport(handler)),
        )

        result = dispatcher.deliver(_event())

        assert result.status == WorkerStatus.PARTIAL
        assert result.processed_count == 1
        assert result.failed_count == 1
        db_session.refresh(good)
        db_session.refresh(bad)
        assert good.failure_count == 0
        assert bad.failure_count == 1


# ============================================================================
# Circuit Breaker Tests
# ============================================================================

class TestCircuitBreaker:
    """Tests for the persistent failure threshold."""

    def test_breaker_opens_after_ten_failures(self, db_session, receiver, make_dispatcher):
        """The 11th eligible event makes no request and the count stays at 10."""
        target = _target(db_session)
        receiver.status_code = 503
        dispatcher = make_dispatcher()

        for _ in range(10):
            dispatcher.deliver(_event())
        assert len(receiver.requests) == 10

        result = dispatcher.deliver(_event())

        assert result.status == WorkerStatus.NO_WORK
        assert len(receiver.requests) == 10
        db_session.refresh(target)
        assert target.failure_count == 10

    def test_reactivation_closes_breaker(self, db_session, receiver, make_dispatcher):
        """After reactivation the target is attempted again."""
        target = _target(db_session, failure_count=10)
        dispatcher = make_dispatcher()

        dispatcher.deliver(_event())
        assert receiver.requests == []

        reactivate_webhook(db_session, target)
        dispatcher.deliver(_event())

        assert len(receiver.requests) == 1
        db_session.refresh(target)
        assert target.failure_count == 0

    def test_custom_threshold(self, db_session, receiver, make_dispatcher):
        """The threshold is configurable."""
        _target(db_session)
        receiver.status_code = 400
        dispatcher = make_dispatcher(failure_threshold=2)

        for _ in range(5):
            dispatcher.deliver(_event())

        assert len(receiver.requests) == 2


# ============================================================================
# Worker Pool Integration Tests
# ============================================================================

class TestDispatcherPool:
    """Tests for out-of-band delivery through the bus."""

    def test_publish_delivers_through_pool(self, db_session, receiver, make_dispatcher):
        """Published events are delivered by the pool and drained on stop."""
        _target(db_session)
        dispatcher = make_dispatcher(worker_count=1, queue_size=50)
        bus = EventBus(dispatcher=dispatcher)
        dispatcher.start()

        for event_type in (EventType.ITEM_CREATED, EventType.ITEM_MOVED, EventType.ITEM_DELETED):
            bus.publish(_event(event_type))
        dispatcher.stop(drain=True)

        assert [r.headers[EVENT_HEADER] for r in receiver.requests] == [
            "item.created",
            "item.moved",
            "item.deleted",
        ]

    def test_submit_before_start_is_dropped(self, make_dispatcher):
        """A dispatcher that is not running drops events instead of blocking."""
        dispatcher = make_dispatcher()

        assert dispatcher.submit(_event()) is False
        assert dispatcher.pool.stats.dropped == 1


# ============================================================================
# Concurrent Failure Tests
# ============================================================================

class TestConcurrentFailures:
    """Tests for failure accounting with several delivery threads."""

    def _dispatch_failures(self, file_engine, events: int, threshold: int) -> tuple[Receiver, int]:
        with Session(file_engine) as session:
            target_id = _target(session).id

        receiver = Receiver(status_code=500)
        dispatcher = WebhookDispatcher(
            session_factory=lambda: Session(file_engine, expire_on_commit=False),
            client=httpx.Client(transport=httpx.MockTransport(receiver)),
            failure_threshold=threshold,
            worker_count=4,
            queue_size=100,
        )
        dispatcher.start()
        for _ in range(events):
            assert dispatcher.submit(_event())
        dispatcher.stop(drain=True)

        with Session(file_engine) as session:
            return receiver, session.get(WebhookTarget, target_id).failure_count

    def test_concurrent_failures_are_counted_exactly(self, file_engine):
        """Every failed attempt from every worker lands in failure_count."""
        receiver, failure_count = self._dispatch_failures(file_engine, events=40, threshold=1000)

        assert len(receiver.requests) == 40
        assert failure_count == 40

    def test_breaker_overshoot_is_bounded_by_worker_count(self, file_engine):
        """In-flight workers may send a few requests past the threshold, never more."""
        receiver, failure_count = self._dispatch_failures(file_engine, events=30, threshold=10)

        assert 10 <= len(receiver.requests) <= 10 + 4 - 1
        assert failure_count == len(receiver.requests)
