"""Live distribution bus: per-board bounded broadcast channels.

Each board gets one ``ScopeChannel``, created lazily on first subscription.
A channel is a fixed-size ring of the most recent events plus a running
counter; every ``Subscription`` keeps its own read position, so subscribers
never consume each other's view. A subscriber whose position falls out of
the ring gets exactly one ``SubscriptionLagged`` for the overrun and then
continues from the oldest event still retained.

Publishing may happen from request threads or from the event loop; waiting
subscribers are woken with ``loop.call_soon_threadsafe``.

Ordering note: the bus knows nothing about the ledger. Callers going through
``record_and_publish`` commit the ledger row first; anything publishing
directly may be seen live before its row is visible to activity readers.
"""

import asyncio
import logging
import threading
import time
import weakref
from collections import deque
from typing import TYPE_CHECKING

from kanban_notify.config import get_settings
from kanban_notify.events.types import BoardEvent

if TYPE_CHECKING:
    from kanban_notify.webhooks.dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)


class SubscriptionLagged(Exception):
    """The subscriber fell behind and ``missed`` events were overwritten."""

    def __init__(self, missed: int) -> None:
        super().__init__(f"subscriber lagged behind by {missed} events")
        self.missed = missed


class SubscriptionClosed(Exception):
    """The subscription or its channel has been closed."""


class ScopeChannel:
    """Bounded multi-consumer broadcast buffer for one board."""

    def __init__(self, scope_id: str, capacity: int) -> None:
        self.scope_id = scope_id
        self.capacity = capacity
        self._buffer: deque[BoardEvent] = deque(maxlen=capacity)
        # Total events ever sent; position of the next event to be written
        self._next_position = 0
        self._lock = threading.Lock()
        self._subscribers: weakref.WeakSet[Subscription] = weakref.WeakSet()
        self._closed = False
        self._idle_since: float | None = time.monotonic()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def idle_for(self, now: float | None = None) -> float | None:
        """Seconds since the last subscriber left, or None while subscribed."""
        with self._lock:
            if self._subscribers:
                return None
            if self._idle_since is None:
                self._idle_since = time.monotonic()
            return (now or time.monotonic()) - self._idle_since

    def subscribe(self) -> "Subscription":
        with self._lock:
            if self._closed:
                raise SubscriptionClosed(f"channel for board {self.scope_id} is closed")
            subscription = Subscription(self, self._next_position)
            self._subscribers.add(subscription)
            self._idle_since = None
            return subscription

    def send(self, event: BoardEvent) -> int:
        """Write an event and wake subscribers. Returns the live receiver count."""
        with self._lock:
            if self._closed:
                return 0
            self._buffer.append(event)
            self._next_position += 1
            receivers = list(self._subscribers)

        for subscription in receivers:
            subscription._wake()
        return len(receivers)

    def close(self) -> None:
        """Close the channel; subscribers drain what is buffered, then stop."""
        with self._lock:
            self._closed = True
            receivers = list(self._subscribers)
        for subscription in receivers:
            subscription._wake()

    def _read(self, position: int) -> tuple[BoardEvent | None, int]:
        """Read the event at ``position``.

        Returns the event (or None when caught up) and the next position.
        Raises SubscriptionLagged if ``position`` was overwritten.
        """
        with self._lock:
            oldest = self._next_position - len(self._buffer)
            if position < oldest:
                raise _Overrun(oldest - position, oldest)
            if position >= self._next_position:
                if self._closed:
                    raise SubscriptionClosed(f"channel for board {self.scope_id} is closed")
                return None, position
            return self._buffer[position - oldest], position + 1

    def _detach(self, subscription: "Subscription") -> None:
        with self._lock:
            self._subscribers.discard(subscription)
            if not self._subscribers:
                self._idle_since = time.monotonic()


class _Overrun(Exception):
    def __init__(self, missed: int, resume_at: int) -> None:
        self.missed = missed
        self.resume_at = resume_at


class Subscription:
    """Independent read cursor over one board's channel.

    Use as a context manager (sync or async) or call ``close()``; dropping
    the last reference also detaches it, since channels hold subscribers
    weakly.
    """

    def __init__(self, channel: ScopeChannel, position: int) -> None:
        self._channel = channel
        self._position = position
        self._closed = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._ready: asyncio.Event | None = None

    @property
    def scope_id(self) -> str:
        return self._channel.scope_id

    @property
    def closed(self) -> bool:
        return self._closed

    def try_recv(self) -> BoardEvent | None:
        """Return the next event without waiting, or None when caught up.

        Raises:
            SubscriptionLagged: Once per overrun; the cursor then points at
                the oldest retained event.
            SubscriptionClosed: When the subscription or channel is closed
                and everything buffered has been read.
        """
        if self._closed:
            raise SubscriptionClosed("subscription is closed")
        try:
            event, self._position = self._channel._read(self._position)
        except _Overrun as overrun:
            self._position = overrun.resume_at
            raise SubscriptionLagged(overrun.missed) from None
        return event

    async def recv(self) -> BoardEvent:
        """Wait for the next event. Raises like ``try_recv``."""
        loop = asyncio.get_running_loop()
        if self._loop is not loop or self._ready is None:
            self._loop = loop
            self._ready = asyncio.Event()

        while True:
            self._ready.clear()
            event = self.try_recv()
            if event is not None:
                return event
            await self._ready.wait()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._channel._detach(self)
        self._wake()

    def _wake(self) -> None:
        loop, ready = self._loop, self._ready
        if loop is None or ready is None:
            return
        try:
            loop.call_soon_threadsafe(ready.set)
        except RuntimeError:
            # Event loop already closed; nobody is waiting any more
            pass

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()


class EventBus:
    """Process-wide registry of board channels.

    Constructed once at application startup. The registry lock is held only
    for lookup, insert and eviction, never while events are transmitted.
    """

    def __init__(
        self,
        dispatcher: "WebhookDispatcher | None" = None,
        capacity: int | None = None,
    ) -> None:
        settings = get_settings()
        self.capacity = capacity or settings.CHANNEL_CAPACITY
        self.dispatcher = dispatcher
        self._channels: dict[str, ScopeChannel] = {}
        self._lock = threading.Lock()

    @property
    def channel_count(self) -> int:
        with self._lock:
            return len(self._channels)

    def subscribe(self, scope_id: str) -> Subscription:
        """Open a fresh cursor on a board, creating its channel if needed."""
        with self._lock:
            channel = self._channels.get(scope_id)
            if channel is None or channel.closed:
                channel = ScopeChannel(scope_id, self.capacity)
                self._channels[scope_id] = channel
                logger.debug("Created board channel", extra={"scope_id": scope_id})
            # Attach inside the registry lock so eviction cannot race us
            return channel.subscribe()

    def publish(self, event: BoardEvent) -> int:
        """Fan an event out to live subscribers and hand it to the webhook dispatcher.

        Publishing to a board nobody ever subscribed to is a silent no-op for
        the live side. Never blocks on delivery and never raises for delivery
        problems. Returns the number of live subscriptions that received it.
        """
        with self._lock:
            channel = self._channels.get(event.scope_id)

        receivers = channel.send(event) if channel is not None else 0

        if self.dispatcher is not None:
            self.dispatcher.submit(event)

        logger.debug(
            "Event published",
            extra={
                "scope_id": event.scope_id,
                "event_type": event.type.value,
                "live_receivers": receivers,
            },
        )
        return receivers

    def evict_idle(self, grace_seconds: float | None = None) -> int:
        """Remove channels that have had no subscribers for ``grace_seconds``.

        Returns the number of evicted channels.
        """
        if grace_seconds is None:
            grace_seconds = get_settings().CHANNEL_IDLE_GRACE_SECONDS
        now = time.monotonic()
        evicted: list[ScopeChannel] = []

        with self._lock:
            for scope_id, channel in list(self._channels.items()):
                idle = channel.idle_for(now)
                if idle is not None and idle >= grace_seconds:
                    del self._channels[scope_id]
                    evicted.append(channel)

        for channel in evicted:
            channel.close()

        if evicted:
            logger.info(
                "Evicted idle board channels",
                extra={"evicted": len(evicted), "remaining": self.channel_count},
            )
        return len(evicted)

    async def run_eviction(
        self,
        interval_seconds: float | None = None,
        grace_seconds: float | None = None,
    ) -> None:
        """Evict idle channels periodically until cancelled."""
        settings = get_settings()
        interval = interval_seconds or settings.CHANNEL_EVICTION_INTERVAL_SECONDS
        while True:
            await asyncio.sleep(interval)
            try:
                self.evict_idle(grace_seconds)
            except Exception as e:
                logger.error(
                    "Channel eviction failed",
                    extra={"error": str(e)},
                    exc_info=True,
                )

    def close(self) -> None:
        """Close every channel, ending all live streams."""
        with self._lock:
            channels = list(self._channels.values())
            self._channels.clear()
        for channel in channels:
            channel.close()
        logger.info("Event bus closed", extra={"channels_closed": len(channels)})
