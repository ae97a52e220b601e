"""Stream gateway: one bus subscription to one long-lived SSE consumer.

The relay loop races three things and acts on whichever finishes first:
the next event from the subscription, the heartbeat timer, and the
consumer's disconnect signal. The subscription is closed as soon as the
loop ends, however it ends.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from kanban_notify.config import get_settings
from kanban_notify.events.bus import (
    EventBus,
    Subscription,
    SubscriptionClosed,
    SubscriptionLagged,
)
from kanban_notify.events.types import isoformat_utc

logger = logging.getLogger(__name__)

HEARTBEAT_EVENT = "heartbeat"
WARNING_EVENT = "warning"
EVENTS_LOST = "events_lost"

DisconnectCheck = Callable[[], Awaitable[bool]]


def sse_message(event: str, payload: Any) -> dict[str, str]:
    """Tag a JSON payload with an SSE event name for EventSourceResponse."""
    return {"event": event, "data": json.dumps(payload, separators=(",", ":"), default=str)}


class StreamGateway:
    """Adapts board subscriptions into SSE message streams."""

    def __init__(
        self,
        bus: EventBus,
        heartbeat_seconds: float | None = None,
        disconnect_poll_seconds: float = 1.0,
    ) -> None:
        self.bus = bus
        self.heartbeat_seconds = heartbeat_seconds or get_settings().STREAM_HEARTBEAT_SECONDS
        self.disconnect_poll_seconds = disconnect_poll_seconds

    async def stream(
        self,
        scope_id: str,
        is_disconnected: DisconnectCheck | None = None,
    ) -> AsyncIterator[dict[str, str]]:
        """Subscribe to a board and yield SSE messages until the consumer leaves."""
        subscription = self.bus.subscribe(scope_id)
        logger.info("Stream opened", extra={"scope_id": scope_id})
        relay = self.relay(subscription, is_disconnected)
        try:
            async for message in relay:
                yield message
        finally:
            await relay.aclose()
            subscription.close()

    async def relay(
        self,
        subscription: Subscription,
        is_disconnected: DisconnectCheck | None = None,
    ) -> AsyncIterator[dict[str, str]]:
        """Forward events from an existing subscription as SSE messages."""
        loop = asyncio.get_running_loop()
        if is_disconnected is None:
            disconnect_wait: asyncio.Future = loop.create_future()
        else:
            disconnect_wait = asyncio.ensure_future(self._watch_disconnect(is_disconnected))
        next_event: asyncio.Future | None = None

        try:
            while True:
                if next_event is None:
                    next_event = asyncio.ensure_future(subscription.recv())

                done, _ = await asyncio.wait(
                    {next_event, disconnect_wait},
                    timeout=self.heartbeat_seconds,
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if disconnect_wait in done:
                    logger.info("Stream consumer disconnected", extra={"scope_id": subscription.scope_id})
                    return

                if not done:
                    now = isoformat_utc(datetime.now(timezone.utc))
                    yield sse_message(HEARTBEAT_EVENT, {"ts": now})
                    continue

                finished, next_event = next_event, None
                try:
                    event = finished.result()
                except SubscriptionLagged as lag:
                    logger.warning(
                        "Stream consumer lagged, events dropped",
                        extra={"scope_id": subscription.scope_id, "missed": lag.missed},
                    )
                    yield sse_message(WARNING_EVENT, {"warning": EVENTS_LOST, "missed": lag.missed})
                    continue
                except SubscriptionClosed:
                    logger.info("Stream channel closed", extra={"scope_id": subscription.scope_id})
                    return

                yield sse_message(event.type.value, event.data)
        finally:
            for pending in (next_event, disconnect_wait):
                if pending is not None and not pending.done():
                    pending.cancel()
            subscription.close()

    async def _watch_disconnect(self, is_disconnected: DisconnectCheck) -> None:
        while not await is_disconnected():
            await asyncio.sleep(self.disconnect_poll_seconds)
