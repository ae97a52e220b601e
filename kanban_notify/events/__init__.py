"""Board event distribution.

Components:
- types.py: Event types and the in-flight BoardEvent model
- ledger.py: Durable, strictly ordered activity ledger with cursor replay
- bus.py: Per-board bounded broadcast channels for live subscribers
- gateway.py: Adapts a subscription into a long-lived SSE stream
"""

from kanban_notify.events.types import BoardEvent, EventType
from kanban_notify.events.ledger import (
    EventLedger,
    InvalidCursorError,
    LedgerAppendError,
)
from kanban_notify.events.bus import (
    EventBus,
    ScopeChannel,
    Subscription,
    SubscriptionClosed,
    SubscriptionLagged,
)
from kanban_notify.events.gateway import StreamGateway

__all__ = [
    # Types
    "BoardEvent",
    "EventType",
    # Ledger
    "EventLedger",
    "InvalidCursorError",
    "LedgerAppendError",
    # Bus
    "EventBus",
    "ScopeChannel",
    "Subscription",
    "SubscriptionClosed",
    "SubscriptionLagged",
    # Gateway
    "StreamGateway",
]
