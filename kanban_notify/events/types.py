"""Event type definitions for board change notifications."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Closed set of work item event types emitted by task mutations."""

    ITEM_CREATED = "item.created"
    ITEM_UPDATED = "item.updated"
    ITEM_DELETED = "item.deleted"
    ITEM_CLAIMED = "item.claimed"
    ITEM_RELEASED = "item.released"
    ITEM_MOVED = "item.moved"
    ITEM_REORDERED = "item.reordered"
    ITEM_COMMENTED = "item.commented"
    ITEM_ARCHIVED = "item.archived"
    ITEM_UNARCHIVED = "item.unarchived"
    ITEM_DEPENDENCY_ADDED = "item.dependency.added"
    ITEM_DEPENDENCY_REMOVED = "item.dependency.removed"


class BoardEvent(BaseModel):
    """An in-flight board event.

    Produced once per publish call and fanned out to live subscribers and
    webhook targets. It carries no identity of its own; the durable identity
    lives on the matching ledger record.
    """

    type: EventType = Field(description="Event type")
    scope_id: str = Field(description="Board the event belongs to")
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Event-specific payload data",
    )

    model_config = {"frozen": True}

    def to_webhook_payload(self, delivered_at: datetime | None = None) -> dict[str, Any]:
        """Convert to the JSON body POSTed to webhook targets."""
        delivered_at = delivered_at or datetime.now(timezone.utc)
        return {
            "type": self.type.value,
            "scope_id": self.scope_id,
            "data": self.data,
            "delivered_at": isoformat_utc(delivered_at),
        }


def isoformat_utc(value: datetime) -> str:
    """Render a timestamp as ISO 8601 UTC with a ``Z`` suffix. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
