"""WebhookTarget entity model for registered board callbacks."""

from datetime import datetime, timezone
from uuid import UUID, uuid4

import sqlalchemy as sa
from pydantic import AnyHttpUrl, field_validator
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Column, Field, SQLModel

from kanban_notify.events.types import EventType

JSONType = sa.JSON().with_variant(JSONB(), "postgresql")


class WebhookTarget(SQLModel, table=True):
    """Webhook target database model.

    An empty ``event_allowlist`` means the target receives every event type.
    ``failure_count`` is the circuit breaker: once it reaches the configured
    threshold the target is excluded from dispatch until reactivated.
    """

    __tablename__ = "webhook_targets"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    scope_id: str = Field(max_length=64, index=True)
    callback_url: str = Field(max_length=2048)
    secret: str = Field(max_length=255)
    event_allowlist: list[str] = Field(default_factory=list, sa_column=Column(JSONType))
    active: bool = Field(default=True, index=True)
    failure_count: int = Field(default=0)
    last_attempt_at: datetime | None = Field(
        default=None,
        sa_column=Column(sa.DateTime(timezone=True), nullable=True),
    )
    created_by: str | None = Field(default=None, max_length=100)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(sa.DateTime(timezone=True), nullable=False),
    )

    def wants(self, event_type: str) -> bool:
        """Check whether this target's allowlist admits an event type."""
        return not self.event_allowlist or event_type in self.event_allowlist


class WebhookTargetCreate(SQLModel):
    """Schema for webhook target registration."""

    callback_url: AnyHttpUrl
    event_allowlist: list[EventType] = Field(default_factory=list)


class WebhookTargetUpdate(SQLModel):
    """Schema for webhook target updates (all fields optional)."""

    callback_url: AnyHttpUrl | None = None
    event_allowlist: list[EventType] | None = None
    active: bool | None = None


class WebhookTargetResponse(SQLModel):
    """Schema for webhook target response. Never carries the secret."""

    id: UUID
    scope_id: str
    callback_url: str
    event_allowlist: list[str]
    active: bool
    failure_count: int
    last_attempt_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("event_allowlist", mode="before")
    @classmethod
    def _none_as_empty(cls, value: list[str] | None) -> list[str]:
        return value or []


class WebhookTargetCreated(WebhookTargetResponse):
    """Schema for the registration response: the only place the secret appears."""

    secret: str


class WebhookTargetListResponse(SQLModel):
    """Schema for webhook target list response."""

    webhooks: list[WebhookTargetResponse]
    total: int
