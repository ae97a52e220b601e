"""SQLModel entities for the board notification service."""

from kanban_notify.models.ledger import ActivityPage, LedgerRecord, LedgerRecordResponse
from kanban_notify.models.webhook import (
    WebhookTarget,
    WebhookTargetCreate,
    WebhookTargetCreated,
    WebhookTargetListResponse,
    WebhookTargetResponse,
    WebhookTargetUpdate,
)

__all__ = [
    "LedgerRecord",
    "LedgerRecordResponse",
    "ActivityPage",
    "WebhookTarget",
    "WebhookTargetCreate",
    "WebhookTargetCreated",
    "WebhookTargetUpdate",
    "WebhookTargetResponse",
    "WebhookTargetListResponse",
]
