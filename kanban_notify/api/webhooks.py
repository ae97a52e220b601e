"""Webhook target administration endpoints."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from sqlmodel import Session

from kanban_notify.api.deps import DBSession
from kanban_notify.models.webhook import (
    WebhookTarget,
    WebhookTargetCreate,
    WebhookTargetCreated,
    WebhookTargetListResponse,
    WebhookTargetResponse,
    WebhookTargetUpdate,
)
from kanban_notify.services.webhooks import (
    create_webhook,
    delete_webhook,
    get_webhook,
    list_board_webhooks,
    reactivate_webhook,
    update_webhook,
)

router = APIRouter(prefix="/api/v1", tags=["Webhooks"])


def _get_or_404(session: Session, webhook_id: UUID) -> WebhookTarget:
    target = get_webhook(session, webhook_id)
    if target is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Webhook not found",
        )
    return target


@router.post(
    "/boards/{board_id}/webhooks",
    response_model=WebhookTargetCreated,
    status_code=status.HTTP_201_CREATED,
)
def create_webhook_endpoint(
    board_id: str,
    session: DBSession,
    webhook_data: WebhookTargetCreate,
) -> WebhookTargetCreated:
    """Register a webhook target on a board.

    The response carries the generated signing secret. Store it now: no other
    endpoint returns it.
    """
    target = create_webhook(session, board_id, webhook_data)
    return WebhookTargetCreated.model_validate(target)


@router.get("/boards/{board_id}/webhooks", response_model=WebhookTargetListResponse)
def list_webhooks_endpoint(
    board_id: str,
    session: DBSession,
    limit: int = Query(default=50, ge=1, le=100, description="Maximum number of webhooks"),
    offset: int = Query(default=0, ge=0, description="Number of webhooks to skip"),
) -> WebhookTargetListResponse:
    """List webhook targets registered on a board."""
    targets, total = list_board_webhooks(session, board_id, limit, offset)
    return WebhookTargetListResponse(
        webhooks=[WebhookTargetResponse.model_validate(t) for t in targets],
        total=total,
    )


@router.get("/webhooks/{webhook_id}", response_model=WebhookTargetResponse)
def get_webhook_endpoint(
    session: DBSession,
    webhook_id: UUID,
) -> WebhookTargetResponse:
    """Get a webhook target, including its delivery health."""
    return WebhookTargetResponse.model_validate(_get_or_404(session, webhook_id))


@router.patch("/webhooks/{webhook_id}", response_model=WebhookTargetResponse)
def update_webhook_endpoint(
    session: DBSession,
    webhook_id: UUID,
    webhook_data: WebhookTargetUpdate,
) -> WebhookTargetResponse:
    """Update a webhook target."""
    target = _get_or_404(session, webhook_id)
    updated = update_webhook(session, target, webhook_data)
    return WebhookTargetResponse.model_validate(updated)


@router.post("/webhooks/{webhook_id}/reactivate", response_model=WebhookTargetResponse)
def reactivate_webhook_endpoint(
    session: DBSession,
    webhook_id: UUID,
) -> WebhookTargetResponse:
    """Reactivate a webhook target and reset its failure counter."""
    target = _get_or_404(session, webhook_id)
    return WebhookTargetResponse.model_validate(reactivate_webhook(session, target))


@router.delete("/webhooks/{webhook_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_webhook_endpoint(
    session: DBSession,
    webhook_id: UUID,
) -> None:
    """Delete a webhook target."""
    delete_webhook(session, _get_or_404(session, webhook_id))
