"""Webhook target administration.

Targets belong to the metadata store; the dispatcher only reads them and
updates delivery health. Reactivation is the only way to close a breaker
that reached the failure threshold.
"""

import logging
import secrets
from uuid import UUID

from sqlmodel import Session, func, select

from kanban_notify.models.webhook import WebhookTarget, WebhookTargetCreate, WebhookTargetUpdate

logger = logging.getLogger(__name__)


def create_webhook(
    session: Session,
    scope_id: str,
    data: WebhookTargetCreate,
    created_by: str | None = None,
) -> WebhookTarget:
    """Register a new webhook target on a board.

    The signing secret is generated here. Callers must hand it to the client
    in the registration response; it is never readable through the API again.
    """
    target = WebhookTarget(
        scope_id=scope_id,
        callback_url=str(data.callback_url),
        secret=secrets.token_hex(32),
        event_allowlist=[t.value for t in data.event_allowlist],
        created_by=created_by,
    )
    session.add(target)
    session.commit()
    session.refresh(target)
    logger.info(
        "Webhook registered",
        extra={"webhook_id": str(target.id), "scope_id": scope_id},
    )
    return target


def list_board_webhooks(
    session: Session,
    scope_id: str,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[WebhookTarget], int]:
    """
    Get webhook targets for a board.
    Returns (targets, total_count).
    """
    query = (
        select(WebhookTarget)
        .where(WebhookTarget.scope_id == scope_id)
        .order_by(WebhookTarget.created_at)
        .offset(offset)
        .limit(limit)
    )
    count_query = (
        select(func.count()).select_from(WebhookTarget).where(WebhookTarget.scope_id == scope_id)
    )
    targets = list(session.exec(query).all())
    total = session.exec(count_query).one()
    return targets, total


def get_webhook(session: Session, webhook_id: UUID) -> WebhookTarget | None:
    """Get a webhook target by ID."""
    return session.get(WebhookTarget, webhook_id)


def update_webhook(
    session: Session, target: WebhookTarget, data: WebhookTargetUpdate
) -> WebhookTarget:
    """Update a webhook target. Setting ``active`` to true reactivates it."""
    update_data = data.model_dump(exclude_unset=True)

    if "callback_url" in update_data and update_data["callback_url"] is not None:
        target.callback_url = str(data.callback_url)
    if "event_allowlist" in update_data and data.event_allowlist is not None:
        target.event_allowlist = [t.value for t in data.event_allowlist]
    if "active" in update_data and data.active is not None:
        if data.active:
            return reactivate_webhook(session, target)
        target.active = False

    session.add(target)
    session.commit()
    session.refresh(target)
    return target


def reactivate_webhook(session: Session, target: WebhookTarget) -> WebhookTarget:
    """Activate a target and close its circuit breaker."""
    target.active = True
    target.failure_count = 0
    session.add(target)
    session.commit()
    session.refresh(target)
    logger.info("Webhook reactivated", extra={"webhook_id": str(target.id)})
    return target


def delete_webhook(session: Session, target: WebhookTarget) -> None:
    """Delete a webhook target."""
    webhook_id = str(target.id)
    session.delete(target)
    session.commit()
    logger.info("Webhook deleted", extra={"webhook_id": webhook_id})
