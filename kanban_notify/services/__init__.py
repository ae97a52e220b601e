"""Service layer for the board notification core."""

from kanban_notify.services.notify import record_and_publish
from kanban_notify.services.webhooks import (
    create_webhook,
    delete_webhook,
    get_webhook,
    list_board_webhooks,
    reactivate_webhook,
    update_webhook,
)

__all__ = [
    "record_and_publish",
    "create_webhook",
    "delete_webhook",
    "get_webhook",
    "list_board_webhooks",
    "reactivate_webhook",
    "update_webhook",
]
