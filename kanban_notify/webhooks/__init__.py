"""Webhook delivery: payload signing and the asynchronous dispatcher."""

from kanban_notify.webhooks.dispatcher import (
    DeliveryJob,
    WebhookDeliveryError,
    WebhookDispatcher,
)
from kanban_notify.webhooks.signing import (
    EVENT_HEADER,
    SCOPE_HEADER,
    SIGNATURE_HEADER,
    build_headers,
    sign_payload,
    verify_signature,
)

__all__ = [
    "DeliveryJob",
    "WebhookDeliveryError",
    "WebhookDispatcher",
    "EVENT_HEADER",
    "SCOPE_HEADER",
    "SIGNATURE_HEADER",
    "build_headers",
    "sign_payload",
    "verify_signature",
]
