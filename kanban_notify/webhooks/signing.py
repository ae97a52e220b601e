"""HMAC-SHA256 signing for webhook payloads.

The signature covers the exact bytes sent as the request body, so receivers
must verify against the raw body rather than a re-serialized copy.
"""

import hashlib
import hmac

SIGNATURE_HEADER = "X-Webhook-Signature"
EVENT_HEADER = "X-Webhook-Event"
SCOPE_HEADER = "X-Webhook-Board"
SIGNATURE_PREFIX = "sha256="


def sign_payload(secret: str, payload: bytes) -> str:
    """Return the hex HMAC-SHA256 of ``payload`` keyed by ``secret``."""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(secret: str, payload: bytes, header_value: str) -> bool:
    """Check a ``sha256=<hex>`` signature header against a raw body."""
    if not header_value.startswith(SIGNATURE_PREFIX):
        return False
    expected = sign_payload(secret, payload)
    return hmac.compare_digest(expected, header_value[len(SIGNATURE_PREFIX):])


def build_headers(event_type: str, scope_id: str, signature: str) -> dict[str, str]:
    """Build the request headers for one webhook delivery."""
    return {
        "Content-Type": "application/json",
        SIGNATURE_HEADER: f"{SIGNATURE_PREFIX}{signature}",
        EVENT_HEADER: event_type,
        SCOPE_HEADER: scope_id,
    }
