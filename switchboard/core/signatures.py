"""Webhook signature verification."""

import hashlib
import hmac

SHA256_PREFIX = "sha256="


def compute_signature(secret: str, payload: bytes) -> str:
    """HMAC-SHA256 hex digest of a payload."""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_sha256_signature(secret: str, payload: bytes, header_value: str | None) -> bool:
    """Verify an ``X-Hub-Signature-256`` style header against the raw body.

    Args:
        secret: Shared secret configured for the sender
        payload: Raw request body, exactly as received
        header_value: Header value in the form ``sha256=<hex>``

    Returns:
        True only when the header is present and matches (constant-time compare)
    """
    if not header_value or not header_value.startswith(SHA256_PREFIX):
        return False
    provided = header_value[len(SHA256_PREFIX):].strip().lower()
    expected = compute_signature(secret, payload)
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
