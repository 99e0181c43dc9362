"""
Webhook Signature

HMAC-SHA256 over the raw request body, compared in constant time.
"""

import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-hub-signature-256"
SIGNATURE_PREFIX = "sha256="


def compute_signature(payload: bytes, secret: str) -> str:
    """Hex digest the provider would send for this body."""
    return hmac.new(
        secret.encode("utf-8"),
        payload,
        hashlib.sha256,
    ).hexdigest()


def verify_signature(
    payload: bytes,
    signature_header: str | None,
    secret: str,
) -> bool:
    """
    Validate a webhook signature.

    Args:
        payload: Raw request body bytes
        signature_header: X-Hub-Signature-256 header value, with or without
            the "sha256=" prefix
        secret: Tenant signing secret

    Returns:
        True if signature is valid. Missing or malformed headers return False.
    """
    if not signature_header:
        logger.warning("Missing signature header")
        return False

    presented = signature_header.strip()
    if presented.startswith(SIGNATURE_PREFIX):
        presented = presented[len(SIGNATURE_PREFIX):]

    try:
        presented_bytes = bytes.fromhex(presented)
    except ValueError:
        logger.warning("Invalid signature format")
        return False

    computed = hmac.new(
        secret.encode("utf-8"),
        payload,
        hashlib.sha256,
    ).digest()

    return hmac.compare_digest(computed, presented_bytes)
