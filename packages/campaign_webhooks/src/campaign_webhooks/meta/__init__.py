"""
Provider Wire Format

Signature verification and payload helpers for WhatsApp Business webhooks.
"""

from campaign_webhooks.meta.payload import (
    RawEvent,
    extract_metadata,
    extract_routing,
    iter_events,
)
from campaign_webhooks.meta.signature import compute_signature, verify_signature

__all__ = [
    "RawEvent",
    "compute_signature",
    "extract_metadata",
    "extract_routing",
    "iter_events",
    "verify_signature",
]
