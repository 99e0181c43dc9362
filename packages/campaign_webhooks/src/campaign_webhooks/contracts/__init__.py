"""
Webhook Contracts

Envelope, event categories and normalized payloads.
"""

from campaign_webhooks.contracts.envelope import WebhookEnvelope, WebhookMetadata
from campaign_webhooks.contracts.event_types import EventCategory, EventKind
from campaign_webhooks.contracts.payloads import (
    DeliveryStatus,
    IncomingMessageEvent,
    MessageType,
    StatusError,
    StatusEvent,
)

__all__ = [
    "WebhookEnvelope",
    "WebhookMetadata",
    "EventCategory",
    "EventKind",
    "DeliveryStatus",
    "IncomingMessageEvent",
    "MessageType",
    "StatusError",
    "StatusEvent",
]
