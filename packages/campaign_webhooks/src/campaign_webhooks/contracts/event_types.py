"""
Webhook Event Types

Categories recorded in the audit log, and the envelope's event kind.
"""

from enum import Enum


class EventCategory(str, Enum):
    """Category of an audited webhook event (webhook_events.event_type)."""

    MESSAGE_STATUS = "message_status"
    DELIVERY_RECEIPT = "delivery_receipt"
    READ_RECEIPT = "read_receipt"
    MESSAGE_RECEIVED = "message_received"
    USER_STATUS = "user_status"
    ERROR = "error"
    INTERACTIVE_RESPONSE = "interactive_response"

    def __str__(self) -> str:
        return self.value


class EventKind(str, Enum):
    """What a delivery request carries, computed by the receiver."""

    STATUS_UPDATE = "status_update"
    INCOMING_MESSAGE = "incoming_message"
    MIXED = "mixed"
    OTHER = "other"

    def __str__(self) -> str:
        return self.value
