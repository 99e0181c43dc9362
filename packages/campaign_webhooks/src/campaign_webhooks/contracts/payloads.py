"""
Normalized Event Payloads

Pydantic models for the atomic events found inside a provider delivery.
One delivery carries zero or more statuses and messages per change; the
processor normalizes each one before reconciling it.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class MessageType(str, Enum):
    """Message types documented by the provider."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    STICKER = "sticker"
    LOCATION = "location"
    CONTACTS = "contacts"
    INTERACTIVE = "interactive"
    BUTTON = "button"
    REACTION = "reaction"
    TEMPLATE = "template"
    ORDER = "order"
    SYSTEM = "system"
    UNSUPPORTED = "unsupported"


class DeliveryStatus(str, Enum):
    """Lifecycle status of an outbound message."""

    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


def parse_provider_timestamp(value: Any) -> datetime | None:
    """Provider timestamps are epoch seconds, usually as strings."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


class StatusError(BaseModel):
    """One error entry on a failed status."""

    code: int | str | None = Field(None, description="Provider error code")
    title: str | None = Field(None, description="Short error title")
    message: str | None = Field(None, description="Error detail")

    def describe(self) -> str:
        return f"{self.code}: {self.title} - {self.message or ''}"


class StatusEvent(BaseModel):
    """
    A delivery-lifecycle update for an outbound message.

    `status` is kept as raw text so unknown values are still audited.
    """

    message_id: str = Field(..., description="Provider message ID")
    status: str = Field(..., description="Provider status text")
    timestamp: datetime | None = Field(None, description="When the status happened")
    recipient_id: str | None = Field(None, description="Recipient phone number")
    errors: list[StatusError] = Field(default_factory=list)
    raw: dict[str, Any] = Field(default_factory=dict, description="Raw status object")

    @field_validator("timestamp", mode="before")
    @classmethod
    def _epoch(cls, v: Any) -> datetime | None:
        return parse_provider_timestamp(v)

    @classmethod
    def from_provider(cls, status: dict[str, Any]) -> "StatusEvent":
        return cls(
            message_id=status.get("id"),
            status=status.get("status"),
            timestamp=status.get("timestamp"),
            recipient_id=status.get("recipient_id"),
            errors=status.get("errors") or [],
            raw=status,
        )

    @property
    def lifecycle_status(self) -> DeliveryStatus | None:
        """Known lifecycle status, or None for values outside the lifecycle."""
        try:
            return DeliveryStatus(self.status)
        except ValueError:
            return None

    def failure_reason(self) -> str | None:
        """All error entries as `code: title - message`, semicolon-joined."""
        if not self.errors:
            return None
        return "; ".join(e.describe() for e in self.errors)


class IncomingMessageEvent(BaseModel):
    """A message received from a customer."""

    message_id: str = Field(..., description="Provider message ID")
    from_phone: str = Field(..., description="Sender phone number")
    to_phone: str | None = Field(None, description="Business phone number or channel id")
    message_type: str = Field(..., description="Provider message type")
    timestamp: datetime | None = Field(None, description="Message timestamp from provider")
    context_message_id: str | None = Field(None, description="Replied-to message ID")
    raw: dict[str, Any] = Field(default_factory=dict, description="Raw message object")

    @field_validator("timestamp", mode="before")
    @classmethod
    def _epoch(cls, v: Any) -> datetime | None:
        return parse_provider_timestamp(v)

    @classmethod
    def from_provider(
        cls, message: dict[str, Any], to_phone: str | None = None
    ) -> "IncomingMessageEvent":
        context = message.get("context") or {}
        return cls(
            message_id=message.get("id"),
            from_phone=message.get("from"),
            to_phone=to_phone,
            message_type=message.get("type") or MessageType.UNSUPPORTED.value,
            timestamp=message.get("timestamp"),
            context_message_id=context.get("id"),
            raw=message,
        )
