"""
Webhook Envelope

Queue wrapper around a raw provider delivery.

The receiver builds one envelope per delivery request and publishes it to
the inbound stream. The processor parses it back from the stream entry and
treats every field as untrusted input.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from campaign_webhooks.contracts.event_types import EventKind
from campaign_webhooks.errors import MalformedPayloadError


@dataclass
class WebhookMetadata:
    """
    Routing metadata extracted by the receiver.

    Attributes:
        event_kind: What the delivery carries (EventKind value)
        account_id: Business account id from the first entry
        channel_id: Phone number id from the first change metadata
        has_messages: Whether any change carries messages
        has_statuses: Whether any change carries statuses
        message_count: Number of messages across all changes
        status_count: Number of statuses across all changes
    """

    event_kind: str = EventKind.OTHER.value
    account_id: str | None = None
    channel_id: str | None = None
    has_messages: bool = False
    has_statuses: bool = False
    message_count: int = 0
    status_count: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WebhookMetadata":
        return cls(
            event_kind=data.get("event_kind") or EventKind.OTHER.value,
            account_id=data.get("account_id"),
            channel_id=data.get("channel_id"),
            has_messages=bool(data.get("has_messages", False)),
            has_statuses=bool(data.get("has_statuses", False)),
            message_count=int(data.get("message_count", 0)),
            status_count=int(data.get("status_count", 0)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_kind": self.event_kind,
            "account_id": self.account_id,
            "channel_id": self.channel_id,
            "has_messages": self.has_messages,
            "has_statuses": self.has_statuses,
            "message_count": self.message_count,
            "status_count": self.status_count,
        }

    def to_attributes(self) -> dict[str, str]:
        """Flattened string fields mirrored on the stream entry for filtering."""
        return {
            "event_kind": self.event_kind,
            "account_id": self.account_id or "",
            "channel_id": self.channel_id or "",
            "has_messages": "1" if self.has_messages else "0",
            "has_statuses": "1" if self.has_statuses else "0",
        }


@dataclass
class WebhookEnvelope:
    """
    Queue payload for one provider delivery.

    Attributes:
        payload: Raw delivery body as parsed JSON
        metadata: Routing metadata extracted by the receiver
        received_at: When the receiver accepted the request (UTC)
        headers: Selected transport headers
        source_ip: Caller address as seen by the receiver
    """

    payload: dict[str, Any]
    metadata: WebhookMetadata = field(default_factory=WebhookMetadata)
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    headers: dict[str, str] = field(default_factory=dict)
    source_ip: str | None = None

    @classmethod
    def create(
        cls,
        payload: dict[str, Any],
        metadata: WebhookMetadata,
        headers: dict[str, str] | None = None,
        source_ip: str | None = None,
    ) -> "WebhookEnvelope":
        """Create a new envelope stamped with the current time."""
        return cls(
            payload=payload,
            metadata=metadata,
            received_at=datetime.now(timezone.utc),
            headers=headers or {},
            source_ip=source_ip,
        )

    @classmethod
    def from_stream_message(cls, msg_id: str, data: dict[str, str]) -> "WebhookEnvelope":
        """
        Parse a Redis Stream entry into an envelope.

        Raises:
            MalformedPayloadError: If the entry is missing the payload or any
                JSON field does not decode to the expected shape.
        """
        if "payload" not in data:
            raise MalformedPayloadError(
                f"Stream entry {msg_id} has no payload",
                details={"stream_msg_id": msg_id},
            )

        try:
            payload = json.loads(data["payload"])
            metadata = json.loads(data.get("metadata") or "{}")
            headers = json.loads(data.get("headers") or "{}")
        except (TypeError, ValueError) as e:
            raise MalformedPayloadError(
                f"Stream entry {msg_id} is not valid JSON: {e}",
                details={"stream_msg_id": msg_id},
            ) from e

        if not isinstance(payload, dict) or not isinstance(metadata, dict):
            raise MalformedPayloadError(
                f"Stream entry {msg_id} payload is not an object",
                details={"stream_msg_id": msg_id},
            )

        received_at = data.get("received_at")
        try:
            received = (
                datetime.fromisoformat(received_at)
                if received_at
                else datetime.now(timezone.utc)
            )
        except ValueError as e:
            raise MalformedPayloadError(
                f"Stream entry {msg_id} has a bad received_at: {received_at}",
                details={"stream_msg_id": msg_id},
            ) from e

        return cls(
            payload=payload,
            metadata=WebhookMetadata.from_dict(metadata),
            received_at=received,
            headers=headers if isinstance(headers, dict) else {},
            source_ip=data.get("source_ip") or None,
        )

    def to_stream_data(self) -> dict[str, str]:
        """Convert to dictionary suitable for Redis Stream (all string values)."""
        data = {
            "payload": json.dumps(self.payload),
            "metadata": json.dumps(self.metadata.to_dict()),
            "headers": json.dumps(self.headers),
            "received_at": self.received_at.isoformat(),
            "source_ip": self.source_ip or "",
        }
        data.update(self.metadata.to_attributes())
        return data
