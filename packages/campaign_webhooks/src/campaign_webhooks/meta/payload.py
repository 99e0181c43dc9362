"""
Webhook Payload Helpers

Routing and metadata extraction for the receiver, and event iteration for
the processor. All helpers tolerate unexpected shapes: missing or mistyped
fields read as absent.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from campaign_webhooks.contracts.envelope import WebhookMetadata
from campaign_webhooks.contracts.event_types import EventKind

WHATSAPP_OBJECT = "whatsapp_business_account"
MESSAGES_FIELD = "messages"


@dataclass
class RawEvent:
    """
    One atomic event found in a delivery.

    Attributes:
        kind: "status" or "message"
        data: The raw status or message object
        account_id: Business account id of the enclosing entry
        channel_id: Phone number id of the enclosing change
        display_phone_number: Display number of the enclosing change
        contacts: Contact profiles sent alongside messages
    """

    kind: str
    data: Any
    account_id: str | None = None
    channel_id: str | None = None
    display_phone_number: str | None = None
    contacts: list[dict[str, Any]] = field(default_factory=list)

    @property
    def business_phone(self) -> str | None:
        return self.channel_id or self.display_phone_number

    def as_delivery(self) -> dict[str, Any]:
        """
        Wrap this event alone in a delivery body.

        Stored on the audit record so a single event can be re-enqueued
        exactly as the provider would have sent it.
        """
        value: dict[str, Any] = {
            "messaging_product": "whatsapp",
            "metadata": {
                "display_phone_number": self.display_phone_number,
                "phone_number_id": self.channel_id,
            },
        }
        if self.kind == "status":
            value["statuses"] = [self.data]
        else:
            if self.contacts:
                value["contacts"] = self.contacts
            value["messages"] = [self.data]

        return {
            "object": WHATSAPP_OBJECT,
            "entry": [
                {
                    "id": self.account_id,
                    "changes": [{"field": MESSAGES_FIELD, "value": value}],
                }
            ],
        }


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _entries(payload: Any) -> list[dict[str, Any]]:
    return [e for e in _as_list(_as_dict(payload).get("entry")) if isinstance(e, dict)]


def _changes(entry: dict[str, Any]) -> list[dict[str, Any]]:
    return [c for c in _as_list(entry.get("changes")) if isinstance(c, dict)]


def extract_routing(payload: Any) -> tuple[str | None, str | None]:
    """
    Extract (account_id, channel_id) for tenant resolution.

    The account id is the first entry's id. The channel id is the phone
    number id from the first change metadata of that entry.
    """
    entries = _entries(payload)
    if not entries:
        return None, None

    first = entries[0]
    account_id = first.get("id")

    channel_id = None
    changes = _changes(first)
    if changes:
        metadata = _as_dict(_as_dict(changes[0].get("value")).get("metadata"))
        channel_id = metadata.get("phone_number_id")

    return (
        str(account_id) if account_id else None,
        str(channel_id) if channel_id else None,
    )


def extract_metadata(payload: Any) -> WebhookMetadata:
    """Lightweight metadata published with the envelope."""
    account_id, channel_id = extract_routing(payload)

    message_count = 0
    status_count = 0
    for entry in _entries(payload):
        for change in _changes(entry):
            value = _as_dict(change.get("value"))
            message_count += len(_as_list(value.get("messages")))
            status_count += len(_as_list(value.get("statuses")))

    if message_count and status_count:
        kind = EventKind.MIXED
    elif status_count:
        kind = EventKind.STATUS_UPDATE
    elif message_count:
        kind = EventKind.INCOMING_MESSAGE
    else:
        kind = EventKind.OTHER

    return WebhookMetadata(
        event_kind=kind.value,
        account_id=account_id,
        channel_id=channel_id,
        has_messages=message_count > 0,
        has_statuses=status_count > 0,
        message_count=message_count,
        status_count=status_count,
    )


def iter_events(payload: Any) -> Iterator[RawEvent]:
    """
    Yield every atomic event in delivery order.

    Only changes on the "messages" field are considered. Within a change,
    statuses come before messages.
    """
    for entry in _entries(payload):
        account_id = entry.get("id")

        for change in _changes(entry):
            if change.get("field") != MESSAGES_FIELD:
                continue

            value = _as_dict(change.get("value"))
            metadata = _as_dict(value.get("metadata"))
            channel_id = metadata.get("phone_number_id")
            display = metadata.get("display_phone_number")

            for status in _as_list(value.get("statuses")):
                yield RawEvent(
                    kind="status",
                    data=status,
                    account_id=account_id,
                    channel_id=channel_id,
                    display_phone_number=display,
                )

            contacts = [c for c in _as_list(value.get("contacts")) if isinstance(c, dict)]
            for message in _as_list(value.get("messages")):
                yield RawEvent(
                    kind="message",
                    data=message,
                    account_id=account_id,
                    channel_id=channel_id,
                    display_phone_number=display,
                    contacts=contacts,
                )
