"""
Message Content Extraction

Maps each provider message type to a display string plus optional media
and interactive-selection descriptors. Every documented type has an
extractor; anything else gets a "<type> message" placeholder.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from campaign_webhooks.contracts.payloads import MessageType


@dataclass(frozen=True)
class MediaDescriptor:
    """Provider media reference. The media itself is never downloaded."""

    media_id: str | None
    mime_type: str | None
    file_size: int | None


@dataclass(frozen=True)
class InteractiveSelection:
    """A button or list choice made by the customer."""

    type: str
    data: dict[str, Any]


@dataclass(frozen=True)
class ExtractedContent:
    message_type: str
    content: str
    media: MediaDescriptor | None = None
    interactive: InteractiveSelection | None = None

    def to_columns(self) -> dict[str, Any]:
        """Column values for incoming_messages."""
        return {
            "message_type": self.message_type,
            "content": self.content,
            "media_url": self.media.media_id if self.media else None,
            "media_type": self.media.mime_type if self.media else None,
            "media_size": self.media.file_size if self.media else None,
            "interactive_type": self.interactive.type if self.interactive else None,
            "interactive_data": self.interactive.data if self.interactive else None,
        }


def _section(message: dict[str, Any], key: str) -> dict[str, Any]:
    value = message.get(key)
    return value if isinstance(value, dict) else {}


def _file_size(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _media(section: dict[str, Any]) -> MediaDescriptor:
    return MediaDescriptor(
        media_id=section.get("id"),
        mime_type=section.get("mime_type"),
        file_size=_file_size(section.get("file_size")),
    )


def placeholder(message_type: str) -> str:
    return f"{message_type} message"


def _text(message: dict[str, Any]) -> ExtractedContent:
    body = _section(message, "text").get("body") or ""
    return ExtractedContent(MessageType.TEXT.value, body)


def _media_extractor(message_type: MessageType, default: str, caption: bool = True):
    def extract(message: dict[str, Any]) -> ExtractedContent:
        section = _section(message, message_type.value)
        content = (section.get("caption") if caption else None) or default
        return ExtractedContent(message_type.value, content, media=_media(section))

    return extract


def _document(message: dict[str, Any]) -> ExtractedContent:
    section = _section(message, "document")
    content = section.get("caption") or section.get("filename") or "Document message"
    return ExtractedContent(MessageType.DOCUMENT.value, content, media=_media(section))


def _location(message: dict[str, Any]) -> ExtractedContent:
    location = _section(message, "location")
    content = f"Location: {location.get('latitude')}, {location.get('longitude')}"
    if location.get("name"):
        content += f" ({location['name']})"
    return ExtractedContent(MessageType.LOCATION.value, content)


def _contacts(message: dict[str, Any]) -> ExtractedContent:
    contacts = message.get("contacts")
    first = contacts[0] if isinstance(contacts, list) and contacts else {}
    name = _section(first, "name").get("formatted_name") if isinstance(first, dict) else None
    return ExtractedContent(MessageType.CONTACTS.value, f"Contact: {name or 'Contact shared'}")


def _interactive(message: dict[str, Any]) -> ExtractedContent:
    interactive = _section(message, "interactive")
    kind = interactive.get("type")

    if kind == "button_reply":
        reply = _section(interactive, "button_reply")
        return ExtractedContent(
            MessageType.INTERACTIVE.value,
            f"Button: {reply.get('title')}",
            interactive=InteractiveSelection(
                type="button_reply",
                data={
                    "type": "button_reply",
                    "button_id": reply.get("id"),
                    "button_title": reply.get("title"),
                },
            ),
        )

    if kind == "list_reply":
        reply = _section(interactive, "list_reply")
        return ExtractedContent(
            MessageType.INTERACTIVE.value,
            f"List: {reply.get('title')}",
            interactive=InteractiveSelection(
                type="list_reply",
                data={
                    "type": "list_reply",
                    "list_id": reply.get("id"),
                    "list_title": reply.get("title"),
                    "list_description": reply.get("description"),
                },
            ),
        )

    return ExtractedContent(MessageType.INTERACTIVE.value, placeholder(MessageType.INTERACTIVE.value))


def _button(message: dict[str, Any]) -> ExtractedContent:
    # Quick-reply on a template: payload/text instead of id/title
    button = _section(message, "button")
    return ExtractedContent(
        MessageType.BUTTON.value,
        f"Button: {button.get('text')}",
        interactive=InteractiveSelection(
            type="button_reply",
            data={
                "type": "button_reply",
                "button_id": button.get("payload"),
                "button_title": button.get("text"),
            },
        ),
    )


def _reaction(message: dict[str, Any]) -> ExtractedContent:
    emoji = _section(message, "reaction").get("emoji")
    if not emoji:
        return ExtractedContent(MessageType.REACTION.value, "Reaction removed")
    return ExtractedContent(MessageType.REACTION.value, f"Reaction: {emoji}")


def _placeholder_extractor(message_type: MessageType):
    def extract(message: dict[str, Any]) -> ExtractedContent:
        return ExtractedContent(message_type.value, placeholder(message_type.value))

    return extract


EXTRACTORS: dict[MessageType, Callable[[dict[str, Any]], ExtractedContent]] = {
    MessageType.TEXT: _text,
    MessageType.IMAGE: _media_extractor(MessageType.IMAGE, "Image message"),
    MessageType.VIDEO: _media_extractor(MessageType.VIDEO, "Video message"),
    MessageType.AUDIO: _media_extractor(MessageType.AUDIO, "Audio message", caption=False),
    MessageType.DOCUMENT: _document,
    MessageType.STICKER: _media_extractor(MessageType.STICKER, "Sticker message", caption=False),
    MessageType.LOCATION: _location,
    MessageType.CONTACTS: _contacts,
    MessageType.INTERACTIVE: _interactive,
    MessageType.BUTTON: _button,
    MessageType.REACTION: _reaction,
    MessageType.TEMPLATE: _placeholder_extractor(MessageType.TEMPLATE),
    MessageType.ORDER: _placeholder_extractor(MessageType.ORDER),
    MessageType.SYSTEM: _placeholder_extractor(MessageType.SYSTEM),
    MessageType.UNSUPPORTED: _placeholder_extractor(MessageType.UNSUPPORTED),
}


def extract_content(message: dict[str, Any]) -> ExtractedContent:
    """
    Extract display content from a provider message.

    Never raises for unknown types: they map to "<type> message".
    """
    raw_type = message.get("type") or MessageType.UNSUPPORTED.value
    try:
        message_type = MessageType(raw_type)
    except ValueError:
        return ExtractedContent(str(raw_type), placeholder(str(raw_type)))
    return EXTRACTORS[message_type](message)
