"""
Event Classifier

Routes an atomic event to the status or incoming-message path.
"""

from campaign_webhooks.contracts.event_types import EventCategory
from campaign_webhooks.meta.payload import RawEvent

CATEGORY_BY_KIND = {
    "status": EventCategory.MESSAGE_STATUS,
    "message": EventCategory.MESSAGE_RECEIVED,
}


def classify(event: RawEvent) -> EventCategory | None:
    """Category for an event, or None if it has no reconciliation path."""
    return CATEGORY_BY_KIND.get(event.kind)
