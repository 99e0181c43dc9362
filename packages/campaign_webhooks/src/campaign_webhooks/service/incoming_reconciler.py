"""
Incoming-Message Reconciler

Stores each customer message once, keyed on the provider message id, with
typed content and best-effort linkage to the campaign it replies to.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from campaign_webhooks.contracts.payloads import IncomingMessageEvent
from campaign_webhooks.persistence.repo import WebhookRepository
from campaign_webhooks.service.content import ExtractedContent, extract_content

logger = logging.getLogger(__name__)


@dataclass
class IncomingOutcome:
    """Result of reconciling one incoming message."""

    whatsapp_message_id: str
    duplicate: bool = False
    incoming_message_id: UUID | None = None
    content: ExtractedContent | None = None
    context_campaign_id: UUID | None = None


class IncomingMessageReconciler:
    """Deduplicates and persists incoming messages."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = WebhookRepository(db)

    def resolve_context_campaign(self, context_message_id: str | None) -> UUID | None:
        """
        Campaign of the outbound message being replied to.

        Unknown ids resolve to None; linkage is best effort.
        """
        if not context_message_id:
            return None

        original = self.repo.get_message_by_whatsapp_id(context_message_id)
        if original is None:
            logger.info(
                f"Reply context {context_message_id} matches no known message",
                extra={"context_message_id": context_message_id},
            )
            return None

        if original.campaign_id:
            logger.info(
                f"Linked reply to campaign {original.campaign_id}",
                extra={"context_message_id": context_message_id},
            )
        return original.campaign_id

    def reconcile(
        self,
        event: IncomingMessageEvent,
        organization_id: UUID,
        received_at: datetime,
    ) -> IncomingOutcome:
        """
        Persist one incoming message unless it was already stored.

        The row is flushed, not committed; the caller commits together with
        the audit close-out.

        Args:
            event: Normalized incoming message
            organization_id: Resolved tenant
            received_at: Fallback when the message carries no timestamp

        Returns:
            The outcome; duplicate=True when the id was already stored
        """
        outcome = IncomingOutcome(whatsapp_message_id=event.message_id)

        if self.repo.get_incoming_message_by_whatsapp_id(event.message_id):
            logger.info(
                f"Duplicate incoming message {event.message_id}, skipping",
                extra={"whatsapp_message_id": event.message_id},
            )
            outcome.duplicate = True
            return outcome

        content = extract_content(event.raw)
        outcome.content = content
        outcome.context_campaign_id = self.resolve_context_campaign(event.context_message_id)

        row_id = self.repo.insert_incoming_message(
            organization_id=organization_id,
            whatsapp_message_id=event.message_id,
            from_phone_number=event.from_phone,
            to_phone_number=event.to_phone,
            timestamp=event.timestamp or received_at,
            context_message_id=event.context_message_id,
            context_campaign_id=outcome.context_campaign_id,
            raw_payload=event.raw,
            **content.to_columns(),
        )

        if row_id is None:
            # Lost the insert race to a concurrent redelivery
            logger.info(
                f"Duplicate incoming message {event.message_id} on insert, skipping",
                extra={"whatsapp_message_id": event.message_id},
            )
            outcome.duplicate = True
            return outcome

        outcome.incoming_message_id = row_id
        logger.info(
            f"Stored incoming {content.message_type} message {event.message_id}",
            extra={
                "whatsapp_message_id": event.message_id,
                "incoming_message_id": str(row_id),
                "organization_id": str(organization_id),
            },
        )
        return outcome

    def mark_processed(self, outcome: IncomingOutcome) -> None:
        if outcome.incoming_message_id:
            self.repo.mark_incoming_message_processed(outcome.incoming_message_id)
