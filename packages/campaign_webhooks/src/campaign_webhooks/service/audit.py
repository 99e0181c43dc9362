"""
Audit Log

Every atomic event gets a webhook_events row before it is reconciled.
The row is committed on its own, so it survives a rollback of the work it
brackets, and is closed exactly once: processed, with the error text when
reconciliation raised.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from campaign_webhooks.contracts.event_types import EventCategory
from campaign_webhooks.persistence.models import WebhookEvent
from campaign_webhooks.persistence.repo import WebhookRepository

logger = logging.getLogger(__name__)

ERROR_MESSAGE_MAX_LEN = 2000


class AuditLog:
    """Append-only log of processed webhook events."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = WebhookRepository(db)

    def open(
        self,
        category: EventCategory,
        organization_id: UUID | None,
        **fields: Any,
    ) -> WebhookEvent:
        """Create and commit an unprocessed audit record."""
        event = self.repo.create_webhook_event(
            organization_id=organization_id,
            event_type=category.value,
            **fields,
        )
        self.db.commit()
        return event

    def close(
        self,
        event: WebhookEvent,
        error: str | None = None,
        **fields: Any,
    ) -> None:
        """Mark an audit record processed and commit."""
        if error and len(error) > ERROR_MESSAGE_MAX_LEN:
            error = error[:ERROR_MESSAGE_MAX_LEN]
        self.repo.close_webhook_event(event, error_message=error, **fields)
        self.db.commit()

    @contextmanager
    def track(
        self,
        category: EventCategory,
        organization_id: UUID | None,
        **fields: Any,
    ) -> Iterator[dict[str, Any]]:
        """
        Bracket one unit of reconciliation with an audit record.

        Yields a dict the caller may fill with extra columns to set on close
        (campaign_id, interactive data...). On error the pending work is
        rolled back, the record is closed with the error text, and the
        exception propagates.
        """
        event = self.open(category, organization_id, **fields)
        updates: dict[str, Any] = {}

        try:
            yield updates
        except Exception as e:
            self.db.rollback()
            logger.error(
                f"Reconciliation failed for {category.value} event",
                extra={
                    "webhook_event_id": str(event.id),
                    "whatsapp_message_id": fields.get("whatsapp_message_id"),
                    "error": str(e),
                },
            )
            self.close(event, error=str(e) or type(e).__name__)
            raise

        self.close(event, **updates)

    def purge_older_than(self, days: int) -> int:
        """
        Delete audit records older than the retention window.

        Returns:
            Number of records deleted
        """
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        deleted = self.repo.delete_webhook_events_before(cutoff)
        self.db.commit()
        logger.info(f"Purged {deleted} webhook events older than {days} days")
        return deleted
