"""
Status Reconciler

Applies delivery-lifecycle updates to the message ledger and the campaign
audience ledger, then recomputes the parent campaign's counters.

Each table is committed on its own: a crash between steps leaves the
earlier steps applied, and a redelivery converges because every step is
idempotent.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from campaign_webhooks.contracts.payloads import DeliveryStatus, StatusEvent
from campaign_webhooks.persistence.models import CampaignAudience, Message, utcnow
from campaign_webhooks.persistence.repo import WebhookRepository

logger = logging.getLogger(__name__)

# Progression order; failed is terminal and handled separately
STATUS_RANK = {
    DeliveryStatus.PENDING.value: 0,
    DeliveryStatus.SENT.value: 1,
    DeliveryStatus.DELIVERED.value: 2,
    DeliveryStatus.READ.value: 3,
}

# Stored when a failed status carries no error entries
UNKNOWN_FAILURE_REASON = "Unknown error"

STAGE_COLUMNS = {
    DeliveryStatus.SENT: "sent_at",
    DeliveryStatus.DELIVERED: "delivered_at",
    DeliveryStatus.READ: "read_at",
    DeliveryStatus.FAILED: "failed_at",
}


@dataclass
class StatusOutcome:
    """Result of reconciling one status event."""

    whatsapp_message_id: str
    status: str
    message_updated: bool = False
    audience_updated: bool = False
    campaign_id: UUID | None = None
    campaign_audience_id: UUID | None = None
    campaign_stats: dict[str, int] | None = None


def next_status(current: str | None, incoming: DeliveryStatus) -> str | None:
    """
    Lifecycle status after applying an incoming status.

    Progress only moves forward, so a late "delivered" does not undo
    "read". "failed" always applies and nothing moves a row out of it.
    """
    if incoming is DeliveryStatus.FAILED:
        return incoming.value
    if current == DeliveryStatus.FAILED.value:
        return current
    if STATUS_RANK[incoming.value] >= STATUS_RANK.get(current, -1):
        return incoming.value
    return current


def apply_status(
    row: Message | CampaignAudience,
    status: DeliveryStatus,
    occurred_at: datetime,
    failure_reason: str | None = None,
) -> None:
    """Apply a status to a ledger row in place."""
    column = STAGE_COLUMNS.get(status)
    if column:
        setattr(row, column, occurred_at)

    row.message_status = next_status(row.message_status, status)

    if status is DeliveryStatus.FAILED:
        row.failure_reason = failure_reason or UNKNOWN_FAILURE_REASON

    row.updated_at = utcnow()


class StatusReconciler:
    """Reconciles status events against both message ledgers."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = WebhookRepository(db)

    def reconcile(self, event: StatusEvent, occurred_at: datetime) -> StatusOutcome:
        """
        Apply one status event.

        Args:
            event: Normalized status event
            occurred_at: Event time (the status timestamp, or receipt time)

        Returns:
            Which ledgers were updated. Missing rows are not errors.
        """
        outcome = StatusOutcome(
            whatsapp_message_id=event.message_id,
            status=event.status,
        )

        status = event.lifecycle_status
        if status is None:
            logger.warning(
                f"Ignoring unknown status '{event.status}' for {event.message_id}",
                extra={"whatsapp_message_id": event.message_id},
            )
            return outcome

        failure_reason = event.failure_reason()

        message = self.repo.get_message_by_whatsapp_id(event.message_id, for_update=True)
        if message:
            apply_status(message, status, occurred_at, failure_reason)
            outcome.message_updated = True
            outcome.campaign_id = message.campaign_id
        else:
            logger.info(
                f"No message ledger row for {event.message_id}",
                extra={"whatsapp_message_id": event.message_id, "status": event.status},
            )
        self.db.commit()

        audience = self.repo.get_audience_by_whatsapp_id(event.message_id, for_update=True)
        if audience:
            apply_status(audience, status, occurred_at, failure_reason)
            outcome.audience_updated = True
            outcome.campaign_id = audience.campaign_id
            outcome.campaign_audience_id = audience.id
        else:
            logger.info(
                f"No campaign audience row for {event.message_id}",
                extra={"whatsapp_message_id": event.message_id, "status": event.status},
            )
        self.db.commit()

        if audience:
            outcome.campaign_stats = self.repo.recompute_campaign_stats(audience.campaign_id)
            self.db.commit()
            if outcome.campaign_stats is None:
                logger.warning(
                    f"Campaign {audience.campaign_id} not found for audience {audience.id}"
                )

        logger.info(
            f"Reconciled status '{event.status}' for {event.message_id}",
            extra={
                "whatsapp_message_id": event.message_id,
                "status": event.status,
                "message_updated": outcome.message_updated,
                "audience_updated": outcome.audience_updated,
            },
        )
        return outcome
