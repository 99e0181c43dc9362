"""
Campaign Webhook Repository

All store queries used by the receiver, the reconcilers and the CLI.
Methods add and flush; committing is left to the caller.
"""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import case, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from campaign_webhooks.persistence.models import (
    Campaign,
    CampaignAudience,
    IncomingMessage,
    Message,
    MessageStatus,
    Organization,
    OrganizationStatus,
    WebhookEvent,
    utcnow,
)


class WebhookRepository:
    """Repository for the webhook ingestion tables."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # Organizations
    # =========================================================================

    def _active_organizations(self):
        return self.db.query(Organization).filter(
            Organization.status == OrganizationStatus.ACTIVE.value
        )

    def get_organization_by_verify_token(self, token: str) -> Organization | None:
        """Get the active organization owning a webhook verify token."""
        return (
            self._active_organizations()
            .filter(Organization.whatsapp_webhook_verify_token == token)
            .first()
        )

    def get_organization_by_business_account_id(self, account_id: str) -> Organization | None:
        """Get the active organization for a WhatsApp Business account id."""
        return (
            self._active_organizations()
            .filter(Organization.whatsapp_business_account_id == account_id)
            .first()
        )

    def get_organization_by_phone_number_id(self, phone_number_id: str) -> Organization | None:
        """Get the active organization for a WhatsApp phone number id."""
        return (
            self._active_organizations()
            .filter(Organization.whatsapp_phone_number_id == phone_number_id)
            .first()
        )

    def list_organizations(self) -> list[Organization]:
        return self.db.query(Organization).order_by(Organization.name).all()

    # =========================================================================
    # Webhook Events (audit log)
    # =========================================================================

    def create_webhook_event(self, **fields: Any) -> WebhookEvent:
        """Create an unprocessed audit record."""
        event = WebhookEvent(processed=False, **fields)
        self.db.add(event)
        self.db.flush()
        return event

    def close_webhook_event(
        self,
        event: WebhookEvent,
        error_message: str | None = None,
        **fields: Any,
    ) -> None:
        """Mark an audit record processed, with the error text if any."""
        for name, value in fields.items():
            setattr(event, name, value)
        event.processed = True
        event.error_message = error_message
        self.db.flush()

    def get_webhook_event(self, event_id: UUID) -> WebhookEvent | None:
        return self.db.query(WebhookEvent).filter(WebhookEvent.id == event_id).first()

    def list_failed_events(
        self,
        limit: int = 50,
        organization_id: UUID | None = None,
    ) -> list[WebhookEvent]:
        """Audit records closed with an error, newest first."""
        query = self.db.query(WebhookEvent).filter(WebhookEvent.error_message.isnot(None))
        if organization_id:
            query = query.filter(WebhookEvent.organization_id == organization_id)
        return query.order_by(WebhookEvent.created_at.desc()).limit(limit).all()

    def list_events_for_message(self, whatsapp_message_id: str) -> list[WebhookEvent]:
        return (
            self.db.query(WebhookEvent)
            .filter(WebhookEvent.whatsapp_message_id == whatsapp_message_id)
            .order_by(WebhookEvent.created_at)
            .all()
        )

    def delete_webhook_events_before(self, cutoff: datetime) -> int:
        """Delete audit records created before the cutoff. Returns the count."""
        return (
            self.db.query(WebhookEvent)
            .filter(WebhookEvent.created_at < cutoff)
            .delete(synchronize_session=False)
        )

    # =========================================================================
    # Message Ledgers
    # =========================================================================

    def get_message_by_whatsapp_id(
        self,
        whatsapp_message_id: str,
        for_update: bool = False,
    ) -> Message | None:
        """Get a ledger row by provider message id."""
        query = self.db.query(Message).filter(Message.whatsapp_message_id == whatsapp_message_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def get_audience_by_whatsapp_id(
        self,
        whatsapp_message_id: str,
        for_update: bool = False,
    ) -> CampaignAudience | None:
        """Get a campaign audience row by provider message id."""
        query = self.db.query(CampaignAudience).filter(
            CampaignAudience.whatsapp_message_id == whatsapp_message_id
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    # =========================================================================
    # Campaigns
    # =========================================================================

    def recompute_campaign_stats(self, campaign_id: UUID) -> dict[str, int] | None:
        """
        Recompute a campaign's counters from campaign_audience.

        Counts are taken fresh, never incremented, so replays converge.

        Returns:
            The new counters, or None if the campaign row does not exist
        """
        def count_status(status: MessageStatus):
            return func.count(case((CampaignAudience.message_status == status.value, 1)))

        row = (
            self.db.query(
                func.count(CampaignAudience.id),
                count_status(MessageStatus.SENT),
                count_status(MessageStatus.DELIVERED),
                count_status(MessageStatus.READ),
                count_status(MessageStatus.FAILED),
            )
            .filter(CampaignAudience.campaign_id == campaign_id)
            .one()
        )
        stats = {
            "total_targeted_audience": row[0],
            "total_sent": row[1],
            "total_delivered": row[2],
            "total_read": row[3],
            "total_failed": row[4],
        }

        updated = (
            self.db.query(Campaign)
            .filter(Campaign.id == campaign_id)
            .update({**stats, "updated_at": utcnow()}, synchronize_session=False)
        )
        if not updated:
            return None
        return stats

    # =========================================================================
    # Incoming Messages
    # =========================================================================

    def get_incoming_message_by_whatsapp_id(self, whatsapp_message_id: str) -> IncomingMessage | None:
        return (
            self.db.query(IncomingMessage)
            .filter(IncomingMessage.whatsapp_message_id == whatsapp_message_id)
            .first()
        )

    def insert_incoming_message(self, **values: Any) -> UUID | None:
        """
        Insert an incoming message unless its provider id already exists.

        Uses INSERT ... ON CONFLICT DO NOTHING so concurrent redeliveries of
        the same event cannot both insert.

        Returns:
            The new row id, or None if the message was already stored
        """
        row_id = values.pop("id", None) or uuid4()
        now = utcnow()
        values = {
            "id": row_id,
            "processed": False,
            "created_at": now,
            "updated_at": now,
            **values,
        }

        if self.db.get_bind().dialect.name == "postgresql":
            stmt = pg_insert(IncomingMessage.__table__)
        else:
            stmt = sqlite_insert(IncomingMessage.__table__)
        stmt = stmt.values(**values).on_conflict_do_nothing(
            index_elements=["whatsapp_message_id"]
        )

        result = self.db.execute(stmt)
        if result.rowcount > 0:
            return row_id
        return None

    def mark_incoming_message_processed(self, row_id: UUID) -> None:
        (
            self.db.query(IncomingMessage)
            .filter(IncomingMessage.id == row_id)
            .update({"processed": True, "updated_at": utcnow()}, synchronize_session=False)
        )
