"""
Campaign Webhook Database Models

Tables shared with the campaign-management system.

Tables:
- organizations: Tenants and their WhatsApp credentials (read-only here)
- campaigns: Campaign aggregate counters (recomputed here)
- campaign_audience: Per-recipient campaign ledger (status updated here)
- messages: General message ledger (status updated here)
- webhook_events: Audit log of every processed event (owned here)
- incoming_messages: Messages received from customers (owned here)
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

CampaignBase = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (tests run on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrganizationStatus(str, Enum):
    """Lifecycle status of a tenant."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class MessageStatus(str, Enum):
    """Delivery lifecycle of an outbound message."""

    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


class CampaignModelMixin:
    """Common fields for all shared tables."""

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class Organization(CampaignBase, CampaignModelMixin):
    """
    A tenant with its own WhatsApp Business credentials.

    Webhooks are routed by business account id first, then phone number id.
    The verify token answers the subscription challenge.
    """

    __tablename__ = "organizations"

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=OrganizationStatus.ACTIVE.value)
    whatsapp_business_account_id = Column(String(100), nullable=True)
    whatsapp_phone_number_id = Column(String(100), nullable=True)
    whatsapp_webhook_verify_token = Column(String(255), nullable=True)
    whatsapp_app_secret = Column(Text, nullable=True)  # Fernet-encrypted when a key is configured
    whatsapp_access_token = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("whatsapp_business_account_id", name="uq_organizations_business_account_id"),
        UniqueConstraint("whatsapp_phone_number_id", name="uq_organizations_phone_number_id"),
        UniqueConstraint("whatsapp_webhook_verify_token", name="uq_organizations_verify_token"),
        Index("idx_organizations_status", "status"),
    )


class Campaign(CampaignBase, CampaignModelMixin):
    """
    A campaign owned by the campaign-management system.

    Only the total_* counters are written here, always recomputed from
    campaign_audience.
    """

    __tablename__ = "campaigns"

    organization_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default="draft")
    total_targeted_audience = Column(Integer, nullable=False, default=0)
    total_sent = Column(Integer, nullable=False, default=0)
    total_delivered = Column(Integer, nullable=False, default=0)
    total_read = Column(Integer, nullable=False, default=0)
    total_failed = Column(Integer, nullable=False, default=0)


class CampaignAudience(CampaignBase, CampaignModelMixin):
    """Per-recipient campaign ledger, keyed on the provider message id."""

    __tablename__ = "campaign_audience"

    campaign_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    organization_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    msisdn = Column(String(20), nullable=False)
    message_status = Column(String(20), nullable=False, default=MessageStatus.PENDING.value)
    whatsapp_message_id = Column(String(255), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)
    failure_reason = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_campaign_audience_whatsapp_message_id", "whatsapp_message_id"),
        Index("idx_campaign_audience_campaign_status", "campaign_id", "message_status"),
    )


class Message(CampaignBase, CampaignModelMixin):
    """
    General message ledger.

    Rows are created by the sending path; webhooks only move their status.
    """

    __tablename__ = "messages"

    organization_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    campaign_id = Column(Uuid(as_uuid=True), nullable=True)
    campaign_audience_id = Column(Uuid(as_uuid=True), nullable=True)
    whatsapp_message_id = Column(String(255), nullable=True)
    from_number = Column(String(20), nullable=False)
    to_number = Column(String(20), nullable=False)
    message_type = Column(String(20), nullable=False, default="text")
    message_content = Column(Text, nullable=True)
    is_incoming = Column(Boolean, nullable=False, default=False)
    message_status = Column(String(20), nullable=False, default=MessageStatus.PENDING.value)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)
    failure_reason = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("whatsapp_message_id", name="uq_messages_whatsapp_message_id"),
        Index("idx_messages_org_created", "organization_id", "created_at"),
        Index("idx_messages_campaign", "campaign_id"),
    )


class WebhookEvent(CampaignBase, CampaignModelMixin):
    """
    Audit record for one atomic webhook event.

    Created with processed=false before reconciliation, then closed once
    with the outcome. error_message is set when reconciliation failed.
    """

    __tablename__ = "webhook_events"

    organization_id = Column(Uuid(as_uuid=True), nullable=True)
    campaign_id = Column(Uuid(as_uuid=True), nullable=True)
    campaign_audience_id = Column(Uuid(as_uuid=True), nullable=True)
    event_type = Column(String(50), nullable=False)
    whatsapp_message_id = Column(String(255), nullable=True)
    from_phone_number = Column(String(20), nullable=True)
    to_phone_number = Column(String(20), nullable=True)
    status = Column(String(50), nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=True)
    raw_payload = Column(JSONType, nullable=True)
    processed = Column(Boolean, nullable=False, default=False)
    error_message = Column(Text, nullable=True)
    interactive_type = Column(String(50), nullable=True)
    interactive_data = Column(JSONType, nullable=True)

    __table_args__ = (
        Index("idx_webhook_events_org_created", "organization_id", "created_at"),
        Index("idx_webhook_events_whatsapp_message_id", "whatsapp_message_id"),
        Index("idx_webhook_events_processed", "processed"),
    )


class IncomingMessage(CampaignBase, CampaignModelMixin):
    """
    A message received from a customer.

    whatsapp_message_id is the dedup key; the unique constraint closes the
    race between concurrent redeliveries of the same event.
    """

    __tablename__ = "incoming_messages"

    organization_id = Column(Uuid(as_uuid=True), nullable=False)
    whatsapp_message_id = Column(String(255), nullable=False)
    from_phone_number = Column(String(20), nullable=False)
    to_phone_number = Column(String(20), nullable=True)
    message_type = Column(String(20), nullable=False)
    content = Column(Text, nullable=True)
    media_url = Column(Text, nullable=True)  # Provider media id, not downloaded
    media_type = Column(String(100), nullable=True)
    media_size = Column(Integer, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=True)
    interactive_type = Column(String(50), nullable=True)
    interactive_data = Column(JSONType, nullable=True)
    context_message_id = Column(String(255), nullable=True)
    context_campaign_id = Column(Uuid(as_uuid=True), nullable=True)
    raw_payload = Column(JSONType, nullable=True)
    processed = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("whatsapp_message_id", name="uq_incoming_messages_whatsapp_message_id"),
        Index("idx_incoming_messages_org_created", "organization_id", "created_at"),
        Index("idx_incoming_messages_from", "organization_id", "from_phone_number"),
        Index("idx_incoming_messages_context_campaign", "context_campaign_id"),
    )
