"""
Persistence

SQLAlchemy models and repository for the shared relational store.
"""

from campaign_webhooks.persistence.models import (
    Campaign,
    CampaignAudience,
    CampaignBase,
    IncomingMessage,
    Message,
    MessageStatus,
    Organization,
    OrganizationStatus,
    WebhookEvent,
)
from campaign_webhooks.persistence.repo import WebhookRepository

__all__ = [
    "Campaign",
    "CampaignAudience",
    "CampaignBase",
    "IncomingMessage",
    "Message",
    "MessageStatus",
    "Organization",
    "OrganizationStatus",
    "WebhookEvent",
    "WebhookRepository",
]
