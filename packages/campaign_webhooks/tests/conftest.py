"""
Pytest fixtures for campaign webhook tests.

Tests run against an in-memory SQLite database built from the same models
used in production.
"""

from uuid import UUID

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from campaign_webhooks.contracts.envelope import WebhookEnvelope
from campaign_webhooks.meta.payload import extract_metadata
from campaign_webhooks.persistence.models import (
    Campaign,
    CampaignAudience,
    CampaignBase,
    Message,
    Organization,
)

ACCOUNT_ID = "WABA_123456"
PHONE_NUMBER_ID = "PHONE_123"
DISPLAY_PHONE = "15550001111"
APP_SECRET = "test_app_secret"
VERIFY_TOKEN = "verify_token_abc"


@pytest.fixture
def engine():
    """In-memory SQLite engine shared by every session in a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    CampaignBase.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
    """Database session."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def organization(db):
    """Active organization with a signing secret."""
    org = Organization(
        name="Acme Campaigns",
        status="active",
        whatsapp_business_account_id=ACCOUNT_ID,
        whatsapp_phone_number_id=PHONE_NUMBER_ID,
        whatsapp_webhook_verify_token=VERIFY_TOKEN,
        whatsapp_app_secret=APP_SECRET,
    )
    db.add(org)
    db.commit()
    return org


@pytest.fixture
def campaign(db, organization):
    """Campaign with zeroed counters."""
    campaign = Campaign(
        id=UUID("aaaaaaaa-0000-0000-0000-000000000001"),
        organization_id=organization.id,
        name="Spring Promo",
        status="running",
    )
    db.add(campaign)
    db.commit()
    return campaign


@pytest.fixture
def sent_message(db, organization, campaign):
    """
    An outbound campaign message known to both ledgers.

    Provider id wamid.OUT1, audience row in pending state, plus a second
    pending audience row on the same campaign.
    """
    audience = CampaignAudience(
        campaign_id=campaign.id,
        organization_id=organization.id,
        name="Jane",
        msisdn="5511999999999",
        whatsapp_message_id="wamid.OUT1",
    )
    other = CampaignAudience(
        campaign_id=campaign.id,
        organization_id=organization.id,
        name="Sam",
        msisdn="5511888888888",
        whatsapp_message_id="wamid.OUT2",
    )
    db.add_all([audience, other])
    db.flush()

    message = Message(
        organization_id=organization.id,
        campaign_id=campaign.id,
        campaign_audience_id=audience.id,
        whatsapp_message_id="wamid.OUT1",
        from_number=DISPLAY_PHONE,
        to_number="5511999999999",
        message_type="template",
        message_content="Hello Jane",
    )
    db.add(message)
    db.commit()
    return message


@pytest.fixture
def make_status():
    """Build a provider status object."""

    def _make(message_id, status, timestamp="1700000000", errors=None, recipient_id="5511999999999"):
        data = {
            "id": message_id,
            "status": status,
            "timestamp": timestamp,
            "recipient_id": recipient_id,
        }
        if errors is not None:
            data["errors"] = errors
        return data

    return _make


@pytest.fixture
def make_delivery():
    """Build a provider delivery body around statuses and messages."""

    def _make(
        statuses=None,
        messages=None,
        account_id=ACCOUNT_ID,
        phone_number_id=PHONE_NUMBER_ID,
        contacts=None,
    ):
        value = {
            "messaging_product": "whatsapp",
            "metadata": {
                "display_phone_number": DISPLAY_PHONE,
                "phone_number_id": phone_number_id,
            },
        }
        if statuses is not None:
            value["statuses"] = statuses
        if messages is not None:
            value["messages"] = messages
            value["contacts"] = contacts or [
                {"profile": {"name": "John Doe"}, "wa_id": "5511999999999"}
            ]
        return {
            "object": "whatsapp_business_account",
            "entry": [
                {
                    "id": account_id,
                    "changes": [{"field": "messages", "value": value}],
                }
            ],
        }

    return _make


@pytest.fixture
def stream_fields():
    """Stream fields as the receiver would publish them for a payload."""

    def _make(payload):
        envelope = WebhookEnvelope.create(payload=payload, metadata=extract_metadata(payload))
        return envelope.to_stream_data()

    return _make


@pytest.fixture
def text_message():
    """Provider text message from a customer."""

    def _make(message_id="wamid.IN1", body="Hello!", context_id=None):
        message = {
            "from": "5511999999999",
            "id": message_id,
            "timestamp": "1700000100",
            "type": "text",
            "text": {"body": body},
        }
        if context_id:
            message["context"] = {"from": DISPLAY_PHONE, "id": context_id}
        return message

    return _make
