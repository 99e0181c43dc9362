"""
Pytest configuration for integration tests.

The receiver app runs in-process against an in-memory SQLite database.
Published envelopes are captured by a fake producer and handed to the
batch processor, so the whole pipeline runs without Redis.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from webhook_core.db import get_db
from webhook_receiver.main import app, get_producer

from campaign_webhooks.contracts.envelope import WebhookEnvelope
from campaign_webhooks.persistence.models import (
    Campaign,
    CampaignAudience,
    CampaignBase,
    Message,
    Organization,
)

ACCOUNT_ID = "WABA_INT_1"
PHONE_NUMBER_ID = "PHONE_INT_1"
DISPLAY_PHONE = "15550002222"
APP_SECRET = "integration_secret"
VERIFY_TOKEN = "integration_verify_token"


class FakeProducer:
    """Collects published envelopes in place of Redis."""

    def __init__(self):
        self.published: list[WebhookEnvelope] = []

    def publish(self, envelope: WebhookEnvelope) -> str:
        self.published.append(envelope)
        return f"{len(self.published)}-0"

    def stream_items(self) -> list[tuple[str, dict[str, str]]]:
        """Published envelopes as (stream id, stream fields) pairs."""
        return [
            (f"{n}-0", envelope.to_stream_data())
            for n, envelope in enumerate(self.published, start=1)
        ]


@pytest.fixture
def engine():
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
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def producer():
    return FakeProducer()


@pytest.fixture
def client(session_factory, producer):
    """Receiver test client wired to the test database and fake producer."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_producer] = lambda: producer
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def organization(db):
    org = Organization(
        name="Integration Org",
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
def unsigned_organization(db):
    """Organization with no app secret configured."""
    org = Organization(
        name="Unsigned Org",
        status="active",
        whatsapp_business_account_id="WABA_UNSIGNED",
        whatsapp_phone_number_id="PHONE_UNSIGNED",
    )
    db.add(org)
    db.commit()
    return org


@pytest.fixture
def outbound_message(db, organization):
    """A sent campaign message with provider id wamid.CAMPAIGN1."""
    campaign = Campaign(organization_id=organization.id, name="Launch", status="running")
    db.add(campaign)
    db.flush()

    audience = CampaignAudience(
        campaign_id=campaign.id,
        organization_id=organization.id,
        name="Ana",
        msisdn="5521988887777",
        whatsapp_message_id="wamid.CAMPAIGN1",
        message_status="sent",
    )
    db.add(audience)
    db.flush()

    message = Message(
        organization_id=organization.id,
        campaign_id=campaign.id,
        campaign_audience_id=audience.id,
        whatsapp_message_id="wamid.CAMPAIGN1",
        from_number=DISPLAY_PHONE,
        to_number="5521988887777",
        message_type="template",
        message_status="sent",
    )
    db.add(message)
    db.commit()
    return message


@pytest.fixture
def delivery():
    """Build a provider delivery body for the integration organization."""

    def _make(statuses=None, messages=None, account_id=ACCOUNT_ID, phone_number_id=PHONE_NUMBER_ID):
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
            value["contacts"] = [{"profile": {"name": "Ana"}, "wa_id": "5521988887777"}]
        return {
            "object": "whatsapp_business_account",
            "entry": [{"id": account_id, "changes": [{"field": "messages", "value": value}]}],
        }

    return _make


@pytest.fixture
def app_secret():
    return APP_SECRET


@pytest.fixture
def verify_token():
    return VERIFY_TOKEN
