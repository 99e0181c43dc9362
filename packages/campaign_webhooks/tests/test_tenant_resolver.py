"""
Tests for tenant resolution.
"""

import pytest
from cryptography.fernet import Fernet

from campaign_webhooks.errors import SignatureInvalidError
from campaign_webhooks.persistence.models import Organization
from campaign_webhooks.routing.tenant_resolver import TenantResolver


class TestResolveByVerifyToken:
    """Tests for resolve_by_verify_token."""

    def test_known_token(self, db, organization):
        resolved = TenantResolver(db).resolve_by_verify_token("verify_token_abc")

        assert resolved is not None
        assert resolved.id == organization.id

    def test_unknown_token(self, db, organization):
        assert TenantResolver(db).resolve_by_verify_token("nope") is None

    def test_empty_token(self, db, organization):
        assert TenantResolver(db).resolve_by_verify_token(None) is None
        assert TenantResolver(db).resolve_by_verify_token("") is None

    def test_inactive_organization(self, db, organization):
        organization.status = "suspended"
        db.commit()

        assert TenantResolver(db).resolve_by_verify_token("verify_token_abc") is None


class TestResolveByRouting:
    """Tests for resolve_by_routing."""

    def test_account_id(self, db, organization):
        resolved = TenantResolver(db).resolve_by_routing("WABA_123456", None)

        assert resolved.id == organization.id

    def test_channel_id_fallback(self, db, organization):
        """Falls back to the phone number id when the account id is unknown."""
        resolver = TenantResolver(db)

        assert resolver.resolve_by_routing(None, "PHONE_123").id == organization.id
        assert resolver.resolve_by_routing("WABA_UNKNOWN", "PHONE_123").id == organization.id

    def test_account_id_wins(self, db, organization):
        """The account id is tried before the phone number id."""
        other = Organization(
            name="Other",
            status="active",
            whatsapp_business_account_id="WABA_OTHER",
            whatsapp_phone_number_id="PHONE_OTHER",
        )
        db.add(other)
        db.commit()

        resolved = TenantResolver(db).resolve_by_routing("WABA_OTHER", "PHONE_123")

        assert resolved.id == other.id

    def test_not_found(self, db, organization):
        assert TenantResolver(db).resolve_by_routing("WABA_X", "PHONE_X") is None
        assert TenantResolver(db).resolve_by_routing(None, None) is None

    def test_inactive_organization(self, db, organization):
        organization.status = "inactive"
        db.commit()

        assert TenantResolver(db).resolve_by_routing("WABA_123456", "PHONE_123") is None

    def test_from_payload(self, db, organization, make_delivery):
        payload = make_delivery(statuses=[], account_id=None)

        assert TenantResolver(db).resolve_from_payload(payload).id == organization.id


class TestSigningSecret:
    """Tests for get_signing_secret."""

    def test_plain_secret(self, db, organization):
        assert TenantResolver(db).get_signing_secret(organization) == "test_app_secret"

    def test_no_secret(self, db, organization):
        organization.whatsapp_app_secret = None

        assert TenantResolver(db).get_signing_secret(organization) is None

    def test_encrypted_secret(self, db, organization):
        key = Fernet.generate_key().decode()
        organization.whatsapp_app_secret = Fernet(key.encode()).encrypt(b"real_secret").decode()

        assert TenantResolver(db).get_signing_secret(organization, key) == "real_secret"

    def test_undecryptable_secret(self, db, organization):
        """A secret that does not decrypt fails closed."""
        key = Fernet.generate_key().decode()

        with pytest.raises(SignatureInvalidError):
            TenantResolver(db).get_signing_secret(organization, key)
