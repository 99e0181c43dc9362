"""
Tenant Resolver

Resolves the organization a webhook belongs to, by verify token or by the
routing identifiers carried in the payload.
"""

import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.orm import Session

from campaign_webhooks.errors import SignatureInvalidError
from campaign_webhooks.meta.payload import extract_routing
from campaign_webhooks.persistence.models import Organization
from campaign_webhooks.persistence.repo import WebhookRepository

logger = logging.getLogger(__name__)


class TenantResolver:
    """
    Resolves organizations for webhook requests.

    Lookups are read-only and only match active organizations. Absence is
    returned as None; store errors propagate.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = WebhookRepository(db)

    def resolve_by_verify_token(self, token: str | None) -> Organization | None:
        """
        Resolve the organization for a subscription challenge.

        Args:
            token: hub.verify_token query parameter

        Returns:
            Active organization owning the token, None otherwise
        """
        if not token:
            return None

        organization = self.repo.get_organization_by_verify_token(token)
        if organization is None:
            logger.warning("No organization found for verify token")
        return organization

    def resolve_by_routing(
        self,
        account_id: str | None,
        channel_id: str | None,
    ) -> Organization | None:
        """
        Resolve the organization from payload routing identifiers.

        The business account id is tried first; the phone number id is the
        fallback, since not every payload shape carries both.

        Args:
            account_id: WhatsApp Business account id (entry id)
            channel_id: WhatsApp phone number id (change metadata)

        Returns:
            Active organization if found, None otherwise
        """
        organization = None

        if account_id:
            organization = self.repo.get_organization_by_business_account_id(account_id)

        if organization is None and channel_id:
            organization = self.repo.get_organization_by_phone_number_id(channel_id)

        if organization:
            logger.debug(
                "Resolved organization from routing ids",
                extra={
                    "account_id": account_id,
                    "channel_id": channel_id,
                    "organization_id": str(organization.id),
                },
            )
        else:
            logger.warning(
                f"No organization found for account_id={account_id} channel_id={channel_id}"
            )

        return organization

    def resolve_from_payload(self, payload: Any) -> Organization | None:
        """Resolve the organization from a raw delivery body."""
        account_id, channel_id = extract_routing(payload)
        return self.resolve_by_routing(account_id, channel_id)

    def get_signing_secret(
        self,
        organization: Organization,
        encryption_key: str | None = None,
    ) -> str | None:
        """
        Get the decrypted app secret used to sign webhooks.

        Args:
            organization: Resolved organization
            encryption_key: Fernet key for decryption (if encrypted)

        Returns:
            The secret, or None if the organization has none configured

        Raises:
            SignatureInvalidError: If the stored secret cannot be decrypted
        """
        if not organization.whatsapp_app_secret:
            return None

        if not encryption_key:
            return organization.whatsapp_app_secret

        try:
            f = Fernet(encryption_key.encode())
            return f.decrypt(organization.whatsapp_app_secret.encode()).decode()
        except (InvalidToken, ValueError) as e:
            logger.error(
                f"Failed to decrypt app secret for organization {organization.id}: {e}"
            )
            raise SignatureInvalidError(
                "Signing secret unavailable",
                details={"organization_id": str(organization.id)},
            ) from e
