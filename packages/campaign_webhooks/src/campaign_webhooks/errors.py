"""
Ingestion Errors

Failures that stop a webhook request or a queued item.
Duplicates and partial ledger matches are results, not errors.
"""

from typing import Any


class WebhookIngestError(Exception):
    """Base error for webhook ingestion."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.code = code
        self.details = details or {}
        self.retryable = retryable


class TenantNotFoundError(WebhookIngestError):
    """No active tenant for the verify token or routing identifiers."""

    def __init__(self, message: str = "Organization not found", **kwargs: Any):
        super().__init__(message, code="tenant_not_found", **kwargs)


class SignatureInvalidError(WebhookIngestError):
    """Webhook signature missing or does not match the tenant secret."""

    def __init__(self, message: str = "Invalid signature", **kwargs: Any):
        super().__init__(message, code="signature_invalid", **kwargs)


class MalformedPayloadError(WebhookIngestError):
    """Body or queued envelope could not be parsed."""

    def __init__(self, message: str = "Malformed payload", **kwargs: Any):
        super().__init__(message, code="malformed_payload", **kwargs)


class ItemTimeoutError(WebhookIngestError):
    """A queued item ran past its processing budget."""

    def __init__(self, message: str = "Item processing budget exceeded", **kwargs: Any):
        super().__init__(message, code="item_timeout", retryable=True, **kwargs)
