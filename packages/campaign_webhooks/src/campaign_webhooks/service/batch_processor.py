"""
Batch Processor

Processes a batch of queued envelopes. Each item is parsed, re-resolved to
its tenant, and reconciled independently: a failing item is reported by id
and never stops or rolls back the others.
"""

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from campaign_webhooks.contracts.envelope import WebhookEnvelope
from campaign_webhooks.contracts.event_types import EventCategory
from campaign_webhooks.contracts.payloads import IncomingMessageEvent, StatusEvent
from campaign_webhooks.errors import ItemTimeoutError, TenantNotFoundError
from campaign_webhooks.meta.payload import RawEvent, extract_routing, iter_events
from campaign_webhooks.persistence.models import Organization
from campaign_webhooks.routing.tenant_resolver import TenantResolver
from campaign_webhooks.service.audit import AuditLog
from campaign_webhooks.service.classifier import classify
from campaign_webhooks.service.incoming_reconciler import (
    IncomingMessageReconciler,
    IncomingOutcome,
)
from campaign_webhooks.service.status_reconciler import StatusOutcome, StatusReconciler

logger = logging.getLogger(__name__)


@dataclass
class ItemResult:
    """What one queued item produced."""

    item_id: str
    statuses: list[StatusOutcome] = field(default_factory=list)
    messages: list[IncomingOutcome] = field(default_factory=list)


@dataclass
class BatchResult:
    """
    Outcome of one batch.

    Attributes:
        failed_item_ids: Items to redeliver; empty means full success
        succeeded_item_ids: Items safe to acknowledge
        errors: Error text per failed item
    """

    failed_item_ids: list[str] = field(default_factory=list)
    succeeded_item_ids: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    items: list[ItemResult] = field(default_factory=list)

    def to_response(self) -> dict[str, Any]:
        """Partial-batch response for runtimes that expect batchItemFailures."""
        return {
            "batchItemFailures": [
                {"itemIdentifier": item_id} for item_id in self.failed_item_ids
            ]
        }


class BatchProcessor:
    """
    Reconciles queued webhook envelopes into the relational store.

    The session is injected and owned by the caller; the processor commits
    and rolls back on it but never closes it.
    """

    def __init__(
        self,
        db: Session,
        item_timeout_ms: int = 30000,
    ):
        self.db = db
        self.item_timeout_ms = item_timeout_ms
        self.resolver = TenantResolver(db)
        self.audit = AuditLog(db)
        self.statuses = StatusReconciler(db)
        self.incoming = IncomingMessageReconciler(db)

    def process_batch(self, items: Iterable[tuple[str, dict[str, str]]]) -> BatchResult:
        """
        Process a batch of (item_id, raw stream fields) pairs.

        Returns:
            Per-item success and failure
        """
        result = BatchResult()

        for item_id, fields in items:
            try:
                item = self.process_item(item_id, fields)
            except Exception as e:
                self.db.rollback()
                result.failed_item_ids.append(item_id)
                result.errors[item_id] = str(e) or type(e).__name__
                logger.error(
                    f"Failed to process item {item_id}: {e}",
                    extra={"item_id": item_id},
                    exc_info=True,
                )
                continue

            result.succeeded_item_ids.append(item_id)
            result.items.append(item)

        if result.failed_item_ids:
            logger.warning(
                f"Batch finished with {len(result.failed_item_ids)} failed items",
                extra={
                    "failed": len(result.failed_item_ids),
                    "succeeded": len(result.succeeded_item_ids),
                },
            )
        return result

    def process_item(self, item_id: str, fields: dict[str, str]) -> ItemResult:
        """
        Process one queued envelope.

        Raises:
            MalformedPayloadError: If the entry cannot be parsed
            TenantNotFoundError: If no active organization matches
            ItemTimeoutError: If the item ran past its budget
        """
        deadline = time.monotonic() + self.item_timeout_ms / 1000
        envelope = WebhookEnvelope.from_stream_message(item_id, fields)
        organization = self.resolve_organization(envelope)

        item = ItemResult(item_id=item_id)
        for event in iter_events(envelope.payload):
            if time.monotonic() > deadline:
                raise ItemTimeoutError(
                    f"Item {item_id} exceeded {self.item_timeout_ms}ms",
                    details={"item_id": item_id},
                )

            category = classify(event)
            if category is EventCategory.MESSAGE_STATUS:
                item.statuses.append(
                    self.handle_status(event, organization, envelope.received_at)
                )
            elif category is EventCategory.MESSAGE_RECEIVED:
                item.messages.append(
                    self.handle_message(event, organization, envelope.received_at)
                )

        return item

    def resolve_organization(self, envelope: WebhookEnvelope) -> Organization:
        """Resolve the tenant again; the queue is a trust boundary."""
        account_id = envelope.metadata.account_id
        channel_id = envelope.metadata.channel_id
        if not account_id and not channel_id:
            account_id, channel_id = extract_routing(envelope.payload)

        organization = self.resolver.resolve_by_routing(account_id, channel_id)
        if organization is None:
            raise TenantNotFoundError(
                details={"account_id": account_id, "channel_id": channel_id},
            )
        return organization

    def handle_status(
        self,
        event: RawEvent,
        organization: Organization,
        received_at: datetime,
    ) -> StatusOutcome:
        data = event.data if isinstance(event.data, dict) else {}

        with self.audit.track(
            EventCategory.MESSAGE_STATUS,
            organization.id,
            whatsapp_message_id=_text_or_none(data.get("id")),
            to_phone_number=_text_or_none(data.get("recipient_id")),
            status=_text_or_none(data.get("status")),
            raw_payload=event.as_delivery(),
        ) as audit:
            status = StatusEvent.from_provider(data)
            occurred_at = status.timestamp or received_at
            audit["timestamp"] = occurred_at

            outcome = self.statuses.reconcile(status, occurred_at)
            audit["campaign_id"] = outcome.campaign_id
            audit["campaign_audience_id"] = outcome.campaign_audience_id

        return outcome

    def handle_message(
        self,
        event: RawEvent,
        organization: Organization,
        received_at: datetime,
    ) -> IncomingOutcome:
        data = event.data if isinstance(event.data, dict) else {}

        with self.audit.track(
            EventCategory.MESSAGE_RECEIVED,
            organization.id,
            whatsapp_message_id=_text_or_none(data.get("id")),
            from_phone_number=_text_or_none(data.get("from")),
            to_phone_number=event.business_phone,
            status="received",
            raw_payload=event.as_delivery(),
        ) as audit:
            message = IncomingMessageEvent.from_provider(data, to_phone=event.business_phone)
            audit["timestamp"] = message.timestamp or received_at

            outcome = self.incoming.reconcile(message, organization.id, received_at)
            if outcome.content and outcome.content.interactive:
                audit["interactive_type"] = outcome.content.interactive.type
                audit["interactive_data"] = outcome.content.interactive.data
            audit["campaign_id"] = outcome.context_campaign_id

            self.incoming.mark_processed(outcome)

        return outcome


def _text_or_none(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)
