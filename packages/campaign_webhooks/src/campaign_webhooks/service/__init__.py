"""
Service Layer

Classification, reconciliation and the batch processor.
"""

from campaign_webhooks.service.audit import AuditLog
from campaign_webhooks.service.batch_processor import BatchProcessor, BatchResult
from campaign_webhooks.service.classifier import classify
from campaign_webhooks.service.content import ExtractedContent, extract_content
from campaign_webhooks.service.incoming_reconciler import (
    IncomingMessageReconciler,
    IncomingOutcome,
)
from campaign_webhooks.service.status_reconciler import StatusOutcome, StatusReconciler

__all__ = [
    "AuditLog",
    "BatchProcessor",
    "BatchResult",
    "ExtractedContent",
    "IncomingMessageReconciler",
    "IncomingOutcome",
    "StatusOutcome",
    "StatusReconciler",
    "classify",
    "extract_content",
]
