"""
Campaign Webhooks

Two-stage ingestion of WhatsApp Business webhooks:
a fast receiver that authenticates and enqueues, and a batch processor
that reconciles statuses and incoming messages into the shared store.
"""
