"""
Webhook Core

Shared infrastructure for the webhook receiver and processor:
settings, logging, database and Redis clients.
"""
