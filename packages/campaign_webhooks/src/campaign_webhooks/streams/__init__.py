"""
Streams

Durable queue between the receiver and the processor, on Redis Streams.
"""

from campaign_webhooks.streams.consumer import StreamEntry, WebhookStreamConsumer
from campaign_webhooks.streams.groups import StreamConfig, ensure_streams
from campaign_webhooks.streams.producer import WebhookStreamProducer

__all__ = [
    "StreamConfig",
    "StreamEntry",
    "WebhookStreamConsumer",
    "WebhookStreamProducer",
    "ensure_streams",
]
