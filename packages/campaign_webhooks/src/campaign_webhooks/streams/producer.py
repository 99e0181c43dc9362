"""
Webhook Stream Producer

Publishes webhook envelopes to the inbound stream, and failed entries to
the dead-letter stream.
"""

import logging
from datetime import datetime, timezone

import redis

from campaign_webhooks.contracts.envelope import WebhookEnvelope
from campaign_webhooks.streams.groups import StreamConfig

logger = logging.getLogger(__name__)


class WebhookStreamProducer:
    """
    Producer for publishing webhook envelopes to Redis Streams.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        inbound: StreamConfig | None = None,
        dlq: StreamConfig | None = None,
    ):
        self.redis = redis_client
        self.inbound = inbound or StreamConfig.inbound()
        self.dlq = dlq or StreamConfig.dlq()

    def publish(self, envelope: WebhookEnvelope) -> str:
        """
        Publish an envelope to the inbound stream.

        Called by the receiver once the delivery is authenticated.

        Returns:
            Stream message ID, used as the correlation id
        """
        return self._publish(self.inbound, envelope.to_stream_data())

    def republish(self, fields: dict[str, str]) -> str:
        """
        Put raw stream fields back on the inbound stream.

        Used to replay dead-lettered entries.

        Returns:
            Stream message ID
        """
        return self._publish(self.inbound, fields)

    def publish_to_dlq(
        self,
        msg_id: str,
        fields: dict[str, str],
        error: str,
        delivery_count: int,
    ) -> str:
        """
        Publish a failed entry to the dead letter stream.

        The original fields are kept as-is so the entry can be replayed.

        Returns:
            Stream message ID
        """
        data = {
            **fields,
            "original_msg_id": msg_id,
            "error": error,
            "delivery_count": str(delivery_count),
            "dead_lettered_at": datetime.now(timezone.utc).isoformat(),
        }
        return self._publish(self.dlq, data)

    def _publish(self, config: StreamConfig, data: dict[str, str]) -> str:
        """
        Publish string fields to a stream.

        Returns:
            Stream message ID
        """
        msg_id = self.redis.xadd(
            config.stream_name,
            data,
            maxlen=config.max_len,
            approximate=True,
        )

        logger.debug(
            f"Published to {config.stream_name}",
            extra={
                "stream": config.stream_name,
                "event_kind": data.get("event_kind"),
                "msg_id": msg_id,
            },
        )

        return msg_id


def dlq_entry_summary(fields: dict[str, str]) -> dict[str, str]:
    """Short view of a dead-letter entry for operators."""
    return {
        "original_msg_id": fields.get("original_msg_id", ""),
        "error": fields.get("error", ""),
        "delivery_count": fields.get("delivery_count", ""),
        "account_id": fields.get("account_id", ""),
        "event_kind": fields.get("event_kind", ""),
    }
