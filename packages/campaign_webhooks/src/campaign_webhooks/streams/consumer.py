"""
Webhook Stream Consumer

Consumes envelopes from the inbound stream using XREADGROUP.

Entries are returned unparsed: parsing happens per item in the batch
processor so a malformed entry fails alone. Only successful entries are
acknowledged; failed ones stay pending until reclaimed or dead-lettered.
"""

import logging
from dataclasses import dataclass
from typing import Any

import redis

from campaign_webhooks.streams.groups import StreamConfig
from campaign_webhooks.streams.producer import WebhookStreamProducer

logger = logging.getLogger(__name__)


@dataclass
class StreamEntry:
    """
    One entry read from the inbound stream.

    Attributes:
        msg_id: Stream entry id, also the batch item identifier
        fields: Raw string fields as stored by the producer
        delivery_count: Deliveries before this read (0 for a fresh read)
    """

    msg_id: str
    fields: dict[str, str]
    delivery_count: int = 0


class WebhookStreamConsumer:
    """
    Consumer for reading webhook envelopes from the inbound stream.

    Uses XREADGROUP for consumer group support and reliable delivery.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        consumer_name: str,
        stream: StreamConfig | None = None,
        producer: WebhookStreamProducer | None = None,
    ):
        self.redis = redis_client
        self.consumer_name = consumer_name
        self.stream = stream or StreamConfig.inbound()
        self.producer = producer or WebhookStreamProducer(redis_client, inbound=self.stream)

    @property
    def stream_name(self) -> str:
        return self.stream.stream_name

    @property
    def group_name(self) -> str:
        return self.stream.group_name

    def read_batch(
        self,
        count: int = 10,
        block_ms: int = 5000,
    ) -> list[StreamEntry]:
        """
        Read new entries for this consumer.

        Args:
            count: Maximum entries to read
            block_ms: Milliseconds to block waiting for entries

        Returns:
            List of stream entries, possibly empty
        """
        try:
            result = self.redis.xreadgroup(
                self.group_name,
                self.consumer_name,
                {self.stream_name: ">"},
                count=count,
                block=block_ms,
            )
        except redis.ResponseError as e:
            if "NOGROUP" in str(e):
                logger.error(
                    f"Consumer group {self.group_name} does not exist for {self.stream_name}"
                )
            raise

        if not result:
            return []

        entries = []
        for _stream, stream_entries in result:
            for msg_id, data in stream_entries:
                entries.append(StreamEntry(msg_id=msg_id, fields=data or {}))
        return entries

    def ack(self, *message_ids: str) -> int:
        """
        Acknowledge entries as processed.

        Returns:
            Number of entries acknowledged
        """
        if not message_ids:
            return 0
        return self.redis.xack(self.stream_name, self.group_name, *message_ids)

    def get_pending(
        self,
        min_idle_ms: int = 60000,
        count: int = 100,
    ) -> list[dict[str, Any]]:
        """
        Get pending entries that have been idle too long.

        Args:
            min_idle_ms: Minimum idle time in milliseconds
            count: Maximum entries to return

        Returns:
            List of pending entry info dicts
        """
        try:
            pending_info = self.redis.xpending(self.stream_name, self.group_name)
            if not pending_info or pending_info.get("pending", 0) == 0:
                return []

            pending_range = self.redis.xpending_range(
                self.stream_name,
                self.group_name,
                min="-",
                max="+",
                count=count,
            )
        except redis.ResponseError as e:
            logger.error(f"Failed to read pending entries: {e}")
            return []

        idle_entries = []
        for entry in pending_range:
            if entry.get("time_since_delivered", 0) >= min_idle_ms:
                idle_entries.append({
                    "message_id": entry["message_id"],
                    "consumer": entry["consumer"],
                    "idle_ms": entry["time_since_delivered"],
                    "delivery_count": entry["times_delivered"],
                })

        return idle_entries

    def claim(
        self,
        pending: list[dict[str, Any]],
        min_idle_ms: int = 60000,
    ) -> list[StreamEntry]:
        """
        Claim idle pending entries for this consumer.

        Args:
            pending: Entries as returned by get_pending
            min_idle_ms: Minimum idle time for claiming

        Returns:
            Claimed entries, carrying their previous delivery count
        """
        if not pending:
            return []

        counts = {p["message_id"]: p["delivery_count"] for p in pending}

        try:
            result = self.redis.xclaim(
                self.stream_name,
                self.group_name,
                self.consumer_name,
                min_idle_ms,
                list(counts),
            )
        except redis.ResponseError as e:
            logger.error(f"Failed to claim entries: {e}")
            return []

        entries = []
        for msg_id, data in result:
            if data is None:
                # Trimmed from the stream while pending
                logger.warning(f"Pending entry {msg_id} no longer exists, acknowledging")
                self.ack(msg_id)
                continue
            entries.append(
                StreamEntry(msg_id=msg_id, fields=data, delivery_count=counts.get(msg_id, 1))
            )
        return entries

    def reclaim_pending(
        self,
        min_idle_ms: int = 60000,
        count: int = 100,
    ) -> list[StreamEntry]:
        """
        Reclaim and return pending entries that have been idle.

        Combines get_pending and claim.
        """
        return self.claim(self.get_pending(min_idle_ms, count), min_idle_ms)

    def dead_letter(self, entry: StreamEntry, error: str) -> str:
        """
        Move an entry to the dead letter stream and acknowledge it.

        Returns:
            DLQ stream message ID
        """
        dlq_id = self.producer.publish_to_dlq(
            entry.msg_id,
            entry.fields,
            error=error,
            delivery_count=entry.delivery_count,
        )
        self.ack(entry.msg_id)

        logger.error(
            f"Dead-lettered entry {entry.msg_id} after {entry.delivery_count} deliveries: {error}",
            extra={
                "msg_id": entry.msg_id,
                "dlq_msg_id": dlq_id,
                "delivery_count": entry.delivery_count,
            },
        )
        return dlq_id
