"""
Stream Configuration

The inbound and dead-letter streams share one consumer group. Both are
created on startup by the receiver and the processor.
"""

import logging
from dataclasses import dataclass
from typing import Any

import redis

from webhook_core.settings import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class StreamConfig:
    """A stream, its consumer group, and the approximate trim length."""

    stream_name: str
    group_name: str
    max_len: int = 100000
    start_id: str = "0"  # "0" = all history, "$" = new only

    @classmethod
    def inbound(cls, settings: Settings | None = None) -> "StreamConfig":
        settings = settings or get_settings()
        return cls(settings.INBOUND_STREAM, settings.CONSUMER_GROUP, settings.STREAM_MAX_LEN)

    @classmethod
    def dlq(cls, settings: Settings | None = None) -> "StreamConfig":
        settings = settings or get_settings()
        return cls(settings.DLQ_STREAM, settings.CONSUMER_GROUP, settings.STREAM_MAX_LEN)

    def ensure_group(self, client: redis.Redis) -> bool:
        """
        Create the stream and consumer group if missing.

        Returns:
            True if the group was created, False if it was already there
        """
        try:
            client.xgroup_create(
                self.stream_name, self.group_name, id=self.start_id, mkstream=True
            )
        except redis.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise
            return False

        logger.info(
            f"Created consumer group '{self.group_name}' on '{self.stream_name}'",
            extra={"stream": self.stream_name, "group": self.group_name},
        )
        return True

    def describe(self, client: redis.Redis) -> dict[str, Any]:
        """
        Length, first/last entry ids, groups and pending count for operators.

        A missing stream is reported with exists=False rather than raised.
        """
        try:
            info = client.xinfo_stream(self.stream_name)
        except redis.ResponseError:
            return {"exists": False, "length": 0}

        first = info.get("first-entry")
        last = info.get("last-entry")
        return {
            "exists": True,
            "length": info.get("length", 0),
            "first_id": first[0] if first else None,
            "last_id": last[0] if last else None,
            "groups": client.xinfo_groups(self.stream_name),
            "pending": self.pending_count(client),
        }

    def pending_count(self, client: redis.Redis) -> int:
        """Entries delivered to the group but not yet acknowledged."""
        try:
            summary = client.xpending(self.stream_name, self.group_name)
        except redis.ResponseError:
            return 0
        return summary.get("pending", 0) if summary else 0


def ensure_streams(client: redis.Redis, settings: Settings | None = None) -> None:
    """Make sure the inbound and dead-letter streams and their group exist."""
    for config in (StreamConfig.inbound(settings), StreamConfig.dlq(settings)):
        config.ensure_group(client)
