"""
Tests for the Redis Streams producer and consumer.

The Redis client is mocked; these tests pin the commands issued and how
replies are interpreted.
"""

import json
from unittest.mock import MagicMock

import pytest
import redis

from campaign_webhooks.contracts.envelope import WebhookEnvelope, WebhookMetadata
from campaign_webhooks.streams.consumer import StreamEntry, WebhookStreamConsumer
from campaign_webhooks.streams.groups import StreamConfig, ensure_streams
from campaign_webhooks.streams.producer import WebhookStreamProducer, dlq_entry_summary

INBOUND = StreamConfig("test:inbound", "test-group", max_len=500)
DLQ = StreamConfig("test:dlq", "test-group", max_len=500)


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def producer(client):
    return WebhookStreamProducer(client, inbound=INBOUND, dlq=DLQ)


@pytest.fixture
def consumer(client, producer):
    return WebhookStreamConsumer(client, "worker-1", stream=INBOUND, producer=producer)


class TestProducer:
    """Tests for WebhookStreamProducer."""

    def test_publish_envelope(self, client, producer):
        client.xadd.return_value = "1700000000000-0"
        envelope = WebhookEnvelope.create(
            payload={"object": "whatsapp_business_account"},
            metadata=WebhookMetadata(event_kind="status_update", account_id="WABA_1"),
        )

        msg_id = producer.publish(envelope)

        assert msg_id == "1700000000000-0"
        args, kwargs = client.xadd.call_args
        assert args[0] == "test:inbound"
        assert json.loads(args[1]["payload"]) == {"object": "whatsapp_business_account"}
        assert args[1]["account_id"] == "WABA_1"
        assert kwargs == {"maxlen": 500, "approximate": True}

    def test_publish_to_dlq_keeps_fields(self, client, producer):
        client.xadd.return_value = "9-0"

        producer.publish_to_dlq("1-0", {"payload": "{}"}, error="boom", delivery_count=5)

        args, _ = client.xadd.call_args
        assert args[0] == "test:dlq"
        data = args[1]
        assert data["payload"] == "{}"
        assert data["original_msg_id"] == "1-0"
        assert data["error"] == "boom"
        assert data["delivery_count"] == "5"
        assert "dead_lettered_at" in data

    def test_dlq_entry_summary(self):
        summary = dlq_entry_summary(
            {"original_msg_id": "1-0", "error": "boom", "delivery_count": "5", "payload": "{}"}
        )

        assert summary["original_msg_id"] == "1-0"
        assert summary["error"] == "boom"
        assert summary["account_id"] == ""
        assert "payload" not in summary


class TestConsumerRead:
    """Tests for reading and acknowledging entries."""

    def test_read_batch(self, client, consumer):
        client.xreadgroup.return_value = [
            ["test:inbound", [("1-0", {"payload": "{}"}), ("2-0", {"payload": "[]"})]]
        ]

        entries = consumer.read_batch(count=10, block_ms=100)

        client.xreadgroup.assert_called_once_with(
            "test-group", "worker-1", {"test:inbound": ">"}, count=10, block=100
        )
        assert [e.msg_id for e in entries] == ["1-0", "2-0"]
        assert entries[1].fields == {"payload": "[]"}
        assert entries[0].delivery_count == 0

    def test_read_batch_empty(self, client, consumer):
        client.xreadgroup.return_value = None

        assert consumer.read_batch() == []

    def test_read_batch_missing_group_raises(self, client, consumer):
        client.xreadgroup.side_effect = redis.ResponseError("NOGROUP No such key")

        with pytest.raises(redis.ResponseError):
            consumer.read_batch()

    def test_ack(self, client, consumer):
        client.xack.return_value = 2

        assert consumer.ack("1-0", "2-0") == 2
        client.xack.assert_called_once_with("test:inbound", "test-group", "1-0", "2-0")

    def test_ack_nothing(self, client, consumer):
        assert consumer.ack() == 0
        client.xack.assert_not_called()


class TestConsumerReclaim:
    """Tests for pending-entry reclaim and dead-lettering."""

    def test_get_pending_filters_idle(self, client, consumer):
        client.xpending.return_value = {"pending": 2}
        client.xpending_range.return_value = [
            {"message_id": "1-0", "consumer": "w0", "time_since_delivered": 90000, "times_delivered": 3},
            {"message_id": "2-0", "consumer": "w0", "time_since_delivered": 10, "times_delivered": 1},
        ]

        pending = consumer.get_pending(min_idle_ms=60000)

        assert pending == [
            {"message_id": "1-0", "consumer": "w0", "idle_ms": 90000, "delivery_count": 3}
        ]

    def test_get_pending_none(self, client, consumer):
        client.xpending.return_value = {"pending": 0}

        assert consumer.get_pending() == []
        client.xpending_range.assert_not_called()

    def test_claim_carries_delivery_count(self, client, consumer):
        client.xclaim.return_value = [("1-0", {"payload": "{}"}), ("2-0", None)]
        pending = [
            {"message_id": "1-0", "consumer": "w0", "idle_ms": 90000, "delivery_count": 4},
            {"message_id": "2-0", "consumer": "w0", "idle_ms": 90000, "delivery_count": 1},
        ]

        entries = consumer.claim(pending, min_idle_ms=60000)

        assert entries == [StreamEntry("1-0", {"payload": "{}"}, delivery_count=4)]
        # Entries trimmed from the stream are acknowledged and dropped
        client.xack.assert_called_once_with("test:inbound", "test-group", "2-0")

    def test_claim_nothing(self, client, consumer):
        assert consumer.claim([]) == []
        client.xclaim.assert_not_called()

    def test_dead_letter(self, client, consumer):
        client.xadd.return_value = "9-0"
        entry = StreamEntry("1-0", {"payload": "{}"}, delivery_count=5)

        dlq_id = consumer.dead_letter(entry, "still failing")

        assert dlq_id == "9-0"
        assert client.xadd.call_args[0][0] == "test:dlq"
        client.xack.assert_called_once_with("test:inbound", "test-group", "1-0")


class TestStreamConfig:
    """Tests for consumer group setup and stream inspection."""

    def test_creates_group(self, client):
        assert INBOUND.ensure_group(client) is True
        client.xgroup_create.assert_called_once_with(
            "test:inbound", "test-group", id="0", mkstream=True
        )

    def test_existing_group(self, client):
        client.xgroup_create.side_effect = redis.ResponseError("BUSYGROUP Consumer Group name already exists")

        assert INBOUND.ensure_group(client) is False

    def test_other_errors_raise(self, client):
        client.xgroup_create.side_effect = redis.ResponseError("WRONGTYPE")

        with pytest.raises(redis.ResponseError):
            INBOUND.ensure_group(client)

    def test_ensure_streams_creates_both(self, client):
        settings = MagicMock(
            INBOUND_STREAM="a:inbound",
            DLQ_STREAM="a:dlq",
            CONSUMER_GROUP="g",
            STREAM_MAX_LEN=10,
        )

        ensure_streams(client, settings)

        streams = [c.args[0] for c in client.xgroup_create.call_args_list]
        assert streams == ["a:inbound", "a:dlq"]

    def test_describe(self, client):
        client.xinfo_stream.return_value = {
            "length": 3,
            "first-entry": ("1-0", {"payload": "{}"}),
            "last-entry": ("3-0", {"payload": "{}"}),
        }
        client.xinfo_groups.return_value = [{"name": "test-group", "consumers": 1, "pending": 2}]
        client.xpending.return_value = {"pending": 2}

        info = INBOUND.describe(client)

        assert info["exists"] is True
        assert info["length"] == 3
        assert info["first_id"] == "1-0"
        assert info["last_id"] == "3-0"
        assert info["pending"] == 2

    def test_describe_missing_stream(self, client):
        client.xinfo_stream.side_effect = redis.ResponseError("ERR no such key")

        assert INBOUND.describe(client) == {"exists": False, "length": 0}

    def test_pending_count_without_group(self, client):
        client.xpending.side_effect = redis.ResponseError("NOGROUP")

        assert INBOUND.pending_count(client) == 0
