"""
Tests for the operator CLI.
"""

from unittest.mock import MagicMock

import pytest
import redis
from cryptography.fernet import Fernet
from typer.testing import CliRunner

from campaign_webhooks.cli import main as cli
from campaign_webhooks.contracts.event_types import EventCategory
from campaign_webhooks.service.audit import AuditLog
from webhook_core.settings import get_settings

runner = CliRunner()


@pytest.fixture
def cli_db(db, monkeypatch):
    """Point CLI commands at the test session."""
    monkeypatch.setattr(cli, "get_db", lambda: db)
    return db


@pytest.fixture
def redis_mock(monkeypatch):
    client = MagicMock()
    client.xadd.return_value = "1700000000000-0"
    monkeypatch.setattr(cli, "get_redis", lambda: client)
    return client


@pytest.fixture
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestTenantCommands:
    """Tests for list-tenants and encrypt-secret."""

    def test_list_tenants(self, cli_db, organization):
        result = runner.invoke(cli.app, ["list-tenants"])

        assert result.exit_code == 0
        assert "Organizations" in result.output

    def test_list_tenants_empty(self, cli_db):
        result = runner.invoke(cli.app, ["list-tenants"])

        assert result.exit_code == 0
        assert "No organizations found" in result.output

    def test_encrypt_secret(self, monkeypatch, fresh_settings):
        key = Fernet.generate_key().decode()
        monkeypatch.setenv("SECRET_ENCRYPTION_KEY", key)

        result = runner.invoke(cli.app, ["encrypt-secret", "my_app_secret"])

        assert result.exit_code == 0
        token = result.output.strip()
        assert Fernet(key.encode()).decrypt(token.encode()) == b"my_app_secret"

    def test_encrypt_secret_without_key(self, monkeypatch, fresh_settings):
        monkeypatch.delenv("SECRET_ENCRYPTION_KEY", raising=False)

        result = runner.invoke(cli.app, ["encrypt-secret", "my_app_secret"])

        assert result.exit_code == 1


class TestAuditCommands:
    """Tests for failed-events, replay-event and purge-events."""

    def test_failed_events_none(self, cli_db, organization):
        result = runner.invoke(cli.app, ["failed-events"])

        assert result.exit_code == 0
        assert "No failed events" in result.output

    def test_failed_events(self, cli_db, organization):
        audit = AuditLog(cli_db)
        audit.close(audit.open(EventCategory.MESSAGE_STATUS, organization.id), error="boom")

        result = runner.invoke(cli.app, ["failed-events", "--organization-id", str(organization.id)])

        assert result.exit_code == 0
        assert "Failed Webhook Events" in result.output

    def test_failed_events_bad_org_id(self, cli_db):
        result = runner.invoke(cli.app, ["failed-events", "--organization-id", "nope"])

        assert result.exit_code == 1

    def test_replay_event(self, cli_db, organization, redis_mock, make_delivery, make_status):
        payload = make_delivery(statuses=[make_status("wamid.OUT1", "sent")])
        audit = AuditLog(cli_db)
        event = audit.open(EventCategory.MESSAGE_STATUS, organization.id, raw_payload=payload)
        audit.close(event, error="boom")
        event_id = str(event.id)

        result = runner.invoke(cli.app, ["replay-event", event_id])

        assert result.exit_code == 0
        args, _ = redis_mock.xadd.call_args
        assert args[0] == get_settings().INBOUND_STREAM
        assert args[1]["account_id"] == "WABA_123456"
        assert event_id in args[1]["headers"]

    def test_replay_unknown_event(self, cli_db, redis_mock):
        result = runner.invoke(cli.app, ["replay-event", "00000000-0000-0000-0000-000000000000"])

        assert result.exit_code == 1
        redis_mock.xadd.assert_not_called()

    def test_replay_event_without_payload(self, cli_db, organization, redis_mock):
        audit = AuditLog(cli_db)
        event = audit.open(EventCategory.MESSAGE_STATUS, organization.id)
        audit.close(event)

        result = runner.invoke(cli.app, ["replay-event", str(event.id)])

        assert result.exit_code == 1
        redis_mock.xadd.assert_not_called()

    def test_purge_events(self, cli_db, organization):
        audit = AuditLog(cli_db)
        audit.close(audit.open(EventCategory.MESSAGE_STATUS, organization.id))

        result = runner.invoke(cli.app, ["purge-events", "--days", "30"])

        assert result.exit_code == 0
        assert "Deleted 0 webhook events" in result.output


class TestStreamCommands:
    """Tests for stream-info."""

    def test_stream_info(self, redis_mock):
        redis_mock.xinfo_stream.return_value = {
            "length": 4,
            "first-entry": ("1-0", {}),
            "last-entry": ("4-0", {}),
        }
        redis_mock.xinfo_groups.return_value = [{"name": "webhook-processor", "consumers": 2, "pending": 1}]
        redis_mock.xpending.return_value = {"pending": 1}

        result = runner.invoke(cli.app, ["stream-info"])

        assert result.exit_code == 0
        assert "Length: 4" in result.output
        redis_mock.xinfo_stream.assert_called_once_with(get_settings().INBOUND_STREAM)

    def test_stream_info_dlq_missing(self, redis_mock):
        redis_mock.xinfo_stream.side_effect = redis.ResponseError("ERR no such key")

        result = runner.invoke(cli.app, ["stream-info", "--dlq"])

        assert result.exit_code == 0
        assert "Stream does not exist" in result.output
        redis_mock.xinfo_stream.assert_called_once_with(get_settings().DLQ_STREAM)


class TestDlqCommands:
    """Tests for replay-dlq."""

    def test_replay_dlq(self, redis_mock):
        redis_mock.xrange.return_value = [
            (
                "5-0",
                {
                    "payload": "{}",
                    "metadata": "{}",
                    "original_msg_id": "1-0",
                    "error": "boom",
                    "delivery_count": "5",
                    "dead_lettered_at": "2024-01-01T00:00:00+00:00",
                },
            ),
            ("6-0", {"error": "no payload here"}),
        ]

        result = runner.invoke(cli.app, ["replay-dlq", "--limit", "5"])

        assert result.exit_code == 0
        settings = get_settings()
        redis_mock.xrange.assert_called_once_with(settings.DLQ_STREAM, count=5)
        args, _ = redis_mock.xadd.call_args
        assert args[1] == {"payload": "{}", "metadata": "{}"}
        redis_mock.xdel.assert_called_once_with(settings.DLQ_STREAM, "5-0")

    def test_replay_dlq_empty(self, redis_mock):
        redis_mock.xrange.return_value = []

        result = runner.invoke(cli.app, ["replay-dlq"])

        assert result.exit_code == 0
        assert "No entries in DLQ" in result.output
        redis_mock.xadd.assert_not_called()
