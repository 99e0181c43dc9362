"""
Campaign Webhooks CLI

Command-line interface for operating the webhook pipeline.

Commands:
- init-db: Create the tables this service uses (development)
- list-tenants: List organizations and their routing ids
- encrypt-secret: Encrypt an app secret for storage
- stream-info: Show inbound/DLQ stream state
- failed-events: List audit records closed with an error
- replay-event: Re-enqueue an audited event
- replay-dlq: Move dead-lettered entries back to the inbound stream
- purge-events: Delete old audit records
"""

from typing import Optional
from uuid import UUID

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="campaign-webhooks",
    help="Campaign Webhooks CLI",
)

console = Console()


def get_db():
    """Get database session."""
    from webhook_core.db import get_db as _get_db
    return next(_get_db())


def get_redis():
    """Get Redis client."""
    from webhook_core.redis import get_redis_client
    return get_redis_client()


@app.command()
def init_db():
    """
    Create all tables on the configured database.

    Production schemas are managed with alembic; this is for local setups.
    """
    from webhook_core.db import get_engine
    from campaign_webhooks.persistence.models import CampaignBase

    CampaignBase.metadata.create_all(get_engine())
    rprint("[green]Tables created[/green]")


@app.command()
def list_tenants():
    """
    List organizations and their WhatsApp routing ids.
    """
    db = get_db()

    try:
        from campaign_webhooks.persistence.repo import WebhookRepository

        organizations = WebhookRepository(db).list_organizations()

        if not organizations:
            rprint("[yellow]No organizations found[/yellow]")
            raise typer.Exit(0)

        table = Table(title="Organizations")
        table.add_column("ID", style="dim")
        table.add_column("Name")
        table.add_column("Status")
        table.add_column("Business Account")
        table.add_column("Phone Number ID")
        table.add_column("Secret")

        for org in organizations:
            table.add_row(
                str(org.id)[:8] + "...",
                org.name,
                org.status,
                org.whatsapp_business_account_id or "-",
                org.whatsapp_phone_number_id or "-",
                "Yes" if org.whatsapp_app_secret else "No",
            )

        console.print(table)

    finally:
        db.close()


@app.command()
def encrypt_secret(
    secret: str = typer.Argument(..., help="App secret to encrypt"),
):
    """
    Encrypt an app secret with SECRET_ENCRYPTION_KEY.

    Store the output in organizations.whatsapp_app_secret.
    """
    from cryptography.fernet import Fernet

    from webhook_core.settings import get_settings

    key = get_settings().SECRET_ENCRYPTION_KEY
    if not key:
        rprint("[red]SECRET_ENCRYPTION_KEY is not set[/red]")
        raise typer.Exit(1)

    f = Fernet(key.encode())
    print(f.encrypt(secret.encode()).decode())


@app.command()
def stream_info(
    dlq: bool = typer.Option(False, "--dlq", help="Show the dead letter stream instead"),
):
    """
    Show length, consumer groups and pending entries of the inbound stream.
    """
    from campaign_webhooks.streams.groups import StreamConfig

    config = StreamConfig.dlq() if dlq else StreamConfig.inbound()
    info = config.describe(get_redis())

    rprint(f"\n[cyan]Stream: {config.stream_name}[/cyan]")

    if not info["exists"]:
        rprint("  [yellow]Stream does not exist[/yellow]")
        raise typer.Exit(0)

    rprint(f"  Length: {info['length']}")
    if info["first_id"]:
        rprint(f"  First entry: {info['first_id']}")
    if info["last_id"]:
        rprint(f"  Last entry: {info['last_id']}")

    if info["groups"]:
        rprint("\n  Consumer Groups:")
        for group in info["groups"]:
            rprint(
                f"    {group.get('name')}: "
                f"{group.get('consumers', 0)} consumers, "
                f"{group.get('pending', 0)} pending"
            )

    rprint(f"\n  Pending for {config.group_name}: {info['pending']}")


@app.command()
def failed_events(
    limit: int = typer.Option(20, help="Maximum number of events to show"),
    organization_id: Optional[str] = typer.Option(None, help="Filter by organization UUID"),
):
    """
    List audit records that were closed with an error.
    """
    org_uuid = None
    if organization_id:
        try:
            org_uuid = UUID(organization_id)
        except ValueError:
            rprint(f"[red]Invalid organization ID: {organization_id}[/red]")
            raise typer.Exit(1)

    db = get_db()

    try:
        from campaign_webhooks.persistence.repo import WebhookRepository

        events = WebhookRepository(db).list_failed_events(limit=limit, organization_id=org_uuid)

        if not events:
            rprint("[green]No failed events[/green]")
            raise typer.Exit(0)

        table = Table(title="Failed Webhook Events")
        table.add_column("ID")
        table.add_column("Type")
        table.add_column("Message ID")
        table.add_column("Status")
        table.add_column("Error")
        table.add_column("Created")

        for event in events:
            table.add_row(
                str(event.id),
                event.event_type,
                event.whatsapp_message_id or "-",
                event.status or "-",
                (event.error_message or "")[:80],
                event.created_at.strftime("%Y-%m-%d %H:%M") if event.created_at else "-",
            )

        console.print(table)

    finally:
        db.close()


@app.command()
def replay_event(
    event_id: str = typer.Argument(..., help="Webhook event (audit record) UUID"),
):
    """
    Re-enqueue an audited event as a fresh envelope.

    The event goes through the processor again; reconciliation is
    idempotent, so replaying an applied event is harmless.
    """
    try:
        event_uuid = UUID(event_id)
    except ValueError:
        rprint(f"[red]Invalid event ID: {event_id}[/red]")
        raise typer.Exit(1)

    db = get_db()

    try:
        from campaign_webhooks.contracts.envelope import WebhookEnvelope
        from campaign_webhooks.meta.payload import extract_metadata
        from campaign_webhooks.persistence.repo import WebhookRepository
        from campaign_webhooks.streams.producer import WebhookStreamProducer

        event = WebhookRepository(db).get_webhook_event(event_uuid)
        if not event:
            rprint(f"[red]No webhook event found: {event_id}[/red]")
            raise typer.Exit(1)

        if not isinstance(event.raw_payload, dict) or not event.raw_payload.get("entry"):
            rprint(f"[red]Event {event_id} has no replayable payload[/red]")
            raise typer.Exit(1)

        envelope = WebhookEnvelope.create(
            payload=event.raw_payload,
            metadata=extract_metadata(event.raw_payload),
            headers={"x-replay-of": str(event.id)},
        )
        msg_id = WebhookStreamProducer(get_redis()).publish(envelope)

        rprint(f"[green]Replayed event {event_id} as {msg_id}[/green]")

    finally:
        db.close()


@app.command()
def replay_dlq(
    limit: int = typer.Option(10, help="Maximum entries to replay"),
):
    """
    Replay entries from the dead letter stream.

    Each entry is republished to the inbound stream with its original
    fields and removed from the DLQ.
    """
    from campaign_webhooks.streams.groups import StreamConfig
    from campaign_webhooks.streams.producer import WebhookStreamProducer, dlq_entry_summary

    redis_client = get_redis()
    producer = WebhookStreamProducer(redis_client)
    dlq_stream = StreamConfig.dlq().stream_name

    entries = redis_client.xrange(dlq_stream, count=limit)
    if not entries:
        rprint("[yellow]No entries in DLQ[/yellow]")
        raise typer.Exit(0)

    rprint(f"[cyan]Found {len(entries)} entries in DLQ[/cyan]")

    replayed = 0
    for msg_id, data in entries:
        summary = dlq_entry_summary(data)
        if "payload" not in data:
            rprint(f"[yellow]Skipping {msg_id}: no payload[/yellow]")
            continue

        fields = {
            k: v
            for k, v in data.items()
            if k not in ("original_msg_id", "error", "delivery_count", "dead_lettered_at")
        }
        new_id = producer.republish(fields)
        redis_client.xdel(dlq_stream, msg_id)

        replayed += 1
        rprint(
            f"[green]Replayed {msg_id} as {new_id}[/green] "
            f"(was {summary['original_msg_id']}: {summary['error']})"
        )

    rprint(f"\n[green]Replayed {replayed} entries[/green]")


@app.command()
def purge_events(
    days: int = typer.Option(90, help="Delete audit records older than this many days"),
):
    """
    Delete old webhook audit records.
    """
    db = get_db()

    try:
        from campaign_webhooks.service.audit import AuditLog

        deleted = AuditLog(db).purge_older_than(days)
        rprint(f"[green]Deleted {deleted} webhook events[/green]")

    finally:
        db.close()


if __name__ == "__main__":
    app()
