"""Webhook Ingestion Tables

Revision ID: 0001_webhook_tables
Revises:
Create Date: 2026-10-19

Creates tables owned by the webhook pipeline:
- webhook_events: Audit log of every processed event
- incoming_messages: Messages received from customers

organizations, campaigns, campaign_audience and messages belong to the
campaign-management schema and must already exist.
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB

revision = '0001_webhook_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # =========================================================================
    # WEBHOOK EVENTS
    # =========================================================================

    op.create_table(
        'webhook_events',
        sa.Column('id', UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('organization_id', UUID(as_uuid=True), nullable=True),
        sa.Column('campaign_id', UUID(as_uuid=True), nullable=True),
        sa.Column('campaign_audience_id', UUID(as_uuid=True), nullable=True),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('whatsapp_message_id', sa.String(255), nullable=True),
        sa.Column('from_phone_number', sa.String(20), nullable=True),
        sa.Column('to_phone_number', sa.String(20), nullable=True),
        sa.Column('status', sa.String(50), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=True),
        sa.Column('raw_payload', JSONB(), nullable=True),
        sa.Column('processed', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('interactive_type', sa.String(50), nullable=True),
        sa.Column('interactive_data', JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='SET NULL'),
    )
    op.create_index('idx_webhook_events_org_created', 'webhook_events', ['organization_id', 'created_at'])
    op.create_index('idx_webhook_events_whatsapp_message_id', 'webhook_events', ['whatsapp_message_id'])
    op.create_index('idx_webhook_events_processed', 'webhook_events', ['processed'])

    # =========================================================================
    # INCOMING MESSAGES
    # =========================================================================

    op.create_table(
        'incoming_messages',
        sa.Column('id', UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('organization_id', UUID(as_uuid=True), nullable=False),
        sa.Column('whatsapp_message_id', sa.String(255), nullable=False),
        sa.Column('from_phone_number', sa.String(20), nullable=False),
        sa.Column('to_phone_number', sa.String(20), nullable=True),
        sa.Column('message_type', sa.String(20), nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('media_url', sa.Text(), nullable=True),
        sa.Column('media_type', sa.String(100), nullable=True),
        sa.Column('media_size', sa.Integer(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=True),
        sa.Column('interactive_type', sa.String(50), nullable=True),
        sa.Column('interactive_data', JSONB(), nullable=True),
        sa.Column('context_message_id', sa.String(255), nullable=True),
        sa.Column('context_campaign_id', UUID(as_uuid=True), nullable=True),
        sa.Column('raw_payload', JSONB(), nullable=True),
        sa.Column('processed', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('whatsapp_message_id', name='uq_incoming_messages_whatsapp_message_id'),
    )
    op.create_index('idx_incoming_messages_org_created', 'incoming_messages', ['organization_id', 'created_at'])
    op.create_index('idx_incoming_messages_from', 'incoming_messages', ['organization_id', 'from_phone_number'])
    op.create_index('idx_incoming_messages_context_campaign', 'incoming_messages', ['context_campaign_id'])


def downgrade():
    op.drop_table('incoming_messages')
    op.drop_table('webhook_events')
