"""Initial schema: mollie api keys, webhook endpoints, webhook logs

Revision ID: 4b2e7a91c0d3
Revises: 
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '4b2e7a91c0d3'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')

endpoint_type = sa.Enum('classic', 'nextgen', name='endpointtype')
log_status = sa.Enum('success', 'signature_failed', 'fetch_failed', 'invalid', name='webhooklogstatus')


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    """Create the webhook relay tables."""
    # 1. Mollie API keys (no dependencies)
    op.create_table(
        'mollie_api_keys',
        *_base_columns(),
        sa.Column('owner_id', sa.Uuid(), nullable=False),
        sa.Column('label', sa.String(length=100), nullable=False),
        sa.Column('encrypted_key', sa.Text(), nullable=False),
        sa.Column('last_four_chars', sa.String(length=4), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_valid', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_validated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_mollie_api_keys_id'), 'mollie_api_keys', ['id'])
    op.create_index(op.f('ix_mollie_api_keys_created_at'), 'mollie_api_keys', ['created_at'])
    op.create_index(op.f('ix_mollie_api_keys_owner_id'), 'mollie_api_keys', ['owner_id'])

    # 2. Webhook endpoints (depends on mollie_api_keys)
    op.create_table(
        'webhook_endpoints',
        *_base_columns(),
        sa.Column('owner_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('type', endpoint_type, nullable=False),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('api_key_id', sa.Uuid(), nullable=True),
        sa.Column('resource_type_filter', JSONType, nullable=True),
        sa.Column('shared_secret', sa.Text(), nullable=True),
        sa.Column('event_type_filter', JSONType, nullable=True),
        sa.Column('forwarding_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('forwarding_url', sa.String(length=2048), nullable=True),
        sa.Column('forwarding_headers', JSONType, nullable=True),
        sa.Column('forwarding_timeout_ms', sa.Integer(), nullable=False, server_default='30000'),
        sa.Column('retention_days', sa.Integer(), nullable=True),
        sa.Column('total_received', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_received_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['api_key_id'], ['mollie_api_keys.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            'forwarding_timeout_ms BETWEEN 1000 AND 60000',
            name='ck_webhook_endpoints_forwarding_timeout_range',
        ),
    )
    op.create_index(op.f('ix_webhook_endpoints_id'), 'webhook_endpoints', ['id'])
    op.create_index(op.f('ix_webhook_endpoints_created_at'), 'webhook_endpoints', ['created_at'])
    op.create_index(op.f('ix_webhook_endpoints_owner_id'), 'webhook_endpoints', ['owner_id'])

    # 3. Webhook logs (endpoint_id is intentionally not a foreign key)
    op.create_table(
        'webhook_logs',
        *_base_columns(),
        sa.Column('endpoint_id', sa.Uuid(), nullable=False),
        sa.Column('owner_id', sa.Uuid(), nullable=False),
        sa.Column('received_at', sa.DateTime(), nullable=False),
        sa.Column('processing_time_ms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('request_headers', JSONType, nullable=False),
        sa.Column('request_body', JSONType, nullable=True),
        sa.Column('body_format', sa.String(length=10), nullable=True),
        sa.Column('raw_body', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('resource_type', sa.String(length=50), nullable=True),
        sa.Column('resource_id', sa.String(length=255), nullable=True),
        sa.Column('fetched_resource', JSONType, nullable=True),
        sa.Column('fetch_error', sa.Text(), nullable=True),
        sa.Column('event_type', sa.String(length=100), nullable=True),
        sa.Column('signature_valid', sa.Boolean(), nullable=True),
        sa.Column('signature_header', sa.Text(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('forwarded_at', sa.DateTime(), nullable=True),
        sa.Column('forwarding_url', sa.String(length=2048), nullable=True),
        sa.Column('forwarding_status', sa.Integer(), nullable=True),
        sa.Column('forwarding_error', sa.Text(), nullable=True),
        sa.Column('forwarding_time_ms', sa.Integer(), nullable=True),
        sa.Column('is_replay', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('original_log_id', sa.Uuid(), nullable=True),
        sa.Column('replayed_at', sa.DateTime(), nullable=True),
        sa.Column('replayed_by', sa.Uuid(), nullable=True),
        sa.Column('status', log_status, nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_webhook_logs_id'), 'webhook_logs', ['id'])
    op.create_index(op.f('ix_webhook_logs_created_at'), 'webhook_logs', ['created_at'])
    op.create_index(op.f('ix_webhook_logs_endpoint_id'), 'webhook_logs', ['endpoint_id'])
    op.create_index(op.f('ix_webhook_logs_owner_id'), 'webhook_logs', ['owner_id'])
    op.create_index(op.f('ix_webhook_logs_received_at'), 'webhook_logs', ['received_at'])
    op.create_index(op.f('ix_webhook_logs_resource_type'), 'webhook_logs', ['resource_type'])
    op.create_index(op.f('ix_webhook_logs_event_type'), 'webhook_logs', ['event_type'])
    op.create_index(op.f('ix_webhook_logs_original_log_id'), 'webhook_logs', ['original_log_id'])
    op.create_index(op.f('ix_webhook_logs_status'), 'webhook_logs', ['status'])

    # Composite indexes for the dashboard's newest-first queries
    op.create_index('ix_webhook_logs_owner_received', 'webhook_logs', ['owner_id', 'received_at'])
    op.create_index('ix_webhook_logs_endpoint_received', 'webhook_logs', ['endpoint_id', 'received_at'])


def downgrade() -> None:
    """Drop all webhook relay tables."""
    op.drop_table('webhook_logs')
    op.drop_table('webhook_endpoints')
    op.drop_table('mollie_api_keys')

    bind = op.get_bind()
    log_status.drop(bind, checkfirst=True)
    endpoint_type.drop(bind, checkfirst=True)
