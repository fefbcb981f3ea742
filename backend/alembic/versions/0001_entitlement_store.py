"""Create entitlement store tables

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_entitlement_store'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create entitlements, listings and supporting tables."""

    op.create_table(
        'entitlements',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('account_id', sa.String(255), nullable=False),

        # Plan details
        sa.Column('plan', sa.String(20), server_default='free', nullable=False),
        sa.Column('quota', sa.Integer, server_default='1', nullable=False),
        sa.Column('source', sa.String(20), server_default='paid', nullable=False),
        sa.Column('feature_flags', postgresql.JSONB, server_default='[]', nullable=False),

        # Validity window
        sa.Column('valid_from', sa.DateTime(timezone=True), nullable=False),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=False),

        # Stripe correlation
        sa.Column('billing_customer_ref', sa.String(255)),
        sa.Column('billing_subscription_ref', sa.String(255)),
        sa.Column('payment_status', sa.String(20), server_default='none', nullable=False),

        # Timestamps
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_entitlements_account_id', 'entitlements', ['account_id'], unique=True)
    op.create_index(
        'ix_entitlements_billing_customer_ref', 'entitlements', ['billing_customer_ref'], unique=True
    )
    op.create_index(
        'ix_entitlements_billing_subscription_ref', 'entitlements', ['billing_subscription_ref'], unique=True
    )
    op.create_index('ix_entitlements_valid_until', 'entitlements', ['valid_until'])

    op.create_table(
        'listings',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('owner_account_id', sa.String(255), nullable=False),
        sa.Column('url', sa.String(2048), nullable=False),
        sa.Column('title', sa.String(255)),
        sa.Column('status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('refresh_status', sa.String(20), server_default='unknown', nullable=False),
        sa.Column('last_refreshed_at', sa.DateTime(timezone=True)),
        sa.Column('boosted_until', sa.DateTime(timezone=True)),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_listings_owner_account_id', 'listings', ['owner_account_id'])
    op.create_index('ix_listings_status', 'listings', ['status'])
    op.create_index('ix_listings_last_refreshed_at', 'listings', ['last_refreshed_at'])

    op.create_table(
        'notification_log',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('account_id', sa.String(255), nullable=False),
        sa.Column('notification_type', sa.String(50), nullable=False),
        sa.Column('period', sa.String(50), nullable=False),
        sa.Column('payload', postgresql.JSONB),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint(
            'account_id', 'notification_type', 'period',
            name='uq_notification_log_account_type_period',
        ),
    )
    op.create_index('ix_notification_log_account_id', 'notification_log', ['account_id'])

    op.create_table(
        'processed_webhook_events',
        sa.Column('event_id', sa.String(255), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column(
            'processed_at',
            sa.DateTime(timezone=True),
            server_default=sa.text('now()'),
            nullable=False,
        ),
    )
    # Index for cleanup queries (delete events older than X days)
    op.create_index(
        'ix_processed_webhook_events_processed_at',
        'processed_webhook_events',
        ['processed_at'],
    )

    op.create_table(
        'entitlement_audit',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('actor_account_id', sa.String(255), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('account_id', sa.String(255), nullable=False),
        sa.Column('entitlement_id', sa.String(64)),
        sa.Column('before', postgresql.JSONB),
        sa.Column('after', postgresql.JSONB),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_entitlement_audit_account_id', 'entitlement_audit', ['account_id'])

    op.create_table(
        'purchase_credits',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('event_id', sa.String(255), nullable=False, unique=True),
        sa.Column('account_id', sa.String(255), nullable=False),
        sa.Column('purchase_type', sa.String(50), nullable=False),
        sa.Column('listing_id', sa.String(64)),
        sa.Column('reason', sa.String(100), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('consumed_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_purchase_credits_account_id', 'purchase_credits', ['account_id'])

    op.create_table(
        'account_roles',
        sa.Column('account_id', sa.String(255), primary_key=True),
        sa.Column('role', sa.String(50), primary_key=True),
        sa.Column('granted_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    """Drop entitlement store tables."""
    op.drop_table('account_roles')
    op.drop_index('ix_purchase_credits_account_id')
    op.drop_table('purchase_credits')
    op.drop_index('ix_entitlement_audit_account_id')
    op.drop_table('entitlement_audit')
    op.drop_index('ix_processed_webhook_events_processed_at')
    op.drop_table('processed_webhook_events')
    op.drop_index('ix_notification_log_account_id')
    op.drop_table('notification_log')
    op.drop_index('ix_listings_last_refreshed_at')
    op.drop_index('ix_listings_status')
    op.drop_index('ix_listings_owner_account_id')
    op.drop_table('listings')
    op.drop_index('ix_entitlements_valid_until')
    op.drop_index('ix_entitlements_billing_subscription_ref')
    op.drop_index('ix_entitlements_billing_customer_ref')
    op.drop_index('ix_entitlements_account_id')
    op.drop_table('entitlements')
