"""Backfill entitlements from the legacy subscriptions table

One-time copy so that no request path ever consults the old store.
Accounts that already have an entitlement row are left alone; the
legacy table itself is not dropped here.

Revision ID: 0002
Revises: 0001_entitlement_store
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0002_backfill_legacy_subscriptions'
down_revision: Union[str, None] = '0001_entitlement_store'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


BACKFILL_SQL = """
INSERT INTO entitlements (
    id, account_id, plan, quota, source, feature_flags,
    valid_from, valid_until,
    billing_customer_ref, billing_subscription_ref, payment_status,
    created_at, updated_at
)
SELECT
    gen_random_uuid(),
    s.user_id::text,
    CASE WHEN s.plan IN ('pro', 'agency') THEN s.plan ELSE 'free' END,
    CASE
        WHEN s.plan IN ('pro', 'agency') THEN 999
        ELSE COALESCE(s.links_allowed, 1)
    END,
    CASE
        WHEN s.stripe_subscription_id IS NOT NULL THEN 'paid'
        WHEN s.plan IN ('pro', 'agency') THEN 'gift'
        ELSE 'trial'
    END,
    CASE s.plan
        WHEN 'pro' THEN '["advanced_analysis"]'::jsonb
        WHEN 'agency' THEN '["advanced_analysis", "multi_seat", "recurring_refresh"]'::jsonb
        ELSE '[]'::jsonb
    END,
    COALESCE(s.created_at, now()),
    COALESCE(s.expiry_date, now()),
    s.stripe_customer_id,
    s.stripe_subscription_id,
    CASE
        WHEN s.payment_status IN ('active', 'past_due', 'canceled') THEN s.payment_status
        ELSE 'none'
    END,
    COALESCE(s.created_at, now()),
    now()
FROM subscriptions s
WHERE s.user_id IS NOT NULL
ON CONFLICT (account_id) DO NOTHING
"""


def upgrade() -> None:
    """Copy legacy subscription rows into entitlements."""
    inspector = sa.inspect(op.get_bind())
    if not inspector.has_table('subscriptions'):
        return

    op.execute(BACKFILL_SQL)


def downgrade() -> None:
    """Backfilled rows are indistinguishable from live ones; nothing to undo."""
    pass
