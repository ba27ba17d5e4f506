"""Billing tables

Revision ID: 0001_billing_tables
Revises:
Create Date: 2026-10-19

Creates subscriptions, pix_charges and subscription_reminders.
profiles is owned by Supabase and only read.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_billing_tables'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create billing tables and their indexes."""

    op.create_table(
        'subscriptions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),

        # Customer-scope rows only
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), index=True),
        sa.Column('plan_id', postgresql.UUID(as_uuid=True)),

        sa.Column('type', sa.String(20), server_default='platform', nullable=False),
        sa.Column('status', sa.String(20), server_default='trial', nullable=False),

        # Billing dates
        sa.Column('start_date', sa.DateTime(timezone=True)),
        sa.Column('last_billing_date', sa.DateTime(timezone=True)),
        sa.Column('next_billing_date', sa.DateTime(timezone=True)),
        sa.Column('failed_payments_count', sa.Integer, server_default='0', nullable=False),

        # Timestamps
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "status IN ('trial', 'active', 'cancelled', 'expired')",
            name='ck_subscriptions_status',
        ),
    )

    # One platform row per tenant; the reconciliation upsert conflicts on it
    op.create_index(
        'uq_subscriptions_platform_user',
        'subscriptions',
        ['user_id'],
        unique=True,
        postgresql_where=sa.text('customer_id IS NULL AND plan_id IS NULL'),
    )
    op.create_index(
        'ix_subscriptions_status_next_billing',
        'subscriptions',
        ['status', 'next_billing_date'],
    )

    op.create_table(
        'pix_charges',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('txid', sa.String(64), index=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), index=True),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True)),
        sa.Column('appointment_id', postgresql.UUID(as_uuid=True)),
        sa.Column('amount', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('status', sa.String(20), server_default='pending', nullable=False, index=True),
        sa.Column('metadata', postgresql.JSONB),
        sa.Column('paid_at', sa.DateTime(timezone=True)),

        # Idempotency marker
        sa.Column('processed_at', sa.DateTime(timezone=True)),
        sa.Column('processed_for', sa.String(50)),

        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'subscription_reminders',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'subscription_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('subscriptions.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('days_before_expiration', sa.Integer, server_default='3', nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        'ix_subscription_reminders_lookup',
        'subscription_reminders',
        ['subscription_id', 'days_before_expiration', 'sent_at'],
    )

    # Service role only; tenants go through the API
    for table in ('subscriptions', 'pix_charges', 'subscription_reminders'):
        op.execute(f'ALTER TABLE {table} ENABLE ROW LEVEL SECURITY')
        op.execute(f"""
            CREATE POLICY "Service role manages {table}"
            ON {table} FOR ALL
            TO service_role
            USING (true)
            WITH CHECK (true)
        """)


def downgrade() -> None:
    """Drop billing tables."""

    for table in ('subscription_reminders', 'pix_charges', 'subscriptions'):
        op.execute(f'DROP POLICY IF EXISTS "Service role manages {table}" ON {table}')

    op.drop_index('ix_subscription_reminders_lookup', table_name='subscription_reminders')
    op.drop_table('subscription_reminders')
    op.drop_table('pix_charges')
    op.drop_index('ix_subscriptions_status_next_billing', table_name='subscriptions')
    op.drop_index('uq_subscriptions_platform_user', table_name='subscriptions')
    op.drop_table('subscriptions')
