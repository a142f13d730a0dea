"""Initial schema: profiles, plans, subscriptions, invoices, stock orders

Revision ID: 4f2a9c1e7b30
Revises:
Create Date: 2025-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '4f2a9c1e7b30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables for the points ledger."""
    # Enum columns create their own types on first use
    plan_interval = postgresql.ENUM('month', 'one_time', name='plan_interval')
    subscription_status = postgresql.ENUM('active', 'trialing', 'past_due', 'canceled', name='subscription_status')
    invoice_status = postgresql.ENUM('open', 'paid', 'void', name='invoice_status')
    order_status = postgresql.ENUM('processing', 'ready', 'failed', 'payment_failed', name='order_status')

    # 1. Profiles (id is the identity provider's user id)
    op.create_table(
        'profiles',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('balance', sa.Integer(), nullable=False, server_default='0'),
        sa.CheckConstraint('balance >= 0', name='ck_profiles_balance_non_negative'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_profiles_id'), 'profiles', ['id'])
    op.create_index(op.f('ix_profiles_created_at'), 'profiles', ['created_at'])
    op.create_index(op.f('ix_profiles_email'), 'profiles', ['email'])

    # 2. Plans
    op.create_table(
        'plans',
        sa.Column('id', sa.UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='usd'),
        sa.Column('monthly_points', sa.Integer(), nullable=False),
        sa.Column('billing_interval', plan_interval, nullable=False, server_default='month'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default='true'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_plans_id'), 'plans', ['id'])
    op.create_index(op.f('ix_plans_created_at'), 'plans', ['created_at'])
    op.create_index(op.f('ix_plans_active'), 'plans', ['active'])

    # 3. Subscriptions (depends on profiles, plans)
    op.create_table(
        'subscriptions',
        sa.Column('id', sa.UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('plan_id', sa.UUID(), nullable=False),
        sa.Column('status', subscription_status, nullable=False, server_default='active'),
        sa.Column('current_period_start', sa.DateTime(), nullable=False),
        sa.Column('current_period_end', sa.DateTime(), nullable=False),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('trial_end', sa.DateTime(), nullable=True),
        sa.Column('last_invoice_id', sa.UUID(), nullable=True),
        sa.Column('is_current', sa.Boolean(), nullable=False, server_default='true'),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['plan_id'], ['plans.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_subscriptions_id'), 'subscriptions', ['id'])
    op.create_index(op.f('ix_subscriptions_created_at'), 'subscriptions', ['created_at'])
    op.create_index(op.f('ix_subscriptions_user_id'), 'subscriptions', ['user_id'])
    op.create_index(op.f('ix_subscriptions_plan_id'), 'subscriptions', ['plan_id'])
    op.create_index(op.f('ix_subscriptions_status'), 'subscriptions', ['status'])
    op.create_index(op.f('ix_subscriptions_current_period_end'), 'subscriptions', ['current_period_end'])
    # At most one current subscription per user
    op.create_index(
        'uq_subscriptions_current_user',
        'subscriptions',
        ['user_id'],
        unique=True,
        postgresql_where=sa.text('is_current'),
    )

    # 4. Subscription history (depends on subscriptions)
    op.create_table(
        'subscription_history',
        sa.Column('id', sa.UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('subscription_id', sa.UUID(), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('old_value', sa.String(), nullable=True),
        sa.Column('new_value', sa.String(), nullable=False),
        sa.Column('reason', sa.String(), nullable=True),
        sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_subscription_history_id'), 'subscription_history', ['id'])
    op.create_index(op.f('ix_subscription_history_created_at'), 'subscription_history', ['created_at'])
    op.create_index(op.f('ix_subscription_history_subscription_id'), 'subscription_history', ['subscription_id'])

    # 5. Invoices (depends on profiles, subscriptions)
    op.create_table(
        'invoices',
        sa.Column('id', sa.UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('subscription_id', sa.UUID(), nullable=True),
        sa.Column('plan_snapshot', postgresql.JSONB(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='usd'),
        sa.Column('status', invoice_status, nullable=False, server_default='open'),
        sa.Column('period_start', sa.DateTime(), nullable=False),
        sa.Column('period_end', sa.DateTime(), nullable=False),
        sa.Column('next_payment_attempt', sa.DateTime(), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_invoices_id'), 'invoices', ['id'])
    op.create_index(op.f('ix_invoices_created_at'), 'invoices', ['created_at'])
    op.create_index(op.f('ix_invoices_user_id'), 'invoices', ['user_id'])
    op.create_index(op.f('ix_invoices_subscription_id'), 'invoices', ['subscription_id'])
    op.create_index(op.f('ix_invoices_status'), 'invoices', ['status'])

    # 6. Invoice items (depends on invoices)
    op.create_table(
        'invoice_items',
        sa.Column('id', sa.UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('invoice_id', sa.UUID(), nullable=False),
        sa.Column('description', sa.String(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_invoice_items_id'), 'invoice_items', ['id'])
    op.create_index(op.f('ix_invoice_items_created_at'), 'invoice_items', ['created_at'])
    op.create_index(op.f('ix_invoice_items_invoice_id'), 'invoice_items', ['invoice_id'])

    # 7. Stock orders (depends on profiles)
    op.create_table(
        'stock_orders',
        sa.Column('id', sa.UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('task_id', sa.String(), nullable=False),
        sa.Column('site', sa.String(), nullable=False),
        sa.Column('external_id', sa.String(), nullable=False),
        sa.Column('file_info', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('amount_charged', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', order_status, nullable=False, server_default='processing'),
        sa.Column('download_url', sa.String(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_stock_orders_id'), 'stock_orders', ['id'])
    op.create_index(op.f('ix_stock_orders_created_at'), 'stock_orders', ['created_at'])
    op.create_index(op.f('ix_stock_orders_user_id'), 'stock_orders', ['user_id'])
    op.create_index(op.f('ix_stock_orders_task_id'), 'stock_orders', ['task_id'], unique=True)
    op.create_index(op.f('ix_stock_orders_status'), 'stock_orders', ['status'])
    op.create_index('ix_stock_orders_user_asset', 'stock_orders', ['user_id', 'site', 'external_id'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('stock_orders')
    op.drop_table('invoice_items')
    op.drop_table('invoices')
    op.drop_table('subscription_history')
    op.drop_table('subscriptions')
    op.drop_table('plans')
    op.drop_table('profiles')

    # Drop enums
    op.execute("DROP TYPE IF EXISTS order_status")
    op.execute("DROP TYPE IF EXISTS invoice_status")
    op.execute("DROP TYPE IF EXISTS subscription_status")
    op.execute("DROP TYPE IF EXISTS plan_interval")
