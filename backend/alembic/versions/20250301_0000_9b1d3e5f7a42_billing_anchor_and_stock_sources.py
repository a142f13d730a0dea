"""Billing anchor day on subscriptions; stock source catalog and its audit trail

Revision ID: 9b1d3e5f7a42
Revises: 4f2a9c1e7b30
Create Date: 2025-03-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '9b1d3e5f7a42'
down_revision: Union[str, None] = '4f2a9c1e7b30'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add the billing anchor and the stock source tables."""
    # 1. Billing day, backfilled from the day the current period started
    op.add_column('subscriptions', sa.Column('billing_anchor_day', sa.SmallInteger(), nullable=True))
    op.execute(
        "UPDATE subscriptions SET billing_anchor_day = EXTRACT(DAY FROM current_period_start)::smallint"
    )

    # 2. Stock sources
    op.create_table(
        'stock_sources',
        sa.Column('id', sa.UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('key', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('cost', sa.Float(), nullable=False, server_default='0'),
        sa.Column('icon', sa.String(), nullable=True),
        sa.Column('icon_url', sa.String(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default='true'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_stock_sources_id'), 'stock_sources', ['id'])
    op.create_index(op.f('ix_stock_sources_created_at'), 'stock_sources', ['created_at'])
    op.create_index(op.f('ix_stock_sources_key'), 'stock_sources', ['key'], unique=True)
    op.create_index(op.f('ix_stock_sources_active'), 'stock_sources', ['active'])

    # 3. Stock source audit (depends on stock_sources)
    op.create_table(
        'stock_source_audit',
        sa.Column('id', sa.UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('stock_source_key', sa.String(), nullable=False),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('old_value', sa.String(), nullable=True),
        sa.Column('new_value', sa.String(), nullable=True),
        sa.Column('changed_by', sa.UUID(), nullable=True),
        sa.Column('changed_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['stock_source_key'], ['stock_sources.key'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_stock_source_audit_id'), 'stock_source_audit', ['id'])
    op.create_index(op.f('ix_stock_source_audit_created_at'), 'stock_source_audit', ['created_at'])
    op.create_index(op.f('ix_stock_source_audit_stock_source_key'), 'stock_source_audit', ['stock_source_key'])
    op.create_index(op.f('ix_stock_source_audit_changed_at'), 'stock_source_audit', ['changed_at'])


def downgrade() -> None:
    """Drop the stock source tables and the billing anchor."""
    op.drop_table('stock_source_audit')
    op.drop_table('stock_sources')
    op.drop_column('subscriptions', 'billing_anchor_day')
