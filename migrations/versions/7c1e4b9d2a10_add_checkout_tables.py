"""Add pending_purchases, purchase_history and stripe_events tables

Revision ID: 7c1e4b9d2a10
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7c1e4b9d2a10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('pending_purchases',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('reference_id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reference_id')
    )
    op.create_index('ix_pending_purchases_created_at', 'pending_purchases', ['created_at'])

    op.create_table('purchase_history',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('product_handle', sa.String(length=255), nullable=False),
        sa.Column('product_title', sa.String(length=255), nullable=False),
        sa.Column('product_image', sa.Text(), nullable=True),
        sa.Column('product_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('purchased_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_purchase_history_user_order', 'purchase_history', ['user_id', 'order_id'])

    op.create_table('stripe_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('stripe_event_id', sa.String(length=255), nullable=False),
        sa.Column('event_type', sa.String(length=255), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stripe_event_id')
    )


def downgrade():
    op.drop_table('stripe_events')
    op.drop_index('ix_purchase_history_user_order', table_name='purchase_history')
    op.drop_table('purchase_history')
    op.drop_index('ix_pending_purchases_created_at', table_name='pending_purchases')
    op.drop_table('pending_purchases')
