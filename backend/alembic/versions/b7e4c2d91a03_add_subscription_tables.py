"""add subscriptions, payment_histories and notifications

Revision ID: b7e4c2d91a03
Revises: a1b2c3d4e5f6
Create Date: 2026-02-20 09:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = 'b7e4c2d91a03'
down_revision: Union[str, None] = 'a1b2c3d4e5f6'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'subscriptions',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('status', sa.Text(), server_default='TRIAL', nullable=False),
        sa.Column('trial_started_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('trial_ends_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('plan_duration', sa.Integer(), nullable=True),
        sa.Column('price_paid', sa.Integer(), nullable=True),
        sa.Column('started_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('auto_renew', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('payment_method', sa.Text(), nullable=True),
        sa.Column('transaction_id', sa.Text(), nullable=True),
        sa.Column('paid_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('pending_order_code', sa.Text(), nullable=True),
        sa.Column('pending_amount', sa.Integer(), nullable=True),
        sa.Column('pending_plan_duration', sa.Integer(), nullable=True),
        sa.Column('pending_checkout_url', sa.Text(), nullable=True),
        sa.Column('pending_qr_url', sa.Text(), nullable=True),
        sa.Column('pending_created_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('cancelled_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "status IN ('TRIAL','PENDING','ACTIVE','EXPIRED','CANCELLED')",
            name='ck_subscriptions_status_valid',
        ),
    )
    op.create_index('ix_subscriptions_owner_id', 'subscriptions', ['owner_id'])
    op.create_index('ix_subscriptions_pending_order_code', 'subscriptions', ['pending_order_code'])
    op.create_index('ix_subscriptions_owner_status', 'subscriptions', ['owner_id', 'status'])
    op.create_index('ix_subscriptions_status_expires', 'subscriptions', ['status', 'expires_at'])
    # One TRIAL row per owner; target of the bootstrap's ON CONFLICT DO NOTHING
    op.create_index(
        'uq_subscriptions_owner_trial',
        'subscriptions',
        ['owner_id'],
        unique=True,
        postgresql_where=sa.text("status = 'TRIAL'"),
    )

    op.create_table(
        'payment_histories',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('subscription_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('transaction_id', sa.Text(), nullable=False),
        sa.Column('plan_duration', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.Text(), server_default='MANUAL', nullable=False),
        sa.Column('status', sa.Text(), server_default='SUCCESS', nullable=False),
        sa.Column('paid_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_payment_histories_transaction_id', 'payment_histories', ['transaction_id'])
    op.create_index('ix_payment_histories_owner_paid_at', 'payment_histories', ['owner_id', 'paid_at'])

    op.create_table(
        'notifications',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('store_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('type', sa.String(length=20), server_default='service', nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('is_read', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])


def downgrade() -> None:
    op.drop_index('ix_notifications_user_id', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('ix_payment_histories_owner_paid_at', table_name='payment_histories')
    op.drop_index('ix_payment_histories_transaction_id', table_name='payment_histories')
    op.drop_table('payment_histories')
    op.drop_index('uq_subscriptions_owner_trial', table_name='subscriptions')
    op.drop_index('ix_subscriptions_status_expires', table_name='subscriptions')
    op.drop_index('ix_subscriptions_owner_status', table_name='subscriptions')
    op.drop_index('ix_subscriptions_pending_order_code', table_name='subscriptions')
    op.drop_index('ix_subscriptions_owner_id', table_name='subscriptions')
    op.drop_table('subscriptions')
