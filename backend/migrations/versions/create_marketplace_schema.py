"""create marketplace schema: users, roles, wallets, ledger, products, orders, subscriptions

Revision ID: create_marketplace_schema
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = 'create_marketplace_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('is_available', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sa.UniqueConstraint('phone', name='uq_users_phone'),
    )

    op.create_table(
        'user_roles',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(length=30), nullable=False),
        sa.Column('granted_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_user_roles_user_id_users', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='pk_user_roles'),
        sa.UniqueConstraint('user_id', 'role', name='uq_user_roles_user_role'),
    )
    op.create_index('ix_user_roles_role', 'user_roles', ['role'])

    op.create_table(
        'wallets',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('wallet_type', sa.String(length=20), nullable=False),
        sa.Column('balance', sa.DECIMAL(precision=14, scale=2), server_default='0', nullable=False),
        sa.Column('currency', sa.String(length=3), server_default='XOF', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], name='fk_wallets_owner_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_wallets'),
        sa.UniqueConstraint('owner_id', 'wallet_type', name='uq_wallets_owner_type'),
        sa.CheckConstraint('balance >= 0', name='ck_wallets_balance_non_negative'),
    )
    op.create_index('ix_wallets_wallet_type', 'wallets', ['wallet_type'])

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('seller_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.DECIMAL(precision=14, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), server_default='XOF', nullable=False),
        sa.Column('category', sa.String(length=100), nullable=True),
        sa.Column('stock', sa.Integer(), server_default='0', nullable=False),
        sa.Column('is_available', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['seller_id'], ['users.id'], name='fk_products_seller_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
    )
    op.create_index('ix_products_seller_id', 'products', ['seller_id'])
    op.create_index('ix_products_category', 'products', ['category'])

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('buyer_id', sa.Integer(), nullable=False),
        sa.Column('total_amount', sa.DECIMAL(precision=14, scale=2), nullable=False),
        sa.Column('platform_fee', sa.DECIMAL(precision=14, scale=2), nullable=False),
        sa.Column('delivery_fee', sa.DECIMAL(precision=14, scale=2), nullable=False),
        sa.Column('admin_fee', sa.DECIMAL(precision=14, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), server_default='XOF', nullable=False),
        sa.Column('status', sa.String(length=20), server_default='pending', nullable=False),
        sa.Column('payment_status', sa.String(length=20), server_default='pending', nullable=False),
        sa.Column('payment_method', sa.String(length=30), nullable=False),
        sa.Column('payment_reference', sa.String(length=255), nullable=True),
        sa.Column('payment_provider', sa.String(length=100), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('shipping_address', sa.JSON(), nullable=False),
        sa.Column('delivery_agent_id', sa.Integer(), nullable=True),
        sa.Column('delivery_status', sa.String(length=20), server_default='pending', nullable=False),
        sa.Column('delivery_notes', sa.Text(), nullable=True),
        sa.Column('delivery_proof', sa.JSON(), nullable=True),
        sa.Column('estimated_delivery_date', sa.DateTime(), nullable=True),
        sa.Column('actual_delivery_date', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['buyer_id'], ['users.id'], name='fk_orders_buyer_id_users'),
        sa.ForeignKeyConstraint(['delivery_agent_id'], ['users.id'], name='fk_orders_delivery_agent_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
    )
    op.create_index('ix_orders_buyer_id', 'orders', ['buyer_id'])
    op.create_index('ix_orders_delivery_agent_id', 'orders', ['delivery_agent_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_status_delivery', 'orders', ['status', 'delivery_status'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('seller_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.DECIMAL(precision=14, scale=2), nullable=False),
        sa.Column('subtotal', sa.DECIMAL(precision=14, scale=2), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name='fk_order_items_order_id_orders', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_order_items_product_id_products'),
        sa.ForeignKeyConstraint(['seller_id'], ['users.id'], name='fk_order_items_seller_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_order_items'),
        sa.CheckConstraint('quantity >= 1', name='ck_order_items_quantity_positive'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_seller_id', 'order_items', ['seller_id'])

    op.create_table(
        'wallet_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('wallet_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('amount', sa.DECIMAL(precision=14, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), server_default='XOF', nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), server_default='completed', nullable=False),
        sa.Column('reference', sa.String(length=40), nullable=False),
        sa.Column('related_order_id', sa.Integer(), nullable=True),
        sa.Column('related_user_id', sa.Integer(), nullable=True),
        sa.Column('payment_method', sa.String(length=30), nullable=True),
        sa.Column('provider', sa.String(length=100), nullable=True),
        sa.Column('provider_transaction_id', sa.String(length=255), nullable=True),
        sa.Column('account_number', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['wallet_id'], ['wallets.id'], name='fk_wallet_transactions_wallet_id_wallets', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['related_order_id'], ['orders.id'], name='fk_wallet_transactions_related_order_id_orders'),
        sa.ForeignKeyConstraint(['related_user_id'], ['users.id'], name='fk_wallet_transactions_related_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_wallet_transactions'),
        sa.UniqueConstraint('reference', name='uq_wallet_transactions_reference'),
        sa.CheckConstraint('amount > 0', name='ck_wallet_transactions_amount_positive'),
    )
    op.create_index('ix_wallet_transactions_wallet_id', 'wallet_transactions', ['wallet_id', 'id'])
    op.create_index('ix_wallet_transactions_related_order', 'wallet_transactions', ['related_order_id'])

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('seller_id', sa.Integer(), nullable=False),
        sa.Column('plan', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), server_default='active', nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('auto_renew', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('price', sa.DECIMAL(precision=14, scale=2), server_default='0', nullable=False),
        sa.Column('currency', sa.String(length=3), server_default='XOF', nullable=False),
        sa.Column('payment_method', sa.String(length=30), nullable=True),
        sa.Column('transaction_id', sa.String(length=255), nullable=True),
        sa.Column('payment_date', sa.DateTime(), nullable=True),
        sa.Column('provider', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['seller_id'], ['users.id'], name='fk_subscriptions_seller_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_subscriptions'),
        sa.UniqueConstraint('seller_id', name='uq_subscriptions_seller_id'),
    )
    op.create_index('ix_subscriptions_status', 'subscriptions', ['status'])
    op.create_index('ix_subscriptions_end_date', 'subscriptions', ['end_date'])

    op.create_table(
        'subscription_renewals',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('subscription_id', sa.Integer(), nullable=False),
        sa.Column('plan', sa.String(length=20), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('price', sa.DECIMAL(precision=14, scale=2), nullable=False),
        sa.Column('payment_method', sa.String(length=30), nullable=True),
        sa.Column('transaction_id', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('archived_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.id'], name='fk_subscription_renewals_subscription_id_subscriptions', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='pk_subscription_renewals'),
    )
    op.create_index('ix_subscription_renewals_subscription_id', 'subscription_renewals', ['subscription_id'])


def downgrade() -> None:
    op.drop_table('subscription_renewals')
    op.drop_table('subscriptions')
    op.drop_table('wallet_transactions')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('products')
    op.drop_table('wallets')
    op.drop_table('user_roles')
    op.drop_table('users')
