"""create_fulfillment_tables

Revision ID: 001_fulfillment
Revises:
Create Date: 2026-10-19

Creates products (with the stock ledger counters), addresses, orders,
order_items and reservations.

Ledger invariants are enforced by the database as well:
available_quantity >= 0 and reserved_quantity >= 0 on products, and a
reserved reservation always carries the vendor reservation id.

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_fulfillment'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'products',
        sa.Column('product_id', sa.Uuid(), primary_key=True),
        sa.Column('sku', sa.String(100), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('product_source', sa.String(32), nullable=False),
        sa.Column('vendor_article_id', sa.String(100), nullable=True),
        sa.Column('base_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('available_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reserved_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint('available_quantity >= 0', name='chk_product_available_nonneg'),
        sa.CheckConstraint('reserved_quantity >= 0', name='chk_product_reserved_nonneg'),
        sa.CheckConstraint('price >= 0', name='chk_product_price_nonneg'),
    )
    op.create_index('idx_products_vendor_article', 'products', ['vendor_article_id'])

    op.create_table(
        'addresses',
        sa.Column('address_id', sa.Uuid(), primary_key=True),
        sa.Column('customer_id', sa.Uuid(), nullable=True),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('company', sa.String(255), nullable=True),
        sa.Column('address_line1', sa.String(255), nullable=False),
        sa.Column('address_line2', sa.String(255), nullable=True),
        sa.Column('city', sa.String(100), nullable=False),
        sa.Column('state', sa.String(100), nullable=True),
        sa.Column('postal_code', sa.String(20), nullable=False),
        sa.Column('country', sa.String(2), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'orders',
        sa.Column('order_id', sa.Uuid(), primary_key=True),
        sa.Column('order_number', sa.String(32), nullable=False, unique=True),
        sa.Column('customer_id', sa.Uuid(), nullable=True),
        sa.Column('guest_email', sa.String(255), nullable=True),
        sa.Column('status', sa.String(32), nullable=False),
        sa.Column('payment_status', sa.String(32), nullable=False),
        sa.Column('fulfillment_status', sa.String(32), nullable=False),
        sa.Column('payment_method', sa.String(50), nullable=True),
        sa.Column('payment_transaction_id', sa.String(255), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('subtotal', sa.Numeric(10, 2), nullable=False),
        sa.Column('tax', sa.Numeric(10, 2), nullable=False),
        sa.Column('shipping_cost', sa.Numeric(10, 2), nullable=False),
        sa.Column('total', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='EUR'),
        sa.Column('billing_address_id', sa.Uuid(), sa.ForeignKey('addresses.address_id'), nullable=True),
        sa.Column('shipping_address_id', sa.Uuid(), sa.ForeignKey('addresses.address_id'), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('vendor_order_id', sa.String(100), nullable=True),
        sa.Column('vendor_order_created_at', sa.DateTime(), nullable=True),
        sa.Column('own_items_fulfilled_at', sa.DateTime(), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.CheckConstraint(
            'customer_id IS NOT NULL OR guest_email IS NOT NULL',
            name='chk_order_has_customer',
        ),
    )
    op.create_index('idx_orders_status_payment', 'orders', ['status', 'payment_status'])
    op.create_index('idx_orders_vendor_order', 'orders', ['vendor_order_id'])

    op.create_table(
        'order_items',
        sa.Column('item_id', sa.Uuid(), primary_key=True),
        sa.Column('order_id', sa.Uuid(), sa.ForeignKey('orders.order_id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.Uuid(), sa.ForeignKey('products.product_id'), nullable=False),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('product_sku', sa.String(100), nullable=False),
        sa.Column('product_source', sa.String(32), nullable=False),
        sa.Column('vendor_article_id', sa.String(100), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('base_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('subtotal', sa.Numeric(10, 2), nullable=False),
        sa.Column('fulfillment_status', sa.String(32), nullable=False),
        sa.Column('reserved_at', sa.DateTime(), nullable=True),
        sa.Column('stock_deducted_at', sa.DateTime(), nullable=True),
        sa.Column('shipped_at', sa.DateTime(), nullable=True),
        sa.Column('released_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('quantity > 0', name='chk_order_item_quantity_positive'),
        sa.CheckConstraint(
            "product_source = 'own' OR vendor_article_id IS NOT NULL",
            name='chk_order_item_vendor_article',
        ),
    )
    op.create_index('idx_order_items_order', 'order_items', ['order_id'])
    op.create_index('idx_order_items_source_status', 'order_items', ['product_source', 'fulfillment_status'])

    op.create_table(
        'reservations',
        sa.Column('reservation_id', sa.Uuid(), primary_key=True),
        sa.Column('order_id', sa.Uuid(), sa.ForeignKey('orders.order_id', ondelete='CASCADE'), nullable=False),
        sa.Column(
            'order_item_id',
            sa.Uuid(),
            sa.ForeignKey('order_items.item_id', ondelete='CASCADE'),
            nullable=False,
            unique=True,
        ),
        sa.Column('product_id', sa.Uuid(), sa.ForeignKey('products.product_id'), nullable=False),
        sa.Column('vendor_article_id', sa.String(100), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(32), nullable=False),
        sa.Column('vendor_reservation_id', sa.String(100), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('compensation_attempted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('compensation_succeeded', sa.Boolean(), nullable=True),
        sa.Column('compensation_failed_reason', sa.Text(), nullable=True),
        sa.Column('reserved_at', sa.DateTime(), nullable=True),
        sa.Column('unreserved_at', sa.DateTime(), nullable=True),
        sa.Column('ordered_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('quantity > 0', name='chk_reservation_quantity_positive'),
        sa.CheckConstraint(
            "status <> 'reserved' OR vendor_reservation_id IS NOT NULL",
            name='chk_reservation_reserved_has_vendor_id',
        ),
    )
    op.create_index('idx_reservations_order_status', 'reservations', ['order_id', 'status'])


def downgrade() -> None:
    op.drop_table('reservations')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('addresses')
    op.drop_table('products')
