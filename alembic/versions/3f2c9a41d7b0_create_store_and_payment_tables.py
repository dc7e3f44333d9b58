"""create_store_and_payment_tables

Revision ID: 3f2c9a41d7b0
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f2c9a41d7b0'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')
ONE_OWNER_SQL = '(member_auth_id IS NULL) <> (session_id IS NULL)'

order_status_enum = sa.Enum('pending', 'confirmed', name='store_order_status_enum')
store_payment_method_enum = sa.Enum(
    'cash_on_delivery', 'card', 'mobile_wallet', name='store_payment_method_enum'
)
payment_method_enum = sa.Enum(
    'cash_on_delivery', 'card', 'mobile_wallet', name='payment_method_enum'
)
payment_status_enum = sa.Enum('pending', 'success', 'failed', name='payment_status_enum')


def upgrade() -> None:
    """Upgrade schema - Add products, carts, orders and payments."""

    op.create_table(
        'store_products',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('stock', sa.Integer(), server_default='0', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('stock >= 0', name=op.f('ck_store_products_non_negative_stock')),
        sa.CheckConstraint('price >= 0', name=op.f('ck_store_products_non_negative_price')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_store_products')),
    )

    op.create_table(
        'store_carts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('member_auth_id', sa.String(length=255), nullable=True),
        sa.Column('session_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(ONE_OWNER_SQL, name=op.f('ck_store_carts_cart_one_owner')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_store_carts')),
        sa.UniqueConstraint('member_auth_id', name=op.f('uq_store_carts_member_auth_id')),
        sa.UniqueConstraint('session_id', name=op.f('uq_store_carts_session_id')),
    )

    op.create_table(
        'store_cart_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('cart_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('quantity > 0', name=op.f('ck_store_cart_items_positive_quantity')),
        sa.ForeignKeyConstraint(
            ['cart_id'], ['store_carts.id'],
            name=op.f('fk_store_cart_items_cart_id_store_carts'),
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_store_cart_items')),
        sa.UniqueConstraint('cart_id', 'product_id', name='uq_store_cart_items_product'),
    )

    op.create_table(
        'store_orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('member_auth_id', sa.String(length=255), nullable=True),
        sa.Column('session_id', sa.String(length=255), nullable=True),
        sa.Column('status', order_status_enum, server_default='pending', nullable=False),
        sa.Column('payment_method', store_payment_method_enum, nullable=False),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone_number', sa.String(length=50), nullable=False),
        sa.Column('national_id', sa.String(length=50), nullable=True),
        sa.Column('date_of_birth', sa.Date(), nullable=True),
        sa.Column('billing_address', JSON_TYPE, nullable=False),
        sa.Column('shipping_address', JSON_TYPE, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(ONE_OWNER_SQL, name=op.f('ck_store_orders_order_one_owner')),
        sa.CheckConstraint('total >= 0', name=op.f('ck_store_orders_non_negative_total')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_store_orders')),
    )
    op.create_index(
        op.f('ix_store_orders_order_number'), 'store_orders', ['order_number'], unique=True
    )
    op.create_index(
        op.f('ix_store_orders_member_auth_id'), 'store_orders', ['member_auth_id'], unique=False
    )
    op.create_index(
        op.f('ix_store_orders_session_id'), 'store_orders', ['session_id'], unique=False
    )
    op.create_index(
        'ix_store_orders_owner_created', 'store_orders', ['member_auth_id', 'created_at'], unique=False
    )

    op.create_table(
        'store_order_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('line_total', sa.Numeric(12, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('quantity > 0', name=op.f('ck_store_order_items_positive_quantity')),
        sa.ForeignKeyConstraint(
            ['order_id'], ['store_orders.id'],
            name=op.f('fk_store_order_items_order_id_store_orders'),
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_store_order_items')),
    )

    op.create_table(
        'payments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('payment_method', payment_method_enum, nullable=False),
        sa.Column('gateway', sa.String(length=32), nullable=True),
        sa.Column('status', payment_status_enum, server_default='pending', nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False),
        sa.Column('external_ref', sa.String(length=128), nullable=True),
        sa.Column('payment_url', sa.Text(), nullable=True),
        sa.Column('callback_url', sa.Text(), nullable=True),
        sa.Column('gateway_response', JSON_TYPE, nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('amount >= 0', name=op.f('ck_payments_non_negative_amount')),
        sa.ForeignKeyConstraint(
            ['order_id'], ['store_orders.id'],
            name=op.f('fk_payments_order_id_store_orders'),
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_payments')),
        sa.UniqueConstraint('order_id', name=op.f('uq_payments_order_id')),
    )
    op.create_index(
        op.f('ix_payments_external_ref'), 'payments', ['external_ref'], unique=False
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_payments_external_ref'), table_name='payments')
    op.drop_table('payments')
    op.drop_table('store_order_items')
    op.drop_index('ix_store_orders_owner_created', table_name='store_orders')
    op.drop_index(op.f('ix_store_orders_session_id'), table_name='store_orders')
    op.drop_index(op.f('ix_store_orders_member_auth_id'), table_name='store_orders')
    op.drop_index(op.f('ix_store_orders_order_number'), table_name='store_orders')
    op.drop_table('store_orders')
    op.drop_table('store_cart_items')
    op.drop_table('store_carts')
    op.drop_table('store_products')

    bind = op.get_bind()
    for enum in (
        payment_status_enum,
        payment_method_enum,
        store_payment_method_enum,
        order_status_enum,
    ):
        enum.drop(bind, checkfirst=True)
