"""initial_store_schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role_enum = postgresql.ENUM('CUSTOMER', 'STAFF', 'ADMIN', 'SUPER_ADMIN', name='user_role_enum', create_type=False)
order_status_enum = postgresql.ENUM(
    'PENDING', 'CONFIRMED', 'PROCESSING', 'SHIPPED', 'DELIVERED', 'CANCELLED',
    'RETURNED', 'REFUNDED',
    name='order_status_enum',
    create_type=False,
)
payment_status_enum = postgresql.ENUM('PENDING', 'PAID', 'FAILED', 'REFUNDED', name='payment_status_enum', create_type=False)
fulfillment_status_enum = postgresql.ENUM(
    'PENDING', 'PROCESSING', 'SHIPPED', 'DELIVERED', 'RETURNED',
    name='fulfillment_status_enum',
    create_type=False,
)
payment_method_enum = postgresql.ENUM('COD', 'VNPAY', 'BANK_TRANSFER', name='payment_method_enum', create_type=False)
discount_type_enum = postgresql.ENUM('PERCENTAGE', 'FIXED_AMOUNT', name='discount_type_enum', create_type=False)
loyalty_transaction_type_enum = postgresql.ENUM(
    'WELCOME_BONUS', 'EARNED_PURCHASE', 'REDEEMED_DISCOUNT', 'REDEMPTION_RESTORED',
    'EARNED_REVERSED', 'ADMIN_ADJUSTMENT',
    name='loyalty_transaction_type_enum',
    create_type=False,
)
audit_entity_type_enum = postgresql.ENUM(
    'product', 'variant', 'category', 'discount',
    name='store_audit_entity_type_enum',
    create_type=False,
)


ENUMS = (
    user_role_enum,
    order_status_enum,
    payment_status_enum,
    fulfillment_status_enum,
    payment_method_enum,
    discount_type_enum,
    loyalty_transaction_type_enum,
    audit_entity_type_enum,
)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema - Create store tables."""
    bind = op.get_bind()
    for enum in ENUMS:
        enum.create(bind, checkfirst=True)

    # Accounts
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=True),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(32), nullable=True),
        sa.Column('avatar_url', sa.String(512), nullable=True),
        sa.Column('role', user_role_enum, server_default='CUSTOMER', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='1', nullable=False),
        sa.Column('is_email_verified', sa.Boolean(), server_default='0', nullable=False),
        sa.Column('email_verification_token_hash', sa.String(64), nullable=True),
        sa.Column('email_verification_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('password_reset_token_hash', sa.String(64), nullable=True),
        sa.Column('password_reset_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failed_login_attempts', sa.Integer(), server_default='0', nullable=False),
        sa.Column('locked_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('google_id', sa.String(255), nullable=True),
        sa.Column('facebook_id', sa.String(255), nullable=True),
        sa.Column('loyalty_points', sa.Integer(), server_default='0', nullable=False),
        *_timestamps(),
        sa.CheckConstraint('loyalty_points >= 0', name=op.f('ck_users_loyalty_points_non_negative')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_users')),
        sa.UniqueConstraint('email', name=op.f('uq_users_email')),
        sa.UniqueConstraint('google_id', name=op.f('uq_users_google_id')),
        sa.UniqueConstraint('facebook_id', name=op.f('uq_users_facebook_id')),
    )
    op.create_index(op.f('ix_users_email_verification_token_hash'), 'users', ['email_verification_token_hash'])
    op.create_index(op.f('ix_users_password_reset_token_hash'), 'users', ['password_reset_token_hash'])

    # Catalog
    op.create_table(
        'categories',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('slug', sa.String(120), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('image_url', sa.String(512), nullable=True),
        sa.Column('parent_id', sa.Uuid(), nullable=True),
        sa.Column('sort_order', sa.Integer(), server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='1', nullable=False),
        sa.Column('is_featured', sa.Boolean(), server_default='0', nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['parent_id'], ['categories.id'], name=op.f('fk_categories_parent_id_categories'), ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_categories')),
        sa.UniqueConstraint('slug', name=op.f('uq_categories_slug')),
    )

    op.create_table(
        'products',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('category_id', sa.Uuid(), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=False),
        sa.Column('sku', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('short_description', sa.String(500), nullable=True),
        sa.Column('base_price', sa.Numeric(14, 2), nullable=False),
        sa.Column('compare_at_price', sa.Numeric(14, 2), nullable=True),
        sa.Column('stock_quantity', sa.Integer(), server_default='0', nullable=False),
        sa.Column('low_stock_threshold', sa.Integer(), server_default='5', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='1', nullable=False),
        sa.Column('is_featured', sa.Boolean(), server_default='0', nullable=False),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('images', sa.JSON(), nullable=False),
        sa.Column('attributes', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('stock_quantity >= 0', name=op.f('ck_products_stock_non_negative')),
        sa.CheckConstraint('base_price >= 0', name=op.f('ck_products_price_non_negative')),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], name=op.f('fk_products_category_id_categories'), ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_products')),
        sa.UniqueConstraint('slug', name=op.f('uq_products_slug')),
        sa.UniqueConstraint('sku', name=op.f('uq_products_sku')),
    )
    op.create_index(op.f('ix_products_category_id'), 'products', ['category_id'])
    op.create_index(op.f('ix_products_created_at'), 'products', ['created_at'])

    op.create_table(
        'product_variants',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('sku', sa.String(100), nullable=False),
        sa.Column('variant_name', sa.String(255), nullable=False),
        sa.Column('price_adjustment', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('stock_quantity', sa.Integer(), server_default='0', nullable=False),
        sa.Column('attributes', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='1', nullable=False),
        sa.Column('sort_order', sa.Integer(), server_default='0', nullable=False),
        *_timestamps(),
        sa.CheckConstraint('stock_quantity >= 0', name=op.f('ck_product_variants_variant_stock_non_negative')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name=op.f('fk_product_variants_product_id_products'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_product_variants')),
        sa.UniqueConstraint('sku', name=op.f('uq_product_variants_sku')),
    )
    op.create_index(op.f('ix_product_variants_product_id'), 'product_variants', ['product_id'])

    # Cart
    op.create_table(
        'cart_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('variant_id', sa.Uuid(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('customizations', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('quantity > 0', name=op.f('ck_cart_items_quantity_positive')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_cart_items_user_id_users'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name=op.f('fk_cart_items_product_id_products'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id'], name=op.f('fk_cart_items_variant_id_product_variants'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_cart_items')),
    )
    op.create_index(op.f('ix_cart_items_user_id'), 'cart_items', ['user_id'])

    # Orders
    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_number', sa.String(20), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('status', order_status_enum, server_default='PENDING', nullable=False),
        sa.Column('payment_status', payment_status_enum, server_default='PENDING', nullable=False),
        sa.Column('fulfillment_status', fulfillment_status_enum, server_default='PENDING', nullable=False),
        sa.Column('payment_method', payment_method_enum, server_default='COD', nullable=False),
        sa.Column('subtotal', sa.Numeric(14, 2), nullable=False),
        sa.Column('tax_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('shipping_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('coupon_discount', sa.Numeric(14, 2), nullable=False),
        sa.Column('loyalty_discount', sa.Numeric(14, 2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('total_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('discount_code', sa.String(50), nullable=True),
        sa.Column('points_redeemed', sa.Integer(), server_default='0', nullable=False),
        sa.Column('points_earned', sa.Integer(), server_default='0', nullable=False),
        sa.Column('shipping_address', sa.JSON(), nullable=False),
        sa.Column('billing_address', sa.JSON(), nullable=True),
        sa.Column('customer_notes', sa.Text(), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('tracking_number', sa.String(100), nullable=True),
        sa.Column('vnpay_transaction_no', sa.String(50), nullable=True),
        sa.Column('vnpay_bank_code', sa.String(20), nullable=True),
        sa.Column('vnpay_response_code', sa.String(10), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('total_amount >= 0', name=op.f('ck_orders_total_non_negative')),
        sa.CheckConstraint('points_redeemed >= 0', name=op.f('ck_orders_points_redeemed_non_negative')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_orders_user_id_users'), ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_orders')),
    )
    op.create_index(op.f('ix_orders_order_number'), 'orders', ['order_number'], unique=True)
    op.create_index(op.f('ix_orders_status'), 'orders', ['status'])
    op.create_index('ix_orders_user_created', 'orders', ['user_id', 'created_at'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=True),
        sa.Column('variant_id', sa.Uuid(), nullable=True),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('variant_name', sa.String(255), nullable=True),
        sa.Column('sku', sa.String(100), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(14, 2), nullable=False),
        sa.Column('line_total', sa.Numeric(14, 2), nullable=False),
        sa.Column('customizations', sa.JSON(), nullable=True),
        sa.Column('product_snapshot', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name=op.f('fk_order_items_order_id_orders'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name=op.f('fk_order_items_product_id_products'), ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id'], name=op.f('fk_order_items_variant_id_product_variants'), ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_order_items')),
    )
    op.create_index(op.f('ix_order_items_order_id'), 'order_items', ['order_id'])

    op.create_table(
        'order_status_history',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('from_status', order_status_enum, nullable=True),
        sa.Column('to_status', order_status_enum, nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('performed_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name=op.f('fk_order_status_history_order_id_orders'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_order_status_history')),
    )
    op.create_index(op.f('ix_order_status_history_order_id'), 'order_status_history', ['order_id'])

    # Promotions
    op.create_table(
        'discount_codes',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('discount_type', discount_type_enum, nullable=False),
        sa.Column('value', sa.Numeric(14, 2), nullable=False),
        sa.Column('min_order_amount', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('max_discount_amount', sa.Numeric(14, 2), nullable=True),
        sa.Column('max_uses', sa.Integer(), server_default='10', nullable=False),
        sa.Column('used_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('applicable_users', sa.JSON(), nullable=False),
        sa.Column('is_first_time_only', sa.Boolean(), server_default='0', nullable=False),
        sa.Column('valid_from', sa.DateTime(timezone=True), nullable=True),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default='1', nullable=False),
        *_timestamps(),
        sa.CheckConstraint('used_count >= 0', name=op.f('ck_discount_codes_used_count_non_negative')),
        sa.CheckConstraint('value > 0', name=op.f('ck_discount_codes_value_positive')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_discount_codes')),
        sa.UniqueConstraint('code', name=op.f('uq_discount_codes_code')),
    )

    op.create_table(
        'discount_usages',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('discount_code_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=True),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['discount_code_id'], ['discount_codes.id'], name=op.f('fk_discount_usages_discount_code_id_discount_codes'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_discount_usages_user_id_users'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name=op.f('fk_discount_usages_order_id_orders'), ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_discount_usages')),
    )
    op.create_index(op.f('ix_discount_usages_user_id'), 'discount_usages', ['user_id'])

    op.create_table(
        'loyalty_transactions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=True),
        sa.Column('transaction_type', loyalty_transaction_type_enum, nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(255), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_loyalty_transactions_user_id_users'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name=op.f('fk_loyalty_transactions_order_id_orders'), ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_loyalty_transactions')),
    )
    op.create_index(op.f('ix_loyalty_transactions_user_id'), 'loyalty_transactions', ['user_id'])

    # Audit
    op.create_table(
        'store_audit_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('entity_type', audit_entity_type_enum, nullable=False),
        sa.Column('entity_id', sa.Uuid(), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('old_value', sa.JSON(), nullable=True),
        sa.Column('new_value', sa.JSON(), nullable=True),
        sa.Column('performed_by', sa.String(255), nullable=False),
        sa.Column('performed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_store_audit_logs')),
    )
    op.create_index('ix_store_audit_logs_entity', 'store_audit_logs', ['entity_type', 'entity_id'])


def downgrade() -> None:
    """Downgrade schema - Drop store tables."""
    op.drop_index('ix_store_audit_logs_entity', table_name='store_audit_logs')
    op.drop_table('store_audit_logs')
    op.drop_table('loyalty_transactions')
    op.drop_table('discount_usages')
    op.drop_table('discount_codes')
    op.drop_table('order_status_history')
    op.drop_table('order_items')
    op.drop_index('ix_orders_user_created', table_name='orders')
    op.drop_table('orders')
    op.drop_table('cart_items')
    op.drop_table('product_variants')
    op.drop_table('products')
    op.drop_table('categories')
    op.drop_table('users')

    bind = op.get_bind()
    for enum in reversed(ENUMS):
        enum.drop(bind, checkfirst=True)
