"""
Alembic migration: Initial fulfillment schema.

Creates users, the catalog, carts, coupons, orders with items and status
history, delivery assignments and activations, the payout ledger,
security events and the shop status switch, together with the constraints
that keep stock non-negative, one assignment per order and one commission
of each type per order.

Revision ID: 001
Revises:
Create Date: 2024-06-01 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

NIL_UUID = '00000000-0000-0000-0000-000000000000'

user_role = postgresql.ENUM(
    'customer', 'delivery', 'admin', 'super_admin',
    name='user_role', create_type=False,
)
discount_type = postgresql.ENUM(
    'percentage', 'fixed', name='discount_type', create_type=False,
)
order_status = postgresql.ENUM(
    'pending', 'confirmed', 'out_for_delivery', 'delivered', 'cancelled', 'rejected',
    name='order_status', create_type=False,
)
activation_status = postgresql.ENUM(
    'pending', 'approved', 'rejected', name='activation_status', create_type=False,
)
payout_type = postgresql.ENUM(
    'developer_commission', 'delivery_commission', name='payout_type', create_type=False,
)
payout_status = postgresql.ENUM(
    'pending', 'approved', 'rejected', name='payout_status', create_type=False,
)
shop_state = postgresql.ENUM('open', 'closed', name='shop_state', create_type=False)

ENUMS = (
    user_role,
    discount_type,
    order_status,
    activation_status,
    payout_type,
    payout_status,
    shop_state,
)


def _id() -> sa.Column:
    return sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text('now()'),
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text('now()'),
        ),
    ]


def upgrade() -> None:
    """
    Create every table of the fulfillment engine.
    """
    bind = op.get_bind()
    for enum in ENUMS:
        enum.create(bind, checkfirst=True)

    op.create_table(
        'users',
        _id(),
        sa.Column('email', sa.String(255), nullable=True, unique=True),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('role', user_role, nullable=False, server_default='customer'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'products',
        _id(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('mrp', sa.Numeric(10, 2), nullable=True),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('unit', sa.String(20), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('stock_quantity >= 0', name='ck_products_stock_non_negative'),
        sa.CheckConstraint('price >= 0', name='ck_products_price_non_negative'),
    )
    op.create_index('ix_products_is_active', 'products', ['is_active'])

    op.create_table(
        'product_variants',
        _id(),
        sa.Column(
            'product_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('products.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('variant_value', sa.String(50), nullable=False),
        sa.Column('variant_unit', sa.String(20), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('mrp', sa.Numeric(10, 2), nullable=True),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint('price >= 0', name='ck_product_variants_price_non_negative'),
    )
    op.create_index('ix_product_variants_product_id', 'product_variants', ['product_id'])
    op.create_index(
        'uq_product_variants_one_default',
        'product_variants',
        ['product_id'],
        unique=True,
        postgresql_where=sa.text('is_default'),
    )

    op.create_table(
        'cart_items',
        _id(),
        sa.Column(
            'user_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'product_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('products.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'variant_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('product_variants.id', ondelete='CASCADE'),
            nullable=True,
        ),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.CheckConstraint('quantity >= 1', name='ck_cart_items_quantity_positive'),
    )
    op.create_index('ix_cart_items_user_id', 'cart_items', ['user_id'])
    op.execute(
        "CREATE UNIQUE INDEX uq_cart_items_user_product_variant ON cart_items "
        f"(user_id, product_id, coalesce(variant_id, '{NIL_UUID}'::uuid))"
    )

    op.create_table(
        'coupons',
        _id(),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('discount_type', discount_type, nullable=False),
        sa.Column('discount_value', sa.Numeric(10, 2), nullable=False),
        sa.Column('min_order_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('maximum_discount', sa.Numeric(10, 2), nullable=True),
        sa.Column('valid_from', sa.DateTime(timezone=True), nullable=True),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_stackable', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint('discount_value > 0', name='ck_coupons_discount_value_positive'),
        sa.CheckConstraint('min_order_amount >= 0', name='ck_coupons_min_order_non_negative'),
        sa.CheckConstraint(
            'maximum_discount IS NULL OR maximum_discount > 0',
            name='ck_coupons_maximum_discount_positive',
        ),
        sa.CheckConstraint(
            "discount_type <> 'percentage' OR discount_value <= 100",
            name='ck_coupons_percentage_max_100',
        ),
    )
    op.execute('CREATE UNIQUE INDEX uq_coupons_code_lower ON coupons (lower(code))')

    op.create_table(
        'orders',
        _id(),
        sa.Column('order_number', sa.String(40), nullable=False, unique=True),
        sa.Column(
            'user_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column('status', order_status, nullable=False, server_default='pending'),
        sa.Column('subtotal', sa.Numeric(10, 2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('delivery_fee', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column(
            'coupon_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('coupons.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('delivery_address', sa.Text(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('total_amount >= 0', name='ck_orders_total_non_negative'),
        sa.CheckConstraint('discount_amount >= 0', name='ck_orders_discount_non_negative'),
    )
    op.create_index('ix_orders_user_created', 'orders', ['user_id', 'created_at'])
    op.create_index('ix_orders_status_created', 'orders', ['status', 'created_at'])

    op.create_table(
        'order_items',
        _id(),
        sa.Column(
            'order_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('orders.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'product_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('products.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column(
            'variant_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('product_variants.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
        sa.CheckConstraint('price >= 0', name='ck_order_items_price_non_negative'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table(
        'order_status_history',
        _id(),
        sa.Column(
            'order_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('orders.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('from_status', order_status, nullable=True),
        sa.Column('to_status', order_status, nullable=False),
        sa.Column(
            'changed_by',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        *_timestamps(),
    )
    op.create_index(
        'ix_order_status_history_order_id', 'order_status_history', ['order_id']
    )

    op.create_table(
        'coupon_usage',
        _id(),
        sa.Column(
            'user_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'coupon_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('coupons.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'order_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('orders.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column(
            'used_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text('now()'),
        ),
        *_timestamps(),
    )
    op.create_index('ix_coupon_usage_user_coupon', 'coupon_usage', ['user_id', 'coupon_id'])

    op.create_table(
        'delivery_assignments',
        _id(),
        sa.Column(
            'order_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('orders.id', ondelete='CASCADE'),
            nullable=False,
            unique=True,
        ),
        sa.Column(
            'delivery_person_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('picked_up_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('marked_delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('user_confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_rejected', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        'ix_delivery_assignments_delivery_person_id',
        'delivery_assignments',
        ['delivery_person_id'],
    )

    op.create_table(
        'delivery_activations',
        _id(),
        sa.Column(
            'delivery_partner_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('activation_date', sa.Date(), nullable=False),
        sa.Column('status', activation_status, nullable=False, server_default='pending'),
        sa.Column(
            'admin_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('approved_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_hours', sa.Integer(), nullable=False, server_default='8'),
        *_timestamps(),
        sa.UniqueConstraint(
            'delivery_partner_id',
            'activation_date',
            name='uq_delivery_activations_partner_date',
        ),
    )
    op.create_index(
        'ix_delivery_activations_activation_date',
        'delivery_activations',
        ['activation_date'],
    )

    op.create_table(
        'payouts',
        _id(),
        sa.Column(
            'payer_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column(
            'payee_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column(
            'order_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('orders.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('type', payout_type, nullable=False),
        sa.Column('status', payout_status, nullable=False, server_default='pending'),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column(
            'resolved_by',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('amount > 0', name='ck_payouts_amount_positive'),
    )
    op.create_index(
        'uq_payouts_order_type',
        'payouts',
        ['order_id', 'type'],
        unique=True,
        postgresql_where=sa.text('order_id IS NOT NULL'),
    )
    op.create_index('ix_payouts_payee_status', 'payouts', ['payee_id', 'status'])

    op.create_table(
        'security_events',
        _id(),
        sa.Column(
            'user_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('activity_type', sa.String(50), nullable=False),
        sa.Column('details', sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        *_timestamps(),
    )
    op.create_index('ix_security_events_user_id', 'security_events', ['user_id'])
    op.create_index(
        'ix_security_events_activity_type', 'security_events', ['activity_type']
    )

    op.create_table(
        'shop_settings',
        _id(),
        sa.Column('status', shop_state, nullable=False, server_default='open'),
        sa.Column('closed_message', sa.Text(), nullable=True),
        sa.Column(
            'schedule_enabled', sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            'scheduled_open_time', sa.Time(), nullable=False, server_default='08:00:00'
        ),
        sa.Column(
            'scheduled_close_time', sa.Time(), nullable=False, server_default='22:00:00'
        ),
        *_timestamps(),
    )


def downgrade() -> None:
    """
    Drop every table and enum type created by upgrade.
    """
    for table in (
        'shop_settings',
        'security_events',
        'payouts',
        'delivery_activations',
        'delivery_assignments',
        'coupon_usage',
        'order_status_history',
        'order_items',
        'orders',
        'coupons',
        'cart_items',
        'product_variants',
        'products',
        'users',
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum in reversed(ENUMS):
        enum.drop(bind, checkfirst=True)
