"""
Alembic migration: Initial dispatch schema.

Creates profiles (identity, role, rider availability, current position and
delivery counters), orders with their line items and status history, and
the per-order rider location trail.

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# Revision identifiers, used by Alembic
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ORDER_STATUSES = (
    'pending',
    'confirmed',
    'preparing',
    'out_for_delivery',
    'delivered',
    'cancelled',
)


def _status_type(name: str) -> sa.Enum:
    return sa.Enum(*ORDER_STATUSES, name=name, native_enum=False, length=20)


def upgrade() -> None:
    """
    Create the dispatch tables.

    The orders check constraint keeps rider assignment consistent with the
    status: pending orders have no rider, claimed and later statuses have one.
    """
    op.create_table(
        'profiles',
        sa.Column('id', sa.Uuid(), nullable=False, comment='Unique identifier for the record'),
        sa.Column('user_id', sa.Uuid(), nullable=True, comment='Auth provider account identifier'),
        sa.Column('display_name', sa.String(length=255), nullable=False, comment='Display name'),
        sa.Column('mobile', sa.String(length=32), nullable=True, comment='Mobile number'),
        sa.Column('address', sa.String(length=500), nullable=True, comment='Default address'),
        sa.Column(
            'role',
            sa.Enum('customer', 'rider', 'admin', name='user_role', native_enum=False),
            nullable=False,
            comment='Profile role for access control',
        ),
        sa.Column('is_active', sa.Boolean(), nullable=False, comment='Rider is accepting new orders'),
        sa.Column('lat', sa.Float(), nullable=True),
        sa.Column('lng', sa.Float(), nullable=True),
        sa.Column(
            'location_timestamp',
            sa.BigInteger(),
            nullable=True,
            comment='Epoch milliseconds of the current position sample',
        ),
        sa.Column('location_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('daily_quota', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_deliveries', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_earnings', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('last_order_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
        sa.CheckConstraint('total_deliveries >= 0', name='ck_profiles_deliveries_non_negative'),
        sa.CheckConstraint('lat IS NULL OR (lat >= -90 AND lat <= 90)', name='ck_profiles_lat_range'),
        sa.CheckConstraint('lng IS NULL OR (lng >= -180 AND lng <= 180)', name='ck_profiles_lng_range'),
    )
    op.create_index('ix_profiles_role', 'profiles', ['role'])
    op.create_index('ix_profiles_role_active', 'profiles', ['role', 'is_active'])

    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('status', _status_type('order_status'), nullable=False, comment='Order lifecycle status'),
        sa.Column('user_id', sa.Uuid(), nullable=False, comment='Customer profile'),
        sa.Column('rider_id', sa.Uuid(), nullable=True, comment='Assigned rider profile'),
        sa.Column('subtotal', sa.Numeric(10, 2), nullable=False),
        sa.Column('delivery_fee', sa.Numeric(10, 2), nullable=False),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('dropoff_address', sa.String(length=500), nullable=True),
        sa.Column('dropoff_lat', sa.Float(), nullable=True),
        sa.Column('dropoff_lng', sa.Float(), nullable=True),
        sa.Column('landmark', sa.String(length=255), nullable=True),
        sa.Column('payment_method', sa.String(length=50), nullable=False, server_default='cod'),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('picked_up_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['rider_id'], ['profiles.id'], ondelete='SET NULL'),
        sa.CheckConstraint(
            "(status = 'pending' AND rider_id IS NULL) "
            "OR status = 'cancelled' "
            "OR (status NOT IN ('pending', 'cancelled') AND rider_id IS NOT NULL)",
            name='ck_orders_rider_matches_status',
        ),
        sa.CheckConstraint('delivery_fee >= 0', name='ck_orders_delivery_fee_non_negative'),
        sa.CheckConstraint('total_amount >= 0', name='ck_orders_total_non_negative'),
    )
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_rider_id', 'orders', ['rider_id'])
    op.create_index('ix_orders_status_rider_created', 'orders', ['status', 'rider_id', 'created_at'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False, comment='Catalog product reference'),
        sa.Column('product_name', sa.String(length=255), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=False, comment='Unit price snapshot at order time'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table(
        'order_status_history',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('from_status', _status_type('order_status_from'), nullable=True),
        sa.Column('to_status', _status_type('order_status_to'), nullable=False),
        sa.Column('changed_by', sa.Uuid(), nullable=True, comment='Profile that performed the transition'),
        sa.Column('change_reason', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_order_status_history_order_id', 'order_status_history', ['order_id'])

    op.create_table(
        'rider_location_history',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('rider_id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('lat', sa.Float(), nullable=False),
        sa.Column('lng', sa.Float(), nullable=False),
        sa.Column('timestamp', sa.BigInteger(), nullable=False, comment='Epoch milliseconds reported by the device'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['rider_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
    )
    op.create_index(
        'ix_rider_location_history_rider_order_ts',
        'rider_location_history',
        ['rider_id', 'order_id', 'timestamp'],
    )


def downgrade() -> None:
    """Drop the dispatch tables in reverse dependency order."""
    op.drop_index('ix_rider_location_history_rider_order_ts', table_name='rider_location_history')
    op.drop_table('rider_location_history')

    op.drop_index('ix_order_status_history_order_id', table_name='order_status_history')
    op.drop_table('order_status_history')

    op.drop_index('ix_order_items_order_id', table_name='order_items')
    op.drop_table('order_items')

    op.drop_index('ix_orders_status_rider_created', table_name='orders')
    op.drop_index('ix_orders_rider_id', table_name='orders')
    op.drop_index('ix_orders_user_id', table_name='orders')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_table('orders')

    op.drop_index('ix_profiles_role_active', table_name='profiles')
    op.drop_index('ix_profiles_role', table_name='profiles')
    op.drop_table('profiles')
