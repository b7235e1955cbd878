"""inbound reconciliation schema

Revision ID: r1a2b3c4d5e6
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete schema from scratch:
- items, purchase_orders, purchase_order_lines, locations, users: master data
- tag_registrations: provisioned tag code -> PO line mapping
- epc_tracking: idempotency ledger, unique (epc, item_number, po_number)
- receipt_ledgers: one JSON document of tag contributions per purchase order
- presence_log: append-only in/out history per tag
- scope_locks: lock rows for stores without advisory locks
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = 'r1a2b3c4d5e6'
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def upgrade():
    # ============================================================================
    # Master data
    # ============================================================================
    op.create_table(
        'items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_number', sa.String(length=255), nullable=False),
        sa.Column('item_description', sa.Text(), nullable=True),
        sa.Column('uom', sa.String(length=50), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_items_item_number', 'items', ['item_number'], unique=True)

    op.create_table(
        'purchase_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('po_number', sa.String(length=100), nullable=False),
        sa.Column('supplier_name', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "status IN ('pending', 'partial', 'received', 'cancelled')",
            name='ck_purchase_orders_status'
        ),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_orders_po_number', 'purchase_orders', ['po_number'], unique=True)
    op.create_index('ix_purchase_orders_status', 'purchase_orders', ['status'])

    op.create_table(
        'purchase_order_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_order_id', sa.Integer(), nullable=False),
        sa.Column('item_number', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['purchase_order_id'], ['purchase_orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['item_number'], ['items.item_number']),
        sa.UniqueConstraint('purchase_order_id', 'item_number', name='uq_po_lines_po_item'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_order_lines_purchase_order_id', 'purchase_order_lines', ['purchase_order_id'])

    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_code', sa.String(length=100), nullable=False),
        sa.Column('location_name', sa.String(length=255), nullable=False),
        sa.Column('device_id', sa.String(length=255), nullable=True),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('location_code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_locations_device_id', 'locations', ['device_id'], unique=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('username', sa.String(length=50), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.UniqueConstraint('username'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_location_id', 'users', ['location_id'])

    # ============================================================================
    # tag_registrations: immutable to reconciliation
    # ============================================================================
    op.create_table(
        'tag_registrations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=255), nullable=False),
        sa.Column('po_number', sa.String(length=100), nullable=False),
        sa.Column('lot_no', sa.String(length=100), nullable=False),
        sa.Column('item_number', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('uom', sa.String(length=50), nullable=True),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_tag_registrations_po_item', 'tag_registrations', ['po_number', 'item_number'])

    # ============================================================================
    # epc_tracking: the unique constraint arbitrates concurrent first scans
    # ============================================================================
    op.create_table(
        'epc_tracking',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('epc', sa.String(length=255), nullable=False),
        sa.Column('item_number', sa.String(length=255), nullable=False),
        sa.Column('po_number', sa.String(length=100), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('epc', 'item_number', 'po_number', name='uq_epc_tracking_epc_item_po'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_epc_tracking_po_number', 'epc_tracking', ['po_number'])

    # ============================================================================
    # receipt_ledgers: one document per PO, optimistic version counter
    # ============================================================================
    op.create_table(
        'receipt_ledgers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('po_number', sa.String(length=100), nullable=False),
        sa.Column('entries', sa.JSON().with_variant(postgresql.JSONB(), 'postgresql'), nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_receipt_ledgers_po_number', 'receipt_ledgers', ['po_number'], unique=True)

    # ============================================================================
    # presence_log: append-only, latest row per epc is authoritative
    # ============================================================================
    op.create_table(
        'presence_log',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('epc', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=10), nullable=False),
        sa.Column('seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('po_number', sa.String(length=100), nullable=True),
        sa.Column('item_number', sa.String(length=255), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('location_name', sa.String(length=255), nullable=True),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.CheckConstraint("status IN ('in', 'out')", name='ck_presence_log_status'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_presence_log_epc_seen', 'presence_log', ['epc', 'seen_at'])
    op.create_index('ix_presence_log_seen_at', 'presence_log', ['seen_at'])
    op.create_index('ix_presence_log_user_id', 'presence_log', ['user_id'])

    # ============================================================================
    # scope_locks
    # ============================================================================
    op.create_table(
        'scope_locks',
        sa.Column('key', sa.String(length=255), nullable=False),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('key')
    )


def downgrade():
    op.drop_table('scope_locks')
    op.drop_index('ix_presence_log_user_id', table_name='presence_log')
    op.drop_index('ix_presence_log_seen_at', table_name='presence_log')
    op.drop_index('ix_presence_log_epc_seen', table_name='presence_log')
    op.drop_table('presence_log')
    op.drop_index('ix_receipt_ledgers_po_number', table_name='receipt_ledgers')
    op.drop_table('receipt_ledgers')
    op.drop_index('ix_epc_tracking_po_number', table_name='epc_tracking')
    op.drop_table('epc_tracking')
    op.drop_index('ix_tag_registrations_po_item', table_name='tag_registrations')
    op.drop_table('tag_registrations')
    op.drop_index('ix_users_location_id', table_name='users')
    op.drop_table('users')
    op.drop_index('ix_locations_device_id', table_name='locations')
    op.drop_table('locations')
    op.drop_index('ix_purchase_order_lines_purchase_order_id', table_name='purchase_order_lines')
    op.drop_table('purchase_order_lines')
    op.drop_index('ix_purchase_orders_status', table_name='purchase_orders')
    op.drop_index('ix_purchase_orders_po_number', table_name='purchase_orders')
    op.drop_table('purchase_orders')
    op.drop_index('ix_items_item_number', table_name='items')
    op.drop_table('items')
