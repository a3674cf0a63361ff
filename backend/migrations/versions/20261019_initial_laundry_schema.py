"""Initial schema: tenants, items, pickups, deliveries, audit trail

1. Creates 'tenants' as the tenant root (hotels)
2. Creates 'items' with the optimistic version column and 'alerts'
3. Creates pickups / pickup_items
4. Creates deliveries / delivery_items / delivery_packages
5. Creates audit_entries and barcode_sequences

Revision ID: l001_initial_schema
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'l001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # STEP 1: Tenants
    # ==========================================================================
    op.create_table('tenants',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_tenants_email', 'tenants', ['email'], unique=True)
    op.create_index('ix_tenants_is_active', 'tenants', ['is_active'])

    # ==========================================================================
    # STEP 2: Items and alerts
    # ==========================================================================
    op.create_table('items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('item_type_id', sa.Integer(), nullable=False),
        sa.Column('rfid_tag', sa.String(length=128), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='at_hotel'),
        sa.Column('wash_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_wash_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_damaged', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_stained', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_items_tenant_id', 'items', ['tenant_id'])
    op.create_index('ix_items_item_type_id', 'items', ['item_type_id'])
    op.create_index('ix_items_rfid_tag', 'items', ['rfid_tag'], unique=True)
    op.create_index('ix_items_status', 'items', ['status'])
    op.create_index('ix_items_tenant_status', 'items', ['tenant_id', 'status'])

    op.create_table('alerts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=True),
        sa.Column('alert_type', sa.String(length=32), nullable=False),
        sa.Column('severity', sa.String(length=16), nullable=False, server_default='medium'),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['item_id'], ['items.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_alerts_tenant_id', 'alerts', ['tenant_id'])
    op.create_index('ix_alerts_item_id', 'alerts', ['item_id'])
    op.create_index('ix_alerts_alert_type', 'alerts', ['alert_type'])

    # ==========================================================================
    # STEP 3: Pickups
    # ==========================================================================
    op.create_table('pickups',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('bag_code', sa.String(length=64), nullable=False),
        sa.Column('seal_number', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='created'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_pickups_tenant_id', 'pickups', ['tenant_id'])
    op.create_index('ix_pickups_bag_code', 'pickups', ['bag_code'], unique=True)
    op.create_index('ix_pickups_status', 'pickups', ['status'])

    op.create_table('pickup_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('pickup_id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['pickup_id'], ['pickups.id']),
        sa.ForeignKeyConstraint(['item_id'], ['items.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('pickup_id', 'item_id', name='uq_pickup_items_pickup_item'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_pickup_items_pickup_id', 'pickup_items', ['pickup_id'])
    op.create_index('ix_pickup_items_item_id', 'pickup_items', ['item_id'])

    # ==========================================================================
    # STEP 4: Deliveries
    # ==========================================================================
    op.create_table('deliveries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('barcode', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='created'),
        sa.Column('package_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('bag_code', sa.String(length=64), nullable=True),
        sa.Column('delivery_latitude', sa.Float(), nullable=True),
        sa.Column('delivery_longitude', sa.Float(), nullable=True),
        sa.Column('delivery_address', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('label_printed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('packaged_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('picked_up_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_deliveries_tenant_id', 'deliveries', ['tenant_id'])
    op.create_index('ix_deliveries_barcode', 'deliveries', ['barcode'], unique=True)
    op.create_index('ix_deliveries_status', 'deliveries', ['status'])
    op.create_index('ix_deliveries_bag_code', 'deliveries', ['bag_code'])

    op.create_table('delivery_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('delivery_id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['delivery_id'], ['deliveries.id']),
        sa.ForeignKeyConstraint(['item_id'], ['items.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('delivery_id', 'item_id', name='uq_delivery_items_delivery_item'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_delivery_items_delivery_id', 'delivery_items', ['delivery_id'])
    op.create_index('ix_delivery_items_item_id', 'delivery_items', ['item_id'])

    op.create_table('delivery_packages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('delivery_id', sa.Integer(), nullable=False),
        sa.Column('package_barcode', sa.String(length=80), nullable=False),
        sa.Column('sequence_number', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='created'),
        sa.Column('scanned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['delivery_id'], ['deliveries.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('delivery_id', 'sequence_number', name='uq_delivery_packages_seq'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_delivery_packages_delivery_id', 'delivery_packages', ['delivery_id'])
    op.create_index('ix_delivery_packages_package_barcode', 'delivery_packages', ['package_barcode'], unique=True)

    # ==========================================================================
    # STEP 5: Audit trail and sequences
    # ==========================================================================
    op.create_table('audit_entries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=True),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('payload', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_audit_entries_tenant_id', 'audit_entries', ['tenant_id'])
    op.create_index('ix_audit_entries_event_type', 'audit_entries', ['event_type'])
    op.create_index('ix_audit_entries_entity_type', 'audit_entries', ['entity_type'])
    op.create_index('ix_audit_entries_entity_id', 'audit_entries', ['entity_id'])
    op.create_index('ix_audit_entries_occurred_at', 'audit_entries', ['occurred_at'])
    op.create_index('ix_audit_entries_tenant_occurred', 'audit_entries', ['tenant_id', 'occurred_at'])

    op.create_table('barcode_sequences',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=32), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True,
    )


def downgrade():
    op.drop_table('barcode_sequences')
    op.drop_table('audit_entries')
    op.drop_table('delivery_packages')
    op.drop_table('delivery_items')
    op.drop_table('deliveries')
    op.drop_table('pickup_items')
    op.drop_table('pickups')
    op.drop_table('alerts')
    op.drop_table('items')
    op.drop_table('tenants')
