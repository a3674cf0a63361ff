"""Scan sessions: persisted reader runs, per-tag scan events, cross-session conflicts

1. Creates 'scan_sessions' with the optimistic version column
2. Creates 'scan_events' (one row per tag per session)
3. Creates 'scan_conflicts'

Revision ID: l002_scan_sessions
Revises: l001_initial_schema
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'l002_scan_sessions'
down_revision = 'l001_initial_schema'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('scan_sessions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('session_type', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='in_progress'),
        sa.Column('related_entity_type', sa.String(length=32), nullable=True),
        sa.Column('related_entity_id', sa.Integer(), nullable=True),
        sa.Column('device_uuid', sa.String(length=64), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('metadata_json', sa.Text(), nullable=True),
        sa.Column('item_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('last_scan_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_scan_sessions_tenant_id', 'scan_sessions', ['tenant_id'])
    op.create_index('ix_scan_sessions_status', 'scan_sessions', ['status'])
    op.create_index('ix_scan_sessions_device_uuid', 'scan_sessions', ['device_uuid'])
    op.create_index('ix_scan_sessions_tenant_type', 'scan_sessions', ['tenant_id', 'session_type'])

    op.create_table('scan_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('rfid_tag', sa.String(length=128), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=True),
        sa.Column('signal_strength', sa.Integer(), nullable=True),
        sa.Column('read_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('sync_status', sa.String(length=16), nullable=False, server_default='recorded'),
        sa.Column('scanned_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['session_id'], ['scan_sessions.id']),
        sa.ForeignKeyConstraint(['item_id'], ['items.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_id', 'rfid_tag', name='uq_scan_events_session_tag'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_scan_events_session_id', 'scan_events', ['session_id'])
    op.create_index('ix_scan_events_rfid_tag', 'scan_events', ['rfid_tag'])
    op.create_index('ix_scan_events_item_id', 'scan_events', ['item_id'])

    op.create_table('scan_conflicts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('rfid_tag', sa.String(length=128), nullable=False),
        sa.Column('winning_session_id', sa.Integer(), nullable=False),
        sa.Column('conflicting_session_id', sa.Integer(), nullable=False),
        sa.Column('resolution', sa.String(length=32), nullable=False, server_default='auto_first_wins'),
        sa.Column('is_resolved', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('resolved_by', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['winning_session_id'], ['scan_sessions.id']),
        sa.ForeignKeyConstraint(['conflicting_session_id'], ['scan_sessions.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_scan_conflicts_tenant_id', 'scan_conflicts', ['tenant_id'])
    op.create_index('ix_scan_conflicts_rfid_tag', 'scan_conflicts', ['rfid_tag'])
    op.create_index('ix_scan_conflicts_is_resolved', 'scan_conflicts', ['is_resolved'])


def downgrade():
    op.drop_table('scan_conflicts')
    op.drop_table('scan_events')
    op.drop_table('scan_sessions')
