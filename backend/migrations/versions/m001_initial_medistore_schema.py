"""initial medistore schema

Revision ID: m001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the pharmacy schema from scratch:
- stores: tenant root, identified by email, with optimistic-lock version
- medicines: global catalog
- stock_entries: per-store stock ledger (quantity >= 0, one row per stock key)
- billing_records / billing_lines: append-only sales history with price snapshots
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'm001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # stores: tenant root
    # ============================================================================
    op.create_table(
        'stores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('timezone', sa.String(length=64), nullable=False, server_default='UTC'),
        sa.Column('last_billed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stores_email', 'stores', ['email'], unique=True)

    # ============================================================================
    # medicines: catalog
    # ============================================================================
    op.create_table(
        'medicines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('med_id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('secondary_name', sa.String(length=255), nullable=True),
        sa.Column('selling_type', sa.String(length=32), nullable=False, server_default=''),
        sa.Column('med_type', sa.String(length=32), nullable=False),
        sa.Column('price_per_tab_cents', sa.Integer(), nullable=True),
        sa.Column('quantity_per_card', sa.Integer(), nullable=True),
        sa.Column('card_per_box', sa.Integer(), nullable=True),
        sa.Column('price_per_box_cents', sa.Integer(), nullable=True),
        sa.Column('manufacturer', sa.String(length=255), nullable=True),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_medicines_med_id', 'medicines', ['med_id'], unique=True)
    op.create_index('ix_medicines_med_type', 'medicines', ['med_type'])
    op.create_index('ix_medicines_name', 'medicines', ['name'])

    # ============================================================================
    # stock_entries: per-store stock ledger
    # ============================================================================
    op.create_table(
        'stock_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('med_id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('secondary_name', sa.String(length=255), nullable=True),
        sa.Column('selling_type', sa.String(length=32), nullable=False, server_default=''),
        sa.Column('med_type', sa.String(length=32), nullable=False, server_default=''),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('card_per_box', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('batch_number', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('expiry_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('purchase_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'med_id', 'batch_number', name='uq_stock_store_med_batch'),
        sa.CheckConstraint('quantity >= 0', name='ck_stock_quantity_non_negative'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_entries_store_id', 'stock_entries', ['store_id'])
    op.create_index('ix_stock_entries_expiry_date', 'stock_entries', ['expiry_date'])
    op.create_index('ix_stock_store_med', 'stock_entries', ['store_id', 'med_id'])

    # ============================================================================
    # billing_records / billing_lines: append-only sales history
    # ============================================================================
    op.create_table(
        'billing_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=False),
        sa.Column('customer_age', sa.Integer(), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_billing_records_store_id', 'billing_records', ['store_id'])
    op.create_index('ix_billing_store_created', 'billing_records', ['store_id', 'created_at'])

    op.create_table(
        'billing_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('billing_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('med_id', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('batch_number', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['billing_id'], ['billing_records.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('billing_id', 'position', name='uq_billing_lines_position'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_billing_lines_billing_id', 'billing_lines', ['billing_id'])
    op.create_index('ix_billing_lines_med_id', 'billing_lines', ['med_id'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('billing_lines')
    op.drop_table('billing_records')
    op.drop_table('stock_entries')
    op.drop_table('medicines')
    op.drop_table('stores')
