"""Create sync tables: transaction records, catalog variants, POS request records

Revision ID: 001_create_sync_tables
Revises: 
Create Date: 2026-10-19

This migration creates:
- transaction_records (one row per storefront order, replayed by recovery)
- catalog_variants (local mirror of storefront variants)
- pos_request_records (audit copies of documents the POS accepted)
"""
from alembic import op
import sqlalchemy as sa
import logging

# Revision identifiers
revision = '001_create_sync_tables'
down_revision = None
branch_labels = None
depends_on = None

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade():
    logger.info("=" * 80)
    logger.info("STARTING MIGRATION: Create Sync Tables")
    logger.info("=" * 80)

    logger.info("[1/3] Creating transaction_records...")
    op.create_table(
        'transaction_records',
        sa.Column('trx_no', sa.String(32), primary_key=True),
        sa.Column('order_body', sa.JSON(), nullable=False),
        sa.Column('order_placed', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_transaction_records_order_placed', 'transaction_records', ['order_placed'])
    logger.info("  ✓ transaction_records created")

    logger.info("[2/3] Creating catalog_variants...")
    op.create_table(
        'catalog_variants',
        sa.Column('variant_id', sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column('product_id', sa.BigInteger(), nullable=False),
        sa.Column('product_title', sa.String(255)),
        sa.Column('variant_title', sa.String(255)),
        sa.Column('inventory_item_id', sa.BigInteger(), nullable=False),
        sa.Column('sku', sa.String(100)),
        sa.Column('barcode', sa.String(100)),
        sa.Column('last_known_inventory', sa.Integer()),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_catalog_variants_sku', 'catalog_variants', ['sku'])
    op.create_index('ix_catalog_variants_barcode', 'catalog_variants', ['barcode'])
    logger.info("  ✓ catalog_variants created")

    logger.info("[3/3] Creating pos_request_records...")
    op.create_table(
        'pos_request_records',
        sa.Column('trx_no', sa.String(32), primary_key=True),
        sa.Column('window_action', sa.String(50)),
        sa.Column('window_action_target', sa.String(20)),
        sa.Column('header', sa.JSON()),
        sa.Column('lines', sa.JSON()),
        sa.Column('payments', sa.JSON()),
        sa.Column('confirmation', sa.String(20)),
        *_timestamps(),
    )
    logger.info("  ✓ pos_request_records created")

    logger.info("MIGRATION COMPLETE")


def downgrade():
    logger.info("Rolling back: Create Sync Tables")
    op.drop_table('pos_request_records')
    op.drop_index('ix_catalog_variants_barcode', table_name='catalog_variants')
    op.drop_index('ix_catalog_variants_sku', table_name='catalog_variants')
    op.drop_table('catalog_variants')
    op.drop_index('ix_transaction_records_order_placed', table_name='transaction_records')
    op.drop_table('transaction_records')
    logger.info("  ✓ tables dropped")
