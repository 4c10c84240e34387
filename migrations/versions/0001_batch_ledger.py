"""0001 - catalog, recipes, inventory batches and ledger audit tables

Revision ID: 0001_batch_ledger
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_batch_ledger'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # 1) Catalog (owned by the wider platform, read-only for the ledger)
    op.create_table(
        'branch',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False, unique=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'product',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sku', sa.String(length=64), nullable=False, unique=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False, server_default='standard'),
        sa.Column('base_unit', sa.String(length=32), nullable=False, server_default='unit'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint(
            "type IN ('standard', 'compound', 'raw_tracked', 'manufactured_virtual')",
            name='check_product_type',
        ),
    )

    # 2) Recipes (virtual -> raw conversion rules)
    op.create_table(
        'recipe',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('virtual_product_id', sa.Integer(), sa.ForeignKey('product.id'), nullable=False),
        sa.Column('raw_product_id', sa.Integer(), sa.ForeignKey('product.id'), nullable=False),
        sa.Column('conversion_factor', sa.Float(), nullable=False),
        sa.Column('wastage_margin', sa.Float(), nullable=False, server_default='0'),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('virtual_product_id', 'raw_product_id', name='uq_recipe_virtual_raw'),
        sa.CheckConstraint('conversion_factor > 0', name='check_conversion_factor_positive'),
        sa.CheckConstraint('wastage_margin >= 0 AND wastage_margin <= 100', name='check_wastage_margin_range'),
    )
    op.create_index('ix_recipe_virtual_product_id', 'recipe', ['virtual_product_id'])
    op.create_index('ix_recipe_raw_product_id', 'recipe', ['raw_product_id'])

    # 3) Inventory batches
    op.create_table(
        'inventory_batch',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branch.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('product.id'), nullable=False),
        sa.Column('instance_code', sa.String(length=100), nullable=False),
        sa.Column('original_quantity', sa.Float(), nullable=False),
        sa.Column('remaining_quantity', sa.Float(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='in_stock'),
        sa.Column('parent_batch_id', sa.Integer(), sa.ForeignKey('inventory_batch.id'), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('branch_id', 'instance_code', name='uq_batch_branch_instance_code'),
        sa.CheckConstraint('remaining_quantity >= 0', name='check_batch_remaining_non_negative'),
        sa.CheckConstraint('original_quantity > 0', name='check_batch_original_positive'),
        sa.CheckConstraint(
            'remaining_quantity <= original_quantity', name='check_batch_remaining_not_exceeds_original'
        ),
        sa.CheckConstraint(
            "status IN ('in_stock', 'depleted', 'transferred', 'cancelled')", name='check_batch_status'
        ),
    )
    op.create_index('ix_inventory_batch_branch_id', 'inventory_batch', ['branch_id'])
    op.create_index('ix_inventory_batch_product_id', 'inventory_batch', ['product_id'])
    op.create_index('ix_inventory_batch_status', 'inventory_batch', ['status'])
    op.create_index('ix_inventory_batch_created_at', 'inventory_batch', ['created_at'])
    op.create_index(
        'ix_batch_fifo_lookup', 'inventory_batch', ['product_id', 'branch_id', 'status', 'created_at']
    )

    # 4) Append-only audit rows
    op.create_table(
        'item_assignment',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('batch_id', sa.Integer(), sa.ForeignKey('inventory_batch.id'), nullable=False),
        sa.Column('reference_type', sa.String(length=32), nullable=False, server_default='sales_item'),
        sa.Column('reference_id', sa.String(length=64), nullable=False),
        sa.Column('quantity_deducted', sa.Float(), nullable=False),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('quantity_deducted > 0', name='check_assignment_quantity_positive'),
    )
    op.create_index('ix_item_assignment_batch_id', 'item_assignment', ['batch_id'])
    op.create_index('ix_item_assignment_reference_id', 'item_assignment', ['reference_id'])

    op.create_table(
        'stock_transfer',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('batch_id', sa.Integer(), sa.ForeignKey('inventory_batch.id'), nullable=False),
        sa.Column('destination_batch_id', sa.Integer(), sa.ForeignKey('inventory_batch.id'), nullable=False),
        sa.Column('from_branch_id', sa.Integer(), sa.ForeignKey('branch.id'), nullable=False),
        sa.Column('to_branch_id', sa.Integer(), sa.ForeignKey('branch.id'), nullable=False),
        sa.Column('quantity', sa.Float(), nullable=False),
        sa.Column('outcome', sa.String(length=16), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='check_transfer_quantity_positive'),
        sa.CheckConstraint('from_branch_id <> to_branch_id', name='check_transfer_distinct_branches'),
        sa.CheckConstraint("outcome IN ('full_move', 'split_move')", name='check_transfer_outcome'),
    )
    op.create_index('ix_stock_transfer_batch_id', 'stock_transfer', ['batch_id'])
    op.create_index('ix_stock_transfer_destination_batch_id', 'stock_transfer', ['destination_batch_id'])
    op.create_index('ix_stock_transfer_from_branch_id', 'stock_transfer', ['from_branch_id'])
    op.create_index('ix_stock_transfer_to_branch_id', 'stock_transfer', ['to_branch_id'])

    op.create_table(
        'stock_adjustment',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('batch_id', sa.Integer(), sa.ForeignKey('inventory_batch.id'), nullable=False),
        sa.Column('delta', sa.Float(), nullable=False),
        sa.Column('is_correction', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('quantity_before', sa.Float(), nullable=False),
        sa.Column('quantity_after', sa.Float(), nullable=False),
        sa.Column('original_before', sa.Float(), nullable=False),
        sa.Column('original_after', sa.Float(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('quantity_after >= 0', name='check_adjustment_quantity_after_non_negative'),
    )
    op.create_index('ix_stock_adjustment_batch_id', 'stock_adjustment', ['batch_id'])


def downgrade():
    op.drop_table('stock_adjustment')
    op.drop_table('stock_transfer')
    op.drop_table('item_assignment')
    op.drop_table('inventory_batch')
    op.drop_table('recipe')
    op.drop_table('product')
    op.drop_table('branch')
