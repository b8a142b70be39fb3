"""Initial ordering schema: tenants, catalog allocation, stock ledger, carts and orders

1. organizations / stores (with monthly limit configuration and counters)
2. products, product_allocations, product_variant_links
3. stock_levels (guarded counters) and stock_movements (append-only)
4. cart_lines, orders, order_lines, order_status_events

Revision ID: 0001_initial_ordering
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial_ordering'
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def upgrade():
    # ==========================================================================
    # STEP 1: Tenancy
    # ==========================================================================
    op.create_table('organizations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_organizations_code', 'organizations', ['code'], unique=True)
    op.create_index('ix_organizations_is_active', 'organizations', ['is_active'])

    op.create_table('stores',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('monthly_expense_limit_cents', sa.Integer(), nullable=True),
        sa.Column('budget_limit_enabled', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('monthly_order_limit', sa.Integer(), nullable=True),
        sa.Column('order_limit_enabled', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('current_month_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_month_orders', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('budget_period', sa.String(length=7), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'name', name='uq_stores_org_name'),
        sa.UniqueConstraint('org_id', 'code', name='uq_stores_org_code')
    )
    op.create_index('ix_stores_org_id', 'stores', ['org_id'])
    op.create_index('ix_stores_code', 'stores', ['code'])

    # ==========================================================================
    # STEP 2: Catalog and allocation
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pack_quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'sku', name='uq_products_org_sku')
    )
    op.create_index('ix_products_org_id', 'products', ['org_id'])
    op.create_index('ix_products_org_active', 'products', ['org_id', 'is_active'])

    op.create_table('product_allocations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'store_id', name='uq_product_allocations_pair')
    )
    op.create_index('ix_product_allocations_product_id', 'product_allocations', ['product_id'])
    op.create_index('ix_product_allocations_store_id', 'product_allocations', ['store_id'])

    op.create_table('product_variant_links',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('low_product_id', sa.Integer(), nullable=False),
        sa.Column('high_product_id', sa.Integer(), nullable=False),
        _timestamp('created_at'),
        sa.CheckConstraint('low_product_id < high_product_id', name='ck_variant_links_ordered'),
        sa.ForeignKeyConstraint(['low_product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['high_product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('low_product_id', 'high_product_id', name='uq_variant_links_pair')
    )
    op.create_index('ix_product_variant_links_low_product_id', 'product_variant_links', ['low_product_id'])
    op.create_index('ix_product_variant_links_high_product_id', 'product_variant_links', ['high_product_id'])

    # ==========================================================================
    # STEP 3: Stock ledger
    # ==========================================================================
    op.create_table('stock_levels',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('total_packs', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('available_packs', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _timestamp('updated_at'),
        sa.CheckConstraint('available_packs >= 0', name='ck_stock_levels_available_nonneg'),
        sa.CheckConstraint('total_packs >= 0', name='ck_stock_levels_total_nonneg'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'store_id', name='uq_stock_levels_product_store')
    )
    op.create_index('ix_stock_levels_product_id', 'stock_levels', ['product_id'])
    op.create_index('ix_stock_levels_store_id', 'stock_levels', ['store_id'])

    op.create_table('stock_movements',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('delta', sa.Integer(), nullable=False),
        sa.Column('available_after', sa.Integer(), nullable=False),
        sa.Column('reference', sa.String(length=64), nullable=True),
        _timestamp('occurred_at'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_stock_movements_kind', 'stock_movements', ['kind'])
    op.create_index('ix_stock_movements_reference', 'stock_movements', ['reference'])
    op.create_index(
        'ix_stock_movements_product_store', 'stock_movements',
        ['product_id', 'store_id', 'occurred_at'],
    )

    # ==========================================================================
    # STEP 4: Carts and orders
    # ==========================================================================
    op.create_table('cart_lines',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        _timestamp('created_at'),
        sa.CheckConstraint('quantity >= 0', name='ck_cart_lines_quantity_nonneg'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'product_id', name='uq_cart_lines_store_product')
    )
    op.create_index('ix_cart_lines_store_id', 'cart_lines', ['store_id'])
    op.create_index('ix_cart_lines_product_id', 'cart_lines', ['product_id'])

    op.create_table('orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=24), nullable=False),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('stock_committed', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('counted_in_budget', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('budget_period', sa.String(length=7), nullable=True),
        sa.Column('exceeds_budget', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('exceed_amount_cents', sa.Integer(), nullable=True),
        sa.Column('exceeds_order_count', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_by', sa.String(length=120), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_orders_org_id', 'orders', ['org_id'])
    op.create_index('ix_orders_store_id', 'orders', ['store_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_store_status', 'orders', ['store_id', 'status'])
    op.create_index('ix_orders_org_created', 'orders', ['org_id', 'created_at'])

    op.create_table('order_lines',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('pack_quantity', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_order_lines_quantity_positive'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_order_lines_order_id', 'order_lines', ['order_id'])
    op.create_index('ix_order_lines_product_id', 'order_lines', ['product_id'])

    op.create_table('order_status_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('from_status', sa.String(length=24), nullable=True),
        sa.Column('to_status', sa.String(length=24), nullable=False),
        sa.Column('actor', sa.String(length=120), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        _timestamp('occurred_at'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_order_status_events_order_id', 'order_status_events', ['order_id'])


def downgrade():
    # Reverse dependency order
    for name in (
        'order_status_events',
        'order_lines',
        'orders',
        'cart_lines',
        'stock_movements',
        'stock_levels',
        'product_variant_links',
        'product_allocations',
        'products',
        'stores',
        'organizations',
    ):
        op.drop_table(name)
