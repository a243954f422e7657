"""initial ledger schema

Revision ID: c7d1e2f3a4b5
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the client ledger schema:
- clients: contact data plus engine-owned credit/debt balances
- products: catalog with optional stock tracking
- sales / sale_items: sale documents and their line items
- payment_records: money received per client
- expenses: operating expenses (including card fees)
- settings: flat key/value store

All money columns are integer cents. Mutable rows carry version_id for
optimistic concurrency checks.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c7d1e2f3a4b5'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # clients
    # ============================================================================
    op.create_table(
        'clients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('cpf', sa.String(length=32), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('neighborhood', sa.String(length=128), nullable=True),
        sa.Column('credit_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_debt_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_interaction', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('next_payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_clients_name', 'clients', ['name'])

    # ============================================================================
    # products
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('department', sa.String(length=64), nullable=True),
        sa.Column('sub_category', sa.String(length=64), nullable=True),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('animal_type', sa.String(length=64), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cost_cents', sa.Integer(), nullable=True),
        sa.Column('unit', sa.String(length=8), nullable=False, server_default='UN'),
        sa.Column('track_stock', sa.Boolean(), nullable=False, server_default='0'),
        # Float: feed and seed are sold by weight
        sa.Column('stock', sa.Float(), nullable=True),
        sa.Column('min_stock', sa.Float(), nullable=True),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('barcode'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_name', 'products', ['name'])

    # ============================================================================
    # sales: CASH (born PAID) and CREDIT (balance tracked until PAID)
    # ============================================================================
    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('client_name', sa.String(length=255), nullable=True),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='CASH'),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('adjustment_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('final_total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('remaining_balance_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PAID'),
        sa.Column('payment_method', sa.String(length=16), nullable=True),
        sa.Column('is_delivery', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('delivery_address', sa.String(length=255), nullable=True),
        sa.Column('delivery_status', sa.String(length=16), nullable=True),
        sa.Column('delivery_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('preferred_delivery_date', sa.DateTime(timezone=True), nullable=True),
        # Business time; FIFO allocation orders by (created_at, id)
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sales', schema=None) as batch_op:
        batch_op.create_index('ix_sales_client_id', ['client_id'], unique=False)
        batch_op.create_index('ix_sales_status', ['status'], unique=False)
        batch_op.create_index('ix_sales_client_created', ['client_id', 'created_at'], unique=False)
        batch_op.create_index('ix_sales_type_status', ['type', 'status'], unique=False)

    # ============================================================================
    # sale_items
    # ============================================================================
    op.create_table(
        'sale_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Float(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_items', schema=None) as batch_op:
        batch_op.create_index('ix_sale_items_sale_id', ['sale_id'], unique=False)
        batch_op.create_index('ix_sale_items_product_id', ['product_id'], unique=False)

    # ============================================================================
    # payment_records
    # ============================================================================
    op.create_table(
        'payment_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('used_credit', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('payment_records', schema=None) as batch_op:
        batch_op.create_index('ix_payment_records_client_id', ['client_id'], unique=False)
        batch_op.create_index('ix_payment_records_client_created', ['client_id', 'created_at'], unique=False)

    # ============================================================================
    # expenses
    # ============================================================================
    op.create_table(
        'expenses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='VARIABLE'),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_expenses_type_date', 'expenses', ['type', 'date'])

    # ============================================================================
    # settings
    # ============================================================================
    op.create_table(
        'settings',
        sa.Column('key', sa.String(length=128), nullable=False),
        sa.Column('value', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('key'),
    )


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('settings')
    op.drop_table('expenses')
    op.drop_table('payment_records')
    op.drop_table('sale_items')
    op.drop_table('sales')
    op.drop_table('products')
    op.drop_table('clients')
