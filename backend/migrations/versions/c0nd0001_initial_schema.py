"""initial condostock schema

Revision ID: c0nd0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the CondoStock schema from scratch:
- products / batches / stocks: one Stock row per Batch, FEFO by expiry_date
- residents / resident_accounts: households (OWNER + MEMBERs) and their tabs
- sales / sale_items: append-only sale records with unit_price snapshots
- session_tokens: hashed opaque login tokens
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c0nd0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # products: catalogue, no quantity column (stock lives in batches)
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('barcode', sa.String(length=64), nullable=False),
        sa.Column('image_url', sa.String(length=512), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('min_stock', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('price >= 0', name='ck_products_price_non_negative'),
    )
    op.create_index('ix_products_barcode', 'products', ['barcode'], unique=True)
    op.create_index('ix_products_name', 'products', ['name'])

    # ============================================================================
    # batches + stocks: one lot per batch, one on-hand row per lot
    # ============================================================================
    op.create_table(
        'batches',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('expiry_date', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
    )
    op.create_index('ix_batches_product_id', 'batches', ['product_id'])
    op.create_index('ix_batches_product_expiry', 'batches', ['product_id', 'expiry_date'])

    op.create_table(
        'stocks',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('batch_id', sa.String(length=36), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['batch_id'], ['batches.id']),
        sa.UniqueConstraint('batch_id'),
        sa.CheckConstraint('quantity >= 0', name='ck_stocks_quantity_non_negative'),
    )

    # ============================================================================
    # residents + resident_accounts
    # ============================================================================
    op.create_table(
        'residents',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('cpf', sa.String(length=11), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_first_login', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='RESIDENT'),
        sa.Column('unit_role', sa.String(length=16), nullable=False, server_default='OWNER'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        sa.Column('apartment', sa.String(length=16), nullable=False, server_default=''),
        sa.Column('block', sa.String(length=16), nullable=False, server_default=''),
        sa.Column('owner_id', sa.String(length=36), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['owner_id'], ['residents.id']),
    )
    op.create_index('ix_residents_cpf', 'residents', ['cpf'], unique=True)
    op.create_index('ix_residents_status', 'residents', ['status'])
    op.create_index('ix_residents_owner_id', 'residents', ['owner_id'])

    op.create_table(
        'resident_accounts',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('resident_id', sa.String(length=36), nullable=False),
        sa.Column('balance', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('credit_limit', sa.Numeric(10, 2), nullable=False, server_default='500'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['resident_id'], ['residents.id']),
        sa.UniqueConstraint('resident_id'),
        sa.CheckConstraint('credit_limit >= 0', name='ck_accounts_credit_limit_non_negative'),
    )

    # ============================================================================
    # sales + sale_items: append-only
    # ============================================================================
    op.create_table(
        'sales',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('total', sa.Numeric(10, 2), nullable=False),
        sa.Column('payment_type', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='COMPLETED'),
        sa.Column('resident_id', sa.String(length=36), nullable=True),
        sa.Column('created_by_id', sa.String(length=36), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['resident_id'], ['residents.id']),
    )
    op.create_index('ix_sales_created_at', 'sales', ['created_at'])
    op.create_index('ix_sales_resident_created', 'sales', ['resident_id', 'created_at'])

    op.create_table(
        'sale_items',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('sale_id', sa.String(length=36), nullable=False),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
    )
    op.create_index('ix_sale_items_sale_id', 'sale_items', ['sale_id'])
    op.create_index('ix_sale_items_product_id', 'sale_items', ['product_id'])

    # ============================================================================
    # session_tokens
    # ============================================================================
    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('resident_id', sa.String(length=36), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['resident_id'], ['residents.id']),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_session_tokens_resident_id', 'session_tokens', ['resident_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_is_revoked', 'session_tokens', ['is_revoked'])
    op.create_index('ix_session_tokens_resident_active', 'session_tokens', ['resident_id', 'is_revoked'])


def downgrade():
    op.drop_table('session_tokens')
    op.drop_table('sale_items')
    op.drop_table('sales')
    op.drop_table('resident_accounts')
    op.drop_table('residents')
    op.drop_table('stocks')
    op.drop_table('batches')
    op.drop_table('products')
