"""Initial schema: catalog, stock ledger, billing, returns, wastage, audits

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

Creates:
1. users, session_tokens
2. categories, lots, products (optimistic version_id, non-negative stock)
3. stock_ledger_entries (append-only), identifier_sequences
4. customers, bills, bill_items, bill_charges
5. returns, return_items, wastage_records
6. stock_audits, stock_audit_items
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def _now():
    return sa.text('(CURRENT_TIMESTAMP)')


def upgrade():
    # ==========================================================================
    # 1. USERS & SESSIONS
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username', name='uq_users_username'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_username'), ['username'], unique=False)

    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('session_tokens', schema=None) as batch_op:
        batch_op.create_index('ix_session_tokens_user_active', ['user_id', 'is_revoked'], unique=False)
        batch_op.create_index(batch_op.f('ix_session_tokens_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_session_tokens_token_hash'), ['token_hash'], unique=True)
        batch_op.create_index(batch_op.f('ix_session_tokens_expires_at'), ['expires_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_session_tokens_is_revoked'), ['is_revoked'], unique=False)

    # ==========================================================================
    # 2. CATALOG
    # ==========================================================================
    op.create_table('categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('code', sa.String(length=16), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uq_categories_name'),
        sa.UniqueConstraint('code', name='uq_categories_code'),
        sqlite_autoincrement=True
    )

    op.create_table('lots',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('lot_number', sa.String(length=32), nullable=False),
        sa.Column('upload_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('uploaded_by_user_id', sa.Integer(), nullable=True),
        sa.Column('product_count', sa.Integer(), nullable=False),
        sa.Column('total_stock_value_cents', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('closed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
        sa.ForeignKeyConstraint(['uploaded_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['closed_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('lot_number', name='uq_lots_lot_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('lots', schema=None) as batch_op:
        batch_op.create_index('ix_lots_status_upload', ['status', 'upload_date'], unique=False)
        batch_op.create_index(batch_op.f('ix_lots_category_id'), ['category_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_lots_status'), ['status'], unique=False)

    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=96), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('product_code', sa.String(length=64), nullable=True),
        sa.Column('cost_price_cents', sa.Integer(), nullable=False),
        sa.Column('selling_price_cents', sa.Integer(), nullable=False),
        sa.Column('mrp_cents', sa.Integer(), nullable=True),
        sa.Column('gst_rate_bps', sa.Integer(), nullable=True),
        sa.Column('hsn_code', sa.String(length=16), nullable=True),
        sa.Column('stock_unit', sa.String(length=16), nullable=False),
        sa.Column('stock_quantity', sa.Integer(), nullable=False),
        sa.Column('purchase_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('lot_id', sa.Integer(), nullable=True),
        sa.Column('lot_number', sa.String(length=32), nullable=True),
        sa.Column('price_locked', sa.Boolean(), nullable=False),
        sa.Column('price_locked_by_user_id', sa.Integer(), nullable=True),
        sa.Column('price_locked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.CheckConstraint('stock_quantity >= 0', name='ck_products_stock_non_negative'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
        sa.ForeignKeyConstraint(['lot_id'], ['lots.id'], ),
        sa.ForeignKeyConstraint(['price_locked_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_category_created', ['category_id', 'created_at'], unique=False)
        batch_op.create_index('ix_products_code_category', ['product_code', 'category_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_products_category_id'), ['category_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_products_product_code'), ['product_code'], unique=False)
        batch_op.create_index(batch_op.f('ix_products_lot_id'), ['lot_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_products_lot_number'), ['lot_number'], unique=False)

    # ==========================================================================
    # 3. STOCK LEDGER & IDENTIFIER SEQUENCES
    # ==========================================================================
    op.create_table('stock_ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('movement_type', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('previous_stock', sa.Integer(), nullable=False),
        sa.Column('new_stock', sa.Integer(), nullable=False),
        sa.Column('reference_type', sa.String(length=32), nullable=True),
        sa.Column('reference_id', sa.String(length=64), nullable=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_ledger_quantity_positive'),
        sa.CheckConstraint('previous_stock >= 0', name='ck_ledger_previous_non_negative'),
        sa.CheckConstraint('new_stock >= 0', name='ck_ledger_new_non_negative'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['actor_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_ledger_entries', schema=None) as batch_op:
        batch_op.create_index('ix_ledger_product_occurred', ['product_id', 'occurred_at'], unique=False)
        batch_op.create_index('ix_ledger_reference', ['reference_type', 'reference_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_ledger_entries_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_ledger_entries_movement_type'), ['movement_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_ledger_entries_actor_user_id'), ['actor_user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_ledger_entries_occurred_at'), ['occurred_at'], unique=False)

    op.create_table('identifier_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('scope', sa.String(length=160), nullable=False),
        sa.Column('next_value', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('scope', name='uq_identifier_sequences_scope'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 4. CUSTOMERS & BILLS
    # ==========================================================================
    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('mobile_number', sa.String(length=32), nullable=False),
        sa.Column('pan_card', sa.String(length=16), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('gst_number', sa.String(length=32), nullable=True),
        sa.Column('firm_name', sa.String(length=255), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('total_purchases_cents', sa.Integer(), nullable=False),
        sa.Column('purchase_count', sa.Integer(), nullable=False),
        sa.Column('last_purchase_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('mobile_number', name='uq_customers_mobile'),
        sqlite_autoincrement=True
    )

    op.create_table('bills',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bill_number', sa.String(length=32), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('customer_mobile', sa.String(length=32), nullable=True),
        sa.Column('customer_pan_card', sa.String(length=16), nullable=True),
        sa.Column('customer_email', sa.String(length=255), nullable=True),
        sa.Column('customer_gst_number', sa.String(length=32), nullable=True),
        sa.Column('customer_firm_name', sa.String(length=255), nullable=True),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('gst_cents', sa.Integer(), nullable=False),
        sa.Column('gst_rate_bps', sa.Integer(), nullable=False),
        sa.Column('additional_charges_cents', sa.Integer(), nullable=False),
        sa.Column('discount_bps', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False),
        sa.Column('grand_total_cents', sa.Integer(), nullable=False),
        sa.Column('payment_mode', sa.String(length=16), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('bill_number', name='uq_bills_bill_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('bills', schema=None) as batch_op:
        batch_op.create_index('ix_bills_created_at', ['created_at'], unique=False)
        batch_op.create_index('ix_bills_customer', ['customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_bills_created_by_user_id'), ['created_by_user_id'], unique=False)

    op.create_table('bill_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bill_id', sa.Integer(), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('product_sku', sa.String(length=96), nullable=True),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('category_name', sa.String(length=128), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('gst_rate_bps', sa.Integer(), nullable=False),
        sa.Column('gst_cents', sa.Integer(), nullable=False),
        sa.Column('line_subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['bill_id'], ['bills.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('bill_id', 'line_number', name='uq_bill_items_bill_line'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('bill_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_bill_items_bill_id'), ['bill_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_bill_items_product_id'), ['product_id'], unique=False)

    op.create_table('bill_charges',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bill_id', sa.Integer(), nullable=False),
        sa.Column('service_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit', sa.String(length=32), nullable=False),
        sa.Column('rate_cents', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['bill_id'], ['bills.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('bill_charges', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_bill_charges_bill_id'), ['bill_id'], unique=False)

    # ==========================================================================
    # 5. RETURNS & WASTAGE
    # ==========================================================================
    op.create_table('returns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bill_id', sa.Integer(), nullable=False),
        sa.Column('bill_number', sa.String(length=32), nullable=False),
        sa.Column('refund_cents', sa.Integer(), nullable=False),
        sa.Column('refund_mode', sa.String(length=16), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['bill_id'], ['bills.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('returns', schema=None) as batch_op:
        batch_op.create_index('ix_returns_created_at', ['created_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_returns_bill_id'), ['bill_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_returns_bill_number'), ['bill_number'], unique=False)

    op.create_table('return_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('return_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_refund_cents', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.ForeignKeyConstraint(['return_id'], ['returns.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('return_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_return_items_return_id'), ['return_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_return_items_product_id'), ['product_id'], unique=False)

    op.create_table('wastage_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=16), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('cost_impact_cents', sa.Integer(), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('wastage_records', schema=None) as batch_op:
        batch_op.create_index('ix_wastage_created_at', ['created_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_wastage_records_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_wastage_records_created_by_user_id'), ['created_by_user_id'], unique=False)

    # ==========================================================================
    # 6. STOCK AUDITS
    # ==========================================================================
    op.create_table('stock_audits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('audit_number', sa.String(length=32), nullable=False),
        sa.Column('audit_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('total_products', sa.Integer(), nullable=False),
        sa.Column('discrepancies', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('adjustments_applied', sa.Boolean(), nullable=False),
        sa.Column('conducted_by_user_id', sa.Integer(), nullable=False),
        sa.Column('completed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by_user_id', sa.Integer(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.ForeignKeyConstraint(['conducted_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['completed_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['cancelled_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('audit_number', name='uq_stock_audits_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_audits', schema=None) as batch_op:
        batch_op.create_index('ix_stock_audits_status_date', ['status', 'audit_date'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_audits_status'), ['status'], unique=False)

    op.create_table('stock_audit_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('audit_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('sku', sa.String(length=96), nullable=False),
        sa.Column('system_stock', sa.Integer(), nullable=False),
        sa.Column('physical_stock', sa.Integer(), nullable=False),
        sa.Column('difference', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('scanned_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['audit_id'], ['stock_audits.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('audit_id', 'product_id', name='uq_audit_items_audit_product'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_audit_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stock_audit_items_audit_id'), ['audit_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_audit_items_product_id'), ['product_id'], unique=False)


def downgrade():
    for table in (
        'stock_audit_items',
        'stock_audits',
        'wastage_records',
        'return_items',
        'returns',
        'bill_charges',
        'bill_items',
        'bills',
        'customers',
        'identifier_sequences',
        'stock_ledger_entries',
        'products',
        'lots',
        'categories',
        'session_tokens',
        'users',
    ):
        op.drop_table(table)
