"""initial billing schema

Revision ID: b1l001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete billing schema from scratch:
- businesses, users, session_tokens: tenancy and authentication
- products, parties: catalog and counterparties (business-scoped ids)
- invoices, invoice_lines: sales invoices (client-generated ids)
- purchases, purchase_lines, expenses: inbound documents
- ledger_entries: read projection of invoices, purchases and expenses
- audit_logs: append-only action trail
- rate_limit_windows: per-user fixed-window counters for sale creation
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b1l001'
down_revision = None
branch_labels = None
depends_on = None


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def upgrade():
    # ============================================================================
    # Tenancy and authentication
    # ============================================================================
    op.create_table(
        'businesses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('gstin', sa.String(length=32), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _created_at(),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username', name='uq_users_username'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_business_id', 'users', ['business_id'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        _created_at(),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_business_id', 'session_tokens', ['business_id'])
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_is_revoked', 'session_tokens', ['is_revoked'])
    op.create_index('ix_session_tokens_user_active', 'session_tokens', ['user_id', 'is_revoked'])

    # ============================================================================
    # Catalog and counterparties
    # ============================================================================
    # WHY version_id: every stock move bumps it, and the sale commit only
    # decrements stock when the version still matches the priced snapshot.
    op.create_table(
        'products',
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False, server_default='General'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('unit', sa.String(length=16), nullable=False, server_default='pcs'),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.PrimaryKeyConstraint('business_id', 'id'),
    )
    op.create_index('ix_products_business_name', 'products', ['business_id', 'name'])

    op.create_table(
        'parties',
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('gstin', sa.String(length=32), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('balance_cents', sa.BigInteger(), nullable=False, server_default='0'),
        _created_at(),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.PrimaryKeyConstraint('business_id', 'id'),
        sa.UniqueConstraint('business_id', 'name', name='uq_parties_business_name'),
    )

    # ============================================================================
    # Sales invoices
    # ============================================================================
    op.create_table(
        'invoices',
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('invoice_no', sa.String(length=64), nullable=False),
        sa.Column('invoice_date', sa.Date(), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('subtotal_cents', sa.BigInteger(), nullable=False),
        sa.Column('tax_rate_bps', sa.Integer(), nullable=False),
        sa.Column('tax_cents', sa.BigInteger(), nullable=False),
        sa.Column('total_cents', sa.BigInteger(), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        _created_at(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('business_id', 'id'),
    )
    op.create_index('ix_invoices_status', 'invoices', ['status'])
    op.create_index('ix_invoices_business_date', 'invoices', ['business_id', 'invoice_date'])
    op.create_index('ix_invoices_business_customer', 'invoices', ['business_id', 'customer_name'])

    op.create_table(
        'invoice_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.String(length=64), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.String(length=64), nullable=True),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('unit', sa.String(length=16), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(['business_id', 'invoice_id'], ['invoices.business_id', 'invoices.id'],
                                name='fk_invoice_lines_invoice', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_invoice_lines_invoice', 'invoice_lines', ['business_id', 'invoice_id'])

    # ============================================================================
    # Purchases and expenses
    # ============================================================================
    op.create_table(
        'purchases',
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('invoice_no', sa.String(length=64), nullable=False),
        sa.Column('purchase_date', sa.Date(), nullable=False),
        sa.Column('party_name', sa.String(length=255), nullable=False),
        sa.Column('due_in', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.BigInteger(), nullable=False),
        sa.Column('unpaid_amount_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        _created_at(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('business_id', 'id'),
    )
    op.create_index('ix_purchases_status', 'purchases', ['status'])
    op.create_index('ix_purchases_business_date', 'purchases', ['business_id', 'purchase_date'])

    op.create_table(
        'purchase_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('purchase_id', sa.String(length=64), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('rate_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['business_id', 'purchase_id'], ['purchases.business_id', 'purchases.id'],
                                name='fk_purchase_lines_purchase', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'expenses',
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('expense_date', sa.Date(), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('amount_cents', sa.BigInteger(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('payment_mode', sa.String(length=32), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('business_id', 'id'),
    )
    op.create_index('ix_expenses_business_date', 'expenses', ['business_id', 'expense_date'])

    # ============================================================================
    # Ledger projection, audit trail, rate limiting
    # ============================================================================
    op.create_table(
        'ledger_entries',
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('txn_no', sa.String(length=64), nullable=False),
        sa.Column('party_name', sa.String(length=255), nullable=False),
        sa.Column('amount_cents', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.PrimaryKeyConstraint('business_id', 'id'),
    )
    op.create_index('ix_ledger_entries_business_date', 'ledger_entries', ['business_id', 'entry_date'])
    op.create_index('ix_ledger_entries_business_type', 'ledger_entries', ['business_id', 'type'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('details', sa.Text(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('user_name', sa.String(length=255), nullable=True),
        sa.Column('entity_type', sa.String(length=32), nullable=True),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('amount_cents', sa.BigInteger(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_business_occurred', 'audit_logs', ['business_id', 'occurred_at'])

    op.create_table(
        'rate_limit_windows',
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('request_count', sa.Integer(), nullable=False),
        sa.Column('window_reset_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('user_id'),
    )


def downgrade():
    op.drop_table('rate_limit_windows')

    op.drop_index('ix_audit_logs_business_occurred', table_name='audit_logs')
    op.drop_index('ix_audit_logs_action', table_name='audit_logs')
    op.drop_table('audit_logs')

    op.drop_index('ix_ledger_entries_business_type', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_business_date', table_name='ledger_entries')
    op.drop_table('ledger_entries')

    op.drop_index('ix_expenses_business_date', table_name='expenses')
    op.drop_table('expenses')
    op.drop_table('purchase_lines')
    op.drop_index('ix_purchases_business_date', table_name='purchases')
    op.drop_index('ix_purchases_status', table_name='purchases')
    op.drop_table('purchases')

    op.drop_index('ix_invoice_lines_invoice', table_name='invoice_lines')
    op.drop_table('invoice_lines')
    op.drop_index('ix_invoices_business_customer', table_name='invoices')
    op.drop_index('ix_invoices_business_date', table_name='invoices')
    op.drop_index('ix_invoices_status', table_name='invoices')
    op.drop_table('invoices')

    op.drop_table('parties')
    op.drop_index('ix_products_business_name', table_name='products')
    op.drop_table('products')

    op.drop_index('ix_session_tokens_user_active', table_name='session_tokens')
    op.drop_index('ix_session_tokens_is_revoked', table_name='session_tokens')
    op.drop_index('ix_session_tokens_expires_at', table_name='session_tokens')
    op.drop_index('ix_session_tokens_business_id', table_name='session_tokens')
    op.drop_index('ix_session_tokens_user_id', table_name='session_tokens')
    op.drop_index('ix_session_tokens_token_hash', table_name='session_tokens')
    op.drop_table('session_tokens')

    op.drop_index('ix_users_business_id', table_name='users')
    op.drop_table('users')
    op.drop_table('businesses')
