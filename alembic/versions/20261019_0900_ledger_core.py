"""Ledger core: accounts, journals, journal entries, periods and closing audit

Revision ID: 20261019_0900_ledger_core
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20261019_0900_ledger_core'
down_revision = None
branch_labels = None
depends_on = None


account_type_enum = sa.Enum('ASSET', 'LIABILITY', 'EQUITY', 'REVENUE', 'EXPENSE', name='accounttype')
normal_balance_enum = sa.Enum('DEBIT', 'CREDIT', name='normalbalance')
entry_type_enum = sa.Enum(
    'MANUAL', 'FEE_PAYMENT', 'FEE_INVOICE', 'PAYROLL', 'BOARDING', 'CASH_BANK',
    'ADJUSTMENT', 'CLOSING',
    name='journalentrytype',
)
period_type_enum = sa.Enum('MONTHLY', 'QUARTERLY', 'YEARLY', name='periodtype')
period_status_enum = sa.Enum('OPEN', 'IN_PROGRESS', 'CLOSED', 'REOPENED', name='periodstatus')
closing_action_enum = sa.Enum('CLOSE', 'REOPEN', name='closingaction')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    ]


def upgrade() -> None:
    # =========================================================================
    # CHART OF ACCOUNTS
    # =========================================================================
    op.create_table(
        'accounts',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('code', sa.String(20), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('account_type', account_type_enum, nullable=False),
        sa.Column('normal_balance', normal_balance_enum, nullable=False),
        sa.Column('parent_id', sa.Uuid, sa.ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('is_system_account', sa.Boolean, nullable=False, server_default=sa.false()),

        # Cached balances
        sa.Column('current_balance', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('total_debit', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('total_credit', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('balance_updated_at', sa.DateTime(timezone=True), nullable=True),

        sa.Column('created_by', sa.String(100), nullable=True),
        sa.Column('updated_by', sa.String(100), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('code', name='uq_accounts_code'),
    )
    op.create_index('ix_accounts_type_active', 'accounts', ['account_type', 'is_active'])

    # =========================================================================
    # JOURNALS & ENTRIES
    # =========================================================================
    op.create_table(
        'journals',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('code', sa.String(20), nullable=False, unique=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'journal_entries',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('journal_id', sa.Uuid, sa.ForeignKey('journals.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('entry_number', sa.String(50), nullable=False, unique=True),
        sa.Column('entry_date', sa.Date, nullable=False, index=True),
        sa.Column('entry_type', entry_type_enum, nullable=False),
        sa.Column('source_module', sa.String(50), nullable=True),
        sa.Column('reference', sa.String(100), nullable=True, unique=True),
        sa.Column('description', sa.String(500), nullable=False),
        sa.Column('total_debit', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('total_credit', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('created_by', sa.String(100), nullable=True),
        sa.Column('updated_by', sa.String(100), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_journal_entries_type_date', 'journal_entries', ['entry_type', 'entry_date'])

    op.create_table(
        'journal_entry_lines',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('journal_entry_id', sa.Uuid, sa.ForeignKey('journal_entries.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('account_id', sa.Uuid, sa.ForeignKey('accounts.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('line_number', sa.Integer, nullable=False),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('debit_amount', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('credit_amount', sa.Numeric(18, 2), nullable=False, server_default='0'),
        *_timestamps(),
        sa.CheckConstraint(
            '(debit_amount > 0 AND credit_amount = 0) OR (credit_amount > 0 AND debit_amount = 0)',
            name='ck_journal_entry_lines_debit_xor_credit',
        ),
    )

    # =========================================================================
    # ACCOUNTING PERIODS
    # =========================================================================
    op.create_table(
        'accounting_periods',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('period_name', sa.String(50), nullable=False),
        sa.Column('period_type', period_type_enum, nullable=False),
        sa.Column('start_date', sa.Date, nullable=False, index=True),
        sa.Column('end_date', sa.Date, nullable=False, index=True),
        sa.Column('status', period_status_enum, nullable=False, server_default='OPEN'),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_by', sa.String(100), nullable=True),
        sa.Column('closing_journal_entry_id', sa.Uuid, sa.ForeignKey('journal_entries.id', ondelete='SET NULL'), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        *_timestamps(),
        sa.CheckConstraint('end_date >= start_date', name='ck_accounting_periods_period_date_order'),
    )

    op.create_table(
        'period_closing_audit',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('period_id', sa.Uuid, sa.ForeignKey('accounting_periods.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('action', closing_action_enum, nullable=False),
        sa.Column('performed_by', sa.String(100), nullable=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('details', sa.JSON, nullable=True),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table('period_closing_audit')
    op.drop_table('accounting_periods')
    op.drop_table('journal_entry_lines')
    op.drop_table('journal_entries')
    op.drop_table('journals')
    op.drop_index('ix_accounts_type_active', table_name='accounts')
    op.drop_table('accounts')

    # Drop enums
    op.execute('DROP TYPE IF EXISTS closingaction')
    op.execute('DROP TYPE IF EXISTS periodstatus')
    op.execute('DROP TYPE IF EXISTS periodtype')
    op.execute('DROP TYPE IF EXISTS journalentrytype')
    op.execute('DROP TYPE IF EXISTS normalbalance')
    op.execute('DROP TYPE IF EXISTS accounttype')
