"""
School Ledger - Chart of Accounts & General Ledger Models

Double-entry accounting tables for the school ERP:
- Chart of Accounts (Assets, Liabilities, Equity, Revenue, Expenses)
- Journals and Journal Entries with balanced lines
- Accounting Periods and the closing audit trail

Fees, payroll, boarding and cash/bank modules all post here.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid,
    Enum as SQLEnum, JSON, UniqueConstraint, Index, CheckConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from school_ledger.models.base import BaseModel, AuditMixin


# =============================================================================
# ENUMS
# =============================================================================

class AccountType(str, Enum):
    """Main account types."""
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class NormalBalance(str, Enum):
    """Normal balance side for accounts."""
    DEBIT = "debit"
    CREDIT = "credit"


DEBIT_NORMAL_TYPES = (AccountType.ASSET, AccountType.EXPENSE)

# Display order for reports grouped by type
ACCOUNT_TYPE_ORDER = (
    AccountType.ASSET,
    AccountType.LIABILITY,
    AccountType.EQUITY,
    AccountType.REVENUE,
    AccountType.EXPENSE,
)


def normal_balance_for(account_type: AccountType) -> NormalBalance:
    """Asset and expense accounts carry debit balances; the rest carry credit."""
    if account_type in DEBIT_NORMAL_TYPES:
        return NormalBalance.DEBIT
    return NormalBalance.CREDIT


class JournalEntryType(str, Enum):
    """Types of journal entries, mostly by originating module."""
    MANUAL = "manual"
    FEE_PAYMENT = "fee_payment"
    FEE_INVOICE = "fee_invoice"
    PAYROLL = "payroll"
    BOARDING = "boarding"
    CASH_BANK = "cash_bank"
    ADJUSTMENT = "adjustment"
    CLOSING = "closing"


class PeriodType(str, Enum):
    """Length of an accounting period."""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class PeriodStatus(str, Enum):
    """Accounting period lifecycle."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"
    REOPENED = "reopened"


class ClosingAction(str, Enum):
    """Actions recorded in the period closing audit trail."""
    CLOSE = "close"
    REOPEN = "reopen"


# =============================================================================
# CHART OF ACCOUNTS
# =============================================================================

class Account(BaseModel, AuditMixin):
    """
    Chart of Accounts entry.

    The code is the business key other modules post against. Balances are
    a cache maintained by the balance aggregator; journal lines remain the
    source of truth.
    """

    __tablename__ = "accounts"

    code: Mapped[str] = mapped_column(
        String(20), nullable=False,
        comment="Account code (e.g., 1110, 4100, 3998)",
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    account_type: Mapped[AccountType] = mapped_column(
        SQLEnum(AccountType), nullable=False,
    )
    normal_balance: Mapped[NormalBalance] = mapped_column(
        SQLEnum(NormalBalance), nullable=False,
    )

    parent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("accounts.id", ondelete="SET NULL"),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_system_account: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
        comment="System accounts cannot be deleted or deactivated",
    )

    # Cached balances (signed by normal balance)
    current_balance: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    total_debit: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    total_credit: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    balance_updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    __table_args__ = (
        UniqueConstraint('code', name='uq_accounts_code'),
        Index('ix_accounts_type_active', 'account_type', 'is_active'),
    )

    def __repr__(self) -> str:
        return f"<Account({self.code}: {self.name})>"


# =============================================================================
# JOURNALS
# =============================================================================

class Journal(BaseModel):
    """A book grouping journal entries (General Journal, Fees, Payroll...)."""

    __tablename__ = "journals"

    code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class JournalEntry(BaseModel, AuditMixin):
    """
    Journal Entry - The core of double-entry accounting.

    Every financial event creates a journal entry with
    balanced debits and credits.
    """

    __tablename__ = "journal_entries"

    journal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("journals.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    entry_number: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True,
        comment="Auto-generated journal entry number (e.g., JE-2026-00001)",
    )
    entry_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    entry_type: Mapped[JournalEntryType] = mapped_column(
        SQLEnum(JournalEntryType),
        default=JournalEntryType.MANUAL,
        nullable=False,
    )
    source_module: Mapped[Optional[str]] = mapped_column(
        String(50), nullable=True,
        comment="Module that created this entry (fees, payroll, etc.)",
    )
    reference: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True, unique=True,
        comment="Business reference from the source document",
    )

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    # Totals (for quick reference - must always balance)
    total_debit: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    total_credit: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )

    lines: Mapped[List["JournalEntryLine"]] = relationship(
        "JournalEntryLine",
        back_populates="journal_entry",
        cascade="all, delete-orphan",
        order_by="JournalEntryLine.line_number",
    )

    __table_args__ = (
        Index('ix_journal_entries_type_date', 'entry_type', 'entry_date'),
    )

    def __repr__(self) -> str:
        return f"<JournalEntry({self.entry_number}: {self.description[:30]})>"


class JournalEntryLine(BaseModel):
    """
    Individual line item in a journal entry.
    Each line is either a debit or credit to a specific account.
    """

    __tablename__ = "journal_entry_lines"

    journal_entry_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("journal_entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Amount (one or the other, not both)
    debit_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    credit_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )

    journal_entry: Mapped["JournalEntry"] = relationship(
        "JournalEntry", back_populates="lines",
    )

    __table_args__ = (
        CheckConstraint(
            '(debit_amount > 0 AND credit_amount = 0) OR (credit_amount > 0 AND debit_amount = 0)',
            name='debit_xor_credit',
        ),
    )


# =============================================================================
# ACCOUNTING PERIODS
# =============================================================================

class AccountingPeriod(BaseModel):
    """
    Accounting period (month, quarter or year).
    Controls when journal entries can be posted and when books are closed.
    """

    __tablename__ = "accounting_periods"

    period_name: Mapped[str] = mapped_column(String(50), nullable=False)
    period_type: Mapped[PeriodType] = mapped_column(
        SQLEnum(PeriodType), nullable=False,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    end_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    status: Mapped[PeriodStatus] = mapped_column(
        SQLEnum(PeriodStatus),
        default=PeriodStatus.OPEN,
        nullable=False,
    )

    # Closing info
    closed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    closed_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    closing_journal_entry_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("journal_entries.id", ondelete="SET NULL"),
        nullable=True,
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint('end_date >= start_date', name='period_date_order'),
    )

    @property
    def is_closed(self) -> bool:
        return self.status == PeriodStatus.CLOSED

    def contains(self, value: date) -> bool:
        return self.start_date <= value <= self.end_date

    def __repr__(self) -> str:
        return f"<AccountingPeriod({self.period_name}: {self.status.value})>"


class PeriodClosingAudit(BaseModel):
    """Audit trail row written for every successful close or reopen."""

    __tablename__ = "period_closing_audit"

    period_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("accounting_periods.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    action: Mapped[ClosingAction] = mapped_column(SQLEnum(ClosingAction), nullable=False)
    performed_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
