"""
School Ledger - Accounting Schemas

Pydantic schemas for Chart of Accounts, Journal Entries, Trial Balance,
Accounting Periods and Period Closing.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict

from school_ledger.models.accounting import (
    AccountType, NormalBalance, JournalEntryType,
    PeriodType, PeriodStatus, ClosingAction,
)


# =============================================================================
# CHART OF ACCOUNTS SCHEMAS
# =============================================================================

class AccountBase(BaseModel):
    """Base schema for chart of accounts."""
    code: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class AccountCreate(AccountBase):
    """Schema for creating an account."""
    account_type: AccountType
    parent_id: Optional[UUID] = None
    is_system_account: bool = False


class AccountUpdate(BaseModel):
    """Schema for updating an account."""
    code: Optional[str] = Field(None, min_length=1, max_length=20)
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    parent_id: Optional[UUID] = None
    is_active: Optional[bool] = None


class AccountResponse(AccountBase):
    """Schema for account response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    account_type: AccountType
    normal_balance: NormalBalance
    parent_id: Optional[UUID] = None
    is_active: bool
    is_system_account: bool
    current_balance: Decimal
    total_debit: Decimal
    total_credit: Decimal
    balance_updated_at: Optional[datetime] = None


class AccountBalanceResponse(BaseModel):
    """Stored balance of a single account."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name: str
    account_type: AccountType
    normal_balance: NormalBalance
    current_balance: Decimal
    total_debit: Decimal
    total_credit: Decimal
    balance_updated_at: Optional[datetime] = None


class BalanceRecalculationResponse(BaseModel):
    """Outcome of a full balance recalculation."""
    accounts_updated: int
    total_debit: Decimal
    total_credit: Decimal
    recalculated_at: datetime
    duration_ms: int


# =============================================================================
# JOURNAL ENTRY SCHEMAS
# =============================================================================

class JournalEntryLineBase(BaseModel):
    """Base schema for journal entry line."""
    account_id: UUID
    description: Optional[str] = Field(None, max_length=500)
    debit_amount: Decimal = Field(default=Decimal("0.00"), ge=0)
    credit_amount: Decimal = Field(default=Decimal("0.00"), ge=0)


class JournalEntryLineCreate(JournalEntryLineBase):
    """Schema for creating journal entry line."""
    pass


class JournalEntryLineResponse(JournalEntryLineBase):
    """Schema for journal entry line response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    journal_entry_id: UUID
    line_number: int


class JournalEntryCreate(BaseModel):
    """Schema for creating a journal entry."""
    journal_id: Optional[UUID] = None
    entry_date: date
    description: str = Field(..., min_length=1, max_length=500)
    reference: Optional[str] = Field(None, max_length=100)
    entry_type: JournalEntryType = JournalEntryType.MANUAL
    source_module: Optional[str] = Field(None, max_length=50)
    lines: List[JournalEntryLineCreate] = Field(..., min_length=2)


class JournalEntryResponse(BaseModel):
    """Schema for journal entry response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    journal_id: UUID
    entry_number: str
    entry_date: date
    description: str
    reference: Optional[str] = None
    entry_type: JournalEntryType
    source_module: Optional[str] = None
    total_debit: Decimal
    total_credit: Decimal
    created_by: Optional[str] = None
    lines: List[JournalEntryLineResponse] = []


class JournalEntryListResponse(BaseModel):
    """Paginated journal entry list."""
    items: List[JournalEntryResponse]
    total: int
    limit: int
    offset: int


# =============================================================================
# TRIAL BALANCE SCHEMAS
# =============================================================================

class TrialBalanceRow(BaseModel):
    """One account line of a trial balance."""
    account_id: UUID
    code: str
    name: str
    type: AccountType
    debit: Decimal
    credit: Decimal
    balance: Decimal


class TrialBalanceTotals(BaseModel):
    debit: Decimal
    credit: Decimal
    difference: Decimal


class TrialBalanceReport(BaseModel):
    """Trial balance report, either as of a date or over a date range."""
    as_of_date: Optional[date] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    generated_at: datetime
    accounts: List[TrialBalanceRow]
    totals: TrialBalanceTotals
    is_balanced: bool


class TrialBalanceTypeSummary(BaseModel):
    """Trial balance totals for one account type."""
    account_type: AccountType
    account_count: int
    debit: Decimal
    credit: Decimal
    balance: Decimal


class TrialBalanceSummary(BaseModel):
    """Trial balance grouped by account type."""
    as_of_date: date
    items: List[TrialBalanceTypeSummary]
    totals: TrialBalanceTotals
    is_balanced: bool


# =============================================================================
# ACCOUNTING PERIOD SCHEMAS
# =============================================================================

class AccountingPeriodCreate(BaseModel):
    """Schema for creating an accounting period."""
    period_name: str = Field(..., min_length=1, max_length=50)
    period_type: PeriodType
    start_date: date
    end_date: date
    notes: Optional[str] = None


class AccountingPeriodStatusUpdate(BaseModel):
    """Manual status change (closing and reopening have their own endpoints)."""
    status: PeriodStatus


class GeneratePeriodsRequest(BaseModel):
    """Generate every period of a calendar year."""
    year: int = Field(..., ge=2000, le=2100)
    period_type: PeriodType = PeriodType.MONTHLY


class AccountingPeriodResponse(BaseModel):
    """Schema for accounting period response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    period_name: str
    period_type: PeriodType
    start_date: date
    end_date: date
    status: PeriodStatus
    closed_at: Optional[datetime] = None
    closed_by: Optional[str] = None
    closing_journal_entry_id: Optional[UUID] = None
    notes: Optional[str] = None


# =============================================================================
# PERIOD CLOSING SCHEMAS
# =============================================================================

class ClosingAccountAmount(BaseModel):
    """Revenue or expense account balance for the period being closed."""
    account_id: UUID
    code: str
    name: str
    amount: Decimal


class ClosingPreview(BaseModel):
    """What closing the period would post, without posting it."""
    period_id: UUID
    period_name: str
    start_date: date
    end_date: date
    status: PeriodStatus
    is_closed: bool
    total_revenue: Decimal
    total_expenses: Decimal
    net_income: Decimal
    revenue_accounts: List[ClosingAccountAmount]
    expense_accounts: List[ClosingAccountAmount]


class OpeningBalanceRow(BaseModel):
    """Balance-sheet account balance brought forward into a period."""
    account_id: UUID
    code: str
    name: str
    account_type: AccountType
    normal_balance: NormalBalance
    debit: Decimal
    credit: Decimal
    balance: Decimal


class OpeningBalances(BaseModel):
    """
    Balances brought forward as of the day before a period starts.

    Only balances when every earlier period with revenue or expense
    activity has been closed to Retained Earnings.
    """
    period_id: UUID
    period_name: str
    as_of_date: date
    accounts: List[OpeningBalanceRow]
    total_debit: Decimal
    total_credit: Decimal
    is_balanced: bool


class PeriodCloseResponse(BaseModel):
    """Result of closing an accounting period."""
    success: bool = True
    message: str
    period_id: UUID
    period_name: str
    closing_journal_entry_id: Optional[UUID] = None
    total_revenue: Decimal
    total_expenses: Decimal
    net_income: Decimal
    revenue_accounts_closed: int
    expense_accounts_closed: int
    closed_at: datetime
    closed_by: str


class PeriodReopenResponse(BaseModel):
    """Result of reopening an accounting period."""
    success: bool = True
    message: str
    period_id: UUID
    period_name: str
    status: PeriodStatus
    entries_deleted: int


class ClosingAuditResponse(BaseModel):
    """Closing audit trail row."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    period_id: UUID
    action: ClosingAction
    performed_by: Optional[str] = None
    description: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    created_at: datetime
