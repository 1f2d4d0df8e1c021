"""
School Ledger - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from school_ledger.models.base import BaseModel, TimestampMixin, AuditMixin
from school_ledger.models.accounting import (
    Account,
    AccountType,
    NormalBalance,
    Journal,
    JournalEntry,
    JournalEntryLine,
    JournalEntryType,
    AccountingPeriod,
    PeriodType,
    PeriodStatus,
    PeriodClosingAudit,
    ClosingAction,
)

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "AuditMixin",
    "Account",
    "AccountType",
    "NormalBalance",
    "Journal",
    "JournalEntry",
    "JournalEntryLine",
    "JournalEntryType",
    "AccountingPeriod",
    "PeriodType",
    "PeriodStatus",
    "PeriodClosingAudit",
    "ClosingAction",
]
