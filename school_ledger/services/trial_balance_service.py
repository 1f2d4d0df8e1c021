"""
School Ledger - Trial Balance Generator

Builds trial balances straight from journal lines, either cumulative as of a
date or for activity within a date range, plus a by-type summary and a CSV
export of the same rows.
"""

import csv
import io
import logging
from collections import OrderedDict
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.config import settings
from school_ledger.models.accounting import (
    ACCOUNT_TYPE_ORDER, Account, AccountType, JournalEntry, JournalEntryLine,
)
from school_ledger.schemas.accounting import (
    TrialBalanceReport, TrialBalanceRow, TrialBalanceTotals,
    TrialBalanceSummary, TrialBalanceTypeSummary,
)
from school_ledger.utils.error_handling import InvalidDateRangeException, ValidationException
from school_ledger.utils.money import ZERO, to_money, within_tolerance

logger = logging.getLogger(__name__)

CSV_HEADER = ["Account Code", "Account Name", "Account Type", "Debit", "Credit", "Balance"]


class TrialBalanceService:
    """Service for trial balance reports."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _validate_window(
        as_of_date: Optional[date],
        start_date: Optional[date],
        end_date: Optional[date],
    ) -> None:
        has_range = start_date is not None or end_date is not None
        if as_of_date is not None and has_range:
            raise ValidationException(
                "Provide either as_of_date or start_date/end_date, not both"
            )
        if as_of_date is None and not has_range:
            raise ValidationException(
                "Provide either as_of_date or both start_date and end_date"
            )
        if has_range and (start_date is None or end_date is None):
            raise ValidationException(
                "Both start_date and end_date are required for a date range"
            )
        if has_range and start_date > end_date:
            raise InvalidDateRangeException(start_date, end_date)

    async def _sum_lines(
        self,
        as_of_date: Optional[date],
        start_date: Optional[date],
        end_date: Optional[date],
    ) -> Dict:
        if as_of_date is not None:
            date_filter = JournalEntry.entry_date <= as_of_date
        else:
            date_filter = and_(
                JournalEntry.entry_date >= start_date,
                JournalEntry.entry_date <= end_date,
            )

        result = await self.db.execute(
            select(
                JournalEntryLine.account_id,
                func.coalesce(func.sum(JournalEntryLine.debit_amount), 0),
                func.coalesce(func.sum(JournalEntryLine.credit_amount), 0),
            )
            .join(JournalEntry, JournalEntryLine.journal_entry_id == JournalEntry.id)
            .where(date_filter)
            .group_by(JournalEntryLine.account_id)
        )
        return {
            account_id: (to_money(debit), to_money(credit))
            for account_id, debit, credit in result.all()
        }

    async def generate(
        self,
        as_of_date: Optional[date] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> TrialBalanceReport:
        """
        Generate a trial balance.

        Exactly one of as_of_date or the (start_date, end_date) pair must be
        given. Each row carries balance = debits - credits for the window;
        a positive balance is shown in the debit column, a negative one in
        the credit column. Accounts with no activity and no balance are
        left out.
        """
        self._validate_window(as_of_date, start_date, end_date)
        sums = await self._sum_lines(as_of_date, start_date, end_date)

        result = await self.db.execute(select(Account).order_by(Account.code))
        rows: List[TrialBalanceRow] = []
        total_debit = ZERO
        total_credit = ZERO

        for account in result.scalars().all():
            period_debit, period_credit = sums.get(account.id, (ZERO, ZERO))
            balance = period_debit - period_credit
            if period_debit == 0 and period_credit == 0 and balance == 0:
                continue

            debit = balance if balance > 0 else ZERO
            credit = -balance if balance < 0 else ZERO
            rows.append(TrialBalanceRow(
                account_id=account.id,
                code=account.code,
                name=account.name,
                type=account.account_type,
                debit=debit,
                credit=credit,
                balance=balance,
            ))
            total_debit += debit
            total_credit += credit

        difference = total_debit - total_credit
        return TrialBalanceReport(
            as_of_date=as_of_date,
            start_date=start_date,
            end_date=end_date,
            generated_at=datetime.now(timezone.utc),
            accounts=rows,
            totals=TrialBalanceTotals(
                debit=total_debit,
                credit=total_credit,
                difference=difference,
            ),
            is_balanced=within_tolerance(difference, settings.balance_tolerance),
        )

    async def summary(self, as_of_date: date) -> TrialBalanceSummary:
        """Trial balance as of a date, totalled by account type."""
        report = await self.generate(as_of_date=as_of_date)

        grouped: Dict[AccountType, TrialBalanceTypeSummary] = OrderedDict(
            (account_type, TrialBalanceTypeSummary(
                account_type=account_type,
                account_count=0,
                debit=ZERO,
                credit=ZERO,
                balance=ZERO,
            ))
            for account_type in ACCOUNT_TYPE_ORDER
        )
        for row in report.accounts:
            item = grouped[row.type]
            item.account_count += 1
            item.debit += row.debit
            item.credit += row.credit
            item.balance += row.balance

        return TrialBalanceSummary(
            as_of_date=as_of_date,
            items=list(grouped.values()),
            totals=report.totals,
            is_balanced=report.is_balanced,
        )

    async def export_csv(
        self,
        as_of_date: Optional[date] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Tuple[bytes, str]:
        """Generate Trial Balance CSV; returns (content, filename)."""
        report = await self.generate(as_of_date, start_date, end_date)

        buffer = io.StringIO()
        writer = csv.writer(buffer)

        writer.writerow(CSV_HEADER)
        for row in report.accounts:
            writer.writerow([
                row.code,
                row.name,
                row.type.value,
                _fmt(row.debit),
                _fmt(row.credit),
                _fmt(row.balance),
            ])
        writer.writerow([])
        writer.writerow([
            "", "TOTAL", "",
            _fmt(report.totals.debit),
            _fmt(report.totals.credit),
            _fmt(report.totals.difference),
        ])

        if as_of_date is not None:
            filename = f"trial_balance_{as_of_date.isoformat()}.csv"
        else:
            filename = f"trial_balance_{start_date.isoformat()}_to_{end_date.isoformat()}.csv"

        return buffer.getvalue().encode("utf-8"), filename


def _fmt(value: Decimal) -> str:
    return f"{value:.2f}"
