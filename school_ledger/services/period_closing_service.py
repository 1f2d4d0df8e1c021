"""
School Ledger - Period Closing Engine

Closes and reopens accounting periods:
- Revenue and expense accounts are closed to Income Summary (3999)
- Net income or loss is transferred to Retained Earnings (3998)
- Balances are recalculated and the period is locked against new postings
- Reopening removes the closing entry and unlocks the period
- Opening balances brought forward into a period are reported, never posted

Each close or reopen is one transaction: either every step lands or none do.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, func, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from school_ledger.config import settings
from school_ledger.models.accounting import (
    Account, AccountType, AccountingPeriod, ClosingAction, JournalEntry,
    JournalEntryLine, JournalEntryType, PeriodClosingAudit, PeriodStatus,
)
from school_ledger.schemas.accounting import (
    ClosingAccountAmount, ClosingPreview, JournalEntryCreate,
    JournalEntryLineCreate, OpeningBalanceRow, OpeningBalances,
    PeriodCloseResponse, PeriodReopenResponse,
)
from school_ledger.services.balance_service import BalanceService, signed_balance
from school_ledger.services.chart_of_accounts_service import ChartOfAccountsService
from school_ledger.services.journal_service import JournalService
from school_ledger.services.trial_balance_service import TrialBalanceService
from school_ledger.utils.error_handling import (
    AppException, ConfigurationException, ErrorCode, NotFoundException,
    TransactionException, ValidationException,
)
from school_ledger.utils.money import ZERO, to_money

logger = logging.getLogger(__name__)

BALANCE_SHEET_TYPES = (AccountType.ASSET, AccountType.LIABILITY, AccountType.EQUITY)


def closing_entry_description(period_name: str) -> str:
    return f"Closing Entry - {period_name}"


@dataclass
class PeriodResults:
    """Revenue and expense balances for a period's date range."""
    revenue_accounts: List[ClosingAccountAmount]
    expense_accounts: List[ClosingAccountAmount]

    @property
    def total_revenue(self) -> Decimal:
        return sum((acc.amount for acc in self.revenue_accounts), ZERO)

    @property
    def total_expenses(self) -> Decimal:
        return sum((acc.amount for acc in self.expense_accounts), ZERO)

    @property
    def net_income(self) -> Decimal:
        return self.total_revenue - self.total_expenses

    @property
    def has_activity(self) -> bool:
        return bool(self.revenue_accounts or self.expense_accounts)


class PeriodClosingService:
    """Service for closing and reopening accounting periods."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _get_period(self, period_id: uuid.UUID, lock: bool = False) -> AccountingPeriod:
        query = select(AccountingPeriod).where(AccountingPeriod.id == period_id)
        if lock:
            # Concurrent closers queue here and then see the committed status
            query = query.with_for_update().execution_options(populate_existing=True)

        result = await self.db.execute(query)
        period = result.scalar_one_or_none()
        if not period:
            raise NotFoundException("Accounting period", period_id)
        return period

    async def _get_closing_accounts(self) -> Tuple[Account, Account]:
        """Load (retained earnings, income summary); both must exist and be active."""
        retained, summary = await ChartOfAccountsService(self.db).get_closing_accounts()

        missing = []
        if not retained or not retained.is_active:
            missing.append(f"{settings.retained_earnings_code} (Retained Earnings)")
        if not summary or not summary.is_active:
            missing.append(f"{settings.income_summary_code} (Income Summary)")
        if missing:
            raise ConfigurationException(
                "Closing accounts are missing or inactive: " + ", ".join(missing),
                details={"accounts": missing},
            )
        return retained, summary

    async def _range_balances(
        self,
        period: AccountingPeriod,
        account_type: AccountType,
    ) -> List[ClosingAccountAmount]:
        """
        Per-account balance of active accounts of one type within the period.

        Revenue is measured as credits - debits, expenses as debits - credits.
        Closing entries are excluded so a closed period still previews the
        results it closed. Zero balances are dropped.
        """
        total_debit = func.coalesce(func.sum(JournalEntryLine.debit_amount), 0)
        total_credit = func.coalesce(func.sum(JournalEntryLine.credit_amount), 0)

        result = await self.db.execute(
            select(Account.id, Account.code, Account.name, total_debit, total_credit)
            .join(JournalEntryLine, JournalEntryLine.account_id == Account.id)
            .join(JournalEntry, JournalEntryLine.journal_entry_id == JournalEntry.id)
            .where(and_(
                Account.account_type == account_type,
                Account.is_active == True,  # noqa: E712
                JournalEntry.entry_date >= period.start_date,
                JournalEntry.entry_date <= period.end_date,
                JournalEntry.entry_type != JournalEntryType.CLOSING,
            ))
            .group_by(Account.id, Account.code, Account.name)
            .order_by(Account.code)
        )

        balances = []
        for account_id, code, name, debit, credit in result.all():
            if account_type == AccountType.REVENUE:
                amount = to_money(credit) - to_money(debit)
            else:
                amount = to_money(debit) - to_money(credit)
            if amount != 0:
                balances.append(ClosingAccountAmount(
                    account_id=account_id, code=code, name=name, amount=amount,
                ))
        return balances

    async def _period_results(self, period: AccountingPeriod) -> PeriodResults:
        return PeriodResults(
            revenue_accounts=await self._range_balances(period, AccountType.REVENUE),
            expense_accounts=await self._range_balances(period, AccountType.EXPENSE),
        )

    @staticmethod
    def _build_closing_lines(
        results: PeriodResults,
        retained_earnings: Account,
        income_summary: Account,
    ) -> List[JournalEntryLineCreate]:
        """
        Lines that zero revenue and expense accounts through Income Summary
        and move the net result to Retained Earnings.

        A positive amount is a debit and a negative amount a credit, so an
        account carrying a contra balance is closed from the other side.
        """
        lines: List[JournalEntryLineCreate] = []

        def add(account_id: uuid.UUID, amount: Decimal, description: str) -> None:
            amount = to_money(amount)
            if amount > 0:
                lines.append(JournalEntryLineCreate(
                    account_id=account_id, debit_amount=amount, description=description,
                ))
            elif amount < 0:
                lines.append(JournalEntryLineCreate(
                    account_id=account_id, credit_amount=-amount, description=description,
                ))

        # Revenue: debit each account, credit Income Summary with the total
        for acc in results.revenue_accounts:
            add(acc.account_id, acc.amount, f"Close {acc.name} to Income Summary")
        add(income_summary.id, -results.total_revenue, "Total revenue to Income Summary")

        # Expenses: debit Income Summary with the total, credit each account
        add(income_summary.id, results.total_expenses, "Total expenses from Income Summary")
        for acc in results.expense_accounts:
            add(acc.account_id, -acc.amount, f"Close {acc.name} to Income Summary")

        # Net result to Retained Earnings
        net_income = results.net_income
        if net_income > 0:
            add(income_summary.id, net_income, "Transfer net income to Retained Earnings")
            add(retained_earnings.id, -net_income, "Net income for the period")
        elif net_income < 0:
            add(retained_earnings.id, -net_income, "Net loss for the period")
            add(income_summary.id, net_income, "Transfer net loss to Retained Earnings")

        return lines

    async def _find_closing_entry_ids(self, period: AccountingPeriod) -> List[uuid.UUID]:
        if period.closing_journal_entry_id:
            return [period.closing_journal_entry_id]

        # Periods closed before the explicit link existed
        result = await self.db.execute(
            select(JournalEntry.id).where(and_(
                JournalEntry.entry_type == JournalEntryType.CLOSING,
                JournalEntry.description == closing_entry_description(period.period_name),
                JournalEntry.entry_date == period.end_date,
            ))
        )
        return list(result.scalars().all())

    def _audit(
        self,
        period: AccountingPeriod,
        action: ClosingAction,
        actor_id: str,
        description: str,
        details: dict,
    ) -> None:
        self.db.add(PeriodClosingAudit(
            period_id=period.id,
            action=action,
            performed_by=actor_id,
            description=description,
            details=details,
        ))

    # =========================================================================
    # PREVIEW
    # =========================================================================

    async def get_closing_preview(self, period_id: uuid.UUID) -> ClosingPreview:
        """Revenue, expenses and net income the close would post. Read-only."""
        period = await self._get_period(period_id)
        results = await self._period_results(period)

        return ClosingPreview(
            period_id=period.id,
            period_name=period.period_name,
            start_date=period.start_date,
            end_date=period.end_date,
            status=period.status,
            is_closed=period.status == PeriodStatus.CLOSED,
            total_revenue=results.total_revenue,
            total_expenses=results.total_expenses,
            net_income=results.net_income,
            revenue_accounts=results.revenue_accounts,
            expense_accounts=results.expense_accounts,
        )

    async def get_opening_balances(self, period_id: uuid.UUID) -> OpeningBalances:
        """
        Asset, liability and equity balances brought forward into a period.

        Computed from journal lines dated before the period starts, closing
        entries included. Nothing is posted. Accounts with a zero balance
        are left out.
        """
        period = await self._get_period(period_id)
        as_of = period.start_date - timedelta(days=1)

        total_debit = func.coalesce(func.sum(JournalEntryLine.debit_amount), 0)
        total_credit = func.coalesce(func.sum(JournalEntryLine.credit_amount), 0)

        result = await self.db.execute(
            select(
                Account.id, Account.code, Account.name, Account.account_type,
                Account.normal_balance, total_debit, total_credit,
            )
            .join(JournalEntryLine, JournalEntryLine.account_id == Account.id)
            .join(JournalEntry, JournalEntryLine.journal_entry_id == JournalEntry.id)
            .where(and_(
                Account.account_type.in_(BALANCE_SHEET_TYPES),
                JournalEntry.entry_date <= as_of,
            ))
            .group_by(
                Account.id, Account.code, Account.name,
                Account.account_type, Account.normal_balance,
            )
            .order_by(Account.code)
        )

        rows: List[OpeningBalanceRow] = []
        for account_id, code, name, account_type, normal_balance, debit, credit in result.all():
            net = to_money(debit) - to_money(credit)
            if net == 0:
                continue
            rows.append(OpeningBalanceRow(
                account_id=account_id,
                code=code,
                name=name,
                account_type=account_type,
                normal_balance=normal_balance,
                debit=net if net > 0 else ZERO,
                credit=-net if net < 0 else ZERO,
                balance=signed_balance(normal_balance, to_money(debit), to_money(credit)),
            ))

        sum_debit = sum((row.debit for row in rows), ZERO)
        sum_credit = sum((row.credit for row in rows), ZERO)

        return OpeningBalances(
            period_id=period.id,
            period_name=period.period_name,
            as_of_date=as_of,
            accounts=rows,
            total_debit=sum_debit,
            total_credit=sum_credit,
            is_balanced=sum_debit == sum_credit,
        )

    # =========================================================================
    # CLOSE
    # =========================================================================

    async def close_period(self, period_id: uuid.UUID, actor_id: str) -> PeriodCloseResponse:
        """
        Close an accounting period.

        Steps, in one transaction:
        1. Lock the period row and refuse if already closed
        2. Require Retained Earnings and Income Summary to be configured
        3. Require the period's trial balance to balance
        4. Post one closing entry dated the period end (skipped when the
           period has no revenue or expense activity)
        5. Recalculate stored balances
        6. Mark the period closed and write the audit row

        Raises:
            NotFoundException: Unknown period
            ValidationException: Period already closed or out of balance
            ConfigurationException: Closing accounts missing or inactive
            TransactionException: Database failure (everything rolled back)
        """
        try:
            period = await self._get_period(period_id, lock=True)
            if period.status == PeriodStatus.CLOSED:
                raise ValidationException(
                    "Period is already closed", code=ErrorCode.PERIOD_STATE,
                )

            retained_earnings, income_summary = await self._get_closing_accounts()

            trial_balance = await TrialBalanceService(self.db).generate(
                start_date=period.start_date, end_date=period.end_date,
            )
            if not trial_balance.is_balanced:
                raise ValidationException(
                    f"Trial balance for '{period.period_name}' is out of balance by "
                    f"{trial_balance.totals.difference}",
                    details={"difference": str(trial_balance.totals.difference)},
                )

            results = await self._period_results(period)
            now = datetime.now(timezone.utc)

            closing_entry: Optional[JournalEntry] = None
            if results.has_activity:
                closing_entry = await JournalService(self.db).create_entry(
                    JournalEntryCreate(
                        entry_date=period.end_date,
                        description=closing_entry_description(period.period_name),
                        reference=f"CLOSE-{period.id}-{int(now.timestamp())}",
                        entry_type=JournalEntryType.CLOSING,
                        source_module="period_closing",
                        lines=self._build_closing_lines(results, retained_earnings, income_summary),
                    ),
                    actor_id=actor_id,
                    recalculate=False,
                    allow_closing=True,
                )

            await BalanceService(self.db).recalculate_all()

            period.status = PeriodStatus.CLOSED
            period.closed_at = now
            period.closed_by = actor_id
            period.closing_journal_entry_id = closing_entry.id if closing_entry else None

            self._audit(
                period,
                ClosingAction.CLOSE,
                actor_id,
                f"Closed period {period.period_name}",
                {
                    "closing_journal_entry_id": str(closing_entry.id) if closing_entry else None,
                    "total_revenue": str(results.total_revenue),
                    "total_expenses": str(results.total_expenses),
                    "net_income": str(results.net_income),
                },
            )

            await self.db.commit()

        except AppException:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Closing period {period_id} failed: {e}", exc_info=True)
            raise TransactionException("Failed to close period; no changes were saved", original_error=e)

        logger.info(
            f"Closed period {period.period_name} by {actor_id}: revenue {results.total_revenue}, "
            f"expenses {results.total_expenses}, net income {results.net_income}"
        )

        return PeriodCloseResponse(
            message=f"Period {period.period_name} closed successfully",
            period_id=period.id,
            period_name=period.period_name,
            closing_journal_entry_id=closing_entry.id if closing_entry else None,
            total_revenue=results.total_revenue,
            total_expenses=results.total_expenses,
            net_income=results.net_income,
            revenue_accounts_closed=len(results.revenue_accounts),
            expense_accounts_closed=len(results.expense_accounts),
            closed_at=now,
            closed_by=actor_id,
        )

    # =========================================================================
    # REOPEN
    # =========================================================================

    async def reopen_period(self, period_id: uuid.UUID, actor_id: str) -> PeriodReopenResponse:
        """
        Reopen a closed period.

        Deletes the closing entry, recalculates balances and returns the
        period to open. Calling it on a period that is not closed fails
        without side effects.
        """
        try:
            period = await self._get_period(period_id, lock=True)
            if period.status != PeriodStatus.CLOSED:
                raise ValidationException(
                    "Period is not closed", code=ErrorCode.PERIOD_STATE,
                )

            entry_ids = await self._find_closing_entry_ids(period)

            period.closing_journal_entry_id = None
            await self.db.flush()

            deleted = await JournalService(self.db).delete_entries(entry_ids)
            await BalanceService(self.db).recalculate_all()

            period.status = PeriodStatus.OPEN
            period.closed_at = None
            period.closed_by = None

            self._audit(
                period,
                ClosingAction.REOPEN,
                actor_id,
                f"Reopened period {period.period_name}",
                {"deleted_entry_ids": [str(entry_id) for entry_id in entry_ids]},
            )

            await self.db.commit()

        except AppException:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Reopening period {period_id} failed: {e}", exc_info=True)
            raise TransactionException("Failed to reopen period; no changes were saved", original_error=e)

        logger.info(f"Reopened period {period.period_name} by {actor_id}; removed {deleted} closing entries")

        return PeriodReopenResponse(
            message=f"Period {period.period_name} reopened successfully",
            period_id=period.id,
            period_name=period.period_name,
            status=period.status,
            entries_deleted=deleted,
        )

    # =========================================================================
    # HISTORY
    # =========================================================================

    async def get_closing_entries(self, period_id: uuid.UUID) -> List[JournalEntry]:
        """The closing entry (with lines) currently posted for a period."""
        period = await self._get_period(period_id)
        entry_ids = await self._find_closing_entry_ids(period)
        if not entry_ids:
            return []

        result = await self.db.execute(
            select(JournalEntry)
            .options(selectinload(JournalEntry.lines))
            .where(JournalEntry.id.in_(entry_ids))
            .order_by(JournalEntry.entry_number)
        )
        return list(result.scalars().all())

    async def get_closing_audit(self, period_id: uuid.UUID) -> List[PeriodClosingAudit]:
        """Close/reopen history for a period, newest first."""
        await self._get_period(period_id)
        result = await self.db.execute(
            select(PeriodClosingAudit)
            .where(PeriodClosingAudit.period_id == period_id)
            .order_by(PeriodClosingAudit.created_at.desc())
        )
        return list(result.scalars().all())
