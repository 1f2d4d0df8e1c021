"""
School Ledger - Period Closing Tests

Unit tests for closing and reopening accounting periods.
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from school_ledger.models.accounting import (
    Account, AccountingPeriod, AccountType, ClosingAction, JournalEntry,
    JournalEntryType, NormalBalance, PeriodStatus, PeriodType,
)
from school_ledger.schemas.accounting import JournalEntryCreate, JournalEntryLineCreate
from school_ledger.services.balance_service import BalanceService
from school_ledger.services.chart_of_accounts_service import ChartOfAccountsService
from school_ledger.services.journal_service import JournalService
from school_ledger.services.period_closing_service import (
    PeriodClosingService, closing_entry_description,
)
from school_ledger.services.trial_balance_service import TrialBalanceService
from school_ledger.utils.error_handling import (
    ConfigurationException,
    NotFoundException,
    PeriodClosedException,
    TransactionException,
    ValidationException,
)

ACTOR = "bursar-01"


async def _balance(db_session, code: str) -> Decimal:
    account = await ChartOfAccountsService(db_session).get_account_by_code(code)
    return account.current_balance


async def _closing_entry_count(db_session) -> int:
    result = await db_session.execute(
        select(func.count(JournalEntry.id)).where(
            JournalEntry.entry_type == JournalEntryType.CLOSING
        )
    )
    return result.scalar()


async def _period(db_session, period_id) -> AccountingPeriod:
    result = await db_session.execute(
        select(AccountingPeriod).where(AccountingPeriod.id == period_id)
    )
    return result.scalar_one()


class TestClosingPreview:
    """Test cases for the read-only closing preview."""

    @pytest.mark.asyncio
    async def test_preview_totals(self, db_session, january_activity):
        """Test the preview reports revenue, expenses and net income."""
        service = PeriodClosingService(db_session)

        preview = await service.get_closing_preview(january_activity.id)

        assert preview.total_revenue == Decimal("1000.00")
        assert preview.total_expenses == Decimal("400.00")
        assert preview.net_income == Decimal("600.00")
        assert preview.is_closed is False
        assert [acc.code for acc in preview.revenue_accounts] == ["4100"]
        assert [acc.code for acc in preview.expense_accounts] == ["5100"]

    @pytest.mark.asyncio
    async def test_preview_has_no_side_effects(self, db_session, january_activity):
        """Test previewing does not post anything or change the period."""
        service = PeriodClosingService(db_session)

        await service.get_closing_preview(january_activity.id)

        assert await _closing_entry_count(db_session) == 0
        assert (await _period(db_session, january_activity.id)).status == PeriodStatus.OPEN

    @pytest.mark.asyncio
    async def test_preview_ignores_other_periods(self, db_session, january_activity, post_entry):
        """Test activity outside the period is not counted."""
        await post_entry(date(2026, 2, 2), [("1110", "75.00", "0"), ("4200", "0", "75.00")])
        service = PeriodClosingService(db_session)

        preview = await service.get_closing_preview(january_activity.id)

        assert preview.total_revenue == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_preview_unknown_period(self, db_session):
        """Test previewing an unknown period raises NotFoundException."""
        with pytest.raises(NotFoundException):
            await PeriodClosingService(db_session).get_closing_preview(uuid4())


class TestClosePeriod:
    """Test cases for PeriodClosingService.close_period."""

    @pytest.mark.asyncio
    async def test_close_moves_net_income_to_retained_earnings(self, db_session, january_activity):
        """Test closing zeroes revenue and expenses and credits retained earnings."""
        service = PeriodClosingService(db_session)

        result = await service.close_period(january_activity.id, ACTOR)

        assert result.success is True
        assert result.total_revenue == Decimal("1000.00")
        assert result.total_expenses == Decimal("400.00")
        assert result.net_income == Decimal("600.00")
        assert result.revenue_accounts_closed == 1
        assert result.expense_accounts_closed == 1
        assert result.closed_by == ACTOR

        assert await _balance(db_session, "3998") == Decimal("600.00")
        assert await _balance(db_session, "3999") == Decimal("0.00")
        assert await _balance(db_session, "4100") == Decimal("0.00")
        assert await _balance(db_session, "5100") == Decimal("0.00")
        assert await _balance(db_session, "1110") == Decimal("600.00")

    @pytest.mark.asyncio
    async def test_close_marks_period_closed(self, db_session, january_activity):
        """Test the period records who closed it and which entry closed it."""
        service = PeriodClosingService(db_session)

        result = await service.close_period(january_activity.id, ACTOR)

        period = await _period(db_session, january_activity.id)
        assert period.status == PeriodStatus.CLOSED
        assert period.closed_by == ACTOR
        assert period.closed_at is not None
        assert period.closing_journal_entry_id == result.closing_journal_entry_id

    @pytest.mark.asyncio
    async def test_closing_entry_shape(self, db_session, january_activity):
        """Test the closing entry is dated the period end and balanced."""
        service = PeriodClosingService(db_session)
        await service.close_period(january_activity.id, ACTOR)

        entries = await service.get_closing_entries(january_activity.id)

        assert len(entries) == 1
        entry = entries[0]
        assert entry.entry_type == JournalEntryType.CLOSING
        assert entry.entry_date == date(2026, 1, 31)
        assert entry.description == closing_entry_description("January 2026")
        assert entry.source_module == "period_closing"
        assert entry.reference.startswith(f"CLOSE-{january_activity.id}-")
        assert entry.total_debit == entry.total_credit == Decimal("2000.00")
        assert len(entry.lines) == 6

    @pytest.mark.asyncio
    async def test_trial_balance_after_close(self, db_session, january_activity):
        """Test the ledger still balances after closing."""
        await PeriodClosingService(db_session).close_period(january_activity.id, ACTOR)

        report = await TrialBalanceService(db_session).generate(as_of_date=date(2026, 1, 31))

        assert report.is_balanced is True
        rows = {row.code: row for row in report.accounts}
        assert rows["3998"].credit == Decimal("600.00")
        assert rows["4100"].balance == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_close_with_net_loss(self, db_session, account_ids, january_period, post_entry):
        """Test a loss is debited to retained earnings."""
        await post_entry(date(2026, 1, 5), [("1120", "300.00", "0"), ("4100", "0", "300.00")])
        await post_entry(date(2026, 1, 6), [("5300", "500.00", "0"), ("1120", "0", "500.00")])

        result = await PeriodClosingService(db_session).close_period(january_period.id, ACTOR)

        assert result.net_income == Decimal("-200.00")
        assert await _balance(db_session, "3998") == Decimal("-200.00")
        assert await _balance(db_session, "3999") == Decimal("0.00")
        assert await _balance(db_session, "5300") == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_close_with_contra_revenue(self, db_session, account_ids, january_period, post_entry):
        """Test a revenue account with a debit balance is closed from the credit side."""
        await post_entry(date(2026, 1, 5), [("1110", "500.00", "0"), ("4100", "0", "500.00")])
        await post_entry(date(2026, 1, 7), [("4200", "50.00", "0"), ("1110", "0", "50.00")])

        result = await PeriodClosingService(db_session).close_period(january_period.id, ACTOR)

        assert result.total_revenue == Decimal("450.00")
        assert await _balance(db_session, "4200") == Decimal("0.00")
        assert await _balance(db_session, "3998") == Decimal("450.00")

    @pytest.mark.asyncio
    async def test_close_without_activity(self, db_session, account_ids, january_period):
        """Test a period without results closes without a closing entry."""
        service = PeriodClosingService(db_session)

        result = await service.close_period(january_period.id, ACTOR)

        assert result.closing_journal_entry_id is None
        assert result.net_income == Decimal("0.00")
        assert await _closing_entry_count(db_session) == 0
        assert (await _period(db_session, january_period.id)).status == PeriodStatus.CLOSED

    @pytest.mark.asyncio
    async def test_close_in_progress_period(self, db_session, january_activity):
        """Test a period marked in progress can be closed."""
        january_activity.status = PeriodStatus.IN_PROGRESS
        await db_session.commit()

        result = await PeriodClosingService(db_session).close_period(january_activity.id, ACTOR)

        assert result.success is True

    @pytest.mark.asyncio
    async def test_double_close_rejected(self, db_session, january_activity):
        """Test closing twice fails and posts nothing more."""
        period_id = january_activity.id
        service = PeriodClosingService(db_session)
        await service.close_period(period_id, ACTOR)

        with pytest.raises(ValidationException) as exc_info:
            await service.close_period(period_id, ACTOR)

        assert exc_info.value.message == "Period is already closed"
        assert await _closing_entry_count(db_session) == 1
        assert await _balance(db_session, "3998") == Decimal("600.00")

    @pytest.mark.asyncio
    async def test_posting_into_closed_period_rejected(self, db_session, account_ids, january_activity):
        """Test the journal refuses entries dated inside a closed period."""
        await PeriodClosingService(db_session).close_period(january_activity.id, ACTOR)

        with pytest.raises(PeriodClosedException):
            await JournalService(db_session).create_entry(JournalEntryCreate(
                entry_date=date(2026, 1, 15),
                description="Late fee receipt",
                lines=[
                    JournalEntryLineCreate(account_id=account_ids["1110"], debit_amount=Decimal("10")),
                    JournalEntryLineCreate(account_id=account_ids["4100"], credit_amount=Decimal("10")),
                ],
            ))

    @pytest.mark.asyncio
    async def test_close_unknown_period(self, db_session, account_ids):
        """Test closing an unknown period raises NotFoundException."""
        with pytest.raises(NotFoundException):
            await PeriodClosingService(db_session).close_period(uuid4(), ACTOR)

    @pytest.mark.asyncio
    async def test_close_writes_audit_row(self, db_session, january_activity):
        """Test closing records an audit row with the results."""
        service = PeriodClosingService(db_session)
        await service.close_period(january_activity.id, ACTOR)

        audit = await service.get_closing_audit(january_activity.id)

        assert len(audit) == 1
        assert audit[0].action == ClosingAction.CLOSE
        assert audit[0].performed_by == ACTOR
        assert audit[0].details["net_income"] == "600.00"


class TestClosingAccountConfiguration:
    """Test cases for missing or inactive closing accounts."""

    async def _ledger_without_retained_earnings(self, db_session):
        accounts = {}
        for code, name, account_type in [
            ("1110", "Cash on Hand", AccountType.ASSET),
            ("3999", "Income Summary", AccountType.EQUITY),
            ("4100", "Tuition Fees", AccountType.REVENUE),
        ]:
            account = Account(
                code=code,
                name=name,
                account_type=account_type,
                normal_balance=(
                    NormalBalance.DEBIT if account_type == AccountType.ASSET
                    else NormalBalance.CREDIT
                ),
            )
            db_session.add(account)
            accounts[code] = account

        period = AccountingPeriod(
            period_name="January 2026",
            period_type=PeriodType.MONTHLY,
            start_date=date(2026, 1, 1),
            end_date=date(2026, 1, 31),
        )
        db_session.add(period)
        await db_session.commit()

        await JournalService(db_session).create_entry(JournalEntryCreate(
            entry_date=date(2026, 1, 10),
            description="Tuition received",
            lines=[
                JournalEntryLineCreate(account_id=accounts["1110"].id, debit_amount=Decimal("100")),
                JournalEntryLineCreate(account_id=accounts["4100"].id, credit_amount=Decimal("100")),
            ],
        ))
        await db_session.commit()
        return period.id

    @pytest.mark.asyncio
    async def test_missing_retained_earnings(self, db_session):
        """Test closing without retained earnings fails and changes nothing."""
        period_id = await self._ledger_without_retained_earnings(db_session)

        with pytest.raises(ConfigurationException) as exc_info:
            await PeriodClosingService(db_session).close_period(period_id, ACTOR)

        assert "3998" in exc_info.value.message
        assert exc_info.value.status_code == 500
        assert (await _period(db_session, period_id)).status == PeriodStatus.OPEN
        assert await _closing_entry_count(db_session) == 0
        assert await _balance(db_session, "4100") == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_inactive_income_summary(self, db_session, january_activity):
        """Test an inactive income summary account blocks closing."""
        period_id = january_activity.id
        summary = await ChartOfAccountsService(db_session).get_account_by_code("3999")
        summary.is_active = False
        await db_session.commit()

        with pytest.raises(ConfigurationException) as exc_info:
            await PeriodClosingService(db_session).close_period(period_id, ACTOR)

        assert "3999" in exc_info.value.message
        assert (await _period(db_session, period_id)).status == PeriodStatus.OPEN


class TestReopenPeriod:
    """Test cases for PeriodClosingService.reopen_period."""

    @pytest.mark.asyncio
    async def test_reopen_restores_balances(self, db_session, january_activity):
        """Test reopening removes the closing entry and restores balances."""
        period_id = january_activity.id
        service = PeriodClosingService(db_session)
        await service.close_period(period_id, ACTOR)

        result = await service.reopen_period(period_id, ACTOR)

        assert result.success is True
        assert result.entries_deleted == 1
        assert result.status == PeriodStatus.OPEN
        assert await _closing_entry_count(db_session) == 0
        assert await _balance(db_session, "4100") == Decimal("1000.00")
        assert await _balance(db_session, "5100") == Decimal("400.00")
        assert await _balance(db_session, "3998") == Decimal("0.00")
        assert await _balance(db_session, "3999") == Decimal("0.00")

        period = await _period(db_session, period_id)
        assert period.status == PeriodStatus.OPEN
        assert period.closed_at is None
        assert period.closed_by is None
        assert period.closing_journal_entry_id is None

    @pytest.mark.asyncio
    async def test_close_reopen_close(self, db_session, january_activity):
        """Test a reopened period can be closed again with the same result."""
        period_id = january_activity.id
        service = PeriodClosingService(db_session)
        await service.close_period(period_id, ACTOR)
        await service.reopen_period(period_id, ACTOR)

        result = await service.close_period(period_id, ACTOR)

        assert result.net_income == Decimal("600.00")
        assert await _closing_entry_count(db_session) == 1
        assert await _balance(db_session, "3998") == Decimal("600.00")

        audit = await service.get_closing_audit(period_id)
        assert sorted(row.action.value for row in audit) == ["close", "close", "reopen"]

    @pytest.mark.asyncio
    async def test_reopen_open_period_rejected(self, db_session, january_activity):
        """Test reopening a period that is not closed fails without side effects."""
        period_id = january_activity.id

        with pytest.raises(ValidationException) as exc_info:
            await PeriodClosingService(db_session).reopen_period(period_id, ACTOR)

        assert exc_info.value.message == "Period is not closed"
        assert (await _period(db_session, period_id)).status == PeriodStatus.OPEN
        assert await _balance(db_session, "4100") == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_reopen_period_closed_without_entry(self, db_session, account_ids, january_period):
        """Test reopening a period closed with no activity deletes nothing."""
        period_id = january_period.id
        service = PeriodClosingService(db_session)
        await service.close_period(period_id, ACTOR)

        result = await service.reopen_period(period_id, ACTOR)

        assert result.entries_deleted == 0
        assert (await _period(db_session, period_id)).status == PeriodStatus.OPEN

    @pytest.mark.asyncio
    async def test_reopen_finds_unlinked_closing_entry(self, db_session, account_ids, january_activity):
        """Test a closing entry without the period link is found by description and date."""
        period_id = january_activity.id
        await JournalService(db_session).create_entry(JournalEntryCreate(
            entry_date=date(2026, 1, 31),
            description=closing_entry_description("January 2026"),
            entry_type=JournalEntryType.CLOSING,
            lines=[
                JournalEntryLineCreate(account_id=account_ids["4100"], debit_amount=Decimal("1000")),
                JournalEntryLineCreate(account_id=account_ids["3998"], credit_amount=Decimal("1000")),
            ],
        ), allow_closing=True)
        period = await _period(db_session, period_id)
        period.status = PeriodStatus.CLOSED
        await db_session.commit()

        result = await PeriodClosingService(db_session).reopen_period(period_id, ACTOR)

        assert result.entries_deleted == 1
        assert await _closing_entry_count(db_session) == 0
        assert await _balance(db_session, "4100") == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_reopen_unknown_period(self, db_session):
        """Test reopening an unknown period raises NotFoundException."""
        with pytest.raises(NotFoundException):
            await PeriodClosingService(db_session).reopen_period(uuid4(), ACTOR)


async def _failing_recalculation(self):
    raise SQLAlchemyError("connection lost")


class TestCloseRollback:
    """Test a database failure mid-way leaves no partial close or reopen."""

    @pytest.mark.asyncio
    async def test_close_failure_rolls_back(self, db_session, january_activity, monkeypatch):
        """Test a failed balance recalculation undoes the closing entry and status change."""
        period_id = january_activity.id
        monkeypatch.setattr(BalanceService, "recalculate_all", _failing_recalculation)

        with pytest.raises(TransactionException) as exc_info:
            await PeriodClosingService(db_session).close_period(period_id, ACTOR)

        assert exc_info.value.message == "Failed to close period; no changes were saved"
        assert await _closing_entry_count(db_session) == 0
        period = await _period(db_session, period_id)
        assert period.status == PeriodStatus.OPEN
        assert period.closing_journal_entry_id is None
        assert await _balance(db_session, "4100") == Decimal("1000.00")
        assert await _balance(db_session, "5100") == Decimal("400.00")
        assert await _balance(db_session, "3998") == Decimal("0.00")
        assert await PeriodClosingService(db_session).get_closing_audit(period_id) == []

    @pytest.mark.asyncio
    async def test_reopen_failure_rolls_back(self, db_session, january_activity, monkeypatch):
        """Test a failed balance recalculation keeps the period closed with its entry."""
        period_id = january_activity.id
        service = PeriodClosingService(db_session)
        closed = await service.close_period(period_id, ACTOR)
        monkeypatch.setattr(BalanceService, "recalculate_all", _failing_recalculation)

        with pytest.raises(TransactionException) as exc_info:
            await service.reopen_period(period_id, ACTOR)

        assert exc_info.value.message == "Failed to reopen period; no changes were saved"
        assert await _closing_entry_count(db_session) == 1
        period = await _period(db_session, period_id)
        assert period.status == PeriodStatus.CLOSED
        assert period.closing_journal_entry_id == closed.closing_journal_entry_id
        assert await _balance(db_session, "3998") == Decimal("600.00")
        assert await _balance(db_session, "4100") == Decimal("0.00")

        audit = await service.get_closing_audit(period_id)
        assert [row.action for row in audit] == [ClosingAction.CLOSE]


async def _february(db_session) -> AccountingPeriod:
    period = AccountingPeriod(
        period_name="February 2026",
        period_type=PeriodType.MONTHLY,
        start_date=date(2026, 2, 1),
        end_date=date(2026, 2, 28),
    )
    db_session.add(period)
    await db_session.commit()
    return period


async def _entry_count(db_session) -> int:
    result = await db_session.execute(select(func.count(JournalEntry.id)))
    return result.scalar()


class TestOpeningBalances:
    """Test cases for balances brought forward into a period."""

    @pytest.mark.asyncio
    async def test_opening_balances_after_close(self, db_session, january_activity, post_entry):
        """Test balances carried into February after January is closed."""
        service = PeriodClosingService(db_session)
        await service.close_period(january_activity.id, ACTOR)
        february = await _february(db_session)
        await post_entry(date(2026, 2, 3), [("5300", "55.00", "0"), ("1120", "0", "55.00")])
        entries_before = await _entry_count(db_session)

        opening = await service.get_opening_balances(february.id)

        assert opening.as_of_date == date(2026, 1, 31)
        assert opening.period_name == "February 2026"
        rows = {row.code: row for row in opening.accounts}
        assert list(rows) == ["1110", "3998"]
        assert rows["1110"].balance == Decimal("600.00")
        assert rows["1110"].debit == Decimal("600.00")
        assert rows["3998"].balance == Decimal("600.00")
        assert rows["3998"].credit == Decimal("600.00")
        assert rows["3998"].account_type == AccountType.EQUITY
        assert opening.total_debit == Decimal("600.00")
        assert opening.total_credit == Decimal("600.00")
        assert opening.is_balanced is True
        assert await _entry_count(db_session) == entries_before

    @pytest.mark.asyncio
    async def test_opening_balances_before_close(self, db_session, january_activity):
        """Test an unclosed earlier period leaves the brought-forward figures unbalanced."""
        february = await _february(db_session)

        opening = await PeriodClosingService(db_session).get_opening_balances(february.id)

        assert [row.code for row in opening.accounts] == ["1110"]
        assert opening.total_debit == Decimal("600.00")
        assert opening.total_credit == Decimal("0.00")
        assert opening.is_balanced is False

    @pytest.mark.asyncio
    async def test_first_period_has_no_opening_balances(self, db_session, january_activity):
        """Test entries inside the period itself are not brought forward."""
        opening = await PeriodClosingService(db_session).get_opening_balances(january_activity.id)

        assert opening.as_of_date == date(2025, 12, 31)
        assert opening.accounts == []
        assert opening.is_balanced is True

    @pytest.mark.asyncio
    async def test_opening_balances_unknown_period(self, db_session):
        """Test an unknown period raises NotFoundException."""
        with pytest.raises(NotFoundException):
            await PeriodClosingService(db_session).get_opening_balances(uuid4())


class TestClosingRoundTrip:
    """Test cases spanning a full close and reopen."""

    @pytest.mark.asyncio
    async def test_revenue_and_expense_headers_round_trip(
        self, db_session, account_ids, january_period, post_entry,
    ):
        """Test every balance returns to its pre-close value after reopening."""
        period_id = january_period.id
        await post_entry(date(2026, 1, 8), [("1120", "1000.00", "0"), ("4000", "0", "1000.00")])
        await post_entry(date(2026, 1, 9), [("5000", "400.00", "0"), ("1120", "0", "400.00")])

        before = {
            account.code: account.current_balance
            for account in await ChartOfAccountsService(db_session).list_accounts()
        }
        service = PeriodClosingService(db_session)

        preview = await service.get_closing_preview(period_id)
        assert preview.net_income == Decimal("600.00")

        await service.close_period(period_id, ACTOR)
        assert await _balance(db_session, "4000") == Decimal("0.00")
        assert await _balance(db_session, "5000") == Decimal("0.00")
        assert await _balance(db_session, "3998") == before["3998"] + Decimal("600.00")

        await service.reopen_period(period_id, ACTOR)
        after = {
            account.code: account.current_balance
            for account in await ChartOfAccountsService(db_session).list_accounts()
        }

        assert after == before
        assert (await _period(db_session, period_id)).status == PeriodStatus.OPEN
