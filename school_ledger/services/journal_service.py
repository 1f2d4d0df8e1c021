"""
School Ledger - Journal Entry Store

Creation, lookup and deletion of journal entries and their lines.
Every entry is validated before anything is written:
- at least two lines, each either a debit or a credit
- debits equal credits
- every account exists and is active
- the entry date is not inside a closed period
"""

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, func, and_, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from school_ledger.config import settings
from school_ledger.models.accounting import (
    Account, AccountingPeriod, Journal, JournalEntry, JournalEntryLine,
    JournalEntryType, PeriodStatus,
)
from school_ledger.schemas.accounting import JournalEntryCreate, JournalEntryLineCreate
from school_ledger.services.balance_service import BalanceService
from school_ledger.services.chart_of_accounts_service import ChartOfAccountsService
from school_ledger.utils.error_handling import (
    DuplicateEntryException, InvalidDateRangeException, NotFoundException,
    PeriodClosedException, UnbalancedEntryException, ValidationException,
)
from school_ledger.utils.money import ZERO, to_money, within_tolerance

logger = logging.getLogger(__name__)


class JournalService:
    """Service for journal entry operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # VALIDATION
    # =========================================================================

    @staticmethod
    def _validate_lines(lines: Sequence[JournalEntryLineCreate]) -> Tuple[Decimal, Decimal]:
        """Check line shape and balance; returns (total_debit, total_credit)."""
        if len(lines) < 2:
            raise ValidationException(
                "A journal entry requires at least two lines", field="lines"
            )

        total_debit = ZERO
        total_credit = ZERO
        for idx, line in enumerate(lines, 1):
            debit = to_money(line.debit_amount)
            credit = to_money(line.credit_amount)
            if debit < 0 or credit < 0:
                raise ValidationException(
                    f"Line {idx}: amounts cannot be negative", field="lines"
                )
            if (debit > 0) == (credit > 0):
                raise ValidationException(
                    f"Line {idx}: exactly one of debit or credit must be greater than zero",
                    field="lines",
                )
            total_debit += debit
            total_credit += credit

        if not within_tolerance(total_debit - total_credit, settings.balance_tolerance):
            raise UnbalancedEntryException(total_debit, total_credit)

        return total_debit, total_credit

    async def _validate_accounts(self, account_ids: Iterable[uuid.UUID]) -> None:
        wanted = set(account_ids)
        result = await self.db.execute(select(Account).where(Account.id.in_(wanted)))
        accounts = {account.id: account for account in result.scalars().all()}

        for account_id in wanted:
            account = accounts.get(account_id)
            if not account:
                raise NotFoundException("Account", account_id)
            if not account.is_active:
                raise ValidationException(
                    f"Account {account.code} - {account.name} is inactive",
                    field="lines",
                )

    async def _ensure_period_not_closed(self, entry_date: date) -> None:
        result = await self.db.execute(
            select(AccountingPeriod).where(and_(
                AccountingPeriod.start_date <= entry_date,
                AccountingPeriod.end_date >= entry_date,
                AccountingPeriod.status == PeriodStatus.CLOSED,
            )).limit(1)
        )
        period = result.scalar_one_or_none()
        if period:
            raise PeriodClosedException(period.period_name, entry_date)

    async def _resolve_journal(self, journal_id: Optional[uuid.UUID]) -> Journal:
        if journal_id is None:
            return await ChartOfAccountsService(self.db).get_or_create_journal(
                settings.general_journal_code, "General Journal"
            )
        journal = await self.db.get(Journal, journal_id)
        if not journal:
            raise NotFoundException("Journal", journal_id)
        return journal

    # =========================================================================
    # CREATE
    # =========================================================================

    async def _generate_entry_number(self, entry_date: date) -> str:
        """Generate the next entry number for the year (JE-2026-00001)."""
        prefix = f"JE-{entry_date.year}-"
        result = await self.db.execute(
            select(func.max(JournalEntry.entry_number)).where(
                JournalEntry.entry_number.like(f"{prefix}%")
            )
        )
        last_number = result.scalar()

        if last_number:
            seq = int(last_number.rsplit("-", 1)[-1]) + 1
        else:
            seq = 1
        return f"{prefix}{seq:05d}"

    async def create_entry(
        self,
        data: JournalEntryCreate,
        actor_id: Optional[str] = None,
        recalculate: bool = True,
        allow_closing: bool = False,
    ) -> JournalEntry:
        """
        Create a journal entry with its lines.

        The entry is flushed, not committed; the caller commits or rolls back
        so that a failure on any line leaves no partial entry behind. Stored
        balances are recalculated unless the caller batches that itself.

        Closing entries are only written by the period closing engine, which
        passes allow_closing=True.
        """
        if data.entry_type == JournalEntryType.CLOSING and not allow_closing:
            raise ValidationException(
                "Closing entries are created by closing a period and cannot be posted directly",
                field="entry_type",
            )

        total_debit, total_credit = self._validate_lines(data.lines)
        await self._validate_accounts(line.account_id for line in data.lines)
        await self._ensure_period_not_closed(data.entry_date)
        journal = await self._resolve_journal(data.journal_id)

        if data.reference:
            existing = await self.db.execute(
                select(JournalEntry.id).where(JournalEntry.reference == data.reference)
            )
            if existing.scalar_one_or_none():
                raise DuplicateEntryException("Journal entry", "reference", data.reference)

        entry = JournalEntry(
            journal_id=journal.id,
            entry_number=await self._generate_entry_number(data.entry_date),
            entry_date=data.entry_date,
            description=data.description,
            reference=data.reference,
            entry_type=data.entry_type,
            source_module=data.source_module,
            total_debit=total_debit,
            total_credit=total_credit,
            created_by=actor_id,
            updated_by=actor_id,
        )

        for idx, line_data in enumerate(data.lines, 1):
            entry.lines.append(JournalEntryLine(
                account_id=line_data.account_id,
                line_number=idx,
                description=line_data.description,
                debit_amount=to_money(line_data.debit_amount),
                credit_amount=to_money(line_data.credit_amount),
            ))

        self.db.add(entry)
        await self.db.flush()

        logger.info(
            f"Created journal entry {entry.entry_number} dated {entry.entry_date} "
            f"({len(entry.lines)} lines, {total_debit})"
        )

        if recalculate:
            await BalanceService(self.db).recalculate_all()

        return entry

    # =========================================================================
    # READ
    # =========================================================================

    async def get_entry(self, entry_id: uuid.UUID) -> JournalEntry:
        """Get a journal entry with its lines."""
        result = await self.db.execute(
            select(JournalEntry)
            .options(selectinload(JournalEntry.lines))
            .where(JournalEntry.id == entry_id)
        )
        entry = result.scalar_one_or_none()
        if not entry:
            raise NotFoundException("Journal entry", entry_id)
        return entry

    async def list_entries(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        entry_type: Optional[JournalEntryType] = None,
        journal_id: Optional[uuid.UUID] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[JournalEntry], int]:
        """Get journal entries with filtering and pagination."""
        if start_date and end_date and start_date > end_date:
            raise InvalidDateRangeException(start_date, end_date)

        conditions = []
        if start_date:
            conditions.append(JournalEntry.entry_date >= start_date)
        if end_date:
            conditions.append(JournalEntry.entry_date <= end_date)
        if entry_type:
            conditions.append(JournalEntry.entry_type == entry_type)
        if journal_id:
            conditions.append(JournalEntry.journal_id == journal_id)

        count_query = select(func.count(JournalEntry.id))
        query = select(JournalEntry).options(selectinload(JournalEntry.lines))
        if conditions:
            count_query = count_query.where(and_(*conditions))
            query = query.where(and_(*conditions))

        total = (await self.db.execute(count_query)).scalar() or 0

        query = query.order_by(
            JournalEntry.entry_date.desc(), JournalEntry.entry_number.desc()
        ).limit(limit).offset(offset)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def get_entries_for_account(
        self,
        account_id: uuid.UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[JournalEntry]:
        """Get every entry with at least one line on the account, oldest first."""
        await ChartOfAccountsService(self.db).get_account(account_id)
        if start_date and end_date and start_date > end_date:
            raise InvalidDateRangeException(start_date, end_date)

        entry_ids = select(JournalEntryLine.journal_entry_id).where(
            JournalEntryLine.account_id == account_id
        )
        query = (
            select(JournalEntry)
            .options(selectinload(JournalEntry.lines))
            .where(JournalEntry.id.in_(entry_ids))
        )
        if start_date:
            query = query.where(JournalEntry.entry_date >= start_date)
        if end_date:
            query = query.where(JournalEntry.entry_date <= end_date)

        query = query.order_by(JournalEntry.entry_date, JournalEntry.entry_number)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # =========================================================================
    # DELETE
    # =========================================================================

    async def delete_entries(self, entry_ids: Sequence[uuid.UUID]) -> int:
        """
        Delete entries and their lines.

        Only the period closing engine calls this, when reopening a period.
        Returns the number of entries deleted. Balances are not recalculated
        here.
        """
        ids = list(entry_ids)
        if not ids:
            return 0

        await self.db.execute(
            delete(JournalEntryLine).where(JournalEntryLine.journal_entry_id.in_(ids))
        )
        result = await self.db.execute(
            delete(JournalEntry).where(JournalEntry.id.in_(ids))
        )
        await self.db.flush()

        logger.info(f"Deleted {result.rowcount} journal entries")
        return result.rowcount
