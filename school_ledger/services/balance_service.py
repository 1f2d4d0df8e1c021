"""
School Ledger - Account Balance Aggregator

Maintains the cached balances stored on each account. Journal lines are the
source of truth; this service recomputes every account from them in one
grouped query and writes the results back inside the caller's transaction.
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.config import settings
from school_ledger.models.accounting import Account, JournalEntryLine, NormalBalance
from school_ledger.schemas.accounting import BalanceRecalculationResponse
from school_ledger.utils.error_handling import (
    NotFoundException, RecalculationTimeoutException,
)
from school_ledger.utils.money import ZERO, to_money

logger = logging.getLogger(__name__)


def signed_balance(normal_balance: NormalBalance, total_debit: Decimal, total_credit: Decimal) -> Decimal:
    """Balance expressed on the account's normal side."""
    if normal_balance == NormalBalance.DEBIT:
        return total_debit - total_credit
    return total_credit - total_debit


class BalanceService:
    """Service for recalculating and reading stored account balances."""

    def __init__(self, db: AsyncSession, timeout_seconds: Optional[float] = None):
        self.db = db
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None
            else settings.recalculation_timeout_seconds
        )

    async def recalculate_all(self) -> BalanceRecalculationResponse:
        """
        Recompute every account's stored balance from journal lines.

        Does not commit; the caller owns the transaction.

        Raises:
            RecalculationTimeoutException: If the recalculation exceeds the
                configured time budget
        """
        try:
            return await asyncio.wait_for(self._recalculate(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(f"Balance recalculation exceeded {self.timeout_seconds}s")
            raise RecalculationTimeoutException(self.timeout_seconds)

    async def _sum_lines_by_account(self) -> Dict[uuid.UUID, Tuple[Decimal, Decimal]]:
        result = await self.db.execute(
            select(
                JournalEntryLine.account_id,
                func.coalesce(func.sum(JournalEntryLine.debit_amount), 0),
                func.coalesce(func.sum(JournalEntryLine.credit_amount), 0),
            ).group_by(JournalEntryLine.account_id)
        )
        return {
            account_id: (to_money(debit), to_money(credit))
            for account_id, debit, credit in result.all()
        }

    async def _recalculate(self) -> BalanceRecalculationResponse:
        started = time.monotonic()
        totals = await self._sum_lines_by_account()

        result = await self.db.execute(select(Account))
        accounts = list(result.scalars().all())

        now = datetime.now(timezone.utc)
        grand_debit = ZERO
        grand_credit = ZERO

        for account in accounts:
            total_debit, total_credit = totals.get(account.id, (ZERO, ZERO))
            account.total_debit = total_debit
            account.total_credit = total_credit
            account.current_balance = signed_balance(
                account.normal_balance, total_debit, total_credit
            )
            account.balance_updated_at = now

            grand_debit += total_debit
            grand_credit += total_credit

        await self.db.flush()

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Recalculated balances for {len(accounts)} accounts in {duration_ms}ms "
            f"(debits {grand_debit}, credits {grand_credit})"
        )

        return BalanceRecalculationResponse(
            accounts_updated=len(accounts),
            total_debit=grand_debit,
            total_credit=grand_credit,
            recalculated_at=now,
            duration_ms=duration_ms,
        )

    async def get_account_balance(self, account_id: uuid.UUID) -> Account:
        """Get the stored balance of one account."""
        account = await self.db.get(Account, account_id)
        if not account:
            raise NotFoundException("Account", account_id)
        return account
