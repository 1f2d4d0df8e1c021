"""
Recalculate Stored Account Balances
===================================
Rebuilds every account's current_balance, total_debit and total_credit from
journal entry lines. Run it as a reconciliation job if stored balances are
suspected to have drifted from the journal.

Usage:
    python scripts/recalculate_balances.py [--dry-run] [--timeout SECONDS]

Options:
    --dry-run           Report the differences without saving them
    --timeout SECONDS   Override the configured recalculation time budget
"""

import argparse
import asyncio
import sys
from decimal import Decimal
from typing import Dict, Tuple

# Add project root to path
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from school_ledger.database import async_session_maker
from school_ledger.models.accounting import Account
from school_ledger.services.balance_service import BalanceService


async def main():
    parser = argparse.ArgumentParser(description="Recalculate stored account balances")
    parser.add_argument("--dry-run", action="store_true", help="Show drift without saving")
    parser.add_argument("--timeout", type=float, default=None, help="Time budget in seconds")
    args = parser.parse_args()

    async with async_session_maker() as session:
        result = await session.execute(select(Account).order_by(Account.code))
        before: Dict[str, Tuple[str, Decimal]] = {
            account.code: (account.name, account.current_balance)
            for account in result.scalars().all()
        }

        summary = await BalanceService(session, timeout_seconds=args.timeout).recalculate_all()

        result = await session.execute(select(Account).order_by(Account.code))
        drifted = 0
        print("=" * 60)
        for account in result.scalars().all():
            name, old_balance = before.get(account.code, (account.name, Decimal("0.00")))
            if old_balance != account.current_balance:
                drifted += 1
                print(f"{account.code} {name}: {old_balance:,.2f} -> {account.current_balance:,.2f}")
        print("=" * 60)
        print(f"Accounts checked: {summary.accounts_updated}")
        print(f"Accounts with drift: {drifted}")
        print(f"Journal totals: debit {summary.total_debit:,.2f} / credit {summary.total_credit:,.2f}")

        if args.dry_run:
            await session.rollback()
            print("Dry run - nothing saved")
        else:
            await session.commit()
            print("Balances saved")


if __name__ == "__main__":
    asyncio.run(main())
