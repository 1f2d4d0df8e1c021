"""
School Ledger - Chart of Accounts Service

Registry of ledger accounts:
- Account lookup by id or code
- Creation, update and soft deactivation
- Default school chart of accounts (including the closing accounts)
"""

import logging
import uuid
from typing import List, Optional, Tuple

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.config import settings
from school_ledger.models.accounting import (
    Account, AccountType, Journal, JournalEntryLine, normal_balance_for,
)
from school_ledger.schemas.accounting import AccountCreate, AccountUpdate
from school_ledger.utils.error_handling import (
    DuplicateEntryException, NotFoundException, ValidationException,
)

logger = logging.getLogger(__name__)


DEFAULT_SCHOOL_CHART = [
    # ASSETS
    {"code": "1000", "name": "Assets", "type": AccountType.ASSET},
    {"code": "1110", "name": "Cash on Hand", "type": AccountType.ASSET, "parent": "1000"},
    {"code": "1120", "name": "Bank Accounts", "type": AccountType.ASSET, "parent": "1000"},
    {"code": "1130", "name": "Student Fees Receivable", "type": AccountType.ASSET, "parent": "1000"},
    {"code": "1140", "name": "Prepaid Expenses", "type": AccountType.ASSET, "parent": "1000"},
    {"code": "1210", "name": "School Buildings & Equipment", "type": AccountType.ASSET, "parent": "1000"},

    # LIABILITIES
    {"code": "2000", "name": "Liabilities", "type": AccountType.LIABILITY},
    {"code": "2110", "name": "Accounts Payable", "type": AccountType.LIABILITY, "parent": "2000"},
    {"code": "2120", "name": "Fees Received in Advance", "type": AccountType.LIABILITY, "parent": "2000"},
    {"code": "2130", "name": "Salaries Payable", "type": AccountType.LIABILITY, "parent": "2000"},
    {"code": "2140", "name": "Statutory Deductions Payable", "type": AccountType.LIABILITY, "parent": "2000"},

    # EQUITY
    {"code": "3000", "name": "Equity", "type": AccountType.EQUITY},
    {"code": "3100", "name": "Accumulated Fund", "type": AccountType.EQUITY, "parent": "3000"},
    {"code": "3998", "name": "Retained Earnings", "type": AccountType.EQUITY, "parent": "3000", "system": True},
    {"code": "3999", "name": "Income Summary", "type": AccountType.EQUITY, "parent": "3000", "system": True},

    # REVENUE
    {"code": "4000", "name": "Revenue", "type": AccountType.REVENUE},
    {"code": "4100", "name": "Tuition Fees", "type": AccountType.REVENUE, "parent": "4000"},
    {"code": "4200", "name": "Boarding Fees", "type": AccountType.REVENUE, "parent": "4000"},
    {"code": "4300", "name": "Transport Fees", "type": AccountType.REVENUE, "parent": "4000"},
    {"code": "4400", "name": "Examination Fees", "type": AccountType.REVENUE, "parent": "4000"},
    {"code": "4900", "name": "Other Income", "type": AccountType.REVENUE, "parent": "4000"},

    # EXPENSES
    {"code": "5000", "name": "Expenses", "type": AccountType.EXPENSE},
    {"code": "5100", "name": "Teaching Staff Salaries", "type": AccountType.EXPENSE, "parent": "5000"},
    {"code": "5200", "name": "Support Staff Salaries", "type": AccountType.EXPENSE, "parent": "5000"},
    {"code": "5300", "name": "Utilities", "type": AccountType.EXPENSE, "parent": "5000"},
    {"code": "5400", "name": "Teaching Materials & Supplies", "type": AccountType.EXPENSE, "parent": "5000"},
    {"code": "5500", "name": "Boarding & Catering", "type": AccountType.EXPENSE, "parent": "5000"},
    {"code": "5600", "name": "Transport Running Costs", "type": AccountType.EXPENSE, "parent": "5000"},
    {"code": "5700", "name": "Repairs & Maintenance", "type": AccountType.EXPENSE, "parent": "5000"},
    {"code": "5900", "name": "Other Expenses", "type": AccountType.EXPENSE, "parent": "5000"},
]

DEFAULT_JOURNALS = [
    {"code": "GJ", "name": "General Journal"},
    {"code": "FEES", "name": "Fees Journal"},
    {"code": "PAYROLL", "name": "Payroll Journal"},
    {"code": "CASH", "name": "Cash & Bank Journal"},
]


class ChartOfAccountsService:
    """Service for chart of accounts operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    async def list_accounts(
        self,
        account_type: Optional[AccountType] = None,
        is_active: Optional[bool] = None,
    ) -> List[Account]:
        """Get chart of accounts ordered by code."""
        query = select(Account)

        if account_type:
            query = query.where(Account.account_type == account_type)
        if is_active is not None:
            query = query.where(Account.is_active == is_active)

        query = query.order_by(Account.code)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_account(self, account_id: uuid.UUID) -> Account:
        """Get account by ID, raising NotFoundException when missing."""
        account = await self.db.get(Account, account_id)
        if not account:
            raise NotFoundException("Account", account_id)
        return account

    async def get_account_by_code(self, code: str) -> Optional[Account]:
        """Get account by code."""
        result = await self.db.execute(
            select(Account).where(Account.code == code)
        )
        return result.scalar_one_or_none()

    async def is_referenced(self, account_id: uuid.UUID) -> bool:
        """True when any journal line posts to the account."""
        result = await self.db.execute(
            select(func.count(JournalEntryLine.id)).where(
                JournalEntryLine.account_id == account_id
            )
        )
        return (result.scalar() or 0) > 0

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    async def create_account(
        self,
        data: AccountCreate,
        actor_id: Optional[str] = None,
    ) -> Account:
        """Create a new account."""
        if await self.get_account_by_code(data.code):
            raise DuplicateEntryException("Account", "code", data.code)

        if data.parent_id:
            await self.get_account(data.parent_id)

        account = Account(
            code=data.code,
            name=data.name,
            description=data.description,
            account_type=data.account_type,
            normal_balance=normal_balance_for(data.account_type),
            parent_id=data.parent_id,
            is_system_account=data.is_system_account,
            created_by=actor_id,
            updated_by=actor_id,
        )
        self.db.add(account)
        await self.db.flush()

        logger.info(f"Created account {account.code} - {account.name}")
        return account

    async def _ensure_no_cycle(self, account: Account, parent_id: uuid.UUID) -> None:
        """Walk up from the new parent; meeting the account again means a cycle."""
        seen = set()
        while parent_id and parent_id not in seen:
            if parent_id == account.id:
                raise ValidationException(
                    f"Account {account.code} cannot be placed under one of its own sub-accounts",
                    field="parent_id",
                )
            seen.add(parent_id)
            parent = await self.get_account(parent_id)
            parent_id = parent.parent_id

    async def update_account(
        self,
        account_id: uuid.UUID,
        data: AccountUpdate,
        actor_id: Optional[str] = None,
    ) -> Account:
        """Update an account. Codes are frozen once the account has postings."""
        account = await self.get_account(account_id)
        update_data = data.model_dump(exclude_unset=True)

        new_code = update_data.get("code")
        if new_code and new_code != account.code:
            if account.is_system_account:
                raise ValidationException(
                    f"System account {account.code} cannot be renumbered", field="code"
                )
            if await self.is_referenced(account.id):
                raise ValidationException(
                    f"Account {account.code} has journal postings; its code cannot change",
                    field="code",
                )
            if await self.get_account_by_code(new_code):
                raise DuplicateEntryException("Account", "code", new_code)

        if update_data.get("is_active") is False:
            self._ensure_can_deactivate(account)

        if update_data.get("parent_id"):
            if update_data["parent_id"] == account.id:
                raise ValidationException("An account cannot be its own parent", field="parent_id")
            await self._ensure_no_cycle(account, update_data["parent_id"])

        for field, value in update_data.items():
            setattr(account, field, value)
        account.updated_by = actor_id

        await self.db.flush()
        return account

    def _ensure_can_deactivate(self, account: Account) -> None:
        if account.is_system_account:
            raise ValidationException(
                f"System account {account.code} cannot be deactivated or deleted"
            )

    async def deactivate_account(
        self,
        account_id: uuid.UUID,
        actor_id: Optional[str] = None,
    ) -> Account:
        """Soft delete: the account keeps its history but takes no new postings."""
        account = await self.get_account(account_id)
        self._ensure_can_deactivate(account)

        account.is_active = False
        account.updated_by = actor_id
        await self.db.flush()

        logger.info(f"Deactivated account {account.code}")
        return account

    async def delete_account(self, account_id: uuid.UUID) -> None:
        """Hard delete an account that was never posted to."""
        account = await self.get_account(account_id)
        self._ensure_can_deactivate(account)

        if await self.is_referenced(account.id):
            raise ValidationException(
                f"Account {account.code} has journal postings; deactivate it instead"
            )

        await self.db.execute(delete(Account).where(Account.id == account.id))
        await self.db.flush()
        logger.info(f"Deleted unused account {account.code}")

    # =========================================================================
    # DEFAULT CHART
    # =========================================================================

    async def get_or_create_journal(self, code: str, name: Optional[str] = None) -> Journal:
        """Get a journal book by code, creating it if it does not exist."""
        result = await self.db.execute(select(Journal).where(Journal.code == code))
        journal = result.scalar_one_or_none()
        if journal:
            return journal

        journal = Journal(code=code, name=name or code)
        self.db.add(journal)
        await self.db.flush()
        return journal

    async def create_default_chart(self, actor_id: Optional[str] = None) -> List[Account]:
        """
        Seed the default school chart of accounts and journals.

        Idempotent: accounts and journals that already exist are left alone.
        Returns only the accounts created by this call.
        """
        for journal_data in DEFAULT_JOURNALS:
            await self.get_or_create_journal(journal_data["code"], journal_data["name"])

        created_accounts = []
        code_to_id = {}

        for acc_data in DEFAULT_SCHOOL_CHART:
            existing = await self.get_account_by_code(acc_data["code"])
            if existing:
                code_to_id[acc_data["code"]] = existing.id
                continue

            account = Account(
                code=acc_data["code"],
                name=acc_data["name"],
                account_type=acc_data["type"],
                normal_balance=normal_balance_for(acc_data["type"]),
                parent_id=code_to_id.get(acc_data.get("parent")),
                is_system_account=acc_data.get("system", False),
                created_by=actor_id,
                updated_by=actor_id,
            )
            self.db.add(account)
            await self.db.flush()

            code_to_id[acc_data["code"]] = account.id
            created_accounts.append(account)

        if created_accounts:
            logger.info(f"Seeded {len(created_accounts)} default accounts")
        return created_accounts

    async def get_closing_accounts(self) -> Tuple[Optional[Account], Optional[Account]]:
        """Return (retained earnings, income summary) by their configured codes."""
        retained = await self.get_account_by_code(settings.retained_earnings_code)
        summary = await self.get_account_by_code(settings.income_summary_code)
        return retained, summary
