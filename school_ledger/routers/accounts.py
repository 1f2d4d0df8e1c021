"""
School Ledger - Chart of Accounts Router

API endpoints for chart of accounts maintenance and stored balances.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.database import get_db
from school_ledger.dependencies import get_current_actor_id
from school_ledger.models.accounting import AccountType
from school_ledger.schemas.accounting import (
    AccountCreate, AccountUpdate, AccountResponse, AccountBalanceResponse,
    BalanceRecalculationResponse,
)
from school_ledger.services.balance_service import BalanceService
from school_ledger.services.chart_of_accounts_service import ChartOfAccountsService
from school_ledger.utils.error_handling import AppException


router = APIRouter(
    prefix="/api/v1/accounting",
    tags=["Chart of Accounts"],
    dependencies=[Depends(get_current_actor_id)],
)


# ============================================================================
# CHART OF ACCOUNTS ENDPOINTS
# ============================================================================

@router.get("/accounts", response_model=List[AccountResponse])
async def list_accounts(
    account_type: Optional[AccountType] = Query(None, description="Filter by account type"),
    is_active: Optional[bool] = Query(None, description="Filter by active status"),
    db: AsyncSession = Depends(get_db),
):
    """Get chart of accounts."""
    service = ChartOfAccountsService(db)
    return await service.list_accounts(account_type=account_type, is_active=is_active)


@router.post("/accounts", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def create_account(
    data: AccountCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_current_actor_id),
):
    """Create a new account."""
    service = ChartOfAccountsService(db)
    try:
        account = await service.create_account(data, actor_id=actor_id)
        await db.commit()
        return account
    except AppException:
        await db.rollback()
        raise


@router.post("/accounts/initialize", response_model=List[AccountResponse])
async def initialize_chart_of_accounts(
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_current_actor_id),
):
    """Seed the default school chart of accounts. Existing accounts are kept."""
    service = ChartOfAccountsService(db)
    accounts = await service.create_default_chart(actor_id=actor_id)
    await db.commit()
    return accounts


@router.get("/accounts/{account_id}", response_model=AccountResponse)
async def get_account(
    account_id: uuid.UUID = Path(..., description="Account ID"),
    db: AsyncSession = Depends(get_db),
):
    """Get account by ID."""
    return await ChartOfAccountsService(db).get_account(account_id)


@router.put("/accounts/{account_id}", response_model=AccountResponse)
async def update_account(
    data: AccountUpdate,
    account_id: uuid.UUID = Path(..., description="Account ID"),
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_current_actor_id),
):
    """Update an account."""
    service = ChartOfAccountsService(db)
    try:
        account = await service.update_account(account_id, data, actor_id=actor_id)
        await db.commit()
        return account
    except AppException:
        await db.rollback()
        raise


@router.post("/accounts/{account_id}/deactivate", response_model=AccountResponse)
async def deactivate_account(
    account_id: uuid.UUID = Path(..., description="Account ID"),
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_current_actor_id),
):
    """Deactivate an account so it accepts no new postings."""
    service = ChartOfAccountsService(db)
    try:
        account = await service.deactivate_account(account_id, actor_id=actor_id)
        await db.commit()
        return account
    except AppException:
        await db.rollback()
        raise


@router.delete("/accounts/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(
    account_id: uuid.UUID = Path(..., description="Account ID"),
    db: AsyncSession = Depends(get_db),
):
    """Delete an account that has never been posted to."""
    service = ChartOfAccountsService(db)
    try:
        await service.delete_account(account_id)
        await db.commit()
    except AppException:
        await db.rollback()
        raise


# ============================================================================
# BALANCE ENDPOINTS
# ============================================================================

@router.get("/accounts/{account_id}/balance", response_model=AccountBalanceResponse)
async def get_account_balance(
    account_id: uuid.UUID = Path(..., description="Account ID"),
    db: AsyncSession = Depends(get_db),
):
    """Get the stored balance of an account."""
    return await BalanceService(db).get_account_balance(account_id)


@router.post("/balances/recalculate", response_model=BalanceRecalculationResponse)
async def recalculate_balances(
    db: AsyncSession = Depends(get_db),
):
    """Recompute every stored account balance from the journal."""
    service = BalanceService(db)
    try:
        summary = await service.recalculate_all()
        await db.commit()
        return summary
    except AppException:
        await db.rollback()
        raise
