"""
School Ledger - Period Closing Router

Closing preview, close, reopen and closing history for accounting periods.
The service owns the transaction for close and reopen.
"""

import uuid
from typing import List

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.database import get_db
from school_ledger.dependencies import get_current_actor_id
from school_ledger.schemas.accounting import (
    ClosingAuditResponse, ClosingPreview, JournalEntryResponse,
    OpeningBalances, PeriodCloseResponse, PeriodReopenResponse,
)
from school_ledger.services.period_closing_service import PeriodClosingService


router = APIRouter(
    prefix="/api/v1/accounting",
    tags=["Period Closing"],
    dependencies=[Depends(get_current_actor_id)],
)


@router.get("/periods/{period_id}/preview", response_model=ClosingPreview)
async def get_closing_preview(
    period_id: uuid.UUID = Path(..., description="Period ID"),
    db: AsyncSession = Depends(get_db),
):
    """Show revenue, expenses and net income the close would post."""
    return await PeriodClosingService(db).get_closing_preview(period_id)


@router.get("/periods/{period_id}/opening-balances", response_model=OpeningBalances)
async def get_opening_balances(
    period_id: uuid.UUID = Path(..., description="Period ID"),
    db: AsyncSession = Depends(get_db),
):
    """Balance-sheet balances brought forward into the period. Read-only."""
    return await PeriodClosingService(db).get_opening_balances(period_id)


@router.post("/periods/{period_id}/close", response_model=PeriodCloseResponse)
async def close_period(
    period_id: uuid.UUID = Path(..., description="Period ID"),
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_current_actor_id),
):
    """
    Close an accounting period.

    Posts the closing entry, recalculates balances and locks the period
    against further postings.
    """
    return await PeriodClosingService(db).close_period(period_id, actor_id)


@router.post("/periods/{period_id}/reopen", response_model=PeriodReopenResponse)
async def reopen_period(
    period_id: uuid.UUID = Path(..., description="Period ID"),
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_current_actor_id),
):
    """Reopen a closed period and remove its closing entry."""
    return await PeriodClosingService(db).reopen_period(period_id, actor_id)


@router.get("/periods/{period_id}/closing-entries", response_model=List[JournalEntryResponse])
async def get_closing_entries(
    period_id: uuid.UUID = Path(..., description="Period ID"),
    db: AsyncSession = Depends(get_db),
):
    """Get the closing entry posted for a period."""
    return await PeriodClosingService(db).get_closing_entries(period_id)


@router.get("/periods/{period_id}/audit", response_model=List[ClosingAuditResponse])
async def get_closing_audit(
    period_id: uuid.UUID = Path(..., description="Period ID"),
    db: AsyncSession = Depends(get_db),
):
    """Get the close/reopen history of a period."""
    return await PeriodClosingService(db).get_closing_audit(period_id)
