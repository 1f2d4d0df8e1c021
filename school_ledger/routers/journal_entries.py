"""
School Ledger - Journal Entries Router

API endpoints used by the fees, payroll, boarding and cash/bank modules to
post journal entries, and by the UI to browse them.
"""

import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.database import get_db
from school_ledger.dependencies import get_current_actor_id
from school_ledger.models.accounting import JournalEntryType
from school_ledger.schemas.accounting import (
    JournalEntryCreate, JournalEntryResponse, JournalEntryListResponse,
)
from school_ledger.services.journal_service import JournalService
from school_ledger.utils.error_handling import AppException


router = APIRouter(
    prefix="/api/v1/accounting",
    tags=["Journal Entries"],
    dependencies=[Depends(get_current_actor_id)],
)


@router.get("/journal-entries", response_model=JournalEntryListResponse)
async def list_journal_entries(
    start_date: Optional[date] = Query(None, description="Start date filter"),
    end_date: Optional[date] = Query(None, description="End date filter"),
    entry_type: Optional[JournalEntryType] = Query(None, description="Filter by entry type"),
    journal_id: Optional[uuid.UUID] = Query(None, description="Filter by journal"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """Get journal entries with filtering and pagination."""
    service = JournalService(db)
    entries, total = await service.list_entries(
        start_date=start_date,
        end_date=end_date,
        entry_type=entry_type,
        journal_id=journal_id,
        limit=limit,
        offset=offset,
    )
    return JournalEntryListResponse(
        items=entries,
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/journal-entries", response_model=JournalEntryResponse, status_code=status.HTTP_201_CREATED)
async def create_journal_entry(
    data: JournalEntryCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_current_actor_id),
):
    """Post a balanced journal entry and refresh stored balances."""
    service = JournalService(db)
    try:
        entry = await service.create_entry(data, actor_id=actor_id)
        await db.commit()
        return entry
    except AppException:
        await db.rollback()
        raise


@router.get("/journal-entries/{entry_id}", response_model=JournalEntryResponse)
async def get_journal_entry(
    entry_id: uuid.UUID = Path(..., description="Journal Entry ID"),
    db: AsyncSession = Depends(get_db),
):
    """Get journal entry by ID."""
    return await JournalService(db).get_entry(entry_id)


@router.get("/accounts/{account_id}/entries", response_model=List[JournalEntryResponse])
async def get_account_entries(
    account_id: uuid.UUID = Path(..., description="Account ID"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Get the entries that post to an account."""
    return await JournalService(db).get_entries_for_account(
        account_id, start_date=start_date, end_date=end_date,
    )
