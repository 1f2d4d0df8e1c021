"""
School Ledger - Accounting Periods Router

API endpoints for the accounting period calendar.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.database import get_db
from school_ledger.dependencies import get_current_actor_id
from school_ledger.models.accounting import PeriodStatus, PeriodType
from school_ledger.schemas.accounting import (
    AccountingPeriodCreate, AccountingPeriodResponse, AccountingPeriodStatusUpdate,
    GeneratePeriodsRequest,
)
from school_ledger.services.period_service import PeriodService
from school_ledger.utils.error_handling import AppException


router = APIRouter(
    prefix="/api/v1/accounting",
    tags=["Accounting Periods"],
    dependencies=[Depends(get_current_actor_id)],
)


@router.get("/periods", response_model=List[AccountingPeriodResponse])
async def list_periods(
    status: Optional[PeriodStatus] = Query(None, description="Filter by status"),
    year: Optional[int] = Query(None, ge=2000, le=2100, description="Filter by start year"),
    period_type: Optional[PeriodType] = Query(None, description="Filter by period type"),
    db: AsyncSession = Depends(get_db),
):
    """Get accounting periods, newest first."""
    return await PeriodService(db).list_periods(status=status, year=year, period_type=period_type)


@router.post("/periods", response_model=AccountingPeriodResponse, status_code=status.HTTP_201_CREATED)
async def create_period(
    data: AccountingPeriodCreate,
    db: AsyncSession = Depends(get_db),
):
    """Create an accounting period."""
    service = PeriodService(db)
    try:
        period = await service.create_period(data)
        await db.commit()
        return period
    except AppException:
        await db.rollback()
        raise


@router.get("/periods/current", response_model=AccountingPeriodResponse)
async def get_current_period(
    db: AsyncSession = Depends(get_db),
):
    """Get the open period containing today."""
    return await PeriodService(db).get_current_period()


@router.get("/periods/year/{year}", response_model=List[AccountingPeriodResponse])
async def get_periods_by_year(
    year: int = Path(..., ge=2000, le=2100),
    db: AsyncSession = Depends(get_db),
):
    """Get the periods of a calendar year."""
    return await PeriodService(db).get_periods_by_year(year)


@router.post("/periods/generate-yearly", response_model=List[AccountingPeriodResponse], status_code=status.HTTP_201_CREATED)
async def generate_yearly_periods(
    data: GeneratePeriodsRequest,
    db: AsyncSession = Depends(get_db),
):
    """Generate monthly, quarterly or yearly periods for a whole year."""
    service = PeriodService(db)
    try:
        periods = await service.generate_periods_for_year(data.year, data.period_type)
        await db.commit()
        return periods
    except AppException:
        await db.rollback()
        raise


@router.get("/periods/{period_id}", response_model=AccountingPeriodResponse)
async def get_period(
    period_id: uuid.UUID = Path(..., description="Period ID"),
    db: AsyncSession = Depends(get_db),
):
    """Get accounting period by ID."""
    return await PeriodService(db).get_period(period_id)


@router.put("/periods/{period_id}/status", response_model=AccountingPeriodResponse)
async def update_period_status(
    data: AccountingPeriodStatusUpdate,
    period_id: uuid.UUID = Path(..., description="Period ID"),
    db: AsyncSession = Depends(get_db),
):
    """Move a period between open and in progress."""
    service = PeriodService(db)
    try:
        period = await service.update_period_status(period_id, data.status)
        await db.commit()
        return period
    except AppException:
        await db.rollback()
        raise


@router.delete("/periods/{period_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_period(
    period_id: uuid.UUID = Path(..., description="Period ID"),
    db: AsyncSession = Depends(get_db),
):
    """Delete a period that is not closed."""
    service = PeriodService(db)
    try:
        await service.delete_period(period_id)
        await db.commit()
    except AppException:
        await db.rollback()
        raise
