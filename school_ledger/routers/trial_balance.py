"""
School Ledger - Trial Balance Router

Trial balance report, by-type summary and CSV download.
"""

import io
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.database import get_db
from school_ledger.dependencies import get_current_actor_id
from school_ledger.schemas.accounting import TrialBalanceReport, TrialBalanceSummary
from school_ledger.services.trial_balance_service import TrialBalanceService


router = APIRouter(
    prefix="/api/v1/accounting",
    tags=["Trial Balance"],
    dependencies=[Depends(get_current_actor_id)],
)


@router.get("/trial-balance", response_model=TrialBalanceReport)
async def get_trial_balance(
    as_of_date: Optional[date] = Query(None, description="Cumulative balances up to this date"),
    start_date: Optional[date] = Query(None, description="Range start (with end_date)"),
    end_date: Optional[date] = Query(None, description="Range end (with start_date)"),
    db: AsyncSession = Depends(get_db),
):
    """Generate a trial balance as of a date or for a date range."""
    return await TrialBalanceService(db).generate(
        as_of_date=as_of_date, start_date=start_date, end_date=end_date,
    )


@router.get("/trial-balance/summary", response_model=TrialBalanceSummary)
async def get_trial_balance_summary(
    as_of_date: Optional[date] = Query(None, description="Defaults to today"),
    db: AsyncSession = Depends(get_db),
):
    """Trial balance totals grouped by account type."""
    return await TrialBalanceService(db).summary(as_of_date or date.today())


@router.get("/trial-balance/export")
async def export_trial_balance(
    as_of_date: Optional[date] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Download the trial balance as CSV."""
    content, filename = await TrialBalanceService(db).export_csv(
        as_of_date=as_of_date, start_date=start_date, end_date=end_date,
    )
    return StreamingResponse(
        io.BytesIO(content),
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"'
        }
    )
