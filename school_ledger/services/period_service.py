"""
School Ledger - Accounting Period Service

Period calendar management:
- Listing and lookup (by id, by year, current open period)
- Creation with overlap checks
- Yearly generation of monthly, quarterly or yearly periods
- Manual status changes and deletion of periods that were never closed

Closing and reopening live in PeriodClosingService.
"""

import logging
import uuid
from calendar import monthrange
from datetime import date
from typing import List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from sqlalchemy import select, and_, delete
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.models.accounting import (
    AccountingPeriod, PeriodStatus, PeriodType,
)
from school_ledger.schemas.accounting import AccountingPeriodCreate
from school_ledger.utils.error_handling import (
    InvalidDateRangeException, NotFoundException, ValidationException,
)

logger = logging.getLogger(__name__)

# Statuses that may be set through the status endpoint; closed and reopened
# are owned by the closing engine.
MANUAL_STATUSES = (PeriodStatus.OPEN, PeriodStatus.IN_PROGRESS)


class PeriodService:
    """Service for accounting period operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    async def list_periods(
        self,
        status: Optional[PeriodStatus] = None,
        year: Optional[int] = None,
        period_type: Optional[PeriodType] = None,
    ) -> List[AccountingPeriod]:
        """Get periods, newest first."""
        query = select(AccountingPeriod)

        if status:
            query = query.where(AccountingPeriod.status == status)
        if year:
            query = query.where(and_(
                AccountingPeriod.start_date >= date(year, 1, 1),
                AccountingPeriod.start_date <= date(year, 12, 31),
            ))
        if period_type:
            query = query.where(AccountingPeriod.period_type == period_type)

        query = query.order_by(AccountingPeriod.start_date.desc())
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_period(self, period_id: uuid.UUID) -> AccountingPeriod:
        """Get period by ID."""
        period = await self.db.get(AccountingPeriod, period_id)
        if not period:
            raise NotFoundException("Accounting period", period_id)
        return period

    async def get_periods_by_year(self, year: int) -> List[AccountingPeriod]:
        """Get the periods starting in a calendar year, oldest first."""
        result = await self.db.execute(
            select(AccountingPeriod)
            .where(and_(
                AccountingPeriod.start_date >= date(year, 1, 1),
                AccountingPeriod.start_date <= date(year, 12, 31),
            ))
            .order_by(AccountingPeriod.start_date)
        )
        return list(result.scalars().all())

    async def get_period_for_date(self, value: date) -> Optional[AccountingPeriod]:
        """Get the period whose range contains the date, if any."""
        result = await self.db.execute(
            select(AccountingPeriod)
            .where(and_(
                AccountingPeriod.start_date <= value,
                AccountingPeriod.end_date >= value,
            ))
            .order_by(AccountingPeriod.start_date)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_current_period(self, today: Optional[date] = None) -> AccountingPeriod:
        """Get the open period containing today."""
        today = today or date.today()
        result = await self.db.execute(
            select(AccountingPeriod)
            .where(and_(
                AccountingPeriod.start_date <= today,
                AccountingPeriod.end_date >= today,
                AccountingPeriod.status != PeriodStatus.CLOSED,
            ))
            .order_by(AccountingPeriod.start_date.desc())
            .limit(1)
        )
        period = result.scalar_one_or_none()
        if not period:
            raise NotFoundException(
                "Accounting period", message=f"No open accounting period contains {today}"
            )
        return period

    async def find_overlapping(
        self,
        start_date: date,
        end_date: date,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> Optional[AccountingPeriod]:
        """Get any period whose range intersects [start_date, end_date]."""
        query = select(AccountingPeriod).where(and_(
            AccountingPeriod.start_date <= end_date,
            AccountingPeriod.end_date >= start_date,
        ))
        if exclude_id:
            query = query.where(AccountingPeriod.id != exclude_id)
        result = await self.db.execute(query.limit(1))
        return result.scalar_one_or_none()

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    async def create_period(self, data: AccountingPeriodCreate) -> AccountingPeriod:
        """Create a new open period after checking it overlaps nothing."""
        if data.start_date > data.end_date:
            raise InvalidDateRangeException(data.start_date, data.end_date)

        overlapping = await self.find_overlapping(data.start_date, data.end_date)
        if overlapping:
            raise ValidationException(
                f"Period overlaps existing period '{overlapping.period_name}' "
                f"({overlapping.start_date} to {overlapping.end_date})",
                details={"overlapping_period_id": str(overlapping.id)},
            )

        period = AccountingPeriod(
            period_name=data.period_name,
            period_type=data.period_type,
            start_date=data.start_date,
            end_date=data.end_date,
            status=PeriodStatus.OPEN,
            notes=data.notes,
        )
        self.db.add(period)
        await self.db.flush()

        logger.info(f"Created accounting period {period.period_name}")
        return period

    async def update_period_status(
        self,
        period_id: uuid.UUID,
        status: PeriodStatus,
    ) -> AccountingPeriod:
        """Move a period between open and in progress."""
        period = await self.get_period(period_id)

        if status not in MANUAL_STATUSES:
            raise ValidationException(
                f"Status '{status.value}' is set by the closing process; "
                f"use the close or reopen endpoint",
                field="status",
            )
        if period.status == PeriodStatus.CLOSED:
            raise ValidationException(
                f"Period '{period.period_name}' is closed; reopen it first",
                field="status",
            )

        period.status = status
        await self.db.flush()
        return period

    async def delete_period(self, period_id: uuid.UUID) -> None:
        """Delete a period that is not closed."""
        period = await self.get_period(period_id)
        if period.status == PeriodStatus.CLOSED:
            raise ValidationException(
                f"Cannot delete closed period '{period.period_name}'"
            )

        await self.db.execute(delete(AccountingPeriod).where(AccountingPeriod.id == period.id))
        await self.db.flush()
        logger.info(f"Deleted accounting period {period.period_name}")

    # =========================================================================
    # GENERATION
    # =========================================================================

    @staticmethod
    def build_year_ranges(year: int, period_type: PeriodType) -> List[Tuple[str, date, date]]:
        """Names and date ranges covering a calendar year."""
        if period_type == PeriodType.YEARLY:
            return [(f"FY {year}", date(year, 1, 1), date(year, 12, 31))]

        ranges = []
        if period_type == PeriodType.QUARTERLY:
            start = date(year, 1, 1)
            for quarter in range(1, 5):
                end = start + relativedelta(months=3) - relativedelta(days=1)
                ranges.append((f"Q{quarter} {year}", start, end))
                start = end + relativedelta(days=1)
            return ranges

        for month in range(1, 13):
            start = date(year, month, 1)
            _, last_day = monthrange(year, month)
            ranges.append((start.strftime("%B %Y"), start, date(year, month, last_day)))
        return ranges

    async def generate_periods_for_year(
        self,
        year: int,
        period_type: PeriodType = PeriodType.MONTHLY,
    ) -> List[AccountingPeriod]:
        """Create every period of the year; nothing is created if any overlaps."""
        ranges = self.build_year_ranges(year, period_type)

        for name, start, end in ranges:
            overlapping = await self.find_overlapping(start, end)
            if overlapping:
                raise ValidationException(
                    f"Cannot generate {period_type.value} periods for {year}: "
                    f"'{name}' overlaps existing period '{overlapping.period_name}'"
                )

        periods = []
        for name, start, end in ranges:
            period = AccountingPeriod(
                period_name=name,
                period_type=period_type,
                start_date=start,
                end_date=end,
                status=PeriodStatus.OPEN,
            )
            self.db.add(period)
            periods.append(period)

        await self.db.flush()
        logger.info(f"Generated {len(periods)} {period_type.value} periods for {year}")
        return periods

    async def auto_generate_current_year(self, today: Optional[date] = None) -> List[AccountingPeriod]:
        """Generate monthly periods for the current year if it has none."""
        year = (today or date.today()).year
        if await self.get_periods_by_year(year):
            return []
        return await self.generate_periods_for_year(year, PeriodType.MONTHLY)
