"""
School Ledger - Test Configuration

Pytest fixtures and configuration.

Every test runs against its own in-memory SQLite database so tests never
share state or a connection across event loops.
"""

import os

# Must be set before the application settings are first loaded
os.environ["DATABASE_URL_ASYNC"] = "sqlite+aiosqlite:///:memory:"
os.environ["APP_ENV"] = "testing"
os.environ["SEED_DEFAULT_CHART"] = "false"
os.environ["AUTO_GENERATE_PERIODS"] = "false"

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Dict
from uuid import UUID

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from school_ledger.database import Base, get_async_session
from school_ledger.models.accounting import (
    AccountingPeriod, PeriodStatus, PeriodType,
)
from school_ledger.schemas.accounting import JournalEntryCreate, JournalEntryLineCreate
from school_ledger.services.chart_of_accounts_service import ChartOfAccountsService
from school_ledger.services.journal_service import JournalService
from main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_ACTOR = "bursar-01"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a fresh in-memory database for each test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-User-Id": TEST_ACTOR},
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def account_ids(db_session: AsyncSession) -> Dict[str, UUID]:
    """Seed the default school chart; returns account ids keyed by code."""
    service = ChartOfAccountsService(db_session)
    await service.create_default_chart(actor_id="system")
    await db_session.commit()

    accounts = await service.list_accounts()
    return {account.code: account.id for account in accounts}


@pytest_asyncio.fixture
async def january_period(db_session: AsyncSession) -> AccountingPeriod:
    """Create an open monthly period for January 2026."""
    period = AccountingPeriod(
        period_name="January 2026",
        period_type=PeriodType.MONTHLY,
        start_date=date(2026, 1, 1),
        end_date=date(2026, 1, 31),
        status=PeriodStatus.OPEN,
    )
    db_session.add(period)
    await db_session.commit()
    return period


@pytest_asyncio.fixture
async def post_entry(db_session: AsyncSession, account_ids):
    """
    Post and commit a journal entry.

    Lines are (account code, debit, credit) tuples.
    """

    async def _post(entry_date, lines, description="Test entry", reference=None):
        data = JournalEntryCreate(
            entry_date=entry_date,
            description=description,
            reference=reference,
            lines=[
                JournalEntryLineCreate(
                    account_id=account_ids[code],
                    debit_amount=Decimal(str(debit)),
                    credit_amount=Decimal(str(credit)),
                )
                for code, debit, credit in lines
            ],
        )
        entry = await JournalService(db_session).create_entry(data, actor_id=TEST_ACTOR)
        await db_session.commit()
        return entry

    return _post


@pytest_asyncio.fixture
async def january_activity(post_entry, january_period):
    """
    Tuition of 1,000.00 received in cash and salaries of 400.00 paid,
    both within January 2026.
    """
    await post_entry(
        date(2026, 1, 10),
        [("1110", "1000.00", "0"), ("4100", "0", "1000.00")],
        description="Term 1 tuition received",
    )
    await post_entry(
        date(2026, 1, 20),
        [("5100", "400.00", "0"), ("1110", "0", "400.00")],
        description="January teaching salaries",
    )
    return january_period
