"""
School Ledger - FastAPI Application Entry Point

This is the main entry point for the FastAPI application.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from school_ledger.config import settings
from school_ledger.database import init_db, close_db, async_session_maker
from school_ledger.routers import (
    accounts, journal_entries, period_closing, periods, trial_balance,
)
from school_ledger.utils.error_handling import setup_exception_handlers

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.debug else logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def seed_default_chart():
    """
    Seed the default school chart of accounts on startup.
    This guarantees the closing accounts (3998/3999) exist.
    """
    from school_ledger.services.chart_of_accounts_service import ChartOfAccountsService

    async with async_session_maker() as session:
        service = ChartOfAccountsService(session)
        try:
            created = await service.create_default_chart(actor_id="system")
            await session.commit()
            logger.info(f"Chart of accounts ready ({len(created)} accounts added)")
        except Exception as e:
            await session.rollback()
            logger.warning(f"Could not seed chart of accounts: {e}")


async def seed_current_year_periods():
    """Generate this year's monthly periods if none exist yet."""
    from school_ledger.services.period_service import PeriodService

    async with async_session_maker() as session:
        service = PeriodService(session)
        try:
            periods = await service.auto_generate_current_year()
            await session.commit()
            if periods:
                logger.info(f"Generated {len(periods)} accounting periods for the current year")
        except Exception as e:
            await session.rollback()
            logger.warning(f"Could not generate accounting periods: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info(f"Starting {settings.app_name}...")
    logger.info(f"Environment: {settings.app_env}")

    # Initialize database (dev only - use migrations in production)
    if settings.is_development:
        await init_db()
        logger.info("Database tables initialized")

    if settings.seed_default_chart:
        await seed_default_chart()

    if settings.auto_generate_periods:
        await seed_current_year_periods()

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    await close_db()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="General ledger, trial balance and period closing for the school ERP",
    version="0.1.0",
    docs_url="/api/docs" if not settings.is_production else None,
    redoc_url="/api/redoc" if not settings.is_production else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_exception_handlers(app)


# ===========================================
# ROUTERS
# ===========================================

app.include_router(accounts.router)
app.include_router(journal_entries.router)
app.include_router(trial_balance.router)
app.include_router(periods.router)
app.include_router(period_closing.router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness probe."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": "0.1.0",
        "environment": settings.app_env,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.is_development)
