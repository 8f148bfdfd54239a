"""
Commission Tracker - commission engine for a roofing sales team.

Main FastAPI application with:
- Commission reconciliation and preview
- Payments and per-user balance ledger
- Time-indexed team membership history
- Periodic reconciliation sweep (APScheduler)
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from commission_tracker.api import api_router
from commission_tracker.config import settings
from commission_tracker.scheduler import scheduler, setup_scheduler
from commission_tracker.services.cache import ReadThroughCache

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
    - Creates the reference data cache
    - Starts the reconciliation sweep unless disabled

    Shutdown:
    - Stops the scheduler
    """
    logger.info("Starting Commission Tracker...")

    app.state.reference_cache = ReadThroughCache(default_ttl=settings.reference_cache_ttl_seconds)
    if setup_scheduler():
        scheduler.start()

    logger.info("Commission Tracker started successfully!")

    yield

    # Shutdown
    logger.info("Shutting down Commission Tracker...")
    if scheduler.running:
        scheduler.shutdown(wait=False)


# Create FastAPI application
app = FastAPI(
    title="Commission Tracker",
    description="Commission calculation and balance ledger",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# Reachable before lifespan runs (e.g. tests with ASGITransport)
app.state.reference_cache = ReadThroughCache(default_ttl=settings.reference_cache_ttl_seconds)

app.include_router(api_router)  # /api/* endpoints


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "commission_tracker.main:app",
        host="0.0.0.0",
        port=8000,
        reload=not settings.is_production,
    )
