"""Liveness and readiness checks for the commission service."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from commission_tracker import __version__
from commission_tracker.db import get_db
from commission_tracker.scheduler import scheduler

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
async def health_check():
    return {"status": "healthy", "service": "commission-tracker", "version": __version__}


@router.get("/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Ready once the database answers; also reports whether the
    reconciliation sweep is scheduled."""
    sweep = scheduler.get_job("commission_reconciliation") is not None
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        return {"status": "not_ready", "database": f"error: {e}", "reconciliation_sweep": sweep}

    return {"status": "ready", "database": "connected", "reconciliation_sweep": sweep}


@router.get("/live")
async def liveness_check():
    return {"status": "alive"}
