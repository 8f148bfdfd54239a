"""API router aggregation."""

from fastapi import APIRouter

from commission_tracker.api.balances import router as balances_router
from commission_tracker.api.commissions import router as commissions_router
from commission_tracker.api.health import router as health_router
from commission_tracker.api.payments import router as payments_router
from commission_tracker.api.teams import router as teams_router

# Main API router (for /api/* endpoints)
api_router = APIRouter(prefix="/api")

api_router.include_router(health_router)
api_router.include_router(commissions_router)
api_router.include_router(payments_router)
api_router.include_router(balances_router)
api_router.include_router(teams_router)

__all__ = ["api_router"]
