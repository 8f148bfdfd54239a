"""User balance endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from commission_tracker.db import get_db
from commission_tracker.models import User
from commission_tracker.schemas import BalanceResponse
from commission_tracker.services import ledger

router = APIRouter(prefix="/balances", tags=["Balances"])


async def _require_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return user


@router.get("/{user_id}", response_model=BalanceResponse)
async def get_balance(
    user_id: int,
    db: AsyncSession = Depends(get_db),
):
    await _require_user(db, user_id)
    balance = await ledger.get_balance(db, user_id)
    await db.commit()
    return balance


@router.post("/{user_id}/recalculate", response_model=BalanceResponse)
async def recalculate_balance(
    user_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Rebuild the balance from the full commission and payment history."""
    await _require_user(db, user_id)
    balance = await ledger.recalculate_balance(db, user_id)
    await db.commit()
    await db.refresh(balance)
    return balance
