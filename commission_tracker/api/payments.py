"""Payment endpoints."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from commission_tracker.api.errors import to_http_exception
from commission_tracker.db import get_db
from commission_tracker.schemas import PaymentCreateRequest, PaymentResponse
from commission_tracker.services import ledger
from commission_tracker.services.errors import CommissionTrackerError

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_payment(
    data: PaymentCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Record a payout; listed commissions are marked paid."""
    try:
        payment = await ledger.record_payment(
            db,
            data.user_id,
            data.amount,
            data.payment_type,
            payment_date=data.payment_date,
            check_number=data.check_number,
            notes=data.notes,
            commission_ids=data.commission_ids,
        )
    except CommissionTrackerError as e:
        raise to_http_exception(e)

    await db.commit()
    await db.refresh(payment)
    return payment


@router.delete("/{payment_id}")
async def delete_payment(
    payment_id: int,
    db: AsyncSession = Depends(get_db),
):
    try:
        await ledger.delete_payment(db, payment_id)
    except CommissionTrackerError as e:
        raise to_http_exception(e)

    await db.commit()
    return {"success": True}
