"""Commission reconciliation, preview and admin correction endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from commission_tracker.api.errors import to_http_exception
from commission_tracker.config import settings
from commission_tracker.db import get_db
from commission_tracker.models import User
from commission_tracker.schemas import (
    BatchRequest,
    BatchResultResponse,
    CommissionCreateRequest,
    CommissionResponse,
    CommissionUpdateRequest,
    PreviewLine,
    PreviewRequest,
    PreviewResponse,
)
from commission_tracker.services import ledger
from commission_tracker.services.commission import UserProfile
from commission_tracker.services.errors import CommissionTrackerError
from commission_tracker.services.membership import load_membership_index
from commission_tracker.services.reconciliation import (
    BatchResult,
    BatchStatus,
    preview_commissions,
    process_batch,
    recalculate_job,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/commissions", tags=["Commissions"])

BATCH_HTTP_STATUS = {
    BatchStatus.ALL_SUCCEEDED: status.HTTP_200_OK,
    BatchStatus.PARTIAL_SUCCESS: status.HTTP_207_MULTI_STATUS,
    BatchStatus.HARD_FAILURE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _batch_response(result: BatchResult) -> JSONResponse:
    body = BatchResultResponse.model_validate(result)
    return JSONResponse(
        status_code=BATCH_HTTP_STATUS[result.status],
        content=body.model_dump(mode="json"),
    )


@router.post("/process-batch", response_model=BatchResultResponse)
async def run_batch(
    data: BatchRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Reconcile commissions for the given jobs, or every Finalized job.

    Returns 200 when every task succeeded, 207 when some tasks failed and
    500 when the batch was rolled back.
    """
    result = await process_batch(db, data.job_ids)
    return _batch_response(result)


@router.post("/recalculate/{job_id}", response_model=BatchResultResponse)
async def recalculate(
    job_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Recompute commissions for one Finalized job."""
    try:
        result = await recalculate_job(db, job_id)
    except CommissionTrackerError as e:
        raise to_http_exception(e)
    return _batch_response(result)


@router.post("/preview", response_model=PreviewResponse)
async def preview(
    request: Request,
    data: PreviewRequest,
    db: AsyncSession = Depends(get_db),
):
    """What a user would earn on the given jobs. Nothing is stored."""
    cache = request.app.state.reference_cache
    ttl = settings.reference_cache_ttl_seconds

    async def load_user():
        user = await db.get(User, data.user_id)
        return UserProfile.from_row(user) if user is not None else None

    user = await cache.get(f"user:{data.user_id}", load_user, ttl=ttl)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    index = await cache.get(
        f"membership:{data.user_id}",
        lambda: load_membership_index(db, [data.user_id]),
        ttl=ttl,
    )
    lines = await preview_commissions(db, user, data.job_ids, index)

    return PreviewResponse(
        user_id=user.id,
        user_name=user.name,
        user_role=user.role,
        commissions=[PreviewLine.model_validate(line) for line in lines],
    )


@router.post("", response_model=CommissionResponse, status_code=status.HTTP_201_CREATED)
async def create_commission(
    data: CommissionCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Add a manual commission. It is excluded from automatic recomputation."""
    try:
        commission = await ledger.create_manual_commission(
            db,
            data.user_id,
            data.amount,
            customer_id=data.customer_id,
            build_date=data.build_date,
            is_paid=data.is_paid,
        )
    except CommissionTrackerError as e:
        raise to_http_exception(e)

    await db.commit()
    await db.refresh(commission)
    return commission


@router.put("/{commission_id}", response_model=CommissionResponse)
async def update_commission(
    commission_id: int,
    data: CommissionUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Correct a commission by hand; marks it admin-modified."""
    try:
        commission = await ledger.adjust_commission(
            db,
            commission_id,
            amount=data.amount,
            is_paid=data.is_paid,
            build_date=data.build_date,
        )
    except CommissionTrackerError as e:
        raise to_http_exception(e)

    await db.commit()
    await db.refresh(commission)
    return commission


@router.post("/{commission_id}/clear-admin-flag", response_model=CommissionResponse)
async def clear_admin_flag(
    commission_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Return a corrected commission to automatic recomputation."""
    try:
        commission = await ledger.clear_admin_flag(db, commission_id)
    except CommissionTrackerError as e:
        raise to_http_exception(e)

    await db.commit()
    await db.refresh(commission)
    return commission


@router.delete("/{commission_id}")
async def delete_commission(
    commission_id: int,
    db: AsyncSession = Depends(get_db),
):
    try:
        await ledger.delete_commission(db, commission_id)
    except CommissionTrackerError as e:
        raise to_http_exception(e)

    await db.commit()
    return {"success": True}
