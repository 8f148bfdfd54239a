"""
Commission, batch and preview schemas.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from commission_tracker.services.reconciliation import BatchStatus


class CommissionResponse(BaseModel):
    id: int
    user_id: int
    customer_id: Optional[int]
    commission_amount: Decimal
    is_paid: bool
    build_date: Optional[datetime]
    admin_modified: bool
    created_at: datetime
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True}


class CommissionCreateRequest(BaseModel):
    """Manual commission entered by an admin."""

    user_id: int
    amount: Decimal = Field(..., ge=0)
    customer_id: Optional[int] = None
    build_date: Optional[datetime] = None
    is_paid: bool = False


class CommissionUpdateRequest(BaseModel):
    """Admin correction; any field left out is unchanged."""

    amount: Optional[Decimal] = Field(None, ge=0)
    is_paid: Optional[bool] = None
    build_date: Optional[datetime] = None


class BatchRequest(BaseModel):
    """Jobs to reconcile. Omit `job_ids` to sweep every Finalized job."""

    job_ids: Optional[List[int]] = Field(None, min_length=1)


class TaskErrorResponse(BaseModel):
    job_id: Optional[int]
    user_id: Optional[int]
    message: str

    model_config = {"from_attributes": True}


class BatchResultResponse(BaseModel):
    status: BatchStatus
    jobs: int
    tasks: int
    succeeded: int
    created: int
    updated: int
    skipped_admin: int
    errors: List[TaskErrorResponse] = []
    errors_truncated: int = 0
    warnings: List[str] = []
    balance_deltas: Dict[int, Decimal] = {}

    model_config = {"from_attributes": True}


class PreviewRequest(BaseModel):
    user_id: int
    job_ids: List[int] = Field(..., min_length=1)


class PreviewLine(BaseModel):
    job_id: int
    amount: Decimal
    customer_name: Optional[str] = None
    status: Optional[str] = None
    total_job_price: Optional[Decimal] = None
    initial_scope_price: Optional[Decimal] = None
    warnings: List[str] = []
    error: Optional[str] = None

    model_config = {"from_attributes": True}


class PreviewResponse(BaseModel):
    user_id: int
    user_name: str
    user_role: str
    commissions: List[PreviewLine]
