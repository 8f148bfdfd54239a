"""
Payment and balance schemas.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from commission_tracker.models import PaymentType


class PaymentCreateRequest(BaseModel):
    user_id: int
    amount: Decimal = Field(..., gt=0)
    payment_type: PaymentType
    payment_date: Optional[datetime] = None
    check_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=2000)
    commission_ids: List[int] = []


class PaymentResponse(BaseModel):
    id: int
    user_id: int
    amount: Decimal
    payment_type: PaymentType
    check_number: Optional[str]
    payment_date: datetime
    notes: Optional[str]

    model_config = {"from_attributes": True}


class BalanceResponse(BaseModel):
    """Running totals; current_balance is what the company still owes."""

    user_id: int
    total_commissions_earned: Decimal
    total_payments_received: Decimal
    current_balance: Decimal
    last_updated: Optional[datetime]

    model_config = {"from_attributes": True}
