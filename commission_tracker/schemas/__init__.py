"""Pydantic schemas for request/response validation."""

from commission_tracker.schemas.commission import (
    BatchRequest,
    BatchResultResponse,
    CommissionCreateRequest,
    CommissionResponse,
    CommissionUpdateRequest,
    PreviewLine,
    PreviewRequest,
    PreviewResponse,
    TaskErrorResponse,
)
from commission_tracker.schemas.ledger import BalanceResponse, PaymentCreateRequest, PaymentResponse
from commission_tracker.schemas.team import (
    JoinTeamRequest,
    LeaveTeamRequest,
    MembershipResponse,
    SnapshotMemberResponse,
    TeamCreateRequest,
    TeamResponse,
    TeamSnapshotResponse,
    TeamUpdateRequest,
)

__all__ = [
    # Commission
    "BatchRequest",
    "BatchResultResponse",
    "CommissionCreateRequest",
    "CommissionResponse",
    "CommissionUpdateRequest",
    "PreviewLine",
    "PreviewRequest",
    "PreviewResponse",
    "TaskErrorResponse",
    # Ledger
    "BalanceResponse",
    "PaymentCreateRequest",
    "PaymentResponse",
    # Team
    "JoinTeamRequest",
    "LeaveTeamRequest",
    "MembershipResponse",
    "SnapshotMemberResponse",
    "TeamCreateRequest",
    "TeamResponse",
    "TeamSnapshotResponse",
    "TeamUpdateRequest",
]
