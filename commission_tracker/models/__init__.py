"""
Database models for the commission tracker.

All models are exported here for convenient imports:
    from commission_tracker.models import User, Customer, CommissionRecord, etc.
"""

from commission_tracker.models.base import Base, TimestampMixin
from commission_tracker.models.commission import (
    CommissionRecord,
    Payment,
    PaymentCommissionMapping,
    PaymentType,
)
from commission_tracker.models.customer import ROLE_SLOTS, Customer, JobStatus, LeadSource
from commission_tracker.models.ledger import UserBalance
from commission_tracker.models.team import MembershipRole, Team, TeamMembership, TeamType
from commission_tracker.models.user import CommissionRole, User

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # User
    "User",
    "CommissionRole",
    # Customer
    "Customer",
    "JobStatus",
    "LeadSource",
    "ROLE_SLOTS",
    # Team
    "Team",
    "TeamType",
    "TeamMembership",
    "MembershipRole",
    # Commission
    "CommissionRecord",
    "Payment",
    "PaymentType",
    "PaymentCommissionMapping",
    # Ledger
    "UserBalance",
]
