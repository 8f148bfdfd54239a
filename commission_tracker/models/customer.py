"""
Customer (job) model as normalized by the CRM ingestion step.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Numeric, String, false, func
from sqlalchemy.orm import Mapped, mapped_column

from commission_tracker.models.base import Base, TimestampMixin


class JobStatus(str, Enum):
    """Known job statuses. Other CRM statuses are stored as-is."""
    LEAD = "Lead"
    FINALIZED = "Finalized"
    CANCELED = "Canceled"


class LeadSource(str, Enum):
    """Lead sources that change the salesman rate table."""
    CANVASSING_SALESMAN = "Canvassing - Salesman"
    CANVASSING_COMPANY = "Canvassing - Company"
    AFFILIATE = "Affiliate"
    REFERRAL = "Referral"
    OTHER = "Other"

    @classmethod
    def from_value(cls, value: Optional[str]) -> "LeadSource":
        if not value:
            return cls.OTHER
        normalized = " ".join(value.split()).lower()
        for source in cls:
            if source.value.lower() == normalized:
                return source
        return cls.OTHER


# Job columns that reference a user who may earn commission, in task order
ROLE_SLOTS = (
    "salesman_id",
    "supplementer_id",
    "manager_id",
    "supplement_manager_id",
    "referrer_id",
)


class Customer(Base, TimestampMixin):
    """
    A job that can produce commissions once Finalized.

    `created_date` is when the job entered the system. It is set once and
    every historical lookup (tenure, team membership) keys off it.
    """

    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(primary_key=True)
    customer_name: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(100),
        default=JobStatus.LEAD.value,
        nullable=False,
        index=True,
    )
    lead_source: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    # Job economics
    initial_scope_price: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
    )
    total_job_price: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
    )
    going_to_appraisal: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default=false(),
        nullable=False,
    )

    created_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        comment="When the job entered the system; immutable",
    )
    build_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Role assignments
    salesman_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
        index=True,
    )
    supplementer_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )
    manager_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )
    supplement_manager_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )
    referrer_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )

    @property
    def is_finalized(self) -> bool:
        return self.status == JobStatus.FINALIZED.value

    def __repr__(self) -> str:
        return f"<Customer(id={self.id}, name='{self.customer_name}', status='{self.status}')>"
