"""
Commission, payment and payment-to-commission mapping models.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Numeric, String, Text, UniqueConstraint, false, func
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commission_tracker.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from commission_tracker.models.customer import Customer
    from commission_tracker.models.user import User


class PaymentType(str, Enum):
    CHECK = "Check"
    CASH = "Cash"
    DIRECT_DEPOSIT = "Direct Deposit"
    OTHER = "Other"


class CommissionRecord(Base, TimestampMixin):
    """
    Commission owed to one user for one job.

    Unique per (user_id, customer_id). Rows with admin_modified set were
    corrected by hand and are never touched by the automated engine.
    """

    __tablename__ = "commissions_due"
    __table_args__ = (
        UniqueConstraint("user_id", "customer_id", name="unique_user_customer"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
        comment="NULL for manual commissions not tied to a job",
    )
    commission_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    is_paid: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default=false(),
        nullable=False,
    )
    build_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    admin_modified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default=false(),
        nullable=False,
        comment="Manually corrected; excluded from automatic recomputation",
    )

    # Relationships
    user: Mapped["User"] = relationship(
        "User",
        back_populates="commissions",
    )
    customer: Mapped[Optional["Customer"]] = relationship("Customer")

    def __repr__(self) -> str:
        return (
            f"<CommissionRecord(id={self.id}, user_id={self.user_id}, "
            f"customer_id={self.customer_id}, amount={self.commission_amount})>"
        )


class Payment(Base):
    """Money paid out to a user against their commission balance."""

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    payment_type: Mapped[PaymentType] = mapped_column(
        SQLAlchemyEnum(
            PaymentType,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    check_number: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )
    payment_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    mappings: Mapped[List["PaymentCommissionMapping"]] = relationship(
        "PaymentCommissionMapping",
        back_populates="payment",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, user_id={self.user_id}, amount={self.amount})>"


class PaymentCommissionMapping(Base):
    """Which payment covered which commission row, and for how much."""

    __tablename__ = "payment_commission_mapping"

    id: Mapped[int] = mapped_column(primary_key=True)
    payment_id: Mapped[int] = mapped_column(
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    commission_due_id: Mapped[int] = mapped_column(
        ForeignKey("commissions_due.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount_applied: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    payment: Mapped["Payment"] = relationship(
        "Payment",
        back_populates="mappings",
    )
    commission: Mapped["CommissionRecord"] = relationship("CommissionRecord")
