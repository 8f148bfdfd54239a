"""
Per-user balance ledger model.
"""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Numeric, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commission_tracker.models.base import Base

if TYPE_CHECKING:
    from commission_tracker.models.user import User


class UserBalance(Base):
    """
    Running commission balance for one user.

    INVARIANT:
    - current_balance == total_commissions_earned - total_payments_received
    - Rows are changed through signed deltas (services.ledger), never
      recomputed in the batch path
    """

    __tablename__ = "user_balance"

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    total_commissions_earned: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        server_default="0",
        nullable=False,
    )
    total_payments_received: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        server_default="0",
        nullable=False,
    )
    current_balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        server_default="0",
        nullable=False,
    )
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # Relationships
    user: Mapped["User"] = relationship("User")

    def __repr__(self) -> str:
        return f"<UserBalance(user_id={self.user_id}, current_balance={self.current_balance})>"
