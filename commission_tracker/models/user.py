"""
User model and commission role parsing.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Date, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commission_tracker.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from commission_tracker.models.commission import CommissionRecord
    from commission_tracker.models.team import TeamMembership


class CommissionRole(str, Enum):
    """Roles that drive the commission formula.

    Stored as free text on the user row (the directory may hold roles the
    engine knows nothing about), parsed with `from_value`.
    """
    SALESMAN = "Salesman"
    SUPPLEMENTER = "Supplementer"
    SALES_MANAGER = "Sales Manager"
    SUPPLEMENT_MANAGER = "Supplement Manager"
    AFFILIATE_MARKETER = "Affiliate Marketer"
    UNHANDLED = "Unhandled"

    @classmethod
    def from_value(cls, value: Optional[str]) -> "CommissionRole":
        if not value:
            return cls.UNHANDLED
        normalized = " ".join(value.split()).lower()
        for role in cls:
            if role is not cls.UNHANDLED and role.value.lower() == normalized:
                return role
        return cls.UNHANDLED


class User(Base, TimestampMixin):
    """
    Employee or affiliate who can earn commissions.

    Identity is immutable; `role` selects the formula branch and
    `hire_date` anchors tenure calculations.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    email: Mapped[Optional[str]] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
    )
    role: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Directory role, e.g. 'Salesman' or 'Sales Manager'",
    )
    hire_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
    )
    yearly_goal: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("50000.00"),
        server_default="50000.00",
        nullable=False,
    )

    # Relationships
    commissions: Mapped[List["CommissionRecord"]] = relationship(
        "CommissionRecord",
        back_populates="user",
    )
    memberships: Mapped[List["TeamMembership"]] = relationship(
        "TeamMembership",
        back_populates="user",
    )

    @property
    def commission_role(self) -> CommissionRole:
        return CommissionRole.from_value(self.role)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, name='{self.name}', role='{self.role}')>"
