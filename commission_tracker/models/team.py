"""
Team and time-indexed team membership models.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint, text
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commission_tracker.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from commission_tracker.models.user import User


class TeamType(str, Enum):
    SALES = "Sales"
    SUPPLEMENT = "Supplement"
    AFFILIATE = "Affiliate"


class MembershipRole(str, Enum):
    """Role a user holds inside a team for one membership interval."""
    MANAGER = "manager"
    SALESMAN = "salesman"
    SUPPLEMENTER = "supplementer"


class Team(Base, TimestampMixin):
    """A sales or supplement team led by a manager."""

    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(primary_key=True)
    team_name: Mapped[str] = mapped_column(
        String(255),
        default="New Team",
        nullable=False,
    )
    team_type: Mapped[TeamType] = mapped_column(
        SQLAlchemyEnum(
            TeamType,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=TeamType.SALES,
        nullable=False,
    )
    manager_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    memberships: Mapped[List["TeamMembership"]] = relationship(
        "TeamMembership",
        back_populates="team",
    )

    def __repr__(self) -> str:
        return f"<Team(id={self.id}, name='{self.team_name}', type={self.team_type})>"


class TeamMembership(Base, TimestampMixin):
    """
    One contiguous membership interval of a user in a team.

    History is append-only: re-joining a team adds a new row instead of
    rewriting the old one, so the history key is (user, team, joined_at).
    At most one interval per (user, team) may be open (left_at IS NULL).
    """

    __tablename__ = "user_team_membership"
    __table_args__ = (
        UniqueConstraint("user_id", "team_id", "joined_at", name="uq_membership_user_team_joined"),
        Index(
            "uq_membership_open_interval",
            "user_id",
            "team_id",
            unique=True,
            postgresql_where=text("left_at IS NULL"),
            sqlite_where=text("left_at IS NULL"),
        ),
        Index("ix_membership_team_window", "team_id", "joined_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    team_id: Mapped[int] = mapped_column(
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[MembershipRole] = mapped_column(
        SQLAlchemyEnum(
            MembershipRole,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    left_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="NULL while the membership is current",
    )

    user: Mapped["User"] = relationship(
        "User",
        back_populates="memberships",
    )
    team: Mapped["Team"] = relationship(
        "Team",
        back_populates="memberships",
    )

    def __repr__(self) -> str:
        return (
            f"<TeamMembership(user_id={self.user_id}, team_id={self.team_id}, "
            f"role={self.role}, joined_at={self.joined_at}, left_at={self.left_at})>"
        )
