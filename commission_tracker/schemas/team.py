"""
Team and membership history schemas.
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from commission_tracker.models import MembershipRole, TeamType


class TeamCreateRequest(BaseModel):
    manager_id: int
    team_name: str = Field("New Team", min_length=1, max_length=255)
    team_type: TeamType = TeamType.SALES
    salesman_ids: List[int] = []
    supplementer_ids: List[int] = []
    joined_at: Optional[datetime] = None


class TeamUpdateRequest(BaseModel):
    """Omitted fields are unchanged; a roster list replaces that role's members."""

    team_name: Optional[str] = Field(None, min_length=1, max_length=255)
    team_type: Optional[TeamType] = None
    manager_id: Optional[int] = None
    salesman_ids: Optional[List[int]] = None
    supplementer_ids: Optional[List[int]] = None
    effective_at: Optional[datetime] = None


class TeamResponse(BaseModel):
    id: int
    team_name: str
    team_type: TeamType
    manager_id: int
    created_at: datetime
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True}


class JoinTeamRequest(BaseModel):
    user_id: int
    role: MembershipRole
    joined_at: Optional[datetime] = None


class LeaveTeamRequest(BaseModel):
    left_at: Optional[datetime] = None


class MembershipResponse(BaseModel):
    id: int
    user_id: int
    team_id: int
    role: MembershipRole
    joined_at: datetime
    left_at: Optional[datetime]

    model_config = {"from_attributes": True}


class SnapshotMemberResponse(BaseModel):
    user_id: int
    role: MembershipRole
    joined_at: datetime
    left_at: Optional[datetime]
    hire_date: Optional[date]

    model_config = {"from_attributes": True}


class TeamSnapshotResponse(BaseModel):
    """Team composition as it stood at `at`."""

    team_id: int
    at: datetime
    managers: List[SnapshotMemberResponse]
    salesmen: List[SnapshotMemberResponse]
    supplementers: List[SnapshotMemberResponse]

    model_config = {"from_attributes": True}
