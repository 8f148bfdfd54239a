"""Team management and membership history endpoints."""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from commission_tracker.api.errors import to_http_exception
from commission_tracker.db import get_db
from commission_tracker.models import Team, User
from commission_tracker.schemas import (
    JoinTeamRequest,
    LeaveTeamRequest,
    MembershipResponse,
    TeamCreateRequest,
    TeamResponse,
    TeamSnapshotResponse,
    TeamUpdateRequest,
)
from commission_tracker.services.errors import CommissionTrackerError
from commission_tracker.services.membership import (
    create_team,
    get_membership_history,
    join_team,
    leave_team,
    load_membership_index,
    update_team,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/teams", tags=["Teams"])


async def _require_team(db: AsyncSession, team_id: int) -> Team:
    team = await db.get(Team, team_id)
    if team is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Team not found",
        )
    return team


async def _forget_memberships(request: Request) -> None:
    """Drop cached membership indexes after a committed roster change."""
    dropped = await request.app.state.reference_cache.invalidate_prefix("membership:")
    if dropped:
        logger.debug(f"Invalidated {dropped} cached membership indexes")


@router.post("", response_model=TeamResponse, status_code=status.HTTP_201_CREATED)
async def add_team(
    request: Request,
    data: TeamCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Create a team with its manager and initial members."""
    try:
        team = await create_team(
            db,
            data.manager_id,
            data.team_name,
            data.team_type,
            salesman_ids=data.salesman_ids,
            supplementer_ids=data.supplementer_ids,
            joined_at=data.joined_at,
        )
    except CommissionTrackerError as e:
        raise to_http_exception(e)

    await db.commit()
    await db.refresh(team)
    await _forget_memberships(request)
    return team


@router.put("/{team_id}", response_model=TeamResponse)
async def edit_team(
    request: Request,
    team_id: int,
    data: TeamUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Update team details or replace a roster as of `effective_at`.

    Membership history before `effective_at` is kept.
    """
    try:
        team = await update_team(db, team_id, **data.model_dump())
    except CommissionTrackerError as e:
        raise to_http_exception(e)

    await db.commit()
    await db.refresh(team)
    await _forget_memberships(request)
    return team


@router.post("/{team_id}/members", response_model=MembershipResponse, status_code=status.HTTP_201_CREATED)
async def add_member(
    request: Request,
    team_id: int,
    data: JoinTeamRequest,
    db: AsyncSession = Depends(get_db),
):
    """Open a membership interval (or change the member's role)."""
    await _require_team(db, team_id)
    if await db.get(User, data.user_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    try:
        membership = await join_team(db, data.user_id, team_id, data.role, data.joined_at)
    except CommissionTrackerError as e:
        raise to_http_exception(e)

    await db.commit()
    await db.refresh(membership)
    await _forget_memberships(request)
    return membership


@router.post("/{team_id}/members/{user_id}/leave", response_model=MembershipResponse)
async def remove_member(
    request: Request,
    team_id: int,
    user_id: int,
    data: Optional[LeaveTeamRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    """Close the member's open interval; history is kept."""
    left_at = data.left_at if data is not None else None
    try:
        membership = await leave_team(db, user_id, team_id, left_at)
    except CommissionTrackerError as e:
        raise to_http_exception(e)

    await db.commit()
    await db.refresh(membership)
    await _forget_memberships(request)
    return membership


@router.get("/history/{user_id}", response_model=List[MembershipResponse])
async def membership_history(
    user_id: int,
    db: AsyncSession = Depends(get_db),
):
    """All membership intervals of a user, most recent first."""
    return await get_membership_history(db, user_id)


@router.get("/{team_id}/snapshot", response_model=TeamSnapshotResponse)
async def team_snapshot(
    team_id: int,
    at: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Who was on the team at `at` (default: now)."""
    await _require_team(db, team_id)
    moment = at or datetime.now(timezone.utc)
    index = await load_membership_index(db)
    return index.team_snapshot_at(team_id, moment)
