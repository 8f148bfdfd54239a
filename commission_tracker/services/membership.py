"""
Temporal team membership index.

Answers "which team was user U on at date D" and "who else was on that
team at date D" from the append-only membership history. The index is
built once per batch from two bulk queries and is read-only afterwards,
so lookups are safe to share between tasks.

Interval semantics: an interval covers `at` when
    joined_at <= at and (left_at is None or left_at > at)
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from commission_tracker.models import MembershipRole, Team, TeamMembership, TeamType, User
from commission_tracker.services.errors import MembershipError, RecordNotFoundError

logger = logging.getLogger(__name__)

Moment = Union[date, datetime]


def to_utc(value: Moment) -> datetime:
    """Normalize a date or datetime to an aware UTC datetime.

    Naive datetimes (SQLite drops tzinfo) are taken to be UTC and plain
    dates become midnight UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


@dataclass(frozen=True)
class MembershipInterval:
    user_id: int
    team_id: int
    role: MembershipRole
    joined_at: datetime
    left_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row) -> "MembershipInterval":
        return cls(
            user_id=row.user_id,
            team_id=row.team_id,
            role=MembershipRole(row.role),
            joined_at=to_utc(row.joined_at),
            left_at=to_utc(row.left_at) if row.left_at is not None else None,
        )

    def covers(self, at: Moment) -> bool:
        moment = to_utc(at)
        return self.joined_at <= moment and (self.left_at is None or self.left_at > moment)


@dataclass(frozen=True)
class SnapshotMember:
    """A team member as of a snapshot date, with the hire date used for tenure."""
    user_id: int
    role: MembershipRole
    joined_at: datetime
    left_at: Optional[datetime]
    hire_date: Optional[date]


@dataclass(frozen=True)
class TeamSnapshot:
    team_id: int
    at: datetime
    managers: tuple = ()
    salesmen: tuple = ()
    supplementers: tuple = ()

    @property
    def members(self) -> tuple:
        return self.managers + self.salesmen + self.supplementers

    def find(self, user_id: Optional[int]) -> Optional[SnapshotMember]:
        if user_id is None:
            return None
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None


@dataclass(frozen=True)
class HistoricalTeamContext:
    """A user's membership and their team's composition at one date."""
    membership: MembershipInterval
    snapshot: TeamSnapshot

    @property
    def team_id(self) -> int:
        return self.membership.team_id

    def find_teammate(self, user_id: Optional[int]) -> Optional[SnapshotMember]:
        return self.snapshot.find(user_id)


class MembershipIndex:
    """In-memory, read-only view over membership intervals.

    Usage:
        index = MembershipIndex(intervals, hire_dates={7: date(2023, 1, 1)})
        context = index.historical_team_context_for(7, job.created_date)
    """

    def __init__(
        self,
        intervals: Iterable = (),
        hire_dates: Optional[Mapping[int, Optional[date]]] = None,
    ) -> None:
        self._by_user: Dict[int, List[MembershipInterval]] = defaultdict(list)
        self._by_team: Dict[int, List[MembershipInterval]] = defaultdict(list)
        self._hire_dates: Dict[int, Optional[date]] = dict(hire_dates or {})

        for item in intervals:
            interval = item if isinstance(item, MembershipInterval) else MembershipInterval.from_row(item)
            self._by_user[interval.user_id].append(interval)
            self._by_team[interval.team_id].append(interval)

        for bucket in (*self._by_user.values(), *self._by_team.values()):
            bucket.sort(key=lambda iv: iv.joined_at)

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._by_user.values())

    def hire_date(self, user_id: int) -> Optional[date]:
        return self._hire_dates.get(user_id)

    def intervals_for(self, user_id: int) -> Sequence[MembershipInterval]:
        return tuple(self._by_user.get(user_id, ()))

    def membership_at(self, user_id: int, at: Moment) -> Optional[MembershipInterval]:
        """Interval of `user_id` covering `at`.

        Overlapping intervals should not exist; if they do, the one that
        started last wins.
        """
        matches = [iv for iv in self._by_user.get(user_id, ()) if iv.covers(at)]
        if not matches:
            return None
        if len(matches) > 1:
            logger.warning(
                f"User {user_id} has {len(matches)} overlapping memberships at {to_utc(at).isoformat()}; "
                f"using the latest"
            )
        return max(matches, key=lambda iv: iv.joined_at)

    def team_snapshot_at(self, team_id: int, at: Moment) -> TeamSnapshot:
        """Members of `team_id` whose interval covers `at`, grouped by role."""
        groups: Dict[MembershipRole, List[SnapshotMember]] = defaultdict(list)
        seen = set()
        # Latest interval first so a duplicate (overlapping) row loses
        for interval in sorted(self._by_team.get(team_id, ()), key=lambda iv: iv.joined_at, reverse=True):
            if interval.user_id in seen or not interval.covers(at):
                continue
            seen.add(interval.user_id)
            groups[interval.role].append(
                SnapshotMember(
                    user_id=interval.user_id,
                    role=interval.role,
                    joined_at=interval.joined_at,
                    left_at=interval.left_at,
                    hire_date=self._hire_dates.get(interval.user_id),
                )
            )

        def ordered(role: MembershipRole) -> tuple:
            return tuple(sorted(groups[role], key=lambda m: m.user_id))

        return TeamSnapshot(
            team_id=team_id,
            at=to_utc(at),
            managers=ordered(MembershipRole.MANAGER),
            salesmen=ordered(MembershipRole.SALESMAN),
            supplementers=ordered(MembershipRole.SUPPLEMENTER),
        )

    def historical_team_context_for(self, user_id: int, at: Moment) -> Optional[HistoricalTeamContext]:
        """Membership plus team snapshot as of `at`, or None when the user
        had no team at that date."""
        membership = self.membership_at(user_id, at)
        if membership is None:
            return None
        return HistoricalTeamContext(
            membership=membership,
            snapshot=self.team_snapshot_at(membership.team_id, at),
        )


# ── Persistence ───────────────────────────────────────────


async def load_membership_index(
    db: AsyncSession,
    user_ids: Optional[Iterable[int]] = None,
) -> MembershipIndex:
    """Build an index from the membership table.

    With `user_ids`, only the teams those users ever belonged to are loaded
    (every member of those teams is needed for snapshots).
    """
    query = select(TeamMembership)
    if user_ids is not None:
        ids = set(user_ids)
        if not ids:
            return MembershipIndex()
        team_ids = select(TeamMembership.team_id).where(TeamMembership.user_id.in_(ids))
        query = query.where(TeamMembership.team_id.in_(team_ids))

    result = await db.execute(query)
    rows = result.scalars().all()
    intervals = [MembershipInterval.from_row(row) for row in rows]

    member_ids = {iv.user_id for iv in intervals}
    hire_dates: Dict[int, Optional[date]] = {}
    if member_ids:
        users = await db.execute(select(User.id, User.hire_date).where(User.id.in_(member_ids)))
        hire_dates = {row.id: row.hire_date for row in users}

    return MembershipIndex(intervals, hire_dates)


async def get_membership_history(db: AsyncSession, user_id: int) -> List[TeamMembership]:
    """All intervals of a user, most recent first."""
    result = await db.execute(
        select(TeamMembership)
        .where(TeamMembership.user_id == user_id)
        .order_by(TeamMembership.joined_at.desc())
    )
    return list(result.scalars().all())


async def _intervals_for_pair(db: AsyncSession, user_id: int, team_id: int) -> List[TeamMembership]:
    result = await db.execute(
        select(TeamMembership)
        .where(
            TeamMembership.user_id == user_id,
            TeamMembership.team_id == team_id,
        )
        .order_by(TeamMembership.joined_at)
    )
    return list(result.scalars().all())


async def join_team(
    db: AsyncSession,
    user_id: int,
    team_id: int,
    role: MembershipRole,
    joined_at: Optional[Moment] = None,
) -> TeamMembership:
    """Open a membership interval.

    An open interval with the same role is returned unchanged. A role change
    closes the open interval at `joined_at` and opens a new one. History is
    never rewritten: `joined_at` may not fall before the end of an existing
    interval for the same team.
    """
    joined = to_utc(joined_at) if joined_at is not None else datetime.now(timezone.utc)
    role = MembershipRole(role)
    history = await _intervals_for_pair(db, user_id, team_id)
    current = next((iv for iv in history if iv.left_at is None), None)

    if current is not None and MembershipRole(current.role) == role:
        return current

    for interval in history:
        boundary = interval.left_at if interval.left_at is not None else interval.joined_at
        if joined < to_utc(boundary):
            raise MembershipError(
                f"User {user_id} joining team {team_id} at {joined.isoformat()} "
                f"would overlap existing membership history"
            )
    if current is not None and joined <= to_utc(current.joined_at):
        raise MembershipError(
            f"User {user_id} role change on team {team_id} must come after {to_utc(current.joined_at).isoformat()}"
        )

    if current is not None:
        current.left_at = joined
        await db.flush()
        logger.info(f"User {user_id} role on team {team_id} changed from {MembershipRole(current.role).value} to {role.value}")

    membership = TeamMembership(
        user_id=user_id,
        team_id=team_id,
        role=role,
        joined_at=joined,
    )
    db.add(membership)
    await db.flush()
    logger.info(f"User {user_id} joined team {team_id} as {role.value} at {joined.isoformat()}")
    return membership


async def leave_team(
    db: AsyncSession,
    user_id: int,
    team_id: int,
    left_at: Optional[Moment] = None,
) -> TeamMembership:
    """Close the user's open interval on a team, keeping it in history."""
    left = to_utc(left_at) if left_at is not None else datetime.now(timezone.utc)
    history = await _intervals_for_pair(db, user_id, team_id)
    current = next((iv for iv in history if iv.left_at is None), None)

    if current is None:
        raise MembershipError(f"User {user_id} has no open membership on team {team_id}")
    if left < to_utc(current.joined_at):
        raise MembershipError(
            f"Departure {left.isoformat()} precedes join date {to_utc(current.joined_at).isoformat()}"
        )

    current.left_at = left
    await db.flush()
    logger.info(f"User {user_id} left team {team_id} at {left.isoformat()}")
    return current


# ── Team management ───────────────────────────────────────


async def _require_users(db: AsyncSession, user_ids: Iterable[int]) -> None:
    ids = set(user_ids)
    if not ids:
        return
    result = await db.execute(select(User.id).where(User.id.in_(ids)))
    missing = sorted(ids - set(result.scalars().all()))
    if missing:
        raise RecordNotFoundError(f"Users not found: {missing}")


async def _open_members(db: AsyncSession, team_id: int) -> Dict[int, MembershipRole]:
    result = await db.execute(
        select(TeamMembership).where(
            TeamMembership.team_id == team_id,
            TeamMembership.left_at.is_(None),
        )
    )
    return {row.user_id: MembershipRole(row.role) for row in result.scalars().all()}


async def create_team(
    db: AsyncSession,
    manager_id: int,
    team_name: str = "New Team",
    team_type: TeamType = TeamType.SALES,
    salesman_ids: Iterable[int] = (),
    supplementer_ids: Iterable[int] = (),
    joined_at: Optional[Moment] = None,
) -> Team:
    """Create a team and open the manager's and members' intervals at `joined_at`.

    A user listed under more than one role keeps the first one, manager first.
    """
    joined = to_utc(joined_at) if joined_at is not None else datetime.now(timezone.utc)
    salesman_ids = list(salesman_ids)
    supplementer_ids = list(supplementer_ids)
    await _require_users(db, [manager_id, *salesman_ids, *supplementer_ids])

    team = Team(team_name=team_name, team_type=TeamType(team_type), manager_id=manager_id)
    db.add(team)
    await db.flush()

    roles: Dict[int, MembershipRole] = {manager_id: MembershipRole.MANAGER}
    for user_id in salesman_ids:
        roles.setdefault(user_id, MembershipRole.SALESMAN)
    for user_id in supplementer_ids:
        roles.setdefault(user_id, MembershipRole.SUPPLEMENTER)

    for user_id, role in roles.items():
        await join_team(db, user_id, team.id, role, joined)

    logger.info(f"Created team {team.id} '{team_name}' with {len(roles)} members")
    return team


async def update_team(
    db: AsyncSession,
    team_id: int,
    *,
    team_name: Optional[str] = None,
    team_type: Optional[TeamType] = None,
    manager_id: Optional[int] = None,
    salesman_ids: Optional[Iterable[int]] = None,
    supplementer_ids: Optional[Iterable[int]] = None,
    effective_at: Optional[Moment] = None,
) -> Team:
    """Change a team's details or roster as of `effective_at`.

    Omitted fields are left alone. A given roster replaces the current
    members of that role: departing members have their interval closed,
    newcomers get a new one and role changes do both. Nothing before
    `effective_at` is touched.
    """
    team = await db.get(Team, team_id)
    if team is None:
        raise RecordNotFoundError(f"Team {team_id} not found")
    at = to_utc(effective_at) if effective_at is not None else datetime.now(timezone.utc)

    if team_name is not None:
        team.team_name = team_name
    if team_type is not None:
        team.team_type = TeamType(team_type)

    requested: Dict[MembershipRole, List[int]] = {}
    if salesman_ids is not None:
        requested[MembershipRole.SALESMAN] = list(salesman_ids)
    if supplementer_ids is not None:
        requested[MembershipRole.SUPPLEMENTER] = list(supplementer_ids)
    if manager_id is not None:
        requested[MembershipRole.MANAGER] = [manager_id]
    await _require_users(db, [user_id for ids in requested.values() for user_id in ids])

    # Manager last so it wins over a roster listing the same user
    targets: Dict[int, MembershipRole] = {}
    for role, ids in requested.items():
        for user_id in ids:
            targets[user_id] = role

    current = await _open_members(db, team_id)
    for user_id, role in current.items():
        if role in requested and user_id not in targets:
            await leave_team(db, user_id, team_id, at)
    for user_id, role in targets.items():
        await join_team(db, user_id, team_id, role, at)

    if manager_id is not None:
        team.manager_id = manager_id
    await db.flush()
    logger.info(f"Updated team {team_id} as of {at.isoformat()}")
    return team
