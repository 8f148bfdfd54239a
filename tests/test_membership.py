"""
Tests for the time-indexed team membership history.

Covers:
- Interval coverage at boundaries
- Snapshots at a past date
- Append-only join / leave / role change persistence
"""

from datetime import date, datetime, timezone

import pytest

from commission_tracker.models import MembershipRole, Team, TeamType, User
from commission_tracker.services.errors import MembershipError, RecordNotFoundError
from commission_tracker.services.membership import (
    MembershipIndex,
    MembershipInterval,
    create_team,
    get_membership_history,
    join_team,
    leave_team,
    load_membership_index,
    to_utc,
    update_team,
)


def _dt(year, month, day):
    return datetime(year, month, day, tzinfo=timezone.utc)


# ── In-memory index ───────────────────────────────────────


class TestMembershipIndex:
    def test_interval_bounds(self):
        interval = MembershipInterval(1, 10, MembershipRole.SALESMAN, _dt(2023, 1, 1), _dt(2023, 6, 1))
        assert interval.covers(_dt(2023, 1, 1))
        assert interval.covers(_dt(2023, 5, 31))
        assert not interval.covers(_dt(2023, 6, 1))
        assert not interval.covers(_dt(2022, 12, 31))

    def test_open_interval_covers_future(self):
        interval = MembershipInterval(1, 10, MembershipRole.SALESMAN, _dt(2023, 1, 1))
        assert interval.covers(_dt(2030, 1, 1))

    def test_plain_date_is_midnight_utc(self):
        assert to_utc(date(2023, 1, 1)) == _dt(2023, 1, 1)

    def test_membership_at_past_date(self):
        index = MembershipIndex(
            [
                MembershipInterval(1, 10, MembershipRole.SALESMAN, _dt(2023, 1, 1), _dt(2023, 6, 1)),
                MembershipInterval(1, 20, MembershipRole.SALESMAN, _dt(2023, 6, 1)),
            ]
        )
        assert index.membership_at(1, _dt(2023, 3, 1)).team_id == 10
        assert index.membership_at(1, _dt(2023, 6, 1)).team_id == 20
        assert index.membership_at(1, _dt(2022, 1, 1)) is None

    def test_overlap_resolved_by_latest_join(self):
        index = MembershipIndex(
            [
                MembershipInterval(1, 10, MembershipRole.SALESMAN, _dt(2023, 1, 1)),
                MembershipInterval(1, 20, MembershipRole.SALESMAN, _dt(2023, 2, 1)),
            ]
        )
        assert index.membership_at(1, _dt(2023, 3, 1)).team_id == 20

    def test_team_snapshot_groups_by_role(self):
        index = MembershipIndex(
            [
                MembershipInterval(1, 10, MembershipRole.MANAGER, _dt(2022, 1, 1)),
                MembershipInterval(3, 10, MembershipRole.SALESMAN, _dt(2022, 1, 1)),
                MembershipInterval(2, 10, MembershipRole.SALESMAN, _dt(2022, 1, 1)),
                MembershipInterval(4, 10, MembershipRole.SUPPLEMENTER, _dt(2022, 1, 1), _dt(2022, 6, 1)),
                MembershipInterval(5, 11, MembershipRole.SALESMAN, _dt(2022, 1, 1)),
            ],
            hire_dates={2: date(2021, 5, 1)},
        )
        snapshot = index.team_snapshot_at(10, _dt(2023, 1, 1))
        assert [m.user_id for m in snapshot.managers] == [1]
        assert [m.user_id for m in snapshot.salesmen] == [2, 3]
        assert snapshot.supplementers == ()
        assert snapshot.find(2).hire_date == date(2021, 5, 1)
        assert snapshot.find(5) is None

    def test_historical_context_none_without_team(self):
        index = MembershipIndex([MembershipInterval(1, 10, MembershipRole.SALESMAN, _dt(2023, 1, 1))])
        assert index.historical_team_context_for(1, _dt(2022, 1, 1)) is None
        assert index.historical_team_context_for(2, _dt(2024, 1, 1)) is None

    def test_len_counts_intervals(self):
        index = MembershipIndex(
            [
                MembershipInterval(1, 10, MembershipRole.SALESMAN, _dt(2023, 1, 1), _dt(2023, 2, 1)),
                MembershipInterval(1, 10, MembershipRole.MANAGER, _dt(2023, 2, 1)),
            ]
        )
        assert len(index) == 2
        assert len(index.intervals_for(1)) == 2


# ── Persistence ───────────────────────────────────────────


async def _seed_team(db_session):
    manager = User(name="Mia Manager", role="Sales Manager", hire_date=date(2020, 1, 1))
    salesman = User(name="Sam Salesman", role="Salesman", hire_date=date(2022, 3, 1))
    db_session.add_all([manager, salesman])
    await db_session.flush()
    team = Team(team_name="North", manager_id=manager.id)
    db_session.add(team)
    await db_session.flush()
    return manager, salesman, team


class TestMembershipPersistence:
    @pytest.mark.asyncio
    async def test_join_opens_interval(self, db_session):
        _, salesman, team = await _seed_team(db_session)

        membership = await join_team(db_session, salesman.id, team.id, MembershipRole.SALESMAN, _dt(2023, 1, 1))

        assert membership.id is not None
        assert membership.left_at is None

    @pytest.mark.asyncio
    async def test_join_same_role_is_idempotent(self, db_session):
        _, salesman, team = await _seed_team(db_session)

        first = await join_team(db_session, salesman.id, team.id, MembershipRole.SALESMAN, _dt(2023, 1, 1))
        second = await join_team(db_session, salesman.id, team.id, MembershipRole.SALESMAN, _dt(2023, 5, 1))

        assert first.id == second.id
        assert len(await get_membership_history(db_session, salesman.id)) == 1

    @pytest.mark.asyncio
    async def test_role_change_keeps_history(self, db_session):
        _, salesman, team = await _seed_team(db_session)

        await join_team(db_session, salesman.id, team.id, MembershipRole.SALESMAN, _dt(2023, 1, 1))
        await join_team(db_session, salesman.id, team.id, MembershipRole.MANAGER, _dt(2023, 7, 1))

        history = await get_membership_history(db_session, salesman.id)
        assert [MembershipRole(m.role) for m in history] == [MembershipRole.MANAGER, MembershipRole.SALESMAN]
        assert to_utc(history[1].left_at) == _dt(2023, 7, 1)
        assert history[0].left_at is None

    @pytest.mark.asyncio
    async def test_role_change_at_join_instant_rejected(self, db_session):
        _, salesman, team = await _seed_team(db_session)

        await join_team(db_session, salesman.id, team.id, MembershipRole.SALESMAN, _dt(2023, 1, 1))

        with pytest.raises(MembershipError):
            await join_team(db_session, salesman.id, team.id, MembershipRole.MANAGER, _dt(2023, 1, 1))

    @pytest.mark.asyncio
    async def test_join_before_existing_history_rejected(self, db_session):
        _, salesman, team = await _seed_team(db_session)

        await join_team(db_session, salesman.id, team.id, MembershipRole.SALESMAN, _dt(2023, 1, 1))
        await leave_team(db_session, salesman.id, team.id, _dt(2023, 6, 1))

        with pytest.raises(MembershipError):
            await join_team(db_session, salesman.id, team.id, MembershipRole.SALESMAN, _dt(2023, 3, 1))

    @pytest.mark.asyncio
    async def test_leave_and_rejoin(self, db_session):
        _, salesman, team = await _seed_team(db_session)

        await join_team(db_session, salesman.id, team.id, MembershipRole.SALESMAN, _dt(2023, 1, 1))
        closed = await leave_team(db_session, salesman.id, team.id, _dt(2023, 6, 1))
        await join_team(db_session, salesman.id, team.id, MembershipRole.SALESMAN, _dt(2024, 1, 1))

        assert to_utc(closed.left_at) == _dt(2023, 6, 1)
        index = await load_membership_index(db_session, [salesman.id])
        assert index.membership_at(salesman.id, _dt(2023, 3, 1)) is not None
        assert index.membership_at(salesman.id, _dt(2023, 9, 1)) is None
        assert index.membership_at(salesman.id, _dt(2024, 2, 1)) is not None

    @pytest.mark.asyncio
    async def test_leave_without_open_interval(self, db_session):
        _, salesman, team = await _seed_team(db_session)

        with pytest.raises(MembershipError):
            await leave_team(db_session, salesman.id, team.id, _dt(2023, 1, 1))

    @pytest.mark.asyncio
    async def test_leave_before_join_rejected(self, db_session):
        _, salesman, team = await _seed_team(db_session)
        await join_team(db_session, salesman.id, team.id, MembershipRole.SALESMAN, _dt(2023, 1, 1))

        with pytest.raises(MembershipError):
            await leave_team(db_session, salesman.id, team.id, _dt(2022, 12, 1))

    @pytest.mark.asyncio
    async def test_load_index_includes_teammates(self, db_session):
        manager, salesman, team = await _seed_team(db_session)
        outsider = User(name="Olive Other", role="Salesman")
        db_session.add(outsider)
        await db_session.flush()
        other_team = Team(team_name="South", manager_id=outsider.id)
        db_session.add(other_team)
        await db_session.flush()

        await join_team(db_session, manager.id, team.id, MembershipRole.MANAGER, _dt(2022, 1, 1))
        await join_team(db_session, salesman.id, team.id, MembershipRole.SALESMAN, _dt(2022, 3, 1))
        await join_team(db_session, outsider.id, other_team.id, MembershipRole.SALESMAN, _dt(2022, 1, 1))

        index = await load_membership_index(db_session, [manager.id])
        context = index.historical_team_context_for(manager.id, _dt(2023, 1, 1))

        assert context.team_id == team.id
        assert context.find_teammate(salesman.id).hire_date == date(2022, 3, 1)
        assert index.intervals_for(outsider.id) == ()

    @pytest.mark.asyncio
    async def test_load_index_for_no_users(self, db_session):
        index = await load_membership_index(db_session, [])
        assert len(index) == 0



async def _make_users(db_session, *names):
    users = [User(name=name, role="Salesman", hire_date=date(2022, 1, 1)) for name in names]
    db_session.add_all(users)
    await db_session.flush()
    return users


class TestTeamManagement:
    @pytest.mark.asyncio
    async def test_create_team_opens_intervals(self, db_session):
        manager, sam, sue = await _make_users(db_session, "Mia", "Sam", "Sue")

        team = await create_team(
            db_session,
            manager.id,
            "North",
            TeamType.SALES,
            salesman_ids=[sam.id],
            supplementer_ids=[sue.id],
            joined_at=_dt(2023, 1, 1),
        )

        assert team.manager_id == manager.id
        index = await load_membership_index(db_session)
        snapshot = index.team_snapshot_at(team.id, _dt(2023, 2, 1))
        assert [m.user_id for m in snapshot.managers] == [manager.id]
        assert [m.user_id for m in snapshot.salesmen] == [sam.id]
        assert [m.user_id for m in snapshot.supplementers] == [sue.id]
        assert index.membership_at(sam.id, _dt(2022, 12, 31)) is None

    @pytest.mark.asyncio
    async def test_create_team_keeps_first_role(self, db_session):
        manager, sam = await _make_users(db_session, "Mia", "Sam")

        team = await create_team(
            db_session,
            manager.id,
            salesman_ids=[sam.id, manager.id],
            supplementer_ids=[sam.id],
            joined_at=_dt(2023, 1, 1),
        )

        index = await load_membership_index(db_session)
        snapshot = index.team_snapshot_at(team.id, _dt(2023, 2, 1))
        assert [m.user_id for m in snapshot.managers] == [manager.id]
        assert [m.user_id for m in snapshot.salesmen] == [sam.id]
        assert snapshot.supplementers == ()

    @pytest.mark.asyncio
    async def test_create_team_unknown_member(self, db_session):
        (manager,) = await _make_users(db_session, "Mia")

        with pytest.raises(RecordNotFoundError):
            await create_team(db_session, manager.id, salesman_ids=[4242])

    @pytest.mark.asyncio
    async def test_roster_replacement_keeps_history(self, db_session):
        manager, sam, sid = await _make_users(db_session, "Mia", "Sam", "Sid")
        team = await create_team(db_session, manager.id, salesman_ids=[sam.id], joined_at=_dt(2023, 1, 1))

        await update_team(db_session, team.id, salesman_ids=[sid.id], effective_at=_dt(2023, 7, 1))

        index = await load_membership_index(db_session)
        before = index.team_snapshot_at(team.id, _dt(2023, 3, 1))
        after = index.team_snapshot_at(team.id, _dt(2023, 8, 1))
        assert [m.user_id for m in before.salesmen] == [sam.id]
        assert [m.user_id for m in after.salesmen] == [sid.id]
        assert [m.user_id for m in after.managers] == [manager.id]
        history = await get_membership_history(db_session, sam.id)
        assert to_utc(history[0].left_at) == _dt(2023, 7, 1)

    @pytest.mark.asyncio
    async def test_role_move_closes_and_opens(self, db_session):
        manager, sam = await _make_users(db_session, "Mia", "Sam")
        team = await create_team(db_session, manager.id, salesman_ids=[sam.id], joined_at=_dt(2023, 1, 1))

        await update_team(
            db_session,
            team.id,
            salesman_ids=[],
            supplementer_ids=[sam.id],
            effective_at=_dt(2023, 5, 1),
        )

        history = await get_membership_history(db_session, sam.id)
        assert [MembershipRole(m.role) for m in history] == [MembershipRole.SUPPLEMENTER, MembershipRole.SALESMAN]
        assert history[0].left_at is None
        assert to_utc(history[1].left_at) == _dt(2023, 5, 1)

    @pytest.mark.asyncio
    async def test_manager_change_and_details(self, db_session):
        old, new = await _make_users(db_session, "Mia", "Max")
        team = await create_team(db_session, old.id, "North", joined_at=_dt(2023, 1, 1))

        await update_team(
            db_session,
            team.id,
            team_name="North East",
            manager_id=new.id,
            effective_at=_dt(2024, 1, 1),
        )

        assert team.team_name == "North East"
        assert team.team_type == TeamType.SALES
        assert team.manager_id == new.id
        index = await load_membership_index(db_session)
        assert [m.user_id for m in index.team_snapshot_at(team.id, _dt(2023, 6, 1)).managers] == [old.id]
        assert [m.user_id for m in index.team_snapshot_at(team.id, _dt(2024, 2, 1)).managers] == [new.id]

    @pytest.mark.asyncio
    async def test_update_unknown_team(self, db_session):
        with pytest.raises(RecordNotFoundError):
            await update_team(db_session, 999, team_name="Ghost")
