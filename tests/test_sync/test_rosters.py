"""
Tests for RosterService reconciliation and roster transactions.

The invariant checked throughout: at most one current entry per
(team, player, season).
"""
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from conftest import current_entries, make_entry, make_player  # noqa: E402

from league_sync.exceptions import RosterTransactionError  # noqa: E402
from league_sync.models import TeamConference  # noqa: E402
from league_sync.models.enums import ConflictStrategy, RosterAction, RosterStatus  # noqa: E402
from league_sync.services.sync.conflicts import ConflictResolution  # noqa: E402
from league_sync.services.sync.rosters import (  # noqa: E402
    RosterService,
    RosterTransaction,
    classify_roster_status,
)


@pytest.fixture
def players(db_session, league):
    return [make_player(db_session, str(100 + i), f"Player {i}").id for i in range(4)]


def assert_single_current(db_session):
    seen = set()
    for entry in current_entries(db_session):
        key = (entry.team_id, entry.player_id, entry.season_id)
        assert key not in seen, f"duplicate current entry for {key}"
        seen.add(key)


# ─────────────────────────────────────────────────────────────
# classify_roster_status() Tests
# ─────────────────────────────────────────────────────────────

class TestClassifyRosterStatus:

    def test_starter_is_active(self):
        assert classify_roster_status("1", ["1"], []) == RosterStatus.ACTIVE

    def test_reserve_is_ir(self):
        assert classify_roster_status("1", [], ["1"]) == RosterStatus.IR

    def test_taxi(self):
        assert classify_roster_status("1", [], [], ["1"]) == RosterStatus.TAXI

    def test_everything_else_is_bench(self):
        assert classify_roster_status("1", ["2"], ["3"]) == RosterStatus.BENCH


# ─────────────────────────────────────────────────────────────
# reconcile_team() Tests
# ─────────────────────────────────────────────────────────────

class TestReconcileTeam:

    @pytest.mark.asyncio
    async def test_creates_entries_and_history(self, store, db_session, players):
        service = RosterService(store)

        outcome = await service.reconcile_team(1, 1, 2024, 3, {
            players[0]: RosterStatus.ACTIVE,
            players[1]: RosterStatus.BENCH,
        })

        assert outcome.created == 2
        entries = current_entries(db_session, team_id=1)
        assert {(e.player_id, e.roster_status, e.week, e.conference_id) for e in entries} == {
            (players[0], "active", 3, 1),
            (players[1], "bench", 3, 1),
        }
        history = await service.get_history(season_id=2024)
        assert {h['action_type'] for h in history} == {"add"}

    @pytest.mark.asyncio
    async def test_rerun_is_a_no_op(self, store, db_session, players):
        service = RosterService(store)
        desired = {players[0]: RosterStatus.ACTIVE, players[1]: RosterStatus.BENCH}
        await service.reconcile_team(1, 1, 2024, 3, desired)
        before = {(e.id, e.last_updated) for e in current_entries(db_session)}

        outcome = await service.reconcile_team(1, 1, 2024, 3, desired)

        assert outcome.created == 0
        assert outcome.updated == 0
        assert outcome.unchanged == 2
        assert {(e.id, e.last_updated) for e in current_entries(db_session)} == before
        assert len(await service.get_history()) == 2

    @pytest.mark.asyncio
    async def test_later_week_advances_current_week_only(self, store, db_session, players):
        service = RosterService(store)
        await service.reconcile_team(1, 1, 2024, 3, {players[0]: RosterStatus.BENCH})

        outcome = await service.reconcile_team(1, 1, 2024, 5, {players[0]: RosterStatus.BENCH})

        entry = current_entries(db_session, player_id=players[0])[0]
        assert outcome.updated == 1
        assert entry.week == 3
        assert entry.current_week == 5

    @pytest.mark.asyncio
    async def test_missing_player_is_dropped(self, store, db_session, players):
        service = RosterService(store)
        await service.reconcile_team(1, 1, 2024, 3, {players[0]: RosterStatus.BENCH, players[1]: RosterStatus.BENCH})

        outcome = await service.reconcile_team(1, 1, 2024, 4, {players[0]: RosterStatus.BENCH})

        assert outcome.dropped == 1
        assert [e.player_id for e in current_entries(db_session)] == [players[0]]
        drops = [h for h in await service.get_history() if h['action_type'] == "drop"]
        assert drops[0]['player_id'] == players[1]
        assert drops[0]['from_team_id'] == 1

    @pytest.mark.asyncio
    async def test_move_within_conference_is_a_trade(self, store, db_session, players):
        service = RosterService(store)
        await service.reconcile_team(1, 1, 2024, 3, {players[0]: RosterStatus.BENCH})

        outcome = await service.reconcile_team(2, 1, 2024, 4, {players[0]: RosterStatus.ACTIVE})

        assert outcome.moved == 1
        holders = current_entries(db_session, player_id=players[0])
        assert [h.team_id for h in holders] == [2]
        trade = [h for h in await service.get_history() if h['action_type'] == "trade"][0]
        assert (trade['from_team_id'], trade['to_team_id']) == (1, 2)

    @pytest.mark.asyncio
    async def test_other_conference_holding_is_left_alone(self, store, db_session, players):
        service = RosterService(store)
        await service.reconcile_team(1, 1, 2024, 3, {players[0]: RosterStatus.BENCH})

        await service.reconcile_team(3, 2, 2024, 3, {players[0]: RosterStatus.BENCH})

        holders = current_entries(db_session, player_id=players[0])
        assert sorted(h.team_id for h in holders) == [1, 3]

    @pytest.mark.asyncio
    async def test_team_in_two_conferences_keeps_both_rosters(self, store, db_session, players):
        db_session.add(TeamConference(team_id=1, conference_id=2, roster_id="3"))
        db_session.commit()
        service = RosterService(store)
        await service.reconcile_team(1, 1, 2024, 3, {players[0]: RosterStatus.BENCH})

        outcome = await service.reconcile_team(1, 2, 2024, 3, {players[1]: RosterStatus.BENCH})

        assert outcome.dropped == 0
        entries = current_entries(db_session, team_id=1)
        assert {(e.player_id, e.conference_id) for e in entries} == {(players[0], 1), (players[1], 2)}

        rerun = await service.reconcile_team(1, 1, 2024, 3, {players[0]: RosterStatus.BENCH})
        assert (rerun.created, rerun.dropped, rerun.unchanged) == (0, 0, 1)
        assert [h['action_type'] for h in await service.get_history()] == ["add", "add"]

    @pytest.mark.asyncio
    async def test_unscoped_entry_claimed_only_by_single_conference_team(self, store, db_session, players):
        make_entry(db_session, 1, players[0], week=1)
        service = RosterService(store)

        outcome = await service.reconcile_team(1, 1, 2024, 1, {players[0]: RosterStatus.BENCH})

        assert (outcome.created, outcome.updated) == (0, 1)
        assert current_entries(db_session, player_id=players[0])[0].conference_id == 1

    @pytest.mark.asyncio
    async def test_unscoped_entry_left_alone_for_multi_conference_team(self, store, db_session, players):
        db_session.add(TeamConference(team_id=1, conference_id=2, roster_id="3"))
        db_session.commit()
        make_entry(db_session, 1, players[0], week=1)

        outcome = await RosterService(store).reconcile_team(1, 2, 2024, 1, {players[1]: RosterStatus.BENCH})

        assert outcome.dropped == 0
        unscoped = current_entries(db_session, player_id=players[0])
        assert [(e.team_id, e.conference_id) for e in unscoped] == [(1, None)]

    @pytest.mark.asyncio
    async def test_supersedes_duplicate_current_entries(self, store, db_session, players):
        make_entry(db_session, 1, players[0], week=1, conference_id=1,
                   last_updated=datetime.utcnow() - timedelta(hours=2))
        make_entry(db_session, 1, players[0], week=1, conference_id=1,
                   last_updated=datetime.utcnow() - timedelta(hours=1))

        outcome = await RosterService(store).reconcile_team(1, 1, 2024, 1, {players[0]: RosterStatus.BENCH})

        assert outcome.superseded_duplicates == 1
        assert_single_current(db_session)

    @pytest.mark.asyncio
    async def test_status_change_latest_wins(self, store, db_session, players):
        make_entry(db_session, 1, players[0], week=1, conference_id=1, status="bench",
                   last_updated=datetime.utcnow() - timedelta(hours=1))

        outcome = await RosterService(store).reconcile_team(1, 1, 2024, 1, {players[0]: RosterStatus.ACTIVE})

        assert outcome.updated == 1
        assert current_entries(db_session)[0].roster_status == "active"

    @pytest.mark.asyncio
    async def test_status_change_older_snapshot_loses(self, store, db_session, players):
        make_entry(db_session, 1, players[0], week=1, conference_id=1, status="bench")

        outcome = await RosterService(store).reconcile_team(
            1, 1, 2024, 1, {players[0]: RosterStatus.ACTIVE},
            observed_at=datetime.utcnow() - timedelta(days=1),
        )

        assert outcome.unchanged == 1
        assert current_entries(db_session)[0].roster_status == "bench"

    @pytest.mark.asyncio
    async def test_manual_review_reports_conflict(self, store, db_session, players):
        make_entry(db_session, 1, players[0], week=1, conference_id=1, status="bench")
        service = RosterService(store, ConflictResolution(strategy=ConflictStrategy.MANUAL_REVIEW))

        outcome = await service.reconcile_team(1, 1, 2024, 1, {players[0]: RosterStatus.IR})

        assert outcome.conflicts == [{
            'entry_id': current_entries(db_session)[0].id,
            'team_id': 1,
            'player_id': players[0],
            'local_status': "bench",
            'remote_status': "ir",
        }]
        assert current_entries(db_session)[0].roster_status == "bench"


# ─────────────────────────────────────────────────────────────
# apply_transaction() / revert_transaction() Tests
# ─────────────────────────────────────────────────────────────

class TestTransactions:

    @pytest.mark.asyncio
    async def test_add_then_drop(self, store, db_session, players):
        service = RosterService(store)
        add = RosterTransaction(RosterAction.ADD, players[0], 2024, 5, to_team_id=1, conference_id=1)

        result = await service.apply_transaction(add)
        assert result.created_entry_id is not None
        assert [e.team_id for e in current_entries(db_session)] == [1]

        await service.apply_transaction(
            RosterTransaction(RosterAction.DROP, players[0], 2024, 6, from_team_id=1, conference_id=1)
        )
        assert current_entries(db_session) == []
        assert [h['action_type'] for h in await service.get_history(player_id=players[0])] == ["drop", "add"]

    @pytest.mark.asyncio
    async def test_trade_moves_entry_and_keeps_status(self, store, db_session, players):
        make_entry(db_session, 1, players[0], week=2, conference_id=1, status="active")
        service = RosterService(store)

        result = await service.apply_transaction(
            RosterTransaction(RosterAction.TRADE, players[0], 2024, 7, from_team_id=1, to_team_id=2, conference_id=1)
        )

        holders = current_entries(db_session, player_id=players[0])
        assert [(h.team_id, h.roster_status, h.week) for h in holders] == [(2, "active", 7)]
        assert len(result.superseded_entry_ids) == 1
        assert_single_current(db_session)

    @pytest.mark.asyncio
    async def test_revert_add(self, store, db_session, players):
        service = RosterService(store)
        add = RosterTransaction(RosterAction.WAIVER_CLAIM, players[0], 2024, 5, to_team_id=1, conference_id=1)
        await service.apply_transaction(add)

        await service.revert_transaction(add)

        assert current_entries(db_session) == []

    @pytest.mark.asyncio
    async def test_revert_trade(self, store, db_session, players):
        make_entry(db_session, 1, players[0], week=2, conference_id=1)
        service = RosterService(store)
        trade = RosterTransaction(RosterAction.TRADE, players[0], 2024, 7, from_team_id=1, to_team_id=2, conference_id=1)
        await service.apply_transaction(trade)

        await service.revert_transaction(trade)

        assert [h.team_id for h in current_entries(db_session, player_id=players[0])] == [1]

    @pytest.mark.asyncio
    async def test_drop_unheld_player_rejected(self, store, players):
        with pytest.raises(RosterTransactionError):
            await RosterService(store).apply_transaction(
                RosterTransaction(RosterAction.DROP, players[0], 2024, 5, from_team_id=1)
            )

    @pytest.mark.asyncio
    async def test_add_owned_in_same_conference_rejected(self, store, db_session, players):
        make_entry(db_session, 2, players[0], conference_id=1)

        with pytest.raises(RosterTransactionError):
            await RosterService(store).apply_transaction(
                RosterTransaction(RosterAction.ADD, players[0], 2024, 5, to_team_id=1, conference_id=1)
            )

    @pytest.mark.asyncio
    async def test_add_to_full_roster_rejected(self, store, db_session, players):
        make_entry(db_session, 1, players[0], conference_id=1)
        service = RosterService(store, max_roster_size=1)

        with pytest.raises(RosterTransactionError):
            await service.apply_transaction(
                RosterTransaction(RosterAction.ADD, players[1], 2024, 5, to_team_id=1, conference_id=1)
            )

    @pytest.mark.asyncio
    async def test_add_requires_target_team(self, store, players):
        with pytest.raises(RosterTransactionError):
            await RosterService(store).apply_transaction(
                RosterTransaction(RosterAction.ADD, players[0], 2024, 5)
            )
