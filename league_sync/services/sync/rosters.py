"""
Roster reconciliation and roster transactions.

RosterEntry rows are never deleted here. A player leaving a roster marks the
entry not current and stamps removed_date, and every change is written to
the roster history log. For a given (team, player, season) at most one entry
is current; `_create_entry` supersedes any stray current row before it
inserts.
"""
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from league_sync.core.config import settings
from league_sync.exceptions import RosterTransactionError
from league_sync.models.enums import RosterAction, RosterStatus
from league_sync.repositories.store import StoreGateway
from league_sync.services.sync.conflicts import ConflictResolution

logger = logging.getLogger(__name__)

ROSTERS = 'team_rosters'
HISTORY = 'roster_history'
JUNCTIONS = 'team_conference_junction'


def classify_roster_status(
    external_player_id: str,
    starters: Iterable[str],
    reserve: Iterable[str],
    taxi: Iterable[str] = (),
) -> RosterStatus:
    """starter -> active, reserve -> ir, taxi -> taxi, anything else -> bench."""
    if external_player_id in starters:
        return RosterStatus.ACTIVE
    if external_player_id in reserve:
        return RosterStatus.IR
    if external_player_id in taxi:
        return RosterStatus.TAXI
    return RosterStatus.BENCH


@dataclass
class RosterTransaction:
    """
    A single roster move.

    Acquisitions (add, waiver_claim, free_agent_pickup) need to_team_id,
    drop needs from_team_id, trade needs both.
    """
    action: RosterAction
    player_id: int
    season_id: int
    week: int
    to_team_id: Optional[int] = None
    from_team_id: Optional[int] = None
    conference_id: Optional[int] = None
    roster_status: RosterStatus = RosterStatus.BENCH
    notes: Optional[str] = None

    def inverse(self) -> "RosterTransaction":
        """The transaction that undoes this one."""
        if self.action.acquires:
            return replace(self, action=RosterAction.DROP, from_team_id=self.to_team_id,
                           to_team_id=None, notes=f"Revert {self.action.value}")
        if self.action == RosterAction.DROP:
            return replace(self, action=RosterAction.ADD, to_team_id=self.from_team_id,
                           from_team_id=None, notes="Revert drop")
        if self.action == RosterAction.TRADE:
            return replace(self, from_team_id=self.to_team_id, to_team_id=self.from_team_id,
                           notes="Revert trade")
        raise ValueError(f"Unhandled roster action: {self.action}")


@dataclass
class TransactionResult:
    action: RosterAction
    created_entry_id: Optional[int] = None
    superseded_entry_ids: List[int] = field(default_factory=list)
    history_id: Optional[int] = None


@dataclass
class ReconcileOutcome:
    """Counts from reconciling one team's roster against a snapshot."""
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    dropped: int = 0
    moved: int = 0
    superseded_duplicates: int = 0
    conflicts: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.created + self.updated + self.unchanged


class RosterService:
    """
    Writes roster state through the store gateway.

    Args:
        store: Store gateway
        conflict_resolution: Policy for status disagreements during sync
        max_roster_size: Upper bound enforced on acquisitions
    """

    def __init__(
        self,
        store: StoreGateway,
        conflict_resolution: Optional[ConflictResolution] = None,
        max_roster_size: Optional[int] = None,
    ):
        self.store = store
        self.conflict_resolution = conflict_resolution or ConflictResolution()
        self.max_roster_size = max_roster_size or settings.MAX_ROSTER_SIZE

    # ========================================================================
    # Queries
    # ========================================================================

    async def get_current_roster(
        self,
        team_id: int,
        season_id: int,
        conference_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        filters = [('team_id', 'eq', team_id), ('season_id', 'eq', season_id), ('is_current', 'eq', True)]
        if conference_id is not None:
            filters.append(('conference_id', 'eq', conference_id))
        return await self.store.list_all(ROSTERS, filters, order_by=['-last_updated', '-id'])

    async def find_current_holders(
        self,
        player_id: int,
        season_id: int,
        conference_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Current entries for a player, optionally limited to one conference."""
        filters = [('player_id', 'eq', player_id), ('season_id', 'eq', season_id), ('is_current', 'eq', True)]
        if conference_id is not None:
            filters.append(('conference_id', 'eq', conference_id))
        return await self.store.list_all(ROSTERS, filters, order_by=['-last_updated', '-id'])

    async def get_history(
        self,
        player_id: Optional[int] = None,
        season_id: Optional[int] = None,
        team_id: Optional[int] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """Roster history, newest first."""
        filters = []
        if player_id is not None:
            filters.append(('player_id', 'eq', player_id))
        if season_id is not None:
            filters.append(('season_id', 'eq', season_id))
        history = await self.store.page(HISTORY, filters, order_by=['-transaction_date', '-id'], page_size=limit)
        if team_id is None:
            return history.items
        return [h for h in history.items if team_id in (h['from_team_id'], h['to_team_id'])]

    # ========================================================================
    # Primitive writes
    # ========================================================================

    async def _supersede(self, entry: Dict[str, Any], when: datetime) -> None:
        await self.store.update(ROSTERS, entry['id'], {
            'is_current': False,
            'removed_date': when,
            'last_updated': when,
        })

    async def _create_entry(
        self,
        team_id: int,
        player_id: int,
        season_id: int,
        week: int,
        status: RosterStatus,
        conference_id: Optional[int],
        when: datetime,
    ) -> int:
        stray = await self.store.list_all(ROSTERS, [
            ('team_id', 'eq', team_id),
            ('player_id', 'eq', player_id),
            ('season_id', 'eq', season_id),
            ('is_current', 'eq', True),
        ])
        for entry in stray:
            await self._supersede(entry, when)

        return await self.store.create(ROSTERS, {
            'team_id': team_id,
            'player_id': player_id,
            'season_id': season_id,
            'conference_id': conference_id,
            'week': week,
            'current_week': week,
            'roster_status': RosterStatus(status).value,
            'is_current': True,
            'added_date': when,
            'last_updated': when,
        })

    async def _log(
        self,
        action: RosterAction,
        player_id: int,
        season_id: int,
        week: int,
        when: datetime,
        from_team_id: Optional[int] = None,
        to_team_id: Optional[int] = None,
        conference_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> int:
        return await self.store.create(HISTORY, {
            'player_id': player_id,
            'season_id': season_id,
            'week': week,
            'action_type': action.value,
            'from_team_id': from_team_id,
            'to_team_id': to_team_id,
            'conference_id': conference_id,
            'notes': notes,
            'transaction_date': when,
        })

    # ========================================================================
    # Sync reconciliation
    # ========================================================================

    async def _reconcile_scope(
        self,
        team_id: int,
        season_id: int,
        conference_id: Optional[int],
    ) -> List[Dict[str, Any]]:
        """
        Current entries a conference snapshot is allowed to touch.

        A team can sit in several conferences, so a snapshot only covers the
        entries reconciled from its own conference. Entries with no
        conference are claimed only when the team has a single active
        junction and the owner is therefore unambiguous.
        """
        entries = await self.get_current_roster(team_id, season_id)
        if conference_id is None:
            return entries

        claim_unscoped = False
        if any(e['conference_id'] is None for e in entries):
            junctions = await self.store.list_all(JUNCTIONS, [
                ('team_id', 'eq', team_id),
                ('is_active', 'eq', True),
            ])
            claim_unscoped = len(junctions) <= 1

        return [
            e for e in entries
            if e['conference_id'] == conference_id or (e['conference_id'] is None and claim_unscoped)
        ]

    async def reconcile_team(
        self,
        team_id: int,
        conference_id: Optional[int],
        season_id: int,
        week: int,
        desired: Dict[int, RosterStatus],
        observed_at: Optional[datetime] = None,
    ) -> ReconcileOutcome:
        """
        Make the team's current roster match a snapshot.

        Safe to re-run: an unchanged snapshot produces no writes. Players
        currently held by another team in the same conference are moved
        (logged as trade); players no longer listed are dropped.

        Args:
            team_id: Local team id
            conference_id: Conference the snapshot came from
            season_id: Season
            week: Week the snapshot describes
            desired: Local player id -> status from the snapshot
            observed_at: Snapshot time, used by latest_wins
        """
        now = observed_at or datetime.utcnow()
        outcome = ReconcileOutcome()

        current: Dict[int, Dict[str, Any]] = {}
        for entry in await self._reconcile_scope(team_id, season_id, conference_id):
            if entry['player_id'] in current:
                # Older duplicate of an entry already kept
                await self._supersede(entry, now)
                outcome.superseded_duplicates += 1
            else:
                current[entry['player_id']] = entry

        for player_id, status in desired.items():
            status = RosterStatus(status)
            entry = current.pop(player_id, None)

            if entry is not None:
                fields: Dict[str, Any] = {}
                if entry['roster_status'] != status.value:
                    remote = {
                        'id': None,
                        'team_id': team_id,
                        'player_id': player_id,
                        'roster_status': status.value,
                        'last_updated': now,
                    }
                    decision = self.conflict_resolution.decide(entry, remote)
                    if decision.needs_review:
                        outcome.conflicts.append({
                            'entry_id': entry['id'],
                            'team_id': team_id,
                            'player_id': player_id,
                            'local_status': entry['roster_status'],
                            'remote_status': status.value,
                        })
                    if decision.use_remote:
                        fields['roster_status'] = status.value
                if week > entry['current_week']:
                    fields['current_week'] = week
                if conference_id is not None and entry.get('conference_id') != conference_id:
                    fields['conference_id'] = conference_id

                if fields:
                    fields['last_updated'] = now
                    await self.store.update(ROSTERS, entry['id'], fields)
                    outcome.updated += 1
                else:
                    outcome.unchanged += 1
                continue

            action = RosterAction.ADD
            from_team_id = None
            if conference_id is not None:
                for holder in await self.find_current_holders(player_id, season_id, conference_id):
                    if holder['team_id'] == team_id:
                        continue
                    await self._supersede(holder, now)
                    action = RosterAction.TRADE
                    from_team_id = holder['team_id']
                    outcome.moved += 1

            await self._create_entry(team_id, player_id, season_id, week, status, conference_id, now)
            await self._log(action, player_id, season_id, week, now,
                            from_team_id=from_team_id, to_team_id=team_id,
                            conference_id=conference_id, notes="Synced from Sleeper")
            outcome.created += 1

        for entry in current.values():
            await self._supersede(entry, now)
            await self._log(RosterAction.DROP, entry['player_id'], season_id, week, now,
                            from_team_id=team_id, conference_id=conference_id,
                            notes="Not on synced roster")
            outcome.dropped += 1

        return outcome

    # ========================================================================
    # Transactions
    # ========================================================================

    async def _require_current(self, team_id: int, txn: RosterTransaction) -> Dict[str, Any]:
        holders = [h for h in await self.find_current_holders(txn.player_id, txn.season_id)
                   if h['team_id'] == team_id]
        if not holders:
            raise RosterTransactionError(f"Team {team_id} does not hold player {txn.player_id}")
        return holders[0]

    async def _check_can_acquire(self, team_id: int, txn: RosterTransaction, ignore_team: Optional[int] = None) -> None:
        holders = await self.find_current_holders(txn.player_id, txn.season_id, txn.conference_id)
        for holder in holders:
            if holder['team_id'] == team_id:
                raise RosterTransactionError(f"Player {txn.player_id} is already on team {team_id}")
            if txn.conference_id is not None and holder['team_id'] != ignore_team:
                raise RosterTransactionError(
                    f"Player {txn.player_id} is already owned by team {holder['team_id']} "
                    f"in conference {txn.conference_id}"
                )

        roster = await self.get_current_roster(team_id, txn.season_id, txn.conference_id)
        if len(roster) >= self.max_roster_size:
            raise RosterTransactionError(f"Team {team_id} roster is full ({self.max_roster_size} players)")

    async def apply_transaction(self, txn: RosterTransaction) -> TransactionResult:
        """
        Apply a roster move and log it.

        Raises:
            RosterTransactionError: The move is not valid for current state
            StoreError: A write failed part way
        """
        now = datetime.utcnow()
        result = TransactionResult(action=txn.action)

        if txn.action.acquires:
            if txn.to_team_id is None:
                raise RosterTransactionError(f"{txn.action.value} requires to_team_id")
            await self._check_can_acquire(txn.to_team_id, txn)
            result.created_entry_id = await self._create_entry(
                txn.to_team_id, txn.player_id, txn.season_id, txn.week,
                txn.roster_status, txn.conference_id, now,
            )
        elif txn.action == RosterAction.DROP:
            if txn.from_team_id is None:
                raise RosterTransactionError("drop requires from_team_id")
            entry = await self._require_current(txn.from_team_id, txn)
            await self._supersede(entry, now)
            result.superseded_entry_ids.append(entry['id'])
        elif txn.action == RosterAction.TRADE:
            if txn.from_team_id is None or txn.to_team_id is None:
                raise RosterTransactionError("trade requires from_team_id and to_team_id")
            entry = await self._require_current(txn.from_team_id, txn)
            await self._check_can_acquire(txn.to_team_id, txn, ignore_team=txn.from_team_id)
            await self._supersede(entry, now)
            result.superseded_entry_ids.append(entry['id'])
            result.created_entry_id = await self._create_entry(
                txn.to_team_id, txn.player_id, txn.season_id, txn.week,
                RosterStatus(entry['roster_status']), txn.conference_id, now,
            )
        else:
            raise ValueError(f"Unhandled roster action: {txn.action}")

        result.history_id = await self._log(
            txn.action, txn.player_id, txn.season_id, txn.week, now,
            from_team_id=txn.from_team_id, to_team_id=txn.to_team_id,
            conference_id=txn.conference_id, notes=txn.notes,
        )
        logger.info(
            f"Roster {txn.action.value}: player {txn.player_id} "
            f"{txn.from_team_id or '-'} -> {txn.to_team_id or '-'}"
        )
        return result

    async def revert_transaction(self, txn: RosterTransaction) -> TransactionResult:
        """Apply the inverse of a previously applied transaction."""
        return await self.apply_transaction(txn.inverse())
