"""
Player availability derived from roster history.

A player is owned for (season, week) when a current RosterEntry exists with
entry.week <= week; the newest such entry names the owner. Availability is
conference scoped when a conference id is given: an entry only counts for
the conference it was reconciled from (or, for entries without one, the
team's active junction).

Results are cached in memory for a short TTL and mirrored to the
player_availability_cache collection. The mirror is write-behind: a failed
mirror write is logged and the computed record is still returned.
"""
import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from league_sync.core.config import settings
from league_sync.exceptions import StoreError
from league_sync.models.enums import RosterStatus
from league_sync.repositories.store import StoreGateway
from league_sync.services.cache.swr_cache import CacheState, SwrCache

logger = logging.getLogger(__name__)

ROSTERS = 'team_rosters'
MIRROR = 'player_availability_cache'

FANTASY_POSITIONS = ('QB', 'RB', 'WR', 'TE')


def availability_key(player_id: int, season_id: int, week: int, conference_id: Optional[int] = None) -> str:
    scope = 'all' if conference_id is None else conference_id
    return f"availability:{player_id}:{season_id}:{week}:{scope}"


@dataclass
class AvailabilityRecord:
    player_id: int
    season_id: int
    week: int
    is_available: bool
    conference_id: Optional[int] = None  # scope of the calculation
    owned_by_team_id: Optional[int] = None
    owned_by_conference_id: Optional[int] = None
    roster_status: str = RosterStatus.FREE_AGENT.value
    waiver_priority: Optional[int] = None
    cache_updated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class AvailabilityFilter:
    positions: Optional[List[str]] = None
    nfl_teams: Optional[List[str]] = None
    injury_statuses: Optional[List[str]] = None
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    min_experience: Optional[int] = None
    max_experience: Optional[int] = None

    def to_store_filters(self) -> List[tuple]:
        filters = [
            ('is_current_data', 'eq', True),
            ('position', 'in', self.positions or list(FANTASY_POSITIONS)),
        ]
        if self.nfl_teams:
            filters.append(('nfl_team', 'in', self.nfl_teams))
        if self.injury_statuses:
            filters.append(('injury_status', 'in', self.injury_statuses))
        if self.min_age is not None:
            filters.append(('age', 'ge', self.min_age))
        if self.max_age is not None:
            filters.append(('age', 'le', self.max_age))
        if self.min_experience is not None:
            filters.append(('years_experience', 'ge', self.min_experience))
        if self.max_experience is not None:
            filters.append(('years_experience', 'le', self.max_experience))
        return filters


@dataclass
class AvailabilityStats:
    season_id: int
    week: int
    conference_id: Optional[int] = None
    total_players: int = 0
    available_players: int = 0
    owned_players: int = 0
    free_agents: int = 0
    on_waivers: int = 0
    by_position: Dict[str, Dict[str, int]] = field(default_factory=dict)
    by_team: Dict[str, Dict[str, int]] = field(default_factory=dict)
    calculated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class ConflictingOwnership:
    player_id: int
    player_name: Optional[str]
    conflict_type: str  # 'same_conference' | 'cross_conference'
    teams: List[Dict[str, Any]] = field(default_factory=list)


def _bucket() -> Dict[str, int]:
    return {'total': 0, 'available': 0, 'owned': 0}


class PlayerAvailabilityCalculator:
    """
    Args:
        store: Store gateway
        cache: In-memory cache for computed records
        flag_cross_conference: Report players owned in several conferences
            as conflicts (same-conference duplicates are always reported)
        max_roster_size: Used for open roster spots in team availability
    """

    def __init__(
        self,
        store: StoreGateway,
        cache: Optional[SwrCache] = None,
        flag_cross_conference: Optional[bool] = None,
        max_roster_size: Optional[int] = None,
    ):
        self.store = store
        ttl = settings.AVAILABILITY_CACHE_TTL_SECONDS
        self.cache = cache or SwrCache("availability", stale_after=ttl, expire_after=ttl)
        self.flag_cross_conference = (
            settings.FLAG_CROSS_CONFERENCE_OWNERSHIP if flag_cross_conference is None else flag_cross_conference
        )
        self.max_roster_size = max_roster_size or settings.MAX_ROSTER_SIZE

    # ========================================================================
    # Snapshot helpers
    # ========================================================================

    async def _current_entries(self, season_id: int, week: int, **equal) -> List[Dict[str, Any]]:
        filters = [('season_id', 'eq', season_id), ('week', 'le', week), ('is_current', 'eq', True)]
        filters.extend((name, 'eq', value) for name, value in equal.items())
        return await self.store.list_all(ROSTERS, filters, order_by=['-week', '-last_updated', '-id'])

    async def _team_conferences(self, team_ids: Iterable[int]) -> Dict[int, int]:
        """Team id -> conference id of its first active junction."""
        team_ids = list(set(team_ids))
        if not team_ids:
            return {}
        junctions = await self.store.list_all(
            'team_conference_junction',
            [('team_id', 'in', team_ids), ('is_active', 'eq', True)],
            order_by='id',
        )
        mapping: Dict[int, int] = {}
        for junction in junctions:
            mapping.setdefault(junction['team_id'], junction['conference_id'])
        return mapping

    async def _resolve_entry_conferences(self, entries: List[Dict[str, Any]]) -> Dict[int, Optional[int]]:
        """Entry id -> conference id."""
        unresolved = [e['team_id'] for e in entries if e.get('conference_id') is None]
        team_conferences = await self._team_conferences(unresolved)
        return {
            e['id']: e['conference_id'] if e.get('conference_id') is not None else team_conferences.get(e['team_id'])
            for e in entries
        }

    @staticmethod
    def _derive(
        player_id: int,
        season_id: int,
        week: int,
        entries: Sequence[Dict[str, Any]],
        conferences: Dict[int, Optional[int]],
        conference_id: Optional[int] = None,
    ) -> AvailabilityRecord:
        """Availability from an already loaded set of current entries."""
        candidates = [
            e for e in entries
            if e['player_id'] == player_id and e['week'] <= week and e['is_current']
            and (conference_id is None or conferences.get(e['id']) == conference_id)
        ]
        if not candidates:
            return AvailabilityRecord(
                player_id=player_id, season_id=season_id, week=week,
                is_available=True, conference_id=conference_id,
            )

        latest = max(candidates, key=lambda e: (e['week'], e['last_updated'], e['id']))
        return AvailabilityRecord(
            player_id=player_id,
            season_id=season_id,
            week=week,
            is_available=False,
            conference_id=conference_id,
            owned_by_team_id=latest['team_id'],
            owned_by_conference_id=conferences.get(latest['id']),
            roster_status=latest['roster_status'],
        )

    async def _write_mirror(self, record: AvailabilityRecord) -> None:
        fields = {
            'is_available': record.is_available,
            'owned_by_team_id': record.owned_by_team_id,
            'owned_by_conference_id': record.owned_by_conference_id,
            'roster_status': record.roster_status,
            'waiver_priority': record.waiver_priority,
            'cache_updated_at': record.cache_updated_at,
        }
        try:
            existing = await self.store.first(MIRROR, [
                ('player_id', 'eq', record.player_id),
                ('season_id', 'eq', record.season_id),
                ('week', 'eq', record.week),
                ('conference_id', 'eq', record.conference_id),
            ])
            if existing:
                await self.store.update(MIRROR, existing['id'], fields)
            else:
                await self.store.create(MIRROR, {
                    'player_id': record.player_id,
                    'season_id': record.season_id,
                    'week': record.week,
                    'conference_id': record.conference_id,
                    **fields,
                })
        except StoreError as e:
            logger.warning(f"Availability mirror write failed for player {record.player_id}: {e}")

    # ========================================================================
    # Public operations
    # ========================================================================

    async def calculate_availability(
        self,
        player_id: int,
        season_id: int,
        week: int,
        force_refresh: bool = False,
        conference_id: Optional[int] = None,
    ) -> AvailabilityRecord:
        """
        Availability of one player for a season and week.

        Args:
            player_id: Local player id
            season_id: Season id
            week: Week to evaluate; entries acquired after it are ignored
            force_refresh: Skip the in-memory cache
            conference_id: Limit ownership to one conference

        Raises:
            StoreError: Roster entries could not be read
        """
        key = availability_key(player_id, season_id, week, conference_id)
        if not force_refresh:
            lookup = await self.cache.get(key)
            if lookup.state in (CacheState.FRESH, CacheState.STALE):
                return lookup.value

        entries = await self._current_entries(season_id, week, player_id=player_id)
        conferences = await self._resolve_entry_conferences(entries)
        record = self._derive(player_id, season_id, week, entries, conferences, conference_id)

        self.cache.set(key, record)
        await self._write_mirror(record)
        return record

    async def get_availability_stats(
        self,
        season_id: int,
        week: int,
        filter: Optional[AvailabilityFilter] = None,
        conference_id: Optional[int] = None,
    ) -> AvailabilityStats:
        """
        Aggregate availability over a filtered player set.

        Roster state is read once up front and every player is evaluated
        against that one snapshot.
        """
        filter = filter or AvailabilityFilter()
        players = await self.store.list_all('players', filter.to_store_filters(), order_by='id')
        entries = await self._current_entries(season_id, week)
        conferences = await self._resolve_entry_conferences(entries)

        entries_by_player: Dict[int, List[Dict[str, Any]]] = defaultdict(list)
        for entry in entries:
            entries_by_player[entry['player_id']].append(entry)

        stats = AvailabilityStats(season_id=season_id, week=week, conference_id=conference_id)
        for player in players:
            record = self._derive(
                player['id'], season_id, week, entries_by_player.get(player['id'], []),
                conferences, conference_id,
            )
            self.cache.set(availability_key(player['id'], season_id, week, conference_id), record)

            stats.total_players += 1
            position = stats.by_position.setdefault(player['position'], _bucket())
            team = stats.by_team.setdefault(player['nfl_team'], _bucket())
            position['total'] += 1
            team['total'] += 1
            if record.is_available:
                stats.available_players += 1
                stats.free_agents += 1
                position['available'] += 1
                team['available'] += 1
            else:
                stats.owned_players += 1
                position['owned'] += 1
                team['owned'] += 1

        return stats

    async def find_conflicting_ownership(self, season_id: int, week: int) -> List[ConflictingOwnership]:
        """
        Players held by more than one team.

        Two teams in the same conference holding a player is always a
        conflict. Holdings spread across conferences are reported only when
        flag_cross_conference is set; they are never resolved here.
        """
        entries = await self._current_entries(season_id, week)
        conferences = await self._resolve_entry_conferences(entries)

        by_player: Dict[int, List[Dict[str, Any]]] = defaultdict(list)
        for entry in entries:
            by_player[entry['player_id']].append(entry)

        flagged = []
        for player_id, holdings in by_player.items():
            teams_by_conference: Dict[Optional[int], set] = defaultdict(set)
            for entry in holdings:
                teams_by_conference[conferences.get(entry['id'])].add(entry['team_id'])

            if any(len(teams) > 1 for teams in teams_by_conference.values()):
                flagged.append((player_id, 'same_conference', holdings))
            elif len(teams_by_conference) > 1 and self.flag_cross_conference:
                flagged.append((player_id, 'cross_conference', holdings))

        if not flagged:
            return []

        player_ids = [player_id for player_id, _, _ in flagged]
        team_ids = list({e['team_id'] for _, _, holdings in flagged for e in holdings})
        conference_ids = list({c for c in conferences.values() if c is not None})
        players = {p['id']: p for p in await self.store.list_all('players', [('id', 'in', player_ids)])}
        teams = {t['id']: t for t in await self.store.list_all('teams', [('id', 'in', team_ids)])}
        conference_rows = {
            c['id']: c for c in await self.store.list_all('conferences', [('id', 'in', conference_ids)])
        }

        conflicts = []
        for player_id, conflict_type, holdings in sorted(flagged, key=lambda f: f[0]):
            conflicts.append(ConflictingOwnership(
                player_id=player_id,
                player_name=players.get(player_id, {}).get('player_name'),
                conflict_type=conflict_type,
                teams=[
                    {
                        'team_id': e['team_id'],
                        'team_name': teams.get(e['team_id'], {}).get('team_name'),
                        'conference_id': conferences.get(e['id']),
                        'conference_name': conference_rows.get(conferences.get(e['id']), {}).get('conference_name'),
                        'roster_status': e['roster_status'],
                        'last_updated': e['last_updated'],
                    }
                    for e in holdings
                ],
            ))
        logger.info(f"Found {len(conflicts)} players with conflicting ownership")
        return conflicts

    async def get_team_availability(self, team_id: int, season_id: int, week: int) -> Dict[str, Any]:
        """Roster spots used by status and spots still open for a team."""
        entries = await self._current_entries(season_id, week, team_id=team_id)
        by_status = {status.value: 0 for status in RosterStatus if status != RosterStatus.FREE_AGENT}
        for entry in entries:
            by_status[entry['roster_status']] = by_status.get(entry['roster_status'], 0) + 1

        return {
            'team_id': team_id,
            'season_id': season_id,
            'week': week,
            'roster_spots_used': len(entries),
            'open_spots': max(self.max_roster_size - len(entries), 0),
            'by_status': by_status,
            'players': [
                {'player_id': e['player_id'], 'roster_status': e['roster_status'], 'week_added': e['week']}
                for e in entries
            ],
        }

    async def bulk_refresh_availability(
        self,
        player_ids: Sequence[int],
        season_id: int,
        week: int,
        batch_size: int = 10,
        conference_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Recalculate availability for many players, a batch at a time."""
        result = {'success': 0, 'failed': 0, 'errors': []}
        for start in range(0, len(player_ids), batch_size):
            batch = player_ids[start:start + batch_size]
            outcomes = await asyncio.gather(
                *(self.calculate_availability(pid, season_id, week, force_refresh=True, conference_id=conference_id)
                  for pid in batch),
                return_exceptions=True,
            )
            for player_id, outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    result['failed'] += 1
                    result['errors'].append(f"Player {player_id}: {outcome}")
                else:
                    result['success'] += 1
        return result

    def invalidate(self, player_id: Optional[int] = None) -> None:
        """Drop cached records for one player, or all of them."""
        if player_id is None:
            self.cache.invalidate()
            return
        prefix = f"availability:{player_id}:"
        for key in self.cache.keys():
            if key.startswith(prefix):
                self.cache.invalidate(key)
