"""
Conference-scoped roster status lookups.

Answers "which team holds this Sleeper player in each conference" from the
live Sleeper rosters, fronted by a SwrCache so reads stay in memory. A
refresh fetches every conference concurrently, each with its own retry and
backoff. A conference whose refresh fails keeps the data from the previous
cache value, so one bad league never blanks the others.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence

from league_sync.core.config import settings
from league_sync.core.retry import retry_async
from league_sync.core.scheduler import AutomationScheduler
from league_sync.exceptions import ExternalSourceError
from league_sync.repositories.store import StoreGateway
from league_sync.services.cache.swr_cache import CacheLookup, SwrCache
from league_sync.services.sleeper.client import SleeperClient
from league_sync.services.sync.rosters import classify_roster_status
from league_sync.services.sync.types import ConferenceTarget

logger = logging.getLogger(__name__)


@dataclass
class RosterStatusInfo:
    is_rostered: bool
    conference_id: Optional[int] = None
    conference_name: Optional[str] = None
    team_id: Optional[int] = None
    team_name: Optional[str] = None
    roster_id: Optional[str] = None
    roster_status: Optional[str] = None


def cache_key(conferences: Sequence[ConferenceTarget]) -> str:
    return "rosters:" + ",".join(sorted(c.league_id for c in conferences))


class RosterStatusService:
    """
    Args:
        store: Store gateway, used for team names and junction rows
        client: Sleeper client
        cache: Cache holding one payload per conference set
        attempts: Retry attempts per conference
        base_delay: First retry delay in seconds
        max_delay: Cap on any retry delay in seconds
    """

    def __init__(
        self,
        store: StoreGateway,
        client: SleeperClient,
        cache: Optional[SwrCache] = None,
        attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
    ):
        self.store = store
        self.client = client
        self.cache = cache or SwrCache(
            "rosters",
            stale_after=settings.ROSTER_CACHE_STALE_SECONDS,
            expire_after=settings.ROSTER_CACHE_EXPIRE_SECONDS,
        )
        self.attempts = attempts if attempts is not None else settings.ROSTER_REFRESH_ATTEMPTS
        self.base_delay = base_delay if base_delay is not None else settings.ROSTER_REFRESH_DELAY_MS / 1000
        self.max_delay = max_delay if max_delay is not None else settings.ROSTER_REFRESH_MAX_DELAY_MS / 1000
        self.api_calls = 0

    # ========================================================================
    # Loading
    # ========================================================================

    def _loader(self, conferences: Sequence[ConferenceTarget]):
        async def load(key: str) -> Dict[str, Any]:
            previous = self.cache.peek(key)
            return await self._load_all(conferences, previous.value if previous else None)
        return load

    async def _load_all(
        self,
        conferences: Sequence[ConferenceTarget],
        previous: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        teams = {t['id']: t for t in await self.store.list_all('teams')}
        junctions = await self.store.list_all('team_conference_junction', [('is_active', 'eq', True)])

        results = await asyncio.gather(
            *(self._load_conference(c, teams, junctions) for c in conferences),
            return_exceptions=True,
        )

        payload: Dict[str, Any] = {'conferences': {}, 'failed': []}
        for conference, result in zip(conferences, results):
            if isinstance(result, Exception):
                logger.warning(f"Roster refresh failed for {conference.name or conference.league_id}: {result}")
                payload['failed'].append(conference.league_id)
                kept = (previous or {}).get('conferences', {}).get(conference.league_id)
                if kept is not None:
                    payload['conferences'][conference.league_id] = kept
            else:
                payload['conferences'][conference.league_id] = result

        if not payload['conferences']:
            raise ExternalSourceError('rosters', 'no conference rosters could be loaded')
        return payload

    async def _load_conference(
        self,
        conference: ConferenceTarget,
        teams: Dict[int, Dict[str, Any]],
        junctions: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        async def fetch():
            self.api_calls += 1
            return await self.client.fetch_league_rosters(conference.league_id)

        rosters = await retry_async(fetch, self.attempts, self.base_delay, self.max_delay)

        team_by_roster = {
            str(j['roster_id']): j['team_id']
            for j in junctions
            if j['conference_id'] == conference.id and j['roster_id'] is not None
        }

        players: Dict[str, Dict[str, Any]] = {}
        for roster in rosters:
            team_id = team_by_roster.get(str(roster.roster_id))
            if team_id is None:
                logger.warning(f"No team mapped to roster {roster.roster_id} in {conference.league_id}")
                continue
            team = teams.get(team_id, {})
            for player_id in roster.players:
                players[player_id] = {
                    'team_id': team_id,
                    'team_name': team.get('team_name'),
                    'roster_id': str(roster.roster_id),
                    'roster_status': classify_roster_status(
                        player_id, roster.starters, roster.reserve, roster.taxi
                    ).value,
                }

        return {
            'conference_id': conference.id,
            'conference_name': conference.name,
            'players': players,
        }

    # ========================================================================
    # Reads
    # ========================================================================

    async def get_roster_map(self, conferences: Sequence[ConferenceTarget]) -> CacheLookup:
        """Cached payload for the conference set (loaded on miss)."""
        return await self.cache.get(cache_key(conferences), self._loader(conferences))

    async def get_player_ownership(
        self,
        external_player_id: str,
        conferences: Sequence[ConferenceTarget],
    ) -> Dict[int, RosterStatusInfo]:
        """Roster status of a player in every conference, keyed by conference id."""
        lookup = await self.get_roster_map(conferences)
        ownership = {}
        for conference in conferences:
            data = lookup.value['conferences'].get(conference.league_id)
            holding = (data or {}).get('players', {}).get(str(external_player_id))
            if holding is None:
                ownership[conference.id] = RosterStatusInfo(
                    is_rostered=False, conference_id=conference.id, conference_name=conference.name,
                )
            else:
                ownership[conference.id] = RosterStatusInfo(
                    is_rostered=True,
                    conference_id=conference.id,
                    conference_name=conference.name,
                    **holding,
                )
        return ownership

    async def get_player_roster_status(
        self,
        external_player_id: str,
        conferences: Sequence[ConferenceTarget],
        conference_id: Optional[int] = None,
    ) -> RosterStatusInfo:
        """
        Roster status in one conference, or the first conference that has
        the player rostered when conference_id is None.
        """
        ownership = await self.get_player_ownership(external_player_id, conferences)
        if conference_id is not None:
            return ownership.get(conference_id) or RosterStatusInfo(is_rostered=False, conference_id=conference_id)
        for info in ownership.values():
            if info.is_rostered:
                return info
        return RosterStatusInfo(is_rostered=False)

    # ========================================================================
    # Refresh
    # ========================================================================

    async def refresh(self, conferences: Sequence[ConferenceTarget]) -> None:
        """Refresh now, superseding any background refresh for the same set."""
        await self.cache.refresh(cache_key(conferences), self._loader(conferences))

    def start_background_refresh(
        self,
        scheduler: AutomationScheduler,
        conferences: Sequence[ConferenceTarget],
        interval: Optional[timedelta] = None,
    ) -> None:
        """Refresh the conference set on a fixed interval."""
        conferences = list(conferences)

        async def refresh_rosters_job():
            try:
                await self.refresh(conferences)
            except asyncio.CancelledError:
                logger.info("Roster refresh superseded")

        scheduler.add_interval_job(
            f"roster_refresh:{cache_key(conferences)}",
            refresh_rosters_job,
            interval or timedelta(seconds=settings.ROSTER_CACHE_EXPIRE_SECONDS),
            name="Refresh roster status cache",
        )

    def rehydrate(self) -> int:
        return self.cache.rehydrate()

    def invalidate(self, conferences: Optional[Sequence[ConferenceTarget]] = None) -> None:
        self.cache.invalidate(cache_key(conferences) if conferences else None)

    def stats(self) -> Dict[str, Any]:
        return {**self.cache.stats(), 'api_calls': self.api_calls}
