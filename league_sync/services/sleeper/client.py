"""Read-only client for the Sleeper fantasy API.

The client does not retry or cache: callers wrap calls in the retry policy
from league_sync.core.retry and decide what to cache. Cancelling the calling
task aborts the in-flight request.

Endpoints used:
- GET /players/nfl
- GET /league/{league_id}
- GET /league/{league_id}/rosters
- GET /league/{league_id}/users
- GET /league/{league_id}/matchups/{week}
- GET /state/nfl
"""
import logging
import time
from typing import Any, List, Optional

import httpx
from pydantic import ValidationError

from league_sync.core import metrics
from league_sync.core.config import settings
from league_sync.exceptions import ExternalSourceError
from league_sync.services.sleeper.schemas import (
    LeagueSnapshot,
    LeagueUserSnapshot,
    MatchupSnapshot,
    NflState,
    PlayerCatalog,
    PlayerSnapshot,
    RosterSnapshot,
    describe_validation_error,
)

logger = logging.getLogger(__name__)


class SleeperClient:
    """
    Stateless wrapper over the Sleeper REST API.

    Args:
        base_url: API root, defaults to settings.SLEEPER_BASE_URL
        timeout: Request timeout in seconds
        client: Optional preconfigured httpx.AsyncClient (tests pass one
            with a MockTransport)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.SLEEPER_BASE_URL).rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout or settings.SLEEPER_TIMEOUT,
            headers={"Accept": "application/json"},
        )

    async def _get(self, path: str, endpoint: str) -> Any:
        url = f"{self.base_url}{path}"
        started = time.perf_counter()
        try:
            response = await self._client.get(url)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            metrics.record_sleeper_request(endpoint, False, time.perf_counter() - started)
            raise ExternalSourceError(endpoint, e.response.reason_phrase, e.response.status_code) from e
        except (httpx.RequestError, ValueError) as e:
            metrics.record_sleeper_request(endpoint, False, time.perf_counter() - started)
            raise ExternalSourceError(endpoint, str(e) or type(e).__name__) from e

        metrics.record_sleeper_request(endpoint, True, time.perf_counter() - started)
        return payload

    async def fetch_all_players(self) -> PlayerCatalog:
        """
        Fetch the full NFL player catalog.

        Entries that fail validation are skipped and listed in
        `PlayerCatalog.rejected` so one malformed player does not cost the
        whole catalog.

        Returns:
            Mapping of Sleeper player id to snapshot
        """
        payload = await self._get("/players/nfl", "players")
        players = PlayerCatalog()
        for player_id, data in (payload or {}).items():
            player_id = str(player_id)
            if not isinstance(data, dict):
                players.rejected[player_id] = f"expected an object, got {type(data).__name__}"
                continue
            try:
                players[player_id] = PlayerSnapshot.model_validate({"player_id": player_id, **data})
            except ValidationError as e:
                players.rejected[player_id] = describe_validation_error(e)

        if players.rejected:
            logger.warning(f"Skipped {len(players.rejected)} malformed player entries from Sleeper")
        logger.info(f"Fetched {len(players)} players from Sleeper")
        return players

    async def fetch_league_rosters(self, league_id: str) -> List[RosterSnapshot]:
        payload = await self._get(f"/league/{league_id}/rosters", "rosters")
        return [RosterSnapshot.model_validate(r) for r in payload or []]

    async def fetch_matchups(self, league_id: str, week: int) -> List[MatchupSnapshot]:
        payload = await self._get(f"/league/{league_id}/matchups/{week}", "matchups")
        return [MatchupSnapshot.model_validate(m) for m in payload or []]

    async def fetch_league_users(self, league_id: str) -> List[LeagueUserSnapshot]:
        payload = await self._get(f"/league/{league_id}/users", "users")
        return [LeagueUserSnapshot.model_validate(u) for u in payload or []]

    async def fetch_league(self, league_id: str) -> LeagueSnapshot:
        payload = await self._get(f"/league/{league_id}", "league")
        if not payload:
            raise ExternalSourceError("league", f"league {league_id} not found", 404)
        return LeagueSnapshot.model_validate(payload)

    async def fetch_nfl_state(self) -> NflState:
        payload = await self._get("/state/nfl", "state")
        return NflState.model_validate(payload or {})

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()
