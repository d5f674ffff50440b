"""
Player catalog persistence.

Players are updated in place. `data_version` is bumped only when a tracked
field actually changes, so re-running a sync against an unchanged catalog
writes nothing.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from league_sync.repositories.store import StoreGateway
from league_sync.services.sleeper.schemas import PlayerSnapshot

logger = logging.getLogger(__name__)

PLAYERS = 'players'

TRACKED_FIELDS = (
    'player_name', 'position', 'nfl_team', 'jersey_number', 'status',
    'injury_status', 'age', 'height', 'weight', 'years_experience',
    'college', 'depth_chart_order',
)


def snapshot_to_fields(snapshot: PlayerSnapshot) -> Dict[str, Any]:
    """Map a Sleeper snapshot onto Player columns, applying defaults."""
    return {
        'sleeper_player_id': snapshot.player_id,
        'player_name': snapshot.display_name,
        'position': snapshot.position or 'UNK',
        'nfl_team': snapshot.team or 'FA',
        'jersey_number': snapshot.number,
        'status': snapshot.status or 'Active',
        'injury_status': snapshot.injury_status or 'Healthy',
        'age': snapshot.age,
        'height': snapshot.height,
        'weight': snapshot.weight,
        'years_experience': snapshot.years_exp,
        'college': snapshot.college,
        'depth_chart_order': snapshot.depth_chart_order,
    }


class PlayerDataService:
    """Reads and upserts Player rows through the store gateway."""

    def __init__(self, store: StoreGateway):
        self.store = store

    async def get_player_by_external_id(self, external_id: str) -> Optional[Dict[str, Any]]:
        return await self.store.first(
            PLAYERS,
            [('sleeper_player_id', 'eq', str(external_id)), ('is_current_data', 'eq', True)],
            order_by='-data_version',
        )

    async def current_players_by_external_id(self) -> Dict[str, Dict[str, Any]]:
        """Every current player row keyed by Sleeper id."""
        players = {}
        async for row in self.store.iter_all(PLAYERS, [('is_current_data', 'eq', True)], order_by='data_version'):
            # Ordered by version so the newest row wins if several are flagged current
            players[row['sleeper_player_id']] = row
        return players

    async def external_id_map(self) -> Dict[str, int]:
        """Sleeper id -> local player id for current rows."""
        rows = await self.current_players_by_external_id()
        return {external_id: row['id'] for external_id, row in rows.items()}

    async def upsert_player(
        self,
        snapshot: PlayerSnapshot,
        existing: Optional[Dict[str, Any]] = None,
        lookup: bool = True,
    ) -> Tuple[int, bool]:
        """
        Create or update the player for a snapshot.

        Args:
            snapshot: Sleeper player snapshot
            existing: Current row if the caller already has it
            lookup: Query the store when `existing` is not given

        Returns:
            (player_id, changed) where changed is False for a no-op
        """
        if existing is None and lookup:
            existing = await self.get_player_by_external_id(snapshot.player_id)

        fields = snapshot_to_fields(snapshot)
        now = datetime.utcnow()

        if existing is None:
            player_id = await self.store.create(PLAYERS, {
                **fields,
                'data_version': 1,
                'is_current_data': True,
                'last_updated': now,
            })
            return player_id, True

        changes = {k: fields[k] for k in TRACKED_FIELDS if existing.get(k) != fields[k]}
        if not changes:
            return existing['id'], False

        await self.store.update(PLAYERS, existing['id'], {
            **changes,
            'data_version': (existing.get('data_version') or 0) + 1,
            'last_updated': now,
        })
        return existing['id'], True

    async def search_players(
        self,
        query: Optional[str] = None,
        position: Optional[str] = None,
        nfl_team: Optional[str] = None,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        """Search current players by name fragment, position and pro team."""
        filters = [('is_current_data', 'eq', True)]
        if query:
            filters.append(('player_name', 'contains', query))
        if position:
            filters.append(('position', 'eq', position))
        if nfl_team:
            filters.append(('nfl_team', 'eq', nfl_team))
        page = await self.store.page(PLAYERS, filters, order_by='player_name', page_size=limit)
        return page.items
