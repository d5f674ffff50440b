"""
Explicit wiring of the long-lived services.

The API process and the standalone scheduler both build one container at
startup and pass its members to whatever needs them.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from league_sync.core.config import settings
from league_sync.core.scheduler import AutomationScheduler
from league_sync.repositories.store import StoreGateway
from league_sync.services.availability.calculator import PlayerAvailabilityCalculator
from league_sync.services.cache.mirror import JsonFileMirror
from league_sync.services.cache.roster_cache import RosterStatusService
from league_sync.services.cache.swr_cache import SwrCache
from league_sync.services.integrity.service import DataIntegrityService
from league_sync.services.sleeper.client import SleeperClient
from league_sync.services.sync.engine import RosterSyncEngine
from league_sync.services.sync.types import ConferenceTarget, SyncConfiguration

logger = logging.getLogger(__name__)


async def load_conference_targets(
    store: StoreGateway,
    season_id: int,
    conference_ids: Optional[Sequence[int]] = None,
) -> List[ConferenceTarget]:
    """Active conferences of a season as sync targets."""
    filters = [('season_id', 'eq', season_id), ('status', 'eq', 'active')]
    if conference_ids:
        filters.append(('id', 'in', list(conference_ids)))
    rows = await store.list_all('conferences', filters, order_by='id')
    return [ConferenceTarget(id=r['id'], league_id=r['league_id'], name=r['conference_name']) for r in rows]


@dataclass
class ServiceContainer:
    db: Session
    store: StoreGateway
    client: SleeperClient
    scheduler: AutomationScheduler
    engine: RosterSyncEngine
    availability_cache: SwrCache
    roster_status: RosterStatusService

    def calculator(self, store: Optional[StoreGateway] = None) -> PlayerAvailabilityCalculator:
        """A calculator sharing the process-wide availability cache."""
        return PlayerAvailabilityCalculator(store or self.store, cache=self.availability_cache)

    def integrity(self, store: Optional[StoreGateway] = None) -> DataIntegrityService:
        return DataIntegrityService(store or self.store)

    async def start_automatic_sync(self) -> bool:
        """Start automatic sync for the configured season, if enabled."""
        if not settings.AUTO_SYNC_ENABLED or settings.CURRENT_SEASON_ID is None:
            return False
        targets = await load_conference_targets(self.store, settings.CURRENT_SEASON_ID)
        if not targets:
            logger.warning(f"No active conferences for season {settings.CURRENT_SEASON_ID}; automatic sync not started")
            return False
        self.engine.start_automatic_sync(SyncConfiguration(
            conferences=targets,
            season_id=settings.CURRENT_SEASON_ID,
            week=settings.CURRENT_WEEK,
        ))
        self.roster_status.start_background_refresh(self.scheduler, targets)
        return True

    async def aclose(self) -> None:
        self.engine.stop_automatic_sync()
        self.scheduler.stop()
        await self.client.aclose()
        self.db.close()


def build_services(db: Session) -> ServiceContainer:
    """Build every long-lived service around one session."""
    store = StoreGateway(db)
    client = SleeperClient()
    scheduler = AutomationScheduler()

    mirror = None
    if settings.ROSTER_CACHE_MIRROR_PATH:
        mirror = JsonFileMirror(settings.ROSTER_CACHE_MIRROR_PATH, settings.ROSTER_CACHE_VERSION)
    roster_cache = SwrCache(
        "rosters",
        stale_after=settings.ROSTER_CACHE_STALE_SECONDS,
        expire_after=settings.ROSTER_CACHE_EXPIRE_SECONDS,
        mirror=mirror,
    )
    roster_status = RosterStatusService(store, client, cache=roster_cache)
    roster_status.rehydrate()

    ttl = settings.AVAILABILITY_CACHE_TTL_SECONDS
    return ServiceContainer(
        db=db,
        store=store,
        client=client,
        scheduler=scheduler,
        engine=RosterSyncEngine(store, client, scheduler=scheduler, sync_interval=timedelta(minutes=settings.SYNC_INTERVAL_MINUTES)),
        availability_cache=SwrCache("availability", stale_after=ttl, expire_after=ttl),
        roster_status=roster_status,
    )
