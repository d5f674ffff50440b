"""Sync API routes.

Provides endpoints for:
- Sync health and live state
- Manual sync trigger and stop
- Player availability, availability stats and ownership conflicts
- Live roster status from the roster cache
- Integrity audit and cleanup
"""
import logging
from dataclasses import asdict
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from league_sync.core.database import get_db
from league_sync.exceptions import StoreError, SyncInProgressError
from league_sync.models.enums import ConflictStrategy
from league_sync.repositories.store import StoreGateway
from league_sync.services.availability.calculator import AvailabilityFilter, PlayerAvailabilityCalculator
from league_sync.services.cache.roster_cache import RosterStatusService
from league_sync.services.container import ServiceContainer, load_conference_targets
from league_sync.services.integrity.service import DataIntegrityService
from league_sync.services.sync.conflicts import ConflictResolution
from league_sync.services.sync.engine import RosterSyncEngine
from league_sync.services.sync.types import SyncConfiguration

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


class SyncRequest(BaseModel):
    season_id: int
    week: int
    conference_ids: Optional[List[int]] = None
    strategy: ConflictStrategy = ConflictStrategy.LATEST_WINS
    sync_players: bool = True
    batch_size: Optional[int] = Field(None, ge=1)
    retry_attempts: Optional[int] = Field(None, ge=1)
    retry_delay_ms: Optional[int] = Field(None, ge=0)


def get_services(request: Request) -> ServiceContainer:
    """Dependency returning the container built at startup."""
    return request.app.state.services


def get_sync_engine(services: ServiceContainer = Depends(get_services)) -> RosterSyncEngine:
    return services.engine


def get_store(db: Session = Depends(get_db)) -> StoreGateway:
    return StoreGateway(db)


def get_calculator(
    store: StoreGateway = Depends(get_store),
    services: ServiceContainer = Depends(get_services),
) -> PlayerAvailabilityCalculator:
    return services.calculator(store)


def get_integrity_service(store: StoreGateway = Depends(get_store)) -> DataIntegrityService:
    return DataIntegrityService(store)


def get_roster_status(services: ServiceContainer = Depends(get_services)) -> RosterStatusService:
    return services.roster_status


# ─────────────────────────────────────────────────────────────
# Sync
# ─────────────────────────────────────────────────────────────

@router.get("/status")
async def get_sync_status(engine: RosterSyncEngine = Depends(get_sync_engine)) -> Dict:
    """
    Sync health dashboard.

    Aggregates SyncStatus rows into healthy / degraded / unhealthy and lists
    the last run of every sync type and conference.
    """
    return await engine.get_sync_health()


@router.get("/state")
async def get_sync_state(engine: RosterSyncEngine = Depends(get_sync_engine)) -> Dict:
    """Live state of the engine, including progress of a running sync."""
    return asdict(engine.get_sync_state())


@router.post("/run")
async def run_sync(
    body: SyncRequest,
    engine: RosterSyncEngine = Depends(get_sync_engine),
    store: StoreGateway = Depends(get_store),
) -> Dict:
    """
    Run a full sync and return its result.

    Returns 409 when a sync is already running.
    """
    targets = await load_conference_targets(store, body.season_id, body.conference_ids)
    if not targets:
        raise HTTPException(status_code=404, detail=f"No active conferences for season {body.season_id}")

    tuning = body.model_dump(include={"batch_size", "retry_attempts", "retry_delay_ms"}, exclude_none=True)
    config = SyncConfiguration(
        conferences=targets,
        season_id=body.season_id,
        week=body.week,
        conflict_resolution=ConflictResolution(strategy=body.strategy),
        sync_players=body.sync_players,
        **tuning,
    )
    try:
        result = await engine.full_sync(config)
    except SyncInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return asdict(result)


@router.post("/stop")
async def stop_sync(engine: RosterSyncEngine = Depends(get_sync_engine)) -> Dict:
    """Ask a running sync to stop at its next checkpoint."""
    was_running = engine.is_running
    engine.force_stop()
    return {'stop_requested': was_running}


# ─────────────────────────────────────────────────────────────
# Availability
# ─────────────────────────────────────────────────────────────

@router.get("/availability/stats")
async def get_availability_stats(
    season_id: int,
    week: int,
    position: Optional[List[str]] = Query(None, description="Positions to include"),
    nfl_team: Optional[List[str]] = Query(None, description="Pro teams to include"),
    conference_id: Optional[int] = None,
    calculator: PlayerAvailabilityCalculator = Depends(get_calculator),
) -> Dict:
    """Available/owned totals by position and pro team."""
    stats = await calculator.get_availability_stats(
        season_id, week, AvailabilityFilter(positions=position, nfl_teams=nfl_team), conference_id
    )
    return asdict(stats)


@router.get("/availability/conflicts")
async def get_conflicting_ownership(
    season_id: int,
    week: int,
    calculator: PlayerAvailabilityCalculator = Depends(get_calculator),
) -> Dict:
    """Players currently held by more than one team."""
    conflicts = await calculator.find_conflicting_ownership(season_id, week)
    return {'count': len(conflicts), 'conflicts': [asdict(c) for c in conflicts]}


@router.get("/availability/{player_id}")
async def get_player_availability(
    player_id: int,
    season_id: int,
    week: int,
    conference_id: Optional[int] = None,
    force_refresh: bool = False,
    calculator: PlayerAvailabilityCalculator = Depends(get_calculator),
) -> Dict:
    try:
        record = await calculator.calculate_availability(
            player_id, season_id, week, force_refresh=force_refresh, conference_id=conference_id
        )
    except StoreError as e:
        logger.error(f"Availability lookup failed for player {player_id}: {e}")
        raise HTTPException(status_code=503, detail="Roster data unavailable")
    return asdict(record)


@router.get("/rosters/{sleeper_player_id}")
async def get_live_roster_status(
    sleeper_player_id: str,
    season_id: int,
    store: StoreGateway = Depends(get_store),
    roster_status: RosterStatusService = Depends(get_roster_status),
) -> Dict:
    """Live ownership of a Sleeper player in every conference of a season."""
    targets = await load_conference_targets(store, season_id)
    if not targets:
        raise HTTPException(status_code=404, detail=f"No active conferences for season {season_id}")
    ownership = await roster_status.get_player_ownership(sleeper_player_id, targets)
    return {
        'sleeper_player_id': sleeper_player_id,
        'conferences': [asdict(info) for info in ownership.values()],
    }


# ─────────────────────────────────────────────────────────────
# Integrity
# ─────────────────────────────────────────────────────────────

@router.get("/integrity/audit")
async def audit_integrity(service: DataIntegrityService = Depends(get_integrity_service)) -> Dict:
    report = await service.audit()
    return {**asdict(report), 'has_issues': report.has_issues}


@router.post("/integrity/cleanup")
async def cleanup_integrity(service: DataIntegrityService = Depends(get_integrity_service)) -> Dict:
    """Repair orphans, duplicates and missing junctions."""
    result = await service.cleanup()
    return {**asdict(result), 'success': result.success}
