"""Roster sync engine.

Pulls the Sleeper player catalog and each conference's rosters, reconciles
them into local Player and RosterEntry rows, and records a SyncStatus row
per (sync_type, conference).

Run shape:
1. Player stage: fetch the catalog once, upsert in batches with a short
   pause between batches. Per-player failures are collected.
2. Roster stage, per conference: fetch rosters, map roster ids to teams via
   the junction table, reconcile each team. Unknown players and unmapped
   rosters are logged and skipped.
3. Record sync status with the next due time.

Only one run may be in flight per engine. A second call raises
SyncInProgressError immediately. force_stop() is advisory: the run checks
it between batches, conferences and rosters.
"""
import asyncio
import copy
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from league_sync.core import metrics
from league_sync.core.config import settings
from league_sync.core.logging import bind_run_id
from league_sync.core.retry import TRANSIENT_ERRORS, retry_async
from league_sync.core.scheduler import AutomationScheduler
from league_sync.exceptions import StoreError, SyncInProgressError
from league_sync.models.enums import SyncStage
from league_sync.repositories.store import StoreGateway
from league_sync.services.sleeper.client import SleeperClient
from league_sync.services.sync.players import PlayerDataService
from league_sync.services.sync.rosters import RosterService, classify_roster_status
from league_sync.services.sync.types import (
    ConferenceTarget,
    SyncConfiguration,
    SyncProgress,
    SyncResult,
    SyncState,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[SyncProgress], None]

STOPPED_MESSAGE = "Sync stopped before completion"

# A malformed payload is reported like a failed fetch but never retried
FETCH_ERRORS = TRANSIENT_ERRORS + (ValidationError,)


@dataclass
class _StageReport:
    sync_type: str
    conference_id: Optional[int]
    started: datetime = field(default_factory=datetime.utcnow)
    completed: Optional[datetime] = None
    processed: int = 0
    api_calls: int = 0
    errors: List[str] = field(default_factory=list)


class RosterSyncEngine:
    """
    Coordinates full syncs against Sleeper.

    Args:
        store: Store gateway
        client: Sleeper client
        player_service: Player persistence (built from store when omitted)
        scheduler: Scheduler used by automatic sync (created on demand)
        batch_delay: Seconds to pause between player batches
        sync_interval: Automatic sync interval and next_sync_due offset
        max_roster_size: Passed to the roster service
    """

    SYNC_JOB_ID = "roster_full_sync"

    def __init__(
        self,
        store: StoreGateway,
        client: SleeperClient,
        player_service: Optional[PlayerDataService] = None,
        scheduler: Optional[AutomationScheduler] = None,
        batch_delay: Optional[float] = None,
        sync_interval: Optional[timedelta] = None,
        max_roster_size: Optional[int] = None,
    ):
        self.store = store
        self.client = client
        self.player_service = player_service or PlayerDataService(store)
        self.scheduler = scheduler
        self.batch_delay = settings.SYNC_BATCH_DELAY_MS / 1000 if batch_delay is None else batch_delay
        self.sync_interval = sync_interval or timedelta(minutes=settings.SYNC_INTERVAL_MINUTES)
        self.max_roster_size = max_roster_size

        self._state = SyncState()
        self._stop_requested = False
        self._listeners: List[ProgressCallback] = []
        self._errors: List[str] = []
        self._api_calls = 0
        self._auto_config: Optional[SyncConfiguration] = None
        self._immediate_task: Optional[asyncio.Task] = None

    # ========================================================================
    # State and progress
    # ========================================================================

    def on_progress(self, callback: ProgressCallback) -> Callable[[], None]:
        """
        Subscribe to progress events.

        Returns:
            A function that removes the subscription
        """
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def get_sync_state(self) -> SyncState:
        """A copy of the current state; mutating it has no effect."""
        return copy.deepcopy(self._state)

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    def force_stop(self) -> None:
        """Ask the running sync to stop at its next checkpoint."""
        if not self._state.is_running:
            logger.info("force_stop ignored: no sync running")
            return
        self._stop_requested = True
        logger.warning("Stop requested for running sync")

    def _emit(self, stage: SyncStage, progress: int, total: int, current_item: str = "") -> None:
        self._state.progress = SyncProgress(
            stage=stage.value,
            progress=progress,
            total=total,
            current_item=current_item,
            errors=list(self._errors),
        )
        for listener in list(self._listeners):
            try:
                listener(copy.deepcopy(self._state.progress))
            except Exception:
                logger.exception("Progress listener raised")

    def _error(self, message: str, report: Optional[_StageReport] = None) -> None:
        logger.warning(message)
        self._errors.append(message)
        if report is not None:
            report.errors.append(message)

    # ========================================================================
    # Full sync
    # ========================================================================

    async def full_sync(self, config: SyncConfiguration) -> SyncResult:
        """
        Run the player stage, then the roster stage for every conference.

        Returns:
            SyncResult; success is True only when no errors were recorded

        Raises:
            SyncInProgressError: Another sync is running
        """
        if self._state.is_running:
            raise SyncInProgressError()
        # Claimed before the first await so a concurrent caller sees it
        self._state.is_running = True
        self._stop_requested = False
        self._errors = []
        self._api_calls = 0
        metrics.sync_running.set(1)

        started = time.perf_counter()
        records_processed = 0
        conflicts: List[Dict[str, Any]] = []

        with bind_run_id() as run_id:
            logger.info(
                f"Starting full sync: season {config.season_id} week {config.week}, "
                f"{len(config.conferences)} conferences"
            )
            try:
                self._emit(SyncStage.STARTING, 0, len(config.conferences))
                reports: List[_StageReport] = []

                if config.sync_players:
                    reports.append(await self._sync_players(config))

                player_ids = await self.player_service.external_id_map()
                roster_service = RosterService(self.store, config.conflict_resolution, self.max_roster_size)

                for index, conference in enumerate(config.conferences):
                    if self._stop_requested:
                        break
                    self._emit(SyncStage.ROSTERS, index, len(config.conferences), conference.name)
                    report = await self._sync_conference(conference, config, player_ids, roster_service, conflicts)
                    reports.append(report)
                    self._emit(SyncStage.ROSTERS, index + 1, len(config.conferences), conference.name)

                if self._stop_requested:
                    self._error(STOPPED_MESSAGE)

                self._emit(SyncStage.STATUS, 0, len(reports))
                await self._record_status(config, reports)
                records_processed = sum(r.processed for r in reports)
            except StoreError as e:
                logger.exception("Sync aborted by store failure")
                self._error(f"Sync failed: {e}")
            finally:
                self._state.is_running = False
                metrics.sync_running.set(0)

            duration_ms = (time.perf_counter() - started) * 1000
            result = SyncResult(
                success=not self._errors,
                records_processed=records_processed,
                errors=list(self._errors),
                duration=duration_ms,
                api_calls=self._api_calls,
                conflicts=conflicts,
                run_id=run_id,
            )

            self._state.last_sync = datetime.utcnow()
            self._state.errors = list(self._errors)
            final = SyncStage.STOPPED if self._stop_requested else SyncStage.COMPLETE
            self._emit(final, records_processed, records_processed)

            metrics.record_sync_run(result.success, duration_ms / 1000)
            if result.success:
                logger.info(f"✅ Sync complete: {records_processed} records in {duration_ms:.0f}ms")
            else:
                logger.warning(
                    f"⚠️ Sync finished with {len(result.errors)} errors: "
                    f"{records_processed} records in {duration_ms:.0f}ms"
                )
            return result

    async def _call(self, fetch: Callable[[], Awaitable[Any]], config: SyncConfiguration, report: _StageReport) -> Any:
        async def attempt():
            self._api_calls += 1
            report.api_calls += 1
            return await fetch()

        return await retry_async(
            attempt,
            attempts=config.retry_attempts,
            base_delay=config.retry_delay_ms / 1000,
            max_delay=settings.SYNC_RETRY_MAX_DELAY_MS / 1000,
        )

    async def _sync_players(self, config: SyncConfiguration) -> _StageReport:
        report = _StageReport('players', None)
        self._emit(SyncStage.PLAYERS, 0, 0, "Fetching player catalog")

        try:
            snapshots = await self._call(self.client.fetch_all_players, config, report)
        except FETCH_ERRORS as e:
            self._error(f"Player catalog fetch failed: {e}", report)
            report.completed = datetime.utcnow()
            return report

        for external_id, reason in getattr(snapshots, 'rejected', {}).items():
            self._error(f"Player {external_id}: invalid payload ({reason})", report)

        try:
            existing = await self.player_service.current_players_by_external_id()
        except StoreError as e:
            self._error(f"Could not load local players: {e}", report)
            report.completed = datetime.utcnow()
            return report

        items = list(snapshots.values())
        total = len(items)
        batch_size = max(1, config.batch_size)

        for start in range(0, total, batch_size):
            if self._stop_requested:
                break
            batch = items[start:start + batch_size]
            outcomes = await asyncio.gather(
                *(self.player_service.upsert_player(s, existing.get(s.player_id), lookup=False) for s in batch),
                return_exceptions=True,
            )
            for snapshot, outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    self._error(f"Player {snapshot.player_id} ({snapshot.display_name}): {outcome}", report)
                else:
                    report.processed += 1

            done = min(start + batch_size, total)
            self._emit(SyncStage.PLAYERS, done, total, f"Players {done}/{total}")
            if self.batch_delay and done < total:
                await asyncio.sleep(self.batch_delay)

        metrics.sync_records_processed_total.labels(stage='players').inc(report.processed)
        report.completed = datetime.utcnow()
        logger.info(f"Player stage: {report.processed}/{total} players upserted")
        return report

    async def _sync_conference(
        self,
        conference: ConferenceTarget,
        config: SyncConfiguration,
        player_ids: Dict[str, int],
        roster_service: RosterService,
        conflicts: List[Dict[str, Any]],
    ) -> _StageReport:
        report = _StageReport('rosters', conference.id)
        label = conference.name or conference.league_id

        try:
            rosters = await self._call(
                lambda: self.client.fetch_league_rosters(conference.league_id), config, report
            )
        except FETCH_ERRORS as e:
            self._error(f"{label}: roster fetch failed: {e}", report)
            report.completed = datetime.utcnow()
            return report

        try:
            junctions = await self.store.list_all('team_conference_junction', [
                ('conference_id', 'eq', conference.id),
                ('is_active', 'eq', True),
            ])
        except StoreError as e:
            self._error(f"{label}: could not load team mappings: {e}", report)
            report.completed = datetime.utcnow()
            return report
        team_by_roster = {str(j['roster_id']): j['team_id'] for j in junctions if j['roster_id'] is not None}
        observed_at = datetime.utcnow()

        for index, roster in enumerate(rosters):
            if self._stop_requested:
                break

            team_id = team_by_roster.get(str(roster.roster_id))
            if team_id is None:
                self._error(f"{label}: no team mapped to roster {roster.roster_id}", report)
                continue

            desired = {}
            for external_id in roster.players:
                player_id = player_ids.get(external_id)
                if player_id is None:
                    self._error(f"{label}: no local player for Sleeper id {external_id}", report)
                    continue
                desired[player_id] = classify_roster_status(
                    external_id, roster.starters, roster.reserve, roster.taxi
                )

            try:
                outcome = await roster_service.reconcile_team(
                    team_id, conference.id, config.season_id, config.week, desired, observed_at
                )
            except StoreError as e:
                self._error(f"{label}: roster {roster.roster_id} reconcile failed: {e}", report)
                continue

            report.processed += outcome.processed
            conflicts.extend({**c, 'conference_id': conference.id} for c in outcome.conflicts)
            self._emit(SyncStage.ROSTERS, index + 1, len(rosters), f"{label}: roster {roster.roster_id}")

        metrics.sync_records_processed_total.labels(stage='rosters').inc(report.processed)
        report.completed = datetime.utcnow()
        logger.info(f"Roster stage {label}: {report.processed} entries reconciled")
        return report

    async def _record_status(self, config: SyncConfiguration, reports: List[_StageReport]) -> None:
        next_due = datetime.utcnow() + self.sync_interval
        for report in reports:
            if not report.errors:
                status = 'success'
            elif report.processed:
                status = 'partial'
            else:
                status = 'failed'

            completed = report.completed or datetime.utcnow()
            fields = {
                'sync_status': status,
                'last_sync_started': report.started,
                'last_sync_completed': completed,
                'sync_duration_ms': int((completed - report.started).total_seconds() * 1000),
                'records_processed': report.processed,
                'errors_encountered': len(report.errors),
                'error_message': "; ".join(report.errors[:5]) or None,
                'api_calls': report.api_calls,
                'next_sync_due': next_due,
            }
            key = [
                ('sync_type', 'eq', report.sync_type),
                ('conference_id', 'eq', report.conference_id),
                ('season_id', 'eq', config.season_id),
                ('week', 'eq', config.week),
            ]
            try:
                existing = await self.store.first('sync_status', key)
                if existing:
                    await self.store.update('sync_status', existing['id'], fields)
                else:
                    await self.store.create('sync_status', {
                        'sync_type': report.sync_type,
                        'conference_id': report.conference_id,
                        'season_id': config.season_id,
                        'week': config.week,
                        **fields,
                    })
            except StoreError as e:
                self._error(f"Failed to record {report.sync_type} sync status: {e}")

        self._state.next_sync = next_due

    # ========================================================================
    # Automatic sync
    # ========================================================================

    def start_automatic_sync(self, config: SyncConfiguration, interval: Optional[timedelta] = None) -> None:
        """
        Run a sync now and then every `interval`.

        Must be called with a running event loop. Scheduled runs that find a
        sync already running are skipped.
        """
        interval = interval or self.sync_interval
        if self.scheduler is None:
            self.scheduler = AutomationScheduler()

        self._auto_config = config
        self.scheduler.add_interval_job(self.SYNC_JOB_ID, self._run_scheduled_sync, interval, name="Full roster sync")
        self._immediate_task = asyncio.create_task(self._run_scheduled_sync())
        self._state.next_sync = datetime.utcnow() + interval
        logger.info(f"Automatic sync started (every {interval})")

    def stop_automatic_sync(self) -> None:
        """Remove the schedule; a run already in progress is left to finish."""
        if self.scheduler is not None:
            self.scheduler.remove_job(self.SYNC_JOB_ID)
        self._auto_config = None
        self._state.next_sync = None
        logger.info("Automatic sync stopped")

    @property
    def automatic_sync_enabled(self) -> bool:
        return self._auto_config is not None

    async def _run_scheduled_sync(self) -> Optional[SyncResult]:
        config = self._auto_config
        if config is None:
            return None
        try:
            result = await self.full_sync(config)
        except SyncInProgressError:
            logger.info("Skipping scheduled sync: a sync is already running")
            return None
        if result.success:
            logger.info(f"✅ Scheduled sync: {result.records_processed} records ({result.duration:.0f}ms)")
        else:
            logger.error(f"❌ Scheduled sync finished with {len(result.errors)} errors")
        return result

    # ========================================================================
    # Health
    # ========================================================================

    async def get_sync_health(self) -> Dict[str, Any]:
        """
        Aggregate SyncStatus rows into an overall health summary.

        healthy: every tracked sync last succeeded; degraded: some did;
        unhealthy: none did (or nothing has run yet).
        """
        rows = await self.store.list_all('sync_status', order_by='-last_sync_completed')
        success_count = sum(1 for r in rows if r['sync_status'] == 'success')
        if rows and success_count == len(rows):
            health = 'healthy'
        elif success_count > 0:
            health = 'degraded'
        else:
            health = 'unhealthy'

        overdue = [
            r for r in rows
            if r['next_sync_due'] is not None and r['next_sync_due'] < datetime.utcnow()
        ]
        return {
            'health_status': health,
            'total_jobs': len(rows),
            'success_count': success_count,
            'overdue_count': len(overdue),
            'is_running': self._state.is_running,
            'automatic_sync': self.automatic_sync_enabled,
            'jobs': [
                {
                    'sync_type': r['sync_type'],
                    'conference_id': r['conference_id'],
                    'season_id': r['season_id'],
                    'week': r['week'],
                    'status': r['sync_status'],
                    'last_sync_completed': r['last_sync_completed'].isoformat() if r['last_sync_completed'] else None,
                    'records_processed': r['records_processed'],
                    'errors_encountered': r['errors_encountered'],
                    'next_sync_due': r['next_sync_due'].isoformat() if r['next_sync_due'] else None,
                }
                for r in rows
            ],
        }
