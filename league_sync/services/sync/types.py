"""Plain data passed into and out of the sync engine."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from league_sync.core.config import settings
from league_sync.models.enums import SyncStage
from league_sync.services.sync.conflicts import ConflictResolution


@dataclass(frozen=True)
class ConferenceTarget:
    """A conference to sync: local id, Sleeper league id and display name."""
    id: int
    league_id: str
    name: str = ""


@dataclass
class SyncConfiguration:
    conferences: List[ConferenceTarget]
    season_id: int
    week: int
    conflict_resolution: ConflictResolution = field(default_factory=ConflictResolution)
    batch_size: int = field(default_factory=lambda: settings.SYNC_BATCH_SIZE)
    retry_attempts: int = field(default_factory=lambda: settings.SYNC_RETRY_ATTEMPTS)
    retry_delay_ms: int = field(default_factory=lambda: settings.SYNC_RETRY_DELAY_MS)
    sync_players: bool = True


@dataclass
class SyncProgress:
    stage: str = SyncStage.IDLE.value
    progress: int = 0
    total: int = 0
    current_item: str = ""
    errors: List[str] = field(default_factory=list)


@dataclass
class SyncState:
    is_running: bool = False
    progress: SyncProgress = field(default_factory=SyncProgress)
    last_sync: Optional[datetime] = None
    next_sync: Optional[datetime] = None
    errors: List[str] = field(default_factory=list)


@dataclass
class SyncResult:
    """
    Outcome of a full sync.

    success is True only when errors is empty. conflicts lists roster
    entries held back for manual review; they do not count as errors.
    """
    success: bool
    records_processed: int = 0
    errors: List[str] = field(default_factory=list)
    duration: float = 0.0  # milliseconds
    api_calls: int = 0
    conflicts: List[Dict[str, Any]] = field(default_factory=list)
    run_id: str = ""
