"""
Models package.

Usage:
    from league_sync.models import Player, RosterEntry
"""
from league_sync.models.enums import ConflictStrategy, RosterAction, RosterStatus, SyncStage
from league_sync.models.models import (
    Base,
    Season,
    Conference,
    Team,
    TeamConference,
    TeamRecord,
    Player,
    RosterEntry,
    RosterHistoryEntry,
    AvailabilityCacheEntry,
    SyncStatus,
)

__all__ = [
    "ConflictStrategy",
    "RosterAction",
    "RosterStatus",
    "SyncStage",
    "Base",
    "Season",
    "Conference",
    "Team",
    "TeamConference",
    "TeamRecord",
    "Player",
    "RosterEntry",
    "RosterHistoryEntry",
    "AvailabilityCacheEntry",
    "SyncStatus",
]
