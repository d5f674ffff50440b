"""Closed value sets shared across services."""
from enum import Enum


class RosterStatus(str, Enum):
    """Roster slot a player occupies; FREE_AGENT only appears in availability."""
    ACTIVE = "active"
    BENCH = "bench"
    IR = "ir"
    TAXI = "taxi"
    FREE_AGENT = "free_agent"


class RosterAction(str, Enum):
    """Roster transaction kinds recorded in roster history."""
    ADD = "add"
    DROP = "drop"
    TRADE = "trade"
    WAIVER_CLAIM = "waiver_claim"
    FREE_AGENT_PICKUP = "free_agent_pickup"

    @property
    def acquires(self) -> bool:
        """True for actions that put an unowned player on a roster."""
        return self in (RosterAction.ADD, RosterAction.WAIVER_CLAIM, RosterAction.FREE_AGENT_PICKUP)


class ConflictStrategy(str, Enum):
    LATEST_WINS = "latest_wins"
    API_PRIORITY = "api_priority"
    MANUAL_REVIEW = "manual_review"


class SyncStage(str, Enum):
    IDLE = "Idle"
    STARTING = "Starting"
    PLAYERS = "Syncing Players"
    ROSTERS = "Syncing Rosters"
    STATUS = "Recording Status"
    COMPLETE = "Complete"
    STOPPED = "Stopped"
    FAILED = "Failed"
