from league_sync.services.sleeper.client import SleeperClient
from league_sync.services.sleeper.schemas import (
    LeagueSnapshot,
    LeagueUserSnapshot,
    MatchupSnapshot,
    NflState,
    PlayerCatalog,
    PlayerSnapshot,
    RosterSnapshot,
)

__all__ = [
    "SleeperClient",
    "LeagueSnapshot",
    "LeagueUserSnapshot",
    "MatchupSnapshot",
    "NflState",
    "PlayerCatalog",
    "PlayerSnapshot",
    "RosterSnapshot",
]
