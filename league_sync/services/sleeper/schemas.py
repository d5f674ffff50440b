"""
Typed snapshots of Sleeper API responses.

Only fields the sync engine reads are declared; everything else in the
payload is ignored. Sleeper sends `null` for empty player lists, which the
validators turn into empty lists.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator


class _Snapshot(BaseModel):
    model_config = ConfigDict(extra="ignore")


class PlayerSnapshot(_Snapshot):
    """One entry of /players/nfl."""
    player_id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: Optional[str] = None
    position: Optional[str] = None
    team: Optional[str] = None
    number: Optional[int] = None
    status: Optional[str] = None
    injury_status: Optional[str] = None
    age: Optional[int] = None
    height: Optional[str] = None
    weight: Optional[str] = None
    years_exp: Optional[int] = None
    college: Optional[str] = None
    depth_chart_order: Optional[int] = None

    @field_validator("player_id", "height", "weight", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return str(value) if value is not None else None

    @property
    def display_name(self) -> str:
        names = [n for n in (self.first_name, self.last_name) if n]
        if names:
            return " ".join(names)
        return self.full_name or "Unknown Player"


class RosterSnapshot(_Snapshot):
    """One entry of /league/{id}/rosters."""
    roster_id: int
    owner_id: Optional[str] = None
    league_id: Optional[str] = None
    players: List[str] = []
    starters: List[str] = []
    reserve: List[str] = []
    taxi: List[str] = []
    settings: Dict[str, Any] = {}

    @field_validator("players", "starters", "reserve", "taxi", mode="before")
    @classmethod
    def _null_to_list(cls, value: Any) -> Any:
        if value is None:
            return []
        # Empty starter slots come back as "0"
        return [str(v) for v in value if v not in (None, "0", 0)]

    @field_validator("settings", mode="before")
    @classmethod
    def _null_to_dict(cls, value: Any) -> Any:
        return value or {}


class MatchupSnapshot(_Snapshot):
    """One entry of /league/{id}/matchups/{week}."""
    roster_id: int
    matchup_id: Optional[int] = None
    points: float = 0.0
    players: List[str] = []
    starters: List[str] = []
    players_points: Dict[str, float] = {}

    @field_validator("players", "starters", mode="before")
    @classmethod
    def _null_to_list(cls, value: Any) -> Any:
        if value is None:
            return []
        return [str(v) for v in value if v not in (None, "0", 0)]

    @field_validator("points", mode="before")
    @classmethod
    def _null_points(cls, value: Any) -> Any:
        return value if value is not None else 0.0

    @field_validator("players_points", mode="before")
    @classmethod
    def _null_points_map(cls, value: Any) -> Any:
        return value or {}


class LeagueUserSnapshot(_Snapshot):
    """One entry of /league/{id}/users."""
    user_id: str
    display_name: Optional[str] = None
    metadata: Dict[str, Any] = {}

    @field_validator("metadata", mode="before")
    @classmethod
    def _null_to_dict(cls, value: Any) -> Any:
        return value or {}

    @property
    def team_name(self) -> Optional[str]:
        return self.metadata.get("team_name") or self.display_name


class LeagueSnapshot(_Snapshot):
    """/league/{id}."""
    league_id: str
    name: Optional[str] = None
    season: Optional[str] = None
    status: Optional[str] = None
    total_rosters: Optional[int] = None
    roster_positions: List[str] = []
    settings: Dict[str, Any] = {}


class NflState(_Snapshot):
    """/state/nfl."""
    week: int = 0
    season: Optional[str] = None
    season_type: Optional[str] = None
    display_week: Optional[int] = None


class PlayerCatalog(Dict[str, PlayerSnapshot]):
    """
    Result of /players/nfl keyed by Sleeper player id.

    `rejected` maps the ids whose payload failed validation to the reason;
    those players are left out of the mapping.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.rejected: Dict[str, str] = {}


def describe_validation_error(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'payload'}: {err['msg']}"
        for err in error.errors()
    )
