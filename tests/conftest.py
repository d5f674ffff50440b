"""Shared pytest fixtures for league_sync tests."""
import sys
from datetime import datetime, timedelta
from pathlib import Path
from types import SimpleNamespace
from typing import Generator, Iterable, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from league_sync.models import (  # noqa: E402
    Base, Conference, Player, RosterEntry, Season, Team, TeamConference, TeamRecord,
)
from league_sync.repositories.store import StoreGateway  # noqa: E402
from league_sync.services.sleeper.schemas import PlayerSnapshot, RosterSnapshot  # noqa: E402


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestSessionLocal = sessionmaker(bind=engine, autoflush=False)
    session = TestSessionLocal()

    yield session

    session.close()
    engine.dispose()


@pytest.fixture
def store(db_session: Session) -> StoreGateway:
    return StoreGateway(db_session)


@pytest.fixture
def league(db_session: Session) -> SimpleNamespace:
    """
    Season 2024 with two conferences of two teams each.

    Conference 1 (league L1): teams 1, 2 on rosters 1, 2
    Conference 2 (league L2): teams 3, 4 on rosters 1, 2
    """
    season = Season(id=2024, season_year=2024, season_name="2024", is_current_season=True)
    conf_a = Conference(id=1, conference_name="Legions", league_id="L1", season_id=2024)
    conf_b = Conference(id=2, conference_name="Mars", league_id="L2", season_id=2024)
    teams = [Team(id=i, team_name=f"Team {i}", owner_id=f"owner{i}") for i in range(1, 5)]
    junctions = [
        TeamConference(team_id=1, conference_id=1, roster_id="1"),
        TeamConference(team_id=2, conference_id=1, roster_id="2"),
        TeamConference(team_id=3, conference_id=2, roster_id="1"),
        TeamConference(team_id=4, conference_id=2, roster_id="2"),
    ]
    db_session.add_all([season, conf_a, conf_b, *teams, *junctions])
    db_session.commit()
    return SimpleNamespace(season_id=2024, conference_ids=(1, 2), team_ids=(1, 2, 3, 4))


# ─────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────

def make_player(
    db: Session,
    sleeper_id: str,
    name: str = "Test Player",
    position: str = "WR",
    nfl_team: str = "KC",
    id: Optional[int] = None,
    **kwargs,
) -> Player:
    player = Player(
        id=id,
        sleeper_player_id=sleeper_id,
        player_name=name,
        position=position,
        nfl_team=nfl_team,
        **kwargs,
    )
    db.add(player)
    db.commit()
    return player


def make_entry(
    db: Session,
    team_id: int,
    player_id: int,
    season_id: int = 2024,
    week: int = 1,
    status: str = "bench",
    is_current: bool = True,
    conference_id: Optional[int] = None,
    last_updated: Optional[datetime] = None,
) -> RosterEntry:
    stamp = last_updated or datetime.utcnow()
    entry = RosterEntry(
        team_id=team_id,
        player_id=player_id,
        season_id=season_id,
        conference_id=conference_id,
        week=week,
        current_week=week,
        roster_status=status,
        is_current=is_current,
        added_date=stamp,
        last_updated=stamp,
    )
    db.add(entry)
    db.commit()
    return entry


def make_team_record(
    db: Session,
    team_id: int,
    conference_id: int,
    season_id: int = 2024,
    last_updated: Optional[datetime] = None,
    wins: int = 0,
) -> TeamRecord:
    record = TeamRecord(
        team_id=team_id,
        conference_id=conference_id,
        season_id=season_id,
        wins=wins,
        last_updated=last_updated or datetime.utcnow(),
    )
    db.add(record)
    db.commit()
    return record


def player_snapshot(player_id: str, first: str = "Test", last: str = "Player", **kwargs) -> PlayerSnapshot:
    data = {"player_id": player_id, "first_name": first, "last_name": last,
            "position": "WR", "team": "KC", **kwargs}
    return PlayerSnapshot.model_validate(data)


def roster_snapshot(
    roster_id: int,
    players: Iterable[str],
    starters: Iterable[str] = (),
    reserve: Iterable[str] = (),
    owner_id: Optional[str] = None,
) -> RosterSnapshot:
    return RosterSnapshot.model_validate({
        "roster_id": roster_id,
        "owner_id": owner_id,
        "players": list(players),
        "starters": list(starters),
        "reserve": list(reserve) or None,
    })


def current_entries(db: Session, **filters):
    """Current RosterEntry rows matching column filters."""
    db.expire_all()
    return db.query(RosterEntry).filter_by(is_current=True, **filters).all()


class FakeClock:
    """Manually advanced wall clock for cache tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def minutes_ago(minutes: int) -> datetime:
    return datetime.utcnow() - timedelta(minutes=minutes)
