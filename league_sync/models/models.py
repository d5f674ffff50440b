"""
Database models for league synchronization.

Cross-table references are plain indexed integer columns rather than foreign
keys: the store is treated as a generic collection service, and referential
problems (orphans, missing junctions) are found and repaired by the integrity
service instead of being rejected at write time.
"""
from datetime import datetime

from sqlalchemy import (
    Boolean, Column, DateTime, Float, Index, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


# =============================================================================
# LEAGUE STRUCTURE
# =============================================================================

class Season(Base):
    """A fantasy season (e.g. 2024)."""
    __tablename__ = "seasons"

    id = Column(Integer, primary_key=True, autoincrement=True)
    season_year = Column(Integer, nullable=False, index=True)
    season_name = Column(String(64), nullable=True)
    is_current_season = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class Conference(Base):
    """One external league instance within a season."""
    __tablename__ = "conferences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    conference_name = Column(String(128), nullable=False)
    league_id = Column(String(64), nullable=False, index=True)  # Sleeper league id
    season_id = Column(Integer, nullable=True, index=True)
    status = Column(String(16), nullable=False, default='active')
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class Team(Base):
    """A fantasy franchise."""
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_name = Column(String(128), nullable=False)
    owner_name = Column(String(128), nullable=True)
    owner_id = Column(String(64), nullable=True, index=True)  # Sleeper user id
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class TeamConference(Base):
    """Junction mapping a team to its external roster id within a conference."""
    __tablename__ = "team_conference_junction"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, nullable=False, index=True)
    conference_id = Column(Integer, nullable=False, index=True)
    roster_id = Column(String(32), nullable=True)  # Sleeper roster id
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    joined_date = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('team_id', 'conference_id', name='uq_junction_team_conference'),
        Index('ix_junction_conference_roster', 'conference_id', 'roster_id'),
    )


class TeamRecord(Base):
    """Standings row for a team within a conference and season."""
    __tablename__ = "team_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, nullable=False, index=True)
    conference_id = Column(Integer, nullable=False, index=True)
    season_id = Column(Integer, nullable=False, index=True)
    wins = Column(Integer, nullable=False, default=0)
    losses = Column(Integer, nullable=False, default=0)
    ties = Column(Integer, nullable=False, default=0)
    points_for = Column(Float, nullable=False, default=0.0)
    points_against = Column(Float, nullable=False, default=0.0)
    win_percentage = Column(Float, nullable=False, default=0.0)
    conference_rank = Column(Integer, nullable=False, default=0)
    overall_rank = Column(Integer, nullable=False, default=0)
    playoff_eligible = Column(Boolean, nullable=False, default=False)
    is_conference_champion = Column(Boolean, nullable=False, default=False)
    last_updated = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_team_records_key', 'team_id', 'conference_id', 'season_id'),
    )


# =============================================================================
# PLAYERS AND ROSTERS
# =============================================================================

class Player(Base):
    """Canonical player identity mirrored from Sleeper."""
    __tablename__ = "players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sleeper_player_id = Column(String(32), nullable=False, index=True)
    player_name = Column(String(128), nullable=False)
    position = Column(String(8), nullable=False, default='UNK', index=True)
    nfl_team = Column(String(8), nullable=False, default='FA', index=True)
    jersey_number = Column(Integer, nullable=True)
    status = Column(String(32), nullable=False, default='Active')
    injury_status = Column(String(32), nullable=False, default='Healthy', index=True)
    age = Column(Integer, nullable=True)
    height = Column(String(16), nullable=True)
    weight = Column(String(16), nullable=True)
    years_experience = Column(Integer, nullable=True)
    college = Column(String(128), nullable=True)
    depth_chart_order = Column(Integer, nullable=True)
    data_version = Column(Integer, nullable=False, default=1)
    is_current_data = Column(Boolean, nullable=False, default=True, index=True)
    last_updated = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_players_sleeper_current', 'sleeper_player_id', 'is_current_data'),
    )


class RosterEntry(Base):
    """
    Team T holds player P in season S from week W.

    `week` is the week the player was acquired, `current_week` the last week
    a sync confirmed the holding. At most one row per (team, player, season)
    has is_current set.
    """
    __tablename__ = "team_rosters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, nullable=False, index=True)
    player_id = Column(Integer, nullable=False, index=True)
    season_id = Column(Integer, nullable=False, index=True)
    conference_id = Column(Integer, nullable=True, index=True)
    week = Column(Integer, nullable=False)
    current_week = Column(Integer, nullable=False)
    roster_status = Column(String(16), nullable=False, default='bench')
    is_current = Column(Boolean, nullable=False, default=True, index=True)
    added_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    removed_date = Column(DateTime, nullable=True)
    last_updated = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_team_rosters_current', 'player_id', 'season_id', 'is_current'),
        Index('ix_team_rosters_team_season', 'team_id', 'season_id'),
    )


class RosterHistoryEntry(Base):
    """Append-only log of roster transactions."""
    __tablename__ = "roster_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    player_id = Column(Integer, nullable=False, index=True)
    season_id = Column(Integer, nullable=False, index=True)
    conference_id = Column(Integer, nullable=True)
    week = Column(Integer, nullable=False)
    action_type = Column(String(24), nullable=False, index=True)
    from_team_id = Column(Integer, nullable=True)
    to_team_id = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    transaction_date = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)


class AvailabilityCacheEntry(Base):
    """Durable mirror of computed availability; always re-derivable."""
    __tablename__ = "player_availability_cache"

    id = Column(Integer, primary_key=True, autoincrement=True)
    player_id = Column(Integer, nullable=False)
    season_id = Column(Integer, nullable=False)
    week = Column(Integer, nullable=False)
    conference_id = Column(Integer, nullable=True)
    is_available = Column(Boolean, nullable=False)
    owned_by_team_id = Column(Integer, nullable=True)
    owned_by_conference_id = Column(Integer, nullable=True)
    roster_status = Column(String(16), nullable=False)
    waiver_priority = Column(Integer, nullable=True)
    cache_updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_availability_key', 'player_id', 'season_id', 'week', 'conference_id'),
    )


# =============================================================================
# SYNC TRACKING
# =============================================================================

class SyncStatus(Base):
    """Last run of one sync type for a conference/season/week."""
    __tablename__ = "sync_status"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sync_type = Column(String(16), nullable=False)  # 'players' | 'rosters'
    conference_id = Column(Integer, nullable=True)
    season_id = Column(Integer, nullable=True)
    week = Column(Integer, nullable=True)
    sync_status = Column(String(16), nullable=False, index=True)  # success | partial | failed
    last_sync_started = Column(DateTime, nullable=True)
    last_sync_completed = Column(DateTime, nullable=True, index=True)
    sync_duration_ms = Column(Integer, nullable=True)
    records_processed = Column(Integer, nullable=False, default=0)
    errors_encountered = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    api_calls = Column(Integer, nullable=False, default=0)
    next_sync_due = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint('sync_type', 'conference_id', 'season_id', 'week', name='uq_sync_status_key'),
    )
