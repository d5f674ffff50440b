"""Tests for roster conflict resolution strategies."""
from datetime import datetime, timedelta

from league_sync.models.enums import ConflictStrategy
from league_sync.services.sync.conflicts import ConflictResolution

NOW = datetime(2024, 11, 10, 12, 0, 0)


def local(last_updated=NOW, status="bench"):
    return {'id': 7, 'team_id': 1, 'player_id': 42, 'roster_status': status, 'last_updated': last_updated}


def remote(last_updated=NOW, status="active"):
    return {'id': None, 'team_id': 1, 'player_id': 42, 'roster_status': status, 'last_updated': last_updated}


class TestLatestWins:

    def test_newer_remote_wins(self):
        decision = ConflictResolution().decide(local(NOW), remote(NOW + timedelta(minutes=1)))
        assert decision.use_remote is True

    def test_newer_local_wins(self):
        decision = ConflictResolution().decide(local(NOW), remote(NOW - timedelta(minutes=1)))
        assert decision.use_remote is False
        assert decision.winner['roster_status'] == "bench"

    def test_tie_goes_to_snapshot(self):
        decision = ConflictResolution().decide(local(NOW), remote(NOW))
        assert decision.use_remote is True

    def test_missing_local_timestamp(self):
        decision = ConflictResolution().decide(local(None), remote(NOW))
        assert decision.use_remote is True


class TestOtherStrategies:

    def test_api_priority_always_takes_remote(self):
        resolution = ConflictResolution(strategy=ConflictStrategy.API_PRIORITY)
        decision = resolution.decide(local(NOW + timedelta(days=1)), remote(NOW))
        assert decision.use_remote is True
        assert decision.needs_review is False

    def test_manual_review_keeps_local_and_flags(self):
        resolution = ConflictResolution(strategy=ConflictStrategy.MANUAL_REVIEW)
        decision = resolution.decide(local(NOW), remote(NOW + timedelta(days=1)))
        assert decision.use_remote is False
        assert decision.needs_review is True

    def test_custom_resolver_overrides_strategy(self):
        resolution = ConflictResolution(
            strategy=ConflictStrategy.API_PRIORITY,
            resolve=lambda loc, rem: loc,
        )
        decision = resolution.decide(local(), remote())
        assert decision.use_remote is False
