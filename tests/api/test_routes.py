"""
HTTP endpoint tests for the sync API.

The app is built without running its lifespan; the database and the service
container are supplied through dependency overrides.
"""
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

PROJECT_ROOT = Path(__file__).parent.parent.parent
sys.path.insert(0, str(PROJECT_ROOT))
sys.path.insert(0, str(PROJECT_ROOT / "tests"))

from conftest import make_entry, make_player, roster_snapshot, player_snapshot  # noqa: E402

from league_sync.api.routes.sync import get_services  # noqa: E402
from league_sync.core.config import settings  # noqa: E402
from league_sync.core.database import get_db  # noqa: E402
from league_sync.exceptions import SyncInProgressError  # noqa: E402
from league_sync.main import create_app  # noqa: E402
from league_sync.services.availability import PlayerAvailabilityCalculator  # noqa: E402
from league_sync.services.cache import SwrCache  # noqa: E402
from league_sync.services.cache.roster_cache import RosterStatusService  # noqa: E402
from league_sync.services.sync.engine import RosterSyncEngine  # noqa: E402
from league_sync.services.sync.types import SyncResult  # noqa: E402


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def sleeper_client():
    client = Mock()
    client.fetch_all_players = AsyncMock(return_value={
        "100": player_snapshot("100", "Patrick", "Mahomes", position="QB"),
        "101": player_snapshot("101", "Travis", "Kelce", position="TE"),
    })
    rosters = {
        "L1": [roster_snapshot(1, ["100"], starters=["100"]), roster_snapshot(2, ["101"])],
        "L2": [roster_snapshot(1, ["101"])],
    }
    client.fetch_league_rosters = AsyncMock(side_effect=lambda league_id: rosters[league_id])
    return client


@pytest.fixture
def services(store, sleeper_client):
    availability_cache = SwrCache("availability", stale_after=60, expire_after=60)
    return SimpleNamespace(
        engine=RosterSyncEngine(store, sleeper_client, scheduler=Mock(), batch_delay=0),
        calculator=lambda s=None: PlayerAvailabilityCalculator(s or store, cache=availability_cache),
        roster_status=RosterStatusService(store, sleeper_client, attempts=1, base_delay=0),
    )


@pytest.fixture
def client(db_session, league, services):
    app = create_app()

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_services] = lambda: services
    return TestClient(app)


# =============================================================================
# SYNC
# =============================================================================

class TestSyncEndpoints:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()['status'] == "ok"

    def test_run_sync(self, client):
        response = client.post("/sync/run", json={"season_id": 2024, "week": 1})

        assert response.status_code == 200
        body = response.json()
        assert body['success'] is True
        assert body['records_processed'] == 5  # 2 players + 3 roster entries
        assert body['api_calls'] == 3

    def test_run_sync_single_conference(self, client, sleeper_client):
        response = client.post("/sync/run", json={"season_id": 2024, "week": 1, "conference_ids": [2]})

        assert response.status_code == 200
        sleeper_client.fetch_league_rosters.assert_awaited_once_with("L2")

    def test_run_sync_unknown_season(self, client):
        response = client.post("/sync/run", json={"season_id": 1999, "week": 1})
        assert response.status_code == 404

    def test_run_sync_while_running(self, client, services):
        services.engine = Mock()
        services.engine.full_sync = AsyncMock(side_effect=SyncInProgressError())

        response = client.post("/sync/run", json={"season_id": 2024, "week": 1})

        assert response.status_code == 409

    def test_run_sync_tuning_options(self, client, services):
        services.engine = Mock()
        services.engine.full_sync = AsyncMock(return_value=SyncResult(success=True))

        response = client.post("/sync/run", json={
            "season_id": 2024, "week": 1,
            "batch_size": 10, "retry_attempts": 5, "retry_delay_ms": 250,
        })

        assert response.status_code == 200
        config = services.engine.full_sync.await_args.args[0]
        assert (config.batch_size, config.retry_attempts, config.retry_delay_ms) == (10, 5, 250)

    def test_run_sync_tuning_defaults_come_from_settings(self, client, services):
        services.engine = Mock()
        services.engine.full_sync = AsyncMock(return_value=SyncResult(success=True))

        client.post("/sync/run", json={"season_id": 2024, "week": 1})

        config = services.engine.full_sync.await_args.args[0]
        assert config.batch_size == settings.SYNC_BATCH_SIZE
        assert config.retry_attempts == settings.SYNC_RETRY_ATTEMPTS

    def test_run_sync_rejects_zero_batch_size(self, client):
        response = client.post("/sync/run", json={"season_id": 2024, "week": 1, "batch_size": 0})
        assert response.status_code == 422

    def test_invalid_body(self, client):
        response = client.post("/sync/run", json={"week": 1})
        assert response.status_code == 422

    def test_state_and_stop_when_idle(self, client):
        state = client.get("/sync/state").json()
        assert state['is_running'] is False
        assert state['progress']['stage'] == "Idle"

        assert client.post("/sync/stop").json() == {'stop_requested': False}

    def test_status_after_run(self, client):
        assert client.get("/sync/status").json()['health_status'] == "unhealthy"

        client.post("/sync/run", json={"season_id": 2024, "week": 1})

        status = client.get("/sync/status").json()
        assert status['health_status'] == "healthy"
        assert status['total_jobs'] == 3


# =============================================================================
# AVAILABILITY
# =============================================================================

class TestAvailabilityEndpoints:

    def test_player_availability(self, client, db_session):
        player = make_player(db_session, "100", "Patrick Mahomes", position="QB")
        make_entry(db_session, team_id=2, player_id=player.id, week=3, conference_id=1)

        response = client.get(f"/sync/availability/{player.id}", params={"season_id": 2024, "week": 5})

        assert response.status_code == 200
        body = response.json()
        assert body['is_available'] is False
        assert body['owned_by_team_id'] == 2

    def test_conference_scoped_availability(self, client, db_session):
        player = make_player(db_session, "100", "Patrick Mahomes", position="QB")
        make_entry(db_session, team_id=2, player_id=player.id, week=3, conference_id=1)

        response = client.get(
            f"/sync/availability/{player.id}",
            params={"season_id": 2024, "week": 5, "conference_id": 2},
        )

        assert response.json()['is_available'] is True

    def test_stats(self, client, db_session):
        make_player(db_session, "1", "QB One", position="QB")
        make_player(db_session, "2", "RB One", position="RB")

        response = client.get("/sync/availability/stats", params={"season_id": 2024, "week": 5, "position": ["QB"]})

        assert response.status_code == 200
        assert response.json()['total_players'] == 1

    def test_conflicts(self, client, db_session):
        player = make_player(db_session, "1", "Contested")
        make_entry(db_session, team_id=1, player_id=player.id, conference_id=1)
        make_entry(db_session, team_id=2, player_id=player.id, conference_id=1)

        body = client.get("/sync/availability/conflicts", params={"season_id": 2024, "week": 5}).json()

        assert body['count'] == 1
        assert body['conflicts'][0]['conflict_type'] == "same_conference"

    def test_live_roster_status(self, client):
        response = client.get("/sync/rosters/101", params={"season_id": 2024})

        assert response.status_code == 200
        conferences = {c['conference_id']: c for c in response.json()['conferences']}
        assert conferences[1]['team_id'] == 2
        assert conferences[2]['team_id'] == 3


# =============================================================================
# INTEGRITY
# =============================================================================

class TestIntegrityEndpoints:

    def test_audit_and_cleanup(self, client, db_session):
        from league_sync.models import TeamRecord
        db_session.add_all([
            TeamRecord(team_id=1, conference_id=1, season_id=2024),
            TeamRecord(team_id=99, conference_id=1, season_id=2024),
        ])
        db_session.commit()

        audit = client.get("/sync/integrity/audit").json()
        assert audit['orphaned_records'] == 1
        assert audit['has_issues'] is True

        cleanup = client.post("/sync/integrity/cleanup").json()
        assert cleanup['success'] is True
        assert cleanup['records_deleted'] == 1

        assert client.get("/sync/integrity/audit").json()['has_issues'] is False
