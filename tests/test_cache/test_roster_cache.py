"""Tests for RosterStatusService conference-scoped roster lookups."""
import sys
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from conftest import FakeClock, roster_snapshot  # noqa: E402

from league_sync.exceptions import ExternalSourceError  # noqa: E402
from league_sync.services.cache import SwrCache  # noqa: E402
from league_sync.services.cache.roster_cache import RosterStatusService, cache_key  # noqa: E402
from league_sync.services.sync.types import ConferenceTarget  # noqa: E402

TARGETS = [ConferenceTarget(1, "L1", "Legions"), ConferenceTarget(2, "L2", "Mars")]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rosters():
    return {
        "L1": [roster_snapshot(1, ["100", "101"], starters=["100"]), roster_snapshot(2, ["102"])],
        "L2": [roster_snapshot(2, ["100"], reserve=["100"])],
    }


@pytest.fixture
def client(rosters):
    client = Mock()
    client.fetch_league_rosters = AsyncMock(side_effect=lambda league_id: rosters[league_id])
    return client


@pytest.fixture
def service(store, league, client, clock):
    cache = SwrCache("rosters", stale_after=60, expire_after=120, clock=clock)
    return RosterStatusService(store, client, cache=cache, attempts=2, base_delay=0, max_delay=0)


class TestOwnership:

    @pytest.mark.asyncio
    async def test_player_ownership_per_conference(self, service):
        ownership = await service.get_player_ownership("100", TARGETS)

        assert ownership[1].is_rostered
        assert (ownership[1].team_id, ownership[1].team_name, ownership[1].roster_status) == (1, "Team 1", "active")
        assert (ownership[2].team_id, ownership[2].roster_status) == (4, "ir")

    @pytest.mark.asyncio
    async def test_unrostered_player(self, service):
        info = await service.get_player_roster_status("999", TARGETS)
        assert info.is_rostered is False

    @pytest.mark.asyncio
    async def test_single_conference_lookup(self, service):
        info = await service.get_player_roster_status("102", TARGETS, conference_id=2)
        assert info.is_rostered is False
        assert info.conference_id == 2

    @pytest.mark.asyncio
    async def test_reads_are_served_from_cache(self, service, client):
        await service.get_player_ownership("100", TARGETS)
        await service.get_player_ownership("101", TARGETS)

        assert client.fetch_league_rosters.await_count == 2
        assert service.stats()['api_calls'] == 2


class TestRefreshFailures:

    @pytest.mark.asyncio
    async def test_failed_conference_keeps_previous_data(self, service, client, rosters, clock):
        await service.get_roster_map(TARGETS)

        rosters["L2"] = [roster_snapshot(1, ["103"])]

        def fetch(league_id):
            if league_id == "L1":
                raise ExternalSourceError("rosters", "unavailable", 503)
            return rosters[league_id]

        client.fetch_league_rosters = AsyncMock(side_effect=fetch)
        clock.advance(121)

        lookup = await service.get_roster_map(TARGETS)

        assert lookup.value['failed'] == ["L1"]
        assert "100" in lookup.value['conferences']["L1"]['players']
        assert set(lookup.value['conferences']["L2"]['players']) == {"103"}
        assert client.fetch_league_rosters.await_count == 3  # L1 twice, L2 once

    @pytest.mark.asyncio
    async def test_every_conference_failing_raises(self, service, client):
        client.fetch_league_rosters = AsyncMock(side_effect=ExternalSourceError("rosters", "down", 500))

        with pytest.raises(ExternalSourceError):
            await service.get_roster_map(TARGETS)


class TestBackgroundRefresh:

    def test_registers_interval_job(self, service):
        scheduler = Mock()

        service.start_background_refresh(scheduler, TARGETS)

        job_id = scheduler.add_interval_job.call_args.args[0]
        assert job_id == f"roster_refresh:{cache_key(TARGETS)}"
        assert cache_key(TARGETS) == "rosters:L1,L2"

    @pytest.mark.asyncio
    async def test_refresh_replaces_value(self, service, rosters):
        await service.get_roster_map(TARGETS)
        rosters["L1"] = [roster_snapshot(1, ["104"])]

        await service.refresh(TARGETS)

        lookup = await service.get_roster_map(TARGETS)
        assert set(lookup.value['conferences']["L1"]['players']) == {"104"}
