"""
Tests for SleeperClient using httpx.MockTransport.
"""
import httpx
import pytest

from league_sync.exceptions import ExternalSourceError
from league_sync.services.sleeper import SleeperClient


def make_client(handler) -> SleeperClient:
    transport = httpx.MockTransport(handler)
    return SleeperClient(
        base_url="https://api.sleeper.test/v1",
        client=httpx.AsyncClient(transport=transport),
    )


class TestSleeperClient:

    @pytest.mark.asyncio
    async def test_fetch_all_players_keys_by_id(self):
        def handler(request):
            assert request.url.path == "/v1/players/nfl"
            return httpx.Response(200, json={
                "4046": {"first_name": "Patrick", "last_name": "Mahomes", "position": "QB", "team": "KC"},
                "6794": {"full_name": "Justin Jefferson", "position": "WR"},
            })

        players = await make_client(handler).fetch_all_players()

        assert set(players) == {"4046", "6794"}
        assert players["4046"].display_name == "Patrick Mahomes"
        assert players["6794"].player_id == "6794"
        assert players["6794"].display_name == "Justin Jefferson"

    @pytest.mark.asyncio
    async def test_malformed_player_entries_are_rejected_individually(self):
        def handler(request):
            return httpx.Response(200, json={
                "4046": {"first_name": "Patrick", "last_name": "Mahomes", "position": "QB"},
                "1234": {"first_name": "Broken", "age": "unknown"},
                "5678": "not an object",
            })

        players = await make_client(handler).fetch_all_players()

        assert list(players) == ["4046"]
        assert set(players.rejected) == {"1234", "5678"}
        assert players.rejected["1234"].startswith("age:")

    @pytest.mark.asyncio
    async def test_fetch_rosters_normalizes_nulls(self):
        def handler(request):
            return httpx.Response(200, json=[{
                "roster_id": 3,
                "owner_id": "u3",
                "players": ["4046", "6794"],
                "starters": ["4046", "0"],
                "reserve": None,
                "taxi": None,
                "settings": None,
            }])

        rosters = await make_client(handler).fetch_league_rosters("L1")

        assert rosters[0].roster_id == 3
        assert rosters[0].starters == ["4046"]
        assert rosters[0].reserve == []
        assert rosters[0].settings == {}

    @pytest.mark.asyncio
    async def test_http_error_becomes_external_source_error(self):
        client = make_client(lambda request: httpx.Response(503))

        with pytest.raises(ExternalSourceError) as exc_info:
            await client.fetch_league_rosters("L1")
        assert exc_info.value.status_code == 503
        assert exc_info.value.endpoint == "rosters"

    @pytest.mark.asyncio
    async def test_transport_error_becomes_external_source_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ExternalSourceError) as exc_info:
            await make_client(handler).fetch_nfl_state()
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_empty_league_is_not_found(self):
        client = make_client(lambda request: httpx.Response(200, json=None))

        with pytest.raises(ExternalSourceError) as exc_info:
            await client.fetch_league("missing")
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_league_users_team_name(self):
        def handler(request):
            return httpx.Response(200, json=[
                {"user_id": "u1", "display_name": "alice", "metadata": {"team_name": "Alice's Aces"}},
                {"user_id": "u2", "display_name": "bob", "metadata": None},
            ])

        users = await make_client(handler).fetch_league_users("L1")

        assert [u.team_name for u in users] == ["Alice's Aces", "bob"]
