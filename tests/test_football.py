"""Tests for the API-Football client and the sandbox source."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from vaultbets.common.config import FootballApiConfig
from vaultbets.football.client import FootballApiClient, FootballApiError, season_for
from vaultbets.football.sandbox import SANDBOX_FIXTURE_ID_BASE, SandboxMatchSource
from vaultbets.tips.bet_types import BetType

START = datetime(2026, 1, 13, 10, 0, tzinfo=UTC)
END = START + timedelta(hours=48)


def fixture_item(fixture_id: int, kickoff: str, league_id: int = 39) -> dict:
    return {
        "fixture": {"id": fixture_id, "date": kickoff, "venue": {"name": "Emirates Stadium"}},
        "league": {"id": league_id},
        "teams": {
            "home": {"id": 42, "name": "Arsenal"},
            "away": {"id": 49, "name": "Chelsea"},
        },
    }


ODDS_RESPONSE = {
    "errors": [],
    "response": [
        {
            "bookmakers": [
                {
                    "name": "Bet365",
                    "bets": [
                        {
                            "name": "Match Winner",
                            "values": [
                                {"value": "Home", "odd": "1.85"},
                                {"value": "Draw", "odd": "3.60"},
                                {"value": "Away", "odd": "4.20"},
                            ],
                        },
                        {
                            "name": "Goals Over/Under",
                            "values": [
                                {"value": "Over 2.5", "odd": "1.72"},
                                {"value": "Under 2.5", "odd": "2.10"},
                            ],
                        },
                    ],
                }
            ]
        }
    ],
}


@pytest.fixture
def api_config() -> FootballApiConfig:
    return FootballApiConfig(api_key="test_key", league_ids=[39, 40], rate_limit_per_minute=6000)


class TestSeasonFor:
    """Test season year derivation."""

    def test_second_half_of_season(self):
        assert season_for(datetime(2026, 1, 13, tzinfo=UTC)) == 2025

    def test_new_season_starts_in_july(self):
        assert season_for(datetime(2026, 7, 1, tzinfo=UTC)) == 2026
        assert season_for(datetime(2026, 6, 30, tzinfo=UTC)) == 2025


class TestListUpcoming:
    """Test fixture listing across leagues."""

    @pytest.mark.asyncio
    async def test_parses_and_filters_window(self, api_config: FootballApiConfig):
        client = FootballApiClient(api_config)
        responses = [
            {
                "response": [
                    fixture_item(1001, "2026-01-14T20:00:00+00:00"),
                    fixture_item(1002, "2026-01-20T15:00:00+00:00"),
                ]
            },
            {"response": [fixture_item(2001, "2026-01-13T19:45:00+00:00", league_id=40)]},
        ]

        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.side_effect = responses
            fixtures = await client.list_upcoming(START, END)

        assert [f.fixture_id for f in fixtures] == [2001, 1001]
        first = fixtures[1]
        assert first.home_team_name == "Arsenal"
        assert first.venue == "Emirates Stadium"
        assert first.kickoff_utc == datetime(2026, 1, 14, 20, 0, tzinfo=UTC)

        params = mock_request.call_args_list[0].args[1]
        assert params == {
            "league": 39,
            "season": 2025,
            "from": "2026-01-13",
            "to": "2026-01-15",
            "status": "NS",
        }

    @pytest.mark.asyncio
    async def test_skips_entries_without_kickoff(self, api_config: FootballApiConfig):
        client = FootballApiClient(api_config.model_copy(update={"league_ids": [39]}))
        broken = fixture_item(1003, "")
        bad_date = fixture_item(1004, "not a date")

        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.return_value = {"response": [broken, bad_date]}
            assert await client.list_upcoming(START, END) == []

    @pytest.mark.asyncio
    async def test_failing_league_is_skipped(self, api_config: FootballApiConfig):
        client = FootballApiClient(api_config)

        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.side_effect = [
                FootballApiError("API error: 500", status_code=500),
                {"response": [fixture_item(2001, "2026-01-14T12:30:00Z", league_id=40)]},
            ]
            fixtures = await client.list_upcoming(START, END)

        assert [f.fixture_id for f in fixtures] == [2001]

    @pytest.mark.asyncio
    async def test_all_leagues_failing_raises(self, api_config: FootballApiConfig):
        client = FootballApiClient(api_config)

        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.side_effect = FootballApiError("HTTP error: timeout")
            with pytest.raises(FootballApiError, match="All league requests failed"):
                await client.list_upcoming(START, END)


class TestGetOdds:
    """Test odds market lookup."""

    @pytest.mark.asyncio
    async def test_matches_market_and_selection(self, api_config: FootballApiConfig):
        client = FootballApiClient(api_config)

        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.return_value = ODDS_RESPONSE
            quote = await client.get_odds(1001, BetType.OVER_2_5_GOALS)

        assert quote.odds == 1.72
        assert quote.bookmaker == "Bet365"
        assert quote.bet_type == BetType.OVER_2_5_GOALS
        mock_request.assert_awaited_once_with("/odds", {"fixture": 1001})

    @pytest.mark.asyncio
    async def test_market_not_offered(self, api_config: FootballApiConfig):
        client = FootballApiClient(api_config)

        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.return_value = ODDS_RESPONSE
            assert await client.get_odds(1001, BetType.BTTS_YES) is None

    @pytest.mark.asyncio
    async def test_bookmaker_filter(self, api_config: FootballApiConfig):
        client = FootballApiClient(api_config.model_copy(update={"bookmaker_id": 8}))

        with patch.object(client, "_request", new_callable=AsyncMock) as mock_request:
            mock_request.return_value = ODDS_RESPONSE
            await client.get_odds(1001, BetType.HOME_WIN)

        mock_request.assert_awaited_once_with("/odds", {"fixture": 1001, "bookmaker": 8})


class TestRequest:
    """Test HTTP handling."""

    @staticmethod
    def _client_with(api_config: FootballApiConfig, handler) -> FootballApiClient:
        return FootballApiClient(api_config, transport=httpx.MockTransport(handler))

    def test_requires_context_manager(self, api_config: FootballApiConfig):
        with pytest.raises(RuntimeError):
            _ = FootballApiClient(api_config).client

    @pytest.mark.asyncio
    async def test_success(self, api_config: FootballApiConfig):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/fixtures"
            assert request.url.params["league"] == "39"
            assert request.headers["x-apisports-key"] == "test_key"
            return httpx.Response(200, json={"errors": [], "response": []})

        async with self._client_with(api_config, handler) as client:
            data = await client._request("/fixtures", {"league": 39})

        assert data["response"] == []

    @pytest.mark.asyncio
    async def test_http_error_status(self, api_config: FootballApiConfig):
        async with self._client_with(
            api_config, lambda request: httpx.Response(503, json={"message": "down"})
        ) as client:
            with pytest.raises(FootballApiError) as exc_info:
                await client._request("/fixtures", {})

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_api_level_errors(self, api_config: FootballApiConfig):
        async with self._client_with(
            api_config,
            lambda request: httpx.Response(200, json={"errors": {"token": "invalid key"}}),
        ) as client:
            with pytest.raises(FootballApiError, match="invalid key"):
                await client._request("/fixtures", {})

    @pytest.mark.asyncio
    async def test_transport_error(self, api_config: FootballApiConfig):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with self._client_with(api_config, handler) as client:
            with pytest.raises(FootballApiError, match="HTTP error"):
                await client._request("/fixtures", {})


class TestCheckHealth:
    """Test the account status check."""

    @pytest.mark.asyncio
    async def test_status_endpoint(self, api_config: FootballApiConfig):
        paths = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            body = {"errors": [], "response": {"requests": {"current": 12, "limit_day": 100}}}
            return httpx.Response(200, json=body)

        async with FootballApiClient(
            api_config, transport=httpx.MockTransport(handler)
        ) as client:
            await client.check_health()

        assert paths == ["/status"]

    @pytest.mark.asyncio
    async def test_unreachable_raises(self, api_config: FootballApiConfig):
        async with FootballApiClient(
            api_config,
            transport=httpx.MockTransport(lambda request: httpx.Response(500, json={})),
        ) as client:
            with pytest.raises(FootballApiError):
                await client.check_health()


class TestSandboxMatchSource:
    """Test synthetic fixtures."""

    @pytest.mark.asyncio
    async def test_spread_across_window(self):
        fixtures = await SandboxMatchSource(fixture_count=3).list_upcoming(START, END)

        assert [f.fixture_id for f in fixtures] == [
            SANDBOX_FIXTURE_ID_BASE,
            SANDBOX_FIXTURE_ID_BASE + 1,
            SANDBOX_FIXTURE_ID_BASE + 2,
        ]
        assert [f.kickoff_utc - START for f in fixtures] == [
            timedelta(hours=12),
            timedelta(hours=24),
            timedelta(hours=36),
        ]
        assert all(f.home_team_id != f.away_team_id for f in fixtures)

    @pytest.mark.asyncio
    async def test_deterministic(self):
        source = SandboxMatchSource()
        assert await source.list_upcoming(START, END) == await source.list_upcoming(START, END)
