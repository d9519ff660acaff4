"""API-Football client: upcoming fixtures and pre-match odds."""

from datetime import datetime
from typing import Any

import httpx

from vaultbets.common.config import FootballApiConfig
from vaultbets.common.logging import get_logger
from vaultbets.common.rate_limit import RateLimiter, RequestLogger
from vaultbets.common.time_utils import parse_iso
from vaultbets.football.interfaces import IMatchSource, IOddsSource, OddsQuote
from vaultbets.storage.models import Fixture
from vaultbets.tips.bet_types import BetType

logger = get_logger(__name__)

# API-Football bet market name and selection value per bet type
ODDS_MARKETS: dict[BetType, tuple[str, str]] = {
    BetType.HOME_WIN: ("Match Winner", "Home"),
    BetType.DRAW: ("Match Winner", "Draw"),
    BetType.AWAY_WIN: ("Match Winner", "Away"),
    BetType.OVER_1_5_GOALS: ("Goals Over/Under", "Over 1.5"),
    BetType.UNDER_1_5_GOALS: ("Goals Over/Under", "Under 1.5"),
    BetType.OVER_2_5_GOALS: ("Goals Over/Under", "Over 2.5"),
    BetType.UNDER_2_5_GOALS: ("Goals Over/Under", "Under 2.5"),
    BetType.OVER_3_5_GOALS: ("Goals Over/Under", "Over 3.5"),
    BetType.UNDER_3_5_GOALS: ("Goals Over/Under", "Under 3.5"),
    BetType.BTTS_YES: ("Both Teams Score", "Yes"),
    BetType.BTTS_NO: ("Both Teams Score", "No"),
    BetType.HOME_HANDICAP_MINUS_1: ("Asian Handicap", "Home -1"),
    BetType.HOME_HANDICAP_PLUS_1: ("Asian Handicap", "Home +1"),
    BetType.AWAY_HANDICAP_MINUS_1: ("Asian Handicap", "Away -1"),
    BetType.AWAY_HANDICAP_PLUS_1: ("Asian Handicap", "Away +1"),
    BetType.DOUBLE_CHANCE_HOME_DRAW: ("Double Chance", "Home/Draw"),
    BetType.DOUBLE_CHANCE_AWAY_DRAW: ("Double Chance", "Draw/Away"),
    BetType.DOUBLE_CHANCE_HOME_AWAY: ("Double Chance", "Home/Away"),
    BetType.HOME_CLEAN_SHEET: ("Clean Sheet - Home", "Yes"),
    BetType.AWAY_CLEAN_SHEET: ("Clean Sheet - Away", "Yes"),
}


class FootballApiError(Exception):
    """Transport, HTTP or API-level failure talking to API-Football."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


def season_for(dt: datetime) -> int:
    """API-Football season year for a date (European seasons start in July)."""
    return dt.year if dt.month >= 7 else dt.year - 1


class FootballApiClient(IMatchSource, IOddsSource):
    """API-Football v3 client serving as both match and odds source.

    Requests share one per-minute limiter sized to the plan quota. Listing
    fixtures queries each configured league separately, so a league that
    errors is logged and skipped rather than failing the whole listing.
    """

    provider_name = "api_football"

    def __init__(
        self, config: FootballApiConfig, transport: httpx.AsyncBaseTransport | None = None
    ):
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self.rate_limiter = RateLimiter.per_minute(config.rate_limit_per_minute)
        self.request_logger = RequestLogger(self.provider_name)

    async def __aenter__(self) -> "FootballApiClient":
        """Async context manager entry."""
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            headers={"x-apisports-key": self.config.api_key},
            timeout=self.config.timeout_seconds,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get HTTP client, raising if not initialized."""
        if self._client is None:
            raise RuntimeError("Client not initialized. Use async context manager.")
        return self._client

    async def _request(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        """Make a rate-limited API request.

        Raises:
            FootballApiError: On HTTP or API-level errors.
        """
        wait_time = await self.rate_limiter.acquire()
        if wait_time > 0:
            logger.debug("rate_limit_wait", wait_seconds=round(wait_time, 2))

        start_time = self.request_logger.started("GET", endpoint)
        try:
            response = await self.client.get(endpoint, params=params)
        except httpx.HTTPError as e:
            self.request_logger.finished("GET", endpoint, start_time, error=str(e))
            raise FootballApiError(f"HTTP error: {e}") from e

        self.request_logger.finished("GET", endpoint, start_time, response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise FootballApiError(
                f"Invalid JSON from {endpoint}", status_code=response.status_code
            ) from e

        if response.status_code != 200:
            raise FootballApiError(
                f"API error: {response.status_code}",
                status_code=response.status_code,
                response_body=data,
            )

        errors = data.get("errors")
        if errors:
            logger.warning("api_error_response", endpoint=endpoint, errors=errors)
            raise FootballApiError(str(errors), response_body=data)

        return data

    async def list_upcoming(self, start: datetime, end: datetime) -> list[Fixture]:
        """List not-started fixtures across configured leagues.

        A failing league is logged and skipped; the call only fails when
        every league request fails.
        """
        fixtures: list[Fixture] = []
        failures: list[str] = []

        for league_id in self.config.league_ids:
            params = {
                "league": league_id,
                "season": season_for(start),
                "from": start.strftime("%Y-%m-%d"),
                "to": end.strftime("%Y-%m-%d"),
                "status": "NS",
            }
            try:
                data = await self._request("/fixtures", params)
            except FootballApiError as e:
                logger.error("league_fetch_failed", league_id=league_id, error=str(e))
                failures.append(f"{league_id}: {e}")
                continue

            league_fixtures = [
                f for f in self._parse_fixtures(data) if start <= f.kickoff_utc <= end
            ]
            logger.info("league_fixtures_fetched", league_id=league_id, count=len(league_fixtures))
            fixtures.extend(league_fixtures)

        if self.config.league_ids and len(failures) == len(self.config.league_ids):
            raise FootballApiError(f"All league requests failed: {'; '.join(failures)}")

        fixtures.sort(key=lambda f: f.kickoff_utc)
        return fixtures

    async def check_health(self) -> None:
        """Query the account status endpoint, which does not count against the quota."""
        data = await self._request("/status", {})
        account = data.get("response")
        requests = account.get("requests", {}) if isinstance(account, dict) else {}
        logger.info(
            "api_status",
            requests_today=requests.get("current"),
            daily_limit=requests.get("limit_day"),
        )

    def _parse_fixtures(self, data: dict[str, Any]) -> list[Fixture]:
        """Parse fixtures from API response, skipping entries without kickoff."""
        fixtures = []
        for item in data.get("response", []):
            fixture_info = item.get("fixture", {})
            teams = item.get("teams", {})
            league = item.get("league", {})

            kickoff_str = fixture_info.get("date")
            if not kickoff_str:
                continue
            try:
                kickoff = parse_iso(kickoff_str)
            except ValueError:
                logger.warning("invalid_kickoff_time", fixture_id=fixture_info.get("id"))
                continue

            fixtures.append(
                Fixture(
                    fixture_id=fixture_info.get("id", 0),
                    league_id=league.get("id", 0),
                    home_team_id=teams.get("home", {}).get("id", 0),
                    away_team_id=teams.get("away", {}).get("id", 0),
                    home_team_name=teams.get("home", {}).get("name", ""),
                    away_team_name=teams.get("away", {}).get("name", ""),
                    kickoff_utc=kickoff,
                    venue=(fixture_info.get("venue") or {}).get("name") or "",
                )
            )
        return fixtures

    async def get_odds(self, fixture_id: int, bet_type: BetType) -> OddsQuote | None:
        """Get current pre-match odds for a bet type from the first bookmaker offering it."""
        params: dict[str, Any] = {"fixture": fixture_id}
        if self.config.bookmaker_id is not None:
            params["bookmaker"] = self.config.bookmaker_id

        data = await self._request("/odds", params)
        market_name, selection = ODDS_MARKETS[bet_type]

        for item in data.get("response", []):
            for bookmaker in item.get("bookmakers", []):
                for bet in bookmaker.get("bets", []):
                    if bet.get("name") != market_name:
                        continue
                    for value in bet.get("values", []):
                        if str(value.get("value")) == selection:
                            return OddsQuote(
                                fixture_id=fixture_id,
                                bet_type=bet_type,
                                odds=float(value.get("odd")),
                                bookmaker=bookmaker.get("name", ""),
                            )
        return None
