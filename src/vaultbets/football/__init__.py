"""Football data sources: fixtures and odds."""

from vaultbets.football.client import FootballApiClient, FootballApiError
from vaultbets.football.interfaces import IMatchSource, IOddsSource, OddsQuote
from vaultbets.football.sandbox import SandboxMatchSource

__all__ = [
    "FootballApiClient",
    "FootballApiError",
    "IMatchSource",
    "IOddsSource",
    "OddsQuote",
    "SandboxMatchSource",
]
