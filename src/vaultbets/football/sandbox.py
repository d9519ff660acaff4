"""Synthetic fixtures for smoke-testing the pipeline."""

from datetime import datetime

from vaultbets.football.interfaces import IMatchSource
from vaultbets.storage.models import Fixture

# Kept well clear of real API-Football fixture IDs
SANDBOX_FIXTURE_ID_BASE = 900_000_000
SANDBOX_LEAGUE_ID = 0

SANDBOX_TEAMS = [
    ("Arsenal", 42),
    ("Chelsea", 49),
    ("Liverpool", 40),
    ("Manchester City", 50),
    ("Tottenham", 47),
    ("Newcastle", 34),
    ("Aston Villa", 66),
    ("Brighton", 51),
]


class SandboxMatchSource(IMatchSource):
    """Deterministic fixtures spread evenly across the requested window."""

    provider_name = "sandbox"

    def __init__(self, fixture_count: int = 4):
        self.fixture_count = fixture_count

    async def list_upcoming(self, start: datetime, end: datetime) -> list[Fixture]:
        step = (end - start) / (self.fixture_count + 1)
        fixtures = []
        for i in range(self.fixture_count):
            home_name, home_id = SANDBOX_TEAMS[(2 * i) % len(SANDBOX_TEAMS)]
            away_name, away_id = SANDBOX_TEAMS[(2 * i + 1) % len(SANDBOX_TEAMS)]
            fixtures.append(
                Fixture(
                    fixture_id=SANDBOX_FIXTURE_ID_BASE + i,
                    league_id=SANDBOX_LEAGUE_ID,
                    home_team_id=home_id,
                    away_team_id=away_id,
                    home_team_name=home_name,
                    away_team_name=away_name,
                    kickoff_utc=start + step * (i + 1),
                    venue="Sandbox Stadium",
                )
            )
        return fixtures
