"""Pytest configuration and fixtures."""

import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import yaml

from vaultbets.analysis.interfaces import Annotation, IAnnotator, SupportingAnalysis
from vaultbets.automation.config_store import ConfigStore
from vaultbets.automation.pipeline import Pipeline
from vaultbets.common.config import AppConfig, PipelineConfig, load_config
from vaultbets.football.interfaces import IMatchSource, IOddsSource, OddsQuote
from vaultbets.storage.database import Database
from vaultbets.storage.models import Fixture
from vaultbets.tips.bet_types import BetType

# Tuesday morning in London (GMT)
NOW = datetime(2026, 1, 13, 10, 0, tzinfo=UTC)


def make_fixture(fixture_id: int, hours_ahead: float = 24.0) -> Fixture:
    """Build a fixture kicking off some hours after NOW."""
    return Fixture(
        fixture_id=fixture_id,
        league_id=39,
        home_team_id=fixture_id * 10 + 1,
        away_team_id=fixture_id * 10 + 2,
        kickoff_utc=NOW + timedelta(hours=hours_ahead),
        venue="Test Ground",
        home_team_name=f"Home {fixture_id}",
        away_team_name=f"Away {fixture_id}",
    )


def make_annotation(
    confidence: int,
    odds: float = 2.0,
    bet_type: BetType = BetType.HOME_WIN,
    risk_factors: list[str] | None = None,
    with_analysis: bool = True,
) -> Annotation:
    """Build an annotation with optional supporting analysis."""
    analysis = None
    if with_analysis:
        analysis = SupportingAnalysis(
            risk_factors=risk_factors if risk_factors is not None else ["injuries"],
            weather_impact="none",
            venue_advantage_pct=8.0,
            market_movement="stable",
            betting_volume="medium",
        )
    return Annotation(
        bet_type=bet_type,
        odds=odds,
        confidence_score=confidence,
        explanation=f"Confidence {confidence}",
        analysis=analysis,
    )


class FakeMatchSource(IMatchSource):
    """Match source returning a fixed list, or raising."""

    provider_name = "fake_matches"

    def __init__(self, fixtures: list[Fixture] | None = None, error: Exception | None = None):
        self.fixtures = fixtures or []
        self.error = error
        self.calls: list[tuple[datetime, datetime]] = []

    async def list_upcoming(self, start: datetime, end: datetime) -> list[Fixture]:
        self.calls.append((start, end))
        if self.error is not None:
            raise self.error
        return list(self.fixtures)


class FakeAnnotator(IAnnotator):
    """Annotator answering per fixture id; exceptions are raised."""

    provider_name = "fake_annotator"
    cost_per_request = 0.01

    def __init__(self, answers: dict[int, Annotation | Exception] | None = None):
        self.answers = answers or {}
        self.calls: list[int] = []

    async def analyze(self, fixture: Fixture) -> Annotation:
        self.calls.append(fixture.fixture_id)
        answer = self.answers.get(fixture.fixture_id)
        if answer is None:
            return make_annotation(80)
        if isinstance(answer, Exception):
            raise answer
        return answer


class FakeOddsSource(IOddsSource):
    """Odds source answering per fixture id."""

    provider_name = "fake_odds"

    def __init__(self, odds: dict[int, float | Exception | None] | None = None):
        self.odds = odds or {}

    async def get_odds(self, fixture_id: int, bet_type: BetType) -> OddsQuote | None:
        value = self.odds.get(fixture_id)
        if isinstance(value, Exception):
            raise value
        if value is None:
            return None
        return OddsQuote(fixture_id=fixture_id, bet_type=bet_type, odds=value, bookmaker="Bet365")


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def dev_config_path(temp_dir: Path) -> Path:
    """Create a temporary dev config file."""
    config_data = {
        "environment": "test",
        "database": {
            "path": str(temp_dir / "test.db"),
        },
        "football_api": {
            "base_url": "https://v3.football.api-sports.io",
            "api_key": "test_key",
            "timeout_seconds": 10,
            "rate_limit_per_minute": 30,
            "league_ids": [39],
        },
        "annotator": {
            "api_key": "test_key",
            "model": "test-model",
        },
        "scheduler": {
            "timezone": "Europe/London",
            "auto_start": False,
        },
        "pipeline": {
            "annotation_concurrency": 2,
        },
        "logging": {
            "level": "DEBUG",
            "format": "console",
            "log_file": None,
        },
    }
    config_path = temp_dir / "test_config.yaml"
    with open(config_path, "w") as f:
        yaml.dump(config_data, f)
    return config_path


@pytest.fixture
def config(dev_config_path: Path) -> AppConfig:
    """Load test configuration."""
    return load_config(dev_config_path)


@pytest.fixture
def db(temp_dir: Path) -> Database:
    """Create a test database."""
    db_path = temp_dir / "test.db"
    database = Database(db_path)
    database.connect()
    database.migrate()
    yield database
    database.close()


@pytest.fixture
def config_store(db: Database) -> ConfigStore:
    """Config store with defaults seeded."""
    store = ConfigStore(db)
    store.seed_defaults()
    return store


@pytest.fixture
def make_pipeline(db: Database, config_store: ConfigStore):
    """Factory for pipelines over fake collaborators with a fixed clock."""

    def factory(
        match_source: IMatchSource | None = None,
        annotator: IAnnotator | None = None,
        odds_source: IOddsSource | None = None,
        **kwargs,
    ) -> Pipeline:
        return Pipeline(
            db,
            config_store,
            match_source or FakeMatchSource(),
            annotator or FakeAnnotator(),
            odds_source=odds_source,
            pipeline_config=PipelineConfig(annotation_concurrency=2),
            clock=lambda: NOW,
            **kwargs,
        )

    return factory
