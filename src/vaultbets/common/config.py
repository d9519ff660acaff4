"""Application configuration loading and models.

Process-level settings (credentials, endpoints, database path, timezone) live
here. Operator-editable automation parameters live in the database-backed
``ConfigStore`` instead, see :mod:`vaultbets.automation.config_store`.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from vaultbets.common.time_utils import get_zone


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/vaultbets.db"


class FootballApiConfig(BaseModel):
    """API-Football configuration."""

    base_url: str = "https://v3.football.api-sports.io"
    api_key: str = ""
    timeout_seconds: int = 30
    rate_limit_per_minute: int = 30
    # Premier League, Championship, League One, League Two
    league_ids: list[int] = Field(default_factory=lambda: [39, 40, 41, 42])
    bookmaker_id: int | None = None


class AnnotatorConfig(BaseModel):
    """Match analysis (language model) configuration."""

    provider: str = "openai"
    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    temperature: float = 0.3
    timeout_seconds: int = 60
    requests_per_second: float = 1.0
    max_retries: int = 2
    cost_per_request: float = 0.002


class SchedulerConfig(BaseModel):
    """Scheduler configuration."""

    timezone: str = "Europe/London"
    auto_start: bool = True
    # A run claim older than this is treated as abandoned by a dead process
    run_lock_timeout_minutes: int = Field(default=120, ge=1)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        get_zone(value)
        return value


class PipelineConfig(BaseModel):
    """Pipeline execution configuration."""

    annotation_concurrency: int = Field(default=3, ge=1)
    status_recent_runs: int = Field(default=20, ge=1)
    sandbox_fixture_count: int = Field(default=4, ge=1)
    # Fixtures annotated per run, as a multiple of max_tips_per_day
    analysis_cap_multiplier: int = Field(default=2, ge=1)
    league_priorities: dict[int, int] = Field(
        default_factory=lambda: {39: 10, 40: 8, 41: 6, 42: 5}
    )
    default_league_priority: int = 5
    big_clubs: list[str] = Field(
        default_factory=lambda: [
            "Manchester City",
            "Manchester United",
            "Liverpool",
            "Arsenal",
            "Chelsea",
            "Real Madrid",
            "Barcelona",
            "Atletico Madrid",
            "Bayern Munich",
            "Borussia Dortmund",
            "Juventus",
            "AC Milan",
            "Inter Milan",
            "PSG",
            "Lyon",
            "Marseille",
        ]
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"  # "json" or "console"
    log_file: str | None = None


class AppConfig(BaseModel):
    """Root application configuration."""

    environment: str = Field(default="dev", description="Environment name (dev/prod)")
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    football_api: FootballApiConfig = Field(default_factory=FootballApiConfig)
    annotator: AnnotatorConfig = Field(default_factory=AnnotatorConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: str | Path) -> AppConfig:
    """Load configuration from a YAML file with environment variable substitution.

    Environment variables can override config values. The following env vars are checked:
    - FOOTBALL_API_KEY: API-Football key
    - ANNOTATOR_API_KEY: Language model API key
    - VAULTBETS_DB_PATH: SQLite database path
    - VAULTBETS_TIMEZONE: Operating timezone for the scheduler

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Parsed AppConfig instance.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ValueError: If the config file is invalid.
    """
    load_dotenv()

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path) as f:
        raw_config: dict[str, Any] = yaml.safe_load(f) or {}

    _apply_env_overrides(raw_config)

    return AppConfig(**raw_config)


def _apply_env_overrides(config: dict[str, Any]) -> None:
    """Apply environment variable overrides to config dict.

    Args:
        config: Configuration dictionary to modify in place.
    """
    for section in ("football_api", "annotator", "database", "scheduler"):
        if section not in config or config[section] is None:
            config[section] = {}

    if football_key := os.environ.get("FOOTBALL_API_KEY"):
        config["football_api"]["api_key"] = football_key

    if annotator_key := os.environ.get("ANNOTATOR_API_KEY"):
        config["annotator"]["api_key"] = annotator_key

    if db_path := os.environ.get("VAULTBETS_DB_PATH"):
        config["database"]["path"] = db_path

    if timezone := os.environ.get("VAULTBETS_TIMEZONE"):
        config["scheduler"]["timezone"] = timezone
