"""Data models for storage layer."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from vaultbets.common.time_utils import utc_now


class TipStatus(str, Enum):
    """Publish state of a tip."""

    DRAFT = "draft"
    PUBLISHED = "published"


class RunStatus(str, Enum):
    """Outcome of a pipeline run or admin action."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Fixture:
    """Football fixture/match. Immutable once sourced."""

    fixture_id: int  # API-Football fixture ID
    league_id: int
    home_team_id: int
    away_team_id: int
    kickoff_utc: datetime
    venue: str = ""
    home_team_name: str = ""
    away_team_name: str = ""

    @property
    def label(self) -> str:
        """Human readable "Home vs Away" label."""
        home = self.home_team_name or str(self.home_team_id)
        away = self.away_team_name or str(self.away_team_id)
        return f"{home} vs {away}"


@dataclass
class Tip:
    """Generated betting recommendation for one fixture."""

    id: int | None = None
    fixture_id: int = 0
    bet_type: str = ""
    recommended_odds: float = 1.0
    confidence_score: int = 0
    explanation: str = ""
    is_premium: bool = False
    status: TipStatus = TipStatus.DRAFT
    published_at: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)
    odds_updated_at: datetime | None = None

    @property
    def is_published(self) -> bool:
        return self.status == TipStatus.PUBLISHED


@dataclass
class TipAnalysis:
    """Supporting analysis stored 1:1 with a tip."""

    id: int | None = None
    tip_id: int | None = None
    value_rating: int = 0  # 0-10
    implied_probability: float = 0.0  # percent, from odds
    model_probability: float = 0.0  # percent, from confidence
    risk_factors: list[str] = field(default_factory=list)
    weather_impact: str = ""
    venue_advantage_pct: float | None = None
    market_movement: str = ""  # shortening, drifting, stable
    betting_volume: str = ""
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class RunRecord:
    """Activity log entry for a run or admin action."""

    id: int | None = None
    run_type: str = ""
    status: RunStatus = RunStatus.SUCCESS
    duration_ms: int = 0
    error_message: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "run_type": self.run_type,
            "status": self.status.value,
            "duration_ms": self.duration_ms,
            "error_message": self.error_message,
            "details": self.details,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class ConfigEntry:
    """Operator-editable configuration row."""

    key: str
    value: str
    description: str = ""
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class OddsSnapshot:
    """Odds observed for a published tip during an odds update."""

    id: int | None = None
    tip_id: int = 0
    bet_type: str = ""
    odds: float = 0.0
    bookmaker: str = ""
    captured_at: datetime = field(default_factory=utc_now)


@dataclass
class JobStateRecord:
    """Last-known scheduler state of a job, shared by every process on the database.

    ``schedule_owner`` is the scheduler that last started or stopped the job.
    ``run_owner`` is set while some scheduler holds the job's run claim.
    """

    job_name: str
    state: str = "stopped"
    next_fire_at: datetime | None = None
    schedule_owner: str = ""
    last_started_at: datetime | None = None
    last_status: str | None = None
    last_error: str | None = None
    run_owner: str | None = None
    run_started_at: datetime | None = None
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def running(self) -> bool:
        return self.run_owner is not None
