"""Annotator interface and annotation types."""

from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict, Field, field_validator

from vaultbets.storage.models import Fixture
from vaultbets.tips.bet_types import BetType


class AnnotationError(Exception):
    """Raised when a fixture cannot be annotated."""

    def __init__(self, message: str, fixture_id: int | None = None):
        super().__init__(message)
        self.fixture_id = fixture_id


class SupportingAnalysis(BaseModel):
    """Optional richer analysis returned alongside an annotation."""

    model_config = ConfigDict(frozen=True)

    risk_factors: list[str] = Field(default_factory=list)
    weather_impact: str = ""
    venue_advantage_pct: float | None = None
    market_movement: str = ""
    betting_volume: str = ""


class Annotation(BaseModel):
    """Candidate tip produced for a fixture."""

    model_config = ConfigDict(frozen=True)

    bet_type: BetType
    odds: float = Field(ge=1.0)
    confidence_score: int = Field(ge=0, le=100)
    explanation: str = ""
    analysis: SupportingAnalysis | None = None

    @field_validator("bet_type", mode="before")
    @classmethod
    def _parse_bet_type(cls, value: object) -> object:
        if isinstance(value, str):
            return BetType.parse(value)
        return value

    @field_validator("confidence_score", mode="before")
    @classmethod
    def _round_confidence(cls, value: object) -> object:
        if isinstance(value, float):
            return round(value)
        return value

    @property
    def risk_factor_count(self) -> int:
        return len(self.analysis.risk_factors) if self.analysis else 0


class IAnnotator(ABC):
    """Interface for the match analysis collaborator."""

    provider_name: str = "annotator"
    cost_per_request: float = 0.0

    @abstractmethod
    async def analyze(self, fixture: Fixture) -> Annotation:
        """Produce a candidate tip for a fixture.

        Raises:
            AnnotationError: If no valid annotation can be produced.
        """
        ...
