"""Admission policy deciding which annotated candidates become tips.

Candidates are evaluated one at a time in the order their fixtures were
fetched. The daily cap is applied as a running count, so once it is reached
every later candidate is rejected regardless of confidence.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from vaultbets.analysis.interfaces import Annotation
from vaultbets.common.logging import get_logger
from vaultbets.storage.models import Tip, TipAnalysis

if TYPE_CHECKING:
    from vaultbets.automation.config_store import AutomationSettings

logger = get_logger(__name__)

# Premium when few risks were identified, regardless of confidence.
PREMIUM_MAX_RISK_FACTORS = 2


class RejectReason(str, Enum):
    """Why a candidate was not admitted."""

    BELOW_CONFIDENCE_THRESHOLD = "below_confidence_threshold"
    ODDS_OUT_OF_RANGE = "odds_out_of_range"
    TOO_MANY_RISK_FACTORS = "too_many_risk_factors"
    DUPLICATE_FIXTURE = "duplicate_fixture"
    DAILY_CAP_REACHED = "daily_cap_reached"


@dataclass
class AdmissionDecision:
    """Outcome of evaluating one candidate."""

    fixture_id: int
    accepted: bool
    reason: RejectReason | None = None
    is_premium: bool = False


class AdmissionPolicy:
    """Streaming accept/reject for one run's candidates."""

    def __init__(self, settings: "AutomationSettings", tip_exists: Callable[[int], bool]):
        """Initialize policy.

        Args:
            settings: Settings snapshot of the current run.
            tip_exists: Lookup telling whether a stored tip covers a fixture.
        """
        self.settings = settings
        self._tip_exists = tip_exists
        self._seen_fixtures: set[int] = set()
        self.accepted_count = 0

    def evaluate(self, fixture_id: int, annotation: Annotation) -> AdmissionDecision:
        """Evaluate a candidate, counting it against the cap if accepted."""
        settings = self.settings
        reason: RejectReason | None = None

        if annotation.confidence_score < settings.min_confidence_threshold:
            reason = RejectReason.BELOW_CONFIDENCE_THRESHOLD
        elif not settings.min_odds <= annotation.odds <= settings.max_odds:
            reason = RejectReason.ODDS_OUT_OF_RANGE
        elif annotation.risk_factor_count > settings.max_risk_factors:
            reason = RejectReason.TOO_MANY_RISK_FACTORS
        elif fixture_id in self._seen_fixtures or self._tip_exists(fixture_id):
            reason = RejectReason.DUPLICATE_FIXTURE
        elif self.accepted_count >= settings.max_tips_per_day:
            reason = RejectReason.DAILY_CAP_REACHED

        if reason is not None:
            logger.info(
                "candidate_rejected",
                fixture_id=fixture_id,
                reason=reason.value,
                confidence=annotation.confidence_score,
            )
            return AdmissionDecision(fixture_id=fixture_id, accepted=False, reason=reason)

        self._seen_fixtures.add(fixture_id)
        self.accepted_count += 1
        premium = is_premium(annotation, settings.premium_confidence_threshold)
        logger.info(
            "candidate_accepted",
            fixture_id=fixture_id,
            confidence=annotation.confidence_score,
            is_premium=premium,
            accepted_count=self.accepted_count,
        )
        return AdmissionDecision(fixture_id=fixture_id, accepted=True, is_premium=premium)

    def release(self, fixture_id: int) -> None:
        """Give back the cap slot of an accepted candidate that was not stored.

        The fixture stays marked as seen.
        """
        if fixture_id in self._seen_fixtures and self.accepted_count > 0:
            self.accepted_count -= 1


def is_premium(annotation: Annotation, premium_threshold: int) -> bool:
    """High confidence or few identified risks makes a tip premium."""
    return (
        annotation.confidence_score >= premium_threshold
        or annotation.risk_factor_count <= PREMIUM_MAX_RISK_FACTORS
    )


def select_free_downgrades(tips: list[Tip], free_quota: int) -> list[Tip]:
    """Pick premium tips to make free so the batch meets its free quota.

    Highest confidence premium tips are chosen first.

    Returns:
        Tips whose premium flag should be cleared.
    """
    free_count = sum(1 for tip in tips if not tip.is_premium)
    missing = free_quota - free_count
    if missing <= 0:
        return []
    premium = sorted(
        (tip for tip in tips if tip.is_premium),
        key=lambda tip: tip.confidence_score,
        reverse=True,
    )
    return premium[:missing]


def value_rating(confidence_score: int) -> int:
    """Map a confidence score onto the 0-10 value scale."""
    return max(0, min(10, round((confidence_score - 50) / 5)))


def build_tip(fixture_id: int, annotation: Annotation, premium: bool) -> Tip:
    """Build the draft tip for an accepted candidate."""
    return Tip(
        fixture_id=fixture_id,
        bet_type=annotation.bet_type.value,
        recommended_odds=annotation.odds,
        confidence_score=annotation.confidence_score,
        explanation=annotation.explanation,
        is_premium=premium,
    )


def build_tip_analysis(annotation: Annotation) -> TipAnalysis | None:
    """Build the stored analysis, or None if the annotator supplied none."""
    if annotation.analysis is None:
        return None
    analysis = annotation.analysis
    return TipAnalysis(
        value_rating=value_rating(annotation.confidence_score),
        implied_probability=round(100.0 / annotation.odds, 2),
        model_probability=float(annotation.confidence_score),
        risk_factors=list(analysis.risk_factors),
        weather_impact=analysis.weather_impact,
        venue_advantage_pct=analysis.venue_advantage_pct,
        market_movement=analysis.market_movement or "stable",
        betting_volume=analysis.betting_volume,
    )
