"""Tip generation pipeline.

One run fetches upcoming fixtures, annotates them with bounded concurrency,
then admits, stores and publishes tips in a single synchronous phase. No
``await`` happens inside that phase, so two runs sharing the event loop never
interleave their dedup checks and inserts.
"""

import asyncio
import sqlite3
import time
from collections import Counter
from collections.abc import Callable
from contextlib import AbstractContextManager, nullcontext
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from vaultbets.analysis.interfaces import Annotation, IAnnotator
from vaultbets.automation.config_store import AutomationSettings, ConfigStore
from vaultbets.automation.errors import (
    AnnotationFailed,
    PersistenceFailed,
    SourceUnavailable,
)
from vaultbets.common.config import PipelineConfig
from vaultbets.common.logging import get_logger
from vaultbets.common.time_utils import get_zone, local_date, utc_now
from vaultbets.football.interfaces import IMatchSource, IOddsSource
from vaultbets.football.sandbox import SandboxMatchSource
from vaultbets.storage.database import Database
from vaultbets.storage.models import Fixture, RunRecord, RunStatus, Tip, TipStatus
from vaultbets.tips.admission import (
    AdmissionPolicy,
    build_tip,
    build_tip_analysis,
    select_free_downgrades,
)
from vaultbets.tips.bet_types import BetType
from vaultbets.tips.priority import prioritize_fixtures

logger = get_logger(__name__)

DAILY_GENERATION = "daily_generation"
ODDS_UPDATE = "odds_update"
HEALTH_CHECK = "health_check"
TEST_PIPELINE = "test_pipeline"

# Settings overrides applied by the smoke-test run
TEST_PIPELINE_OVERRIDES: dict[str, Any] = {
    "max_tips_per_day": 2,
    "min_confidence_threshold": 60,
    "analysis_lookahead_days": 2,
    "auto_publish_enabled": False,
}

# Relative odds change below which the market is considered stable
MARKET_MOVEMENT_TOLERANCE = 0.02

ODDS_UPDATE_BATCH_LIMIT = 500


@dataclass
class RunSummary:
    """Outcome of one pipeline run."""

    run_type: str
    status: RunStatus = RunStatus.SUCCESS
    started_at: datetime = field(default_factory=utc_now)
    duration_ms: int = 0
    fetched: int = 0
    eligible: int = 0
    selected: int = 0
    annotated: int = 0
    annotation_failures: int = 0
    accepted: int = 0
    rejected: dict[str, int] = field(default_factory=dict)
    persistence_failures: int = 0
    downgraded_to_free: int = 0
    published: int = 0
    tip_ids: list[int] = field(default_factory=list)
    odds_checked: int = 0
    odds_updated: int = 0
    odds_missing: int = 0
    odds_failures: int = 0
    checks: dict[str, bool] = field(default_factory=dict)
    error: str | None = None
    record_id: int | None = None
    api_calls: Counter = field(default_factory=Counter)

    def details(self) -> dict[str, Any]:
        """Counts stored with the run record."""
        if self.run_type == ODDS_UPDATE:
            return {
                "odds_checked": self.odds_checked,
                "odds_updated": self.odds_updated,
                "odds_missing": self.odds_missing,
                "odds_failures": self.odds_failures,
            }
        if self.run_type == HEALTH_CHECK:
            return {"checks": dict(self.checks)}
        return {
            "fetched": self.fetched,
            "eligible": self.eligible,
            "selected": self.selected,
            "annotated": self.annotated,
            "annotation_failures": self.annotation_failures,
            "accepted": self.accepted,
            "rejected": dict(self.rejected),
            "persistence_failures": self.persistence_failures,
            "downgraded_to_free": self.downgraded_to_free,
            "published": self.published,
            "tip_ids": list(self.tip_ids),
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "run_type": self.run_type,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "duration_ms": self.duration_ms,
            "error": self.error,
            "record_id": self.record_id,
            **self.details(),
        }


def market_movement(previous_odds: float, current_odds: float) -> str:
    """Describe how the market moved between two odds observations."""
    if current_odds < previous_odds * (1 - MARKET_MOVEMENT_TOLERANCE):
        return "shortening"
    if current_odds > previous_odds * (1 + MARKET_MOVEMENT_TOLERANCE):
        return "drifting"
    return "stable"


class Pipeline:
    """Generates, scores and publishes tips."""

    def __init__(
        self,
        db: Database,
        config_store: ConfigStore,
        match_source: IMatchSource,
        annotator: IAnnotator,
        odds_source: IOddsSource | None = None,
        pipeline_config: PipelineConfig | None = None,
        timezone: str = "Europe/London",
        sandbox_source: IMatchSource | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize pipeline.

        Args:
            db: Database holding tips, runs and configuration.
            config_store: Source of per-run settings and bookkeeping.
            match_source: Upcoming fixtures provider.
            annotator: Produces a candidate tip per fixture.
            odds_source: Current odds provider for odds updates.
            pipeline_config: Execution settings.
            timezone: Operating timezone used for bookkeeping dates.
            sandbox_source: Fixture provider for smoke-test runs.
            clock: Returns the current UTC time.
        """
        self.db = db
        self.config_store = config_store
        self.match_source = match_source
        self.annotator = annotator
        self.odds_source = odds_source
        self.pipeline_config = pipeline_config or PipelineConfig()
        self.zone = get_zone(timezone)
        self.sandbox_source = sandbox_source or SandboxMatchSource(
            fixture_count=self.pipeline_config.sandbox_fixture_count
        )
        self.clock = clock

    # --- Entry points ---

    async def run_daily_generation(self) -> RunSummary:
        """Generate today's tips.

        Returns:
            Summary of the completed run.

        Raises:
            SourceUnavailable: If fixtures could not be fetched.
            PersistenceFailed: If the store failed systemically.
        """
        settings = self.config_store.load_settings()
        summary = RunSummary(run_type=DAILY_GENERATION, started_at=self.clock())
        start = time.monotonic()

        if not settings.auto_generation_enabled:
            logger.info("daily_generation_skipped", reason="auto_generation_disabled")
            summary.status = RunStatus.SKIPPED
            summary.error = "auto generation disabled"
            self._finish(summary, start)
            return summary

        await self._generate(
            summary,
            settings,
            self.match_source,
            start,
            publish=settings.auto_publish_enabled,
            bookkeeping=True,
        )
        return summary

    async def test_pipeline(self) -> RunSummary:
        """Run generation against sandbox fixtures without keeping anything.

        Settings are constrained, nothing is published, stored rows are rolled
        back and bookkeeping keys are left untouched.
        """
        settings = self.config_store.load_settings().model_copy(
            update=TEST_PIPELINE_OVERRIDES
        )
        summary = RunSummary(run_type=TEST_PIPELINE, started_at=self.clock())
        start = time.monotonic()

        await self._generate(
            summary,
            settings,
            self.sandbox_source,
            start,
            publish=False,
            persistence_scope=self.db.sandbox,
        )
        return summary

    async def run_odds_update(self) -> RunSummary:
        """Refresh odds of published tips kicking off soon.

        Raises:
            PersistenceFailed: If published tips could not be queried.
        """
        settings = self.config_store.load_settings()
        summary = RunSummary(run_type=ODDS_UPDATE, started_at=self.clock())
        start = time.monotonic()

        if self.odds_source is None:
            summary.status = RunStatus.SKIPPED
            summary.error = "no odds source configured"
            self._finish(summary, start)
            return summary

        now = summary.started_at
        try:
            tips = self.db.query_tips(
                status=TipStatus.PUBLISHED,
                kickoff_after=now,
                kickoff_before=now + timedelta(hours=settings.odds_update_window_hours),
                limit=ODDS_UPDATE_BATCH_LIMIT,
            )
        except sqlite3.Error as e:
            error = PersistenceFailed(None, f"tip query failed: {e}")
            self._fail(summary, start, error)
            raise error from e

        logger.info("odds_update_started", tips=len(tips))

        for tip in tips:
            summary.odds_checked += 1
            summary.api_calls[(self.odds_source.provider_name, "odds")] += 1
            try:
                quote = await self.odds_source.get_odds(tip.fixture_id, BetType(tip.bet_type))
            except Exception as e:
                summary.odds_failures += 1
                logger.warning("odds_fetch_failed", tip_id=tip.id, error=str(e))
                continue

            if quote is None:
                summary.odds_missing += 1
                continue

            movement = market_movement(tip.recommended_odds, quote.odds)
            try:
                assert tip.id is not None
                self.db.update_tip_odds(
                    tip.id,
                    quote.odds,
                    updated_at=self.clock(),
                    market_movement=movement,
                    bookmaker=quote.bookmaker,
                )
            except (sqlite3.Error, ValueError) as e:
                summary.odds_failures += 1
                logger.warning("odds_store_failed", tip_id=tip.id, error=str(e))
                continue

            summary.odds_updated += 1
            logger.debug(
                "tip_odds_updated",
                tip_id=tip.id,
                previous=tip.recommended_odds,
                current=quote.odds,
                movement=movement,
            )

        self._finish(summary, start)
        return summary

    async def run_health_check(self) -> RunSummary:
        """Check the database and the match source.

        A healthy check only refreshes the last health check timestamp. A
        degraded one is also written to the activity log and raised as an
        alert. Nothing is written when the database itself is unreachable.
        """
        summary = RunSummary(run_type=HEALTH_CHECK, started_at=self.clock())
        start = time.monotonic()

        summary.checks["database"] = self.db.ping()
        try:
            await self.match_source.check_health()
        except Exception as e:
            logger.warning(
                "match_source_unhealthy", provider=self.match_source.provider_name, error=str(e)
            )
            summary.checks["match_source"] = False
        else:
            summary.checks["match_source"] = True

        failing = [name for name, ok in summary.checks.items() if not ok]
        if not failing:
            summary.duration_ms = int((time.monotonic() - start) * 1000)
            self.config_store.record_health_check(summary.started_at)
            logger.info("health_check_passed", **summary.checks)
            return summary

        summary.status = RunStatus.FAILED
        summary.error = f"unhealthy: {', '.join(failing)}"
        if not summary.checks["database"]:
            summary.duration_ms = int((time.monotonic() - start) * 1000)
            logger.error("health_check_degraded", **summary.checks)
            return summary

        self.config_store.record_health_check(summary.started_at)
        self.config_store.record_alert("health_degraded", summary.error, at=summary.started_at)
        self._finish(summary, start)
        return summary

    # --- Generation phases ---

    async def _generate(
        self,
        summary: RunSummary,
        settings: AutomationSettings,
        source: IMatchSource,
        start: float,
        publish: bool,
        persistence_scope: Callable[[], AbstractContextManager[Any]] = nullcontext,
        bookkeeping: bool = False,
    ) -> None:
        now = summary.started_at
        window_end = now + timedelta(days=settings.analysis_lookahead_days)

        try:
            fixtures = await self._fetch_fixtures(source, now, window_end, settings, summary)
        except SourceUnavailable as e:
            self._fail(summary, start, e)
            raise

        annotations = await self._annotate_all(fixtures, summary)

        try:
            with persistence_scope():
                self._admit_and_store(fixtures, annotations, settings, summary, publish)
            if bookkeeping:
                self._record_generation(summary)
        except PersistenceFailed as e:
            self._fail(summary, start, e)
            raise

        self._finish(summary, start)

    def _record_generation(self, summary: RunSummary) -> None:
        try:
            self.config_store.record_generation(
                local_date(summary.started_at, self.zone),
                published=summary.published,
                total=summary.accepted,
            )
        except sqlite3.Error as e:
            raise PersistenceFailed(None, f"bookkeeping failed: {e}") from e

    async def _fetch_fixtures(
        self,
        source: IMatchSource,
        start: datetime,
        end: datetime,
        settings: AutomationSettings,
        summary: RunSummary,
    ) -> list[Fixture]:
        """Fetch fixtures in the window and pick the ones worth annotating.

        The returned order is the order candidates are admitted in.
        """
        summary.api_calls[(source.provider_name, "fixtures")] += 1
        try:
            fixtures = await source.list_upcoming(start, end)
        except Exception as e:
            logger.error("match_source_unavailable", provider=source.provider_name, error=str(e))
            raise SourceUnavailable(source.provider_name, str(e)) from e

        summary.fetched = len(fixtures)
        eligible = [f for f in fixtures if start < f.kickoff_utc <= end]
        summary.eligible = len(eligible)
        selected = prioritize_fixtures(
            eligible,
            start,
            self.pipeline_config,
            min_lead=timedelta(hours=settings.min_hours_before_kickoff),
            limit=settings.max_tips_per_day * self.pipeline_config.analysis_cap_multiplier,
        )
        summary.selected = len(selected)
        logger.info(
            "fixtures_fetched",
            fetched=len(fixtures),
            eligible=len(eligible),
            selected=len(selected),
        )
        return selected

    async def _annotate_all(
        self, fixtures: list[Fixture], summary: RunSummary
    ) -> list[Annotation | None]:
        """Annotate fixtures concurrently, returning results in fixture order."""
        semaphore = asyncio.Semaphore(self.pipeline_config.annotation_concurrency)

        async def annotate(fixture: Fixture) -> Annotation | AnnotationFailed:
            async with semaphore:
                try:
                    return await self.annotator.analyze(fixture)
                except Exception as e:
                    return AnnotationFailed(fixture.fixture_id, str(e))

        results = await asyncio.gather(*(annotate(f) for f in fixtures))

        annotations: list[Annotation | None] = []
        for result in results:
            summary.api_calls[(self.annotator.provider_name, "analyze")] += 1
            if isinstance(result, AnnotationFailed):
                summary.annotation_failures += 1
                logger.warning(
                    "annotation_failed", fixture_id=result.fixture_id, error=result.reason
                )
                annotations.append(None)
            else:
                summary.annotated += 1
                annotations.append(result)
        return annotations

    def _admit_and_store(
        self,
        fixtures: list[Fixture],
        annotations: list[Annotation | None],
        settings: AutomationSettings,
        summary: RunSummary,
        publish: bool,
    ) -> None:
        policy = AdmissionPolicy(settings, self.db.tip_exists_for_fixture)
        rejected: Counter = Counter()
        stored: list[Tip] = []

        for fixture, annotation in zip(fixtures, annotations):
            if annotation is None:
                continue

            decision = policy.evaluate(fixture.fixture_id, annotation)
            if not decision.accepted:
                assert decision.reason is not None
                rejected[decision.reason.value] += 1
                continue

            tip = build_tip(fixture.fixture_id, annotation, decision.is_premium)
            tip.created_at = self.clock()
            try:
                with self.db.transaction():
                    self.db.upsert_fixture(fixture)
                    tip.id = self.db.create_tip(tip, build_tip_analysis(annotation))
            except sqlite3.IntegrityError as e:
                policy.release(fixture.fixture_id)
                summary.persistence_failures += 1
                logger.warning(
                    "tip_persist_failed", fixture_id=fixture.fixture_id, error=str(e)
                )
                continue
            except sqlite3.Error as e:
                raise PersistenceFailed(fixture.fixture_id, str(e)) from e

            summary.tip_ids.append(tip.id)
            stored.append(tip)

        summary.accepted = len(summary.tip_ids)
        summary.rejected = dict(rejected)

        try:
            for tip in select_free_downgrades(stored, settings.free_tips_per_day):
                assert tip.id is not None
                self.db.set_tip_premium(tip.id, False)
                tip.is_premium = False
                summary.downgraded_to_free += 1

            if publish and summary.tip_ids:
                summary.published = self.db.publish_tips(summary.tip_ids, self.clock())
        except sqlite3.Error as e:
            raise PersistenceFailed(None, str(e)) from e

    # --- Run records ---

    def _fail(self, summary: RunSummary, start: float, error: Exception) -> None:
        summary.status = RunStatus.FAILED
        summary.error = str(error)
        self._finish(summary, start)

    def _finish(self, summary: RunSummary, start: float) -> None:
        summary.duration_ms = int((time.monotonic() - start) * 1000)
        summary.record_id = self.db.append_run_record(
            RunRecord(
                run_type=summary.run_type,
                status=summary.status,
                duration_ms=summary.duration_ms,
                error_message=summary.error,
                details=summary.details(),
                created_at=self.clock(),
            )
        )
        self._record_api_usage(summary)

        log = logger.error if summary.status == RunStatus.FAILED else logger.info
        log("pipeline_run_completed", **summary.to_dict())

    def _record_api_usage(self, summary: RunSummary) -> None:
        day = local_date(summary.started_at, self.zone)
        for (provider, endpoint), count in summary.api_calls.items():
            unit_cost = (
                self.annotator.cost_per_request
                if provider == self.annotator.provider_name
                else 0.0
            )
            self.db.record_api_usage(
                provider, endpoint, requests=count, cost=unit_cost * count, day=day
            )
