"""Operator command surface over the scheduler, pipeline and stores.

Every action returns an :class:`AdminResult` instead of raising, and is
itself recorded in the activity log as ``admin_<action>``, or as
``admin_failed`` when it did not succeed.
"""

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from vaultbets.automation.config_store import ConfigStore, format_value
from vaultbets.automation.errors import JobNotFound
from vaultbets.automation.pipeline import HEALTH_CHECK, ODDS_UPDATE, Pipeline, RunSummary
from vaultbets.automation.scheduler import Scheduler
from vaultbets.common.config import PipelineConfig
from vaultbets.common.logging import get_logger
from vaultbets.common.time_utils import utc_now
from vaultbets.storage.database import Database
from vaultbets.storage.models import RunRecord, RunStatus

logger = get_logger(__name__)

ADMIN_FAILED = "admin_failed"
STATUS_WINDOW_DAYS = 7


@dataclass
class AdminResult:
    """Structured outcome of an admin action."""

    success: bool
    action: str
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    detail: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "success": self.success,
            "action": self.action,
            "message": self.message,
            "data": self.data,
            "error": self.error,
            "detail": self.detail,
        }


ActionResult = tuple[str, dict[str, Any]]


class AdminControl:
    """Start, stop, trigger and inspect automation."""

    def __init__(
        self,
        scheduler: Scheduler,
        pipeline: Pipeline,
        db: Database,
        config_store: ConfigStore,
        pipeline_config: PipelineConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.scheduler = scheduler
        self.pipeline = pipeline
        self.db = db
        self.config_store = config_store
        self.pipeline_config = pipeline_config or PipelineConfig()
        self.clock = clock

    # --- Actions ---

    async def initialize(self) -> AdminResult:
        async def action() -> ActionResult:
            self.scheduler.initialize()
            return "Scheduler initialized", {"jobs": self.scheduler.get_job_status()}

        return await self._perform("initialize", action)

    async def start_job(self, job_name: str) -> AdminResult:
        async def action() -> ActionResult:
            job = self.scheduler.start_job(job_name)
            return f"Job {job_name} started", {"job": job_name, **job.to_dict()}

        return await self._perform("start_job", action, job_name=job_name)

    async def stop_job(self, job_name: str) -> AdminResult:
        async def action() -> ActionResult:
            job = self.scheduler.stop_job(job_name)
            return f"Job {job_name} stopped", {"job": job_name, **job.to_dict()}

        return await self._perform("stop_job", action, job_name=job_name)

    async def stop_all_jobs(self) -> AdminResult:
        async def action() -> ActionResult:
            self.scheduler.stop_all_jobs()
            return "All jobs stopped", {"jobs": self.scheduler.get_job_status()}

        return await self._perform("stop_all_jobs", action)

    async def trigger_daily_generation(self) -> AdminResult:
        async def action() -> ActionResult:
            summary = await self.scheduler.trigger_daily_generation()
            return _run_message("Daily generation", summary), summary.to_dict()

        return await self._perform("trigger_daily_generation", action)

    async def trigger_odds_update(self) -> AdminResult:
        async def action() -> ActionResult:
            summary = await self.scheduler.trigger_odds_update()
            return _run_message("Odds update", summary), summary.to_dict()

        return await self._perform("trigger_odds_update", action)

    async def trigger_health_check(self) -> AdminResult:
        async def action() -> ActionResult:
            summary = await self.scheduler.trigger_health_check()
            return _run_message("Health check", summary), summary.to_dict()

        return await self._perform("trigger_health_check", action)

    async def test_pipeline(self) -> AdminResult:
        async def action() -> ActionResult:
            summary = await self.pipeline.test_pipeline()
            return _run_message("Test pipeline", summary), summary.to_dict()

        return await self._perform("test_pipeline", action)

    async def publish_tip(self, tip_id: int) -> AdminResult:
        async def action() -> ActionResult:
            if self.db.publish_tips([tip_id], self.clock()) == 0:
                raise ValueError(f"Tip {tip_id} not found or already published")
            return f"Tip {tip_id} published", {"tip_id": tip_id}

        return await self._perform("publish_tip", action, tip_id=tip_id)

    async def unpublish_tip(self, tip_id: int) -> AdminResult:
        async def action() -> ActionResult:
            if not self.db.unpublish_tip(tip_id):
                raise ValueError(f"Tip {tip_id} not found or not published")
            return f"Tip {tip_id} unpublished", {"tip_id": tip_id}

        return await self._perform("unpublish_tip", action, tip_id=tip_id)

    async def update_config(self, key: str, value: str) -> AdminResult:
        async def action() -> ActionResult:
            parsed = self.config_store.validate(key, value)
            self.config_store.set(key, parsed)
            return f"Config {key} updated", {"key": key, "value": format_value(parsed)}

        return await self._perform("update_config", action, key=key, value=value)

    async def run(self, action: str, **params: Any) -> AdminResult:
        """Dispatch an action by name."""
        handlers: dict[str, Callable[..., Awaitable[AdminResult]]] = {
            "initialize": self.initialize,
            "start_job": self.start_job,
            "stop_job": self.stop_job,
            "stop_all_jobs": self.stop_all_jobs,
            "trigger_daily_generation": self.trigger_daily_generation,
            "trigger_odds_update": self.trigger_odds_update,
            "trigger_health_check": self.trigger_health_check,
            "test_pipeline": self.test_pipeline,
            "publish_tip": self.publish_tip,
            "unpublish_tip": self.unpublish_tip,
            "update_config": self.update_config,
        }
        handler = handlers.get(action)
        if handler is None:
            return self._record_failure(
                action, ValueError(f"Unknown action: {action}"), params, 0
            )
        try:
            return await handler(**params)
        except TypeError as e:
            return self._record_failure(action, e, params, 0)

    # --- Read models ---

    def status(self) -> AdminResult:
        """Aggregate operational status. Not recorded in the activity log."""
        now = self.clock()
        since = now - timedelta(days=STATUS_WINDOW_DAYS)
        runs = self.db.recent_run_records(limit=self.pipeline_config.status_recent_runs)
        jobs = self.scheduler.get_job_status()
        data = {
            # Also true when another process has the jobs scheduled
            "initialized": self.scheduler.initialized
            or any(job["state"] != "stopped" for job in jobs.values()),
            "jobs": jobs,
            "recent_runs": [record.to_dict() for record in runs],
            "bookkeeping": self.config_store.bookkeeping(),
            "settings": self.config_store.load_settings().model_dump(),
            "tip_stats": self.db.tip_stats(since),
            "api_usage": self.db.api_usage_summary(since.date()),
        }
        return AdminResult(success=True, action="status", message="Status retrieved", data=data)

    # --- Activity logging ---

    async def _perform(
        self,
        action: str,
        operation: Callable[[], Awaitable[ActionResult]],
        **params: Any,
    ) -> AdminResult:
        start = time.monotonic()
        try:
            message, data = await operation()
        except Exception as e:
            return self._record_failure(action, e, params, _elapsed_ms(start))

        self.db.append_run_record(
            RunRecord(
                run_type=f"admin_{action}",
                status=RunStatus.SUCCESS,
                duration_ms=_elapsed_ms(start),
                details={"params": params},
                created_at=self.clock(),
            )
        )
        logger.info("admin_action", action=action, **params)
        return AdminResult(success=True, action=action, message=message, data=data)

    def _record_failure(
        self, action: str, error: Exception, params: dict[str, Any], duration_ms: int
    ) -> AdminResult:
        detail = {
            "action": action,
            "error_type": type(error).__name__,
            "params": params,
        }
        if isinstance(error, JobNotFound):
            detail["known_jobs"] = list(self.scheduler.jobs)

        self.db.append_run_record(
            RunRecord(
                run_type=ADMIN_FAILED,
                status=RunStatus.FAILED,
                duration_ms=duration_ms,
                error_message=str(error),
                details=detail,
                created_at=self.clock(),
            )
        )
        logger.warning("admin_action_failed", action=action, error=str(error))
        return AdminResult(
            success=False,
            action=action,
            message=f"{action} failed",
            error=str(error),
            detail=detail,
        )


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _run_message(label: str, summary: RunSummary) -> str:
    if summary.status == RunStatus.SKIPPED:
        return f"{label} skipped: {summary.error}"
    if summary.run_type == ODDS_UPDATE:
        return f"{label} finished: {summary.odds_updated} of {summary.odds_checked} tips updated"
    if summary.run_type == HEALTH_CHECK:
        checks = ", ".join(
            f"{name} {'ok' if ok else 'failing'}" for name, ok in summary.checks.items()
        )
        return f"{label} finished: {checks}"
    return f"{label} finished: {summary.accepted} accepted, {summary.published} published"
