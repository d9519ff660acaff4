"""Recurring execution of pipeline jobs.

Each job owns a timer task and an ``asyncio.Lock``. The lock is held for the
whole duration of a run, whether the run was fired by the timer or triggered
manually, so a job never runs twice at once within a process. Across
processes sharing the database, a run also needs the job's claim row in
``job_state``, which is taken atomically before the run starts.
"""

import asyncio
import os
import sqlite3
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any
from zoneinfo import ZoneInfo

from vaultbets.automation.config_store import AutomationSettings, ConfigStore
from vaultbets.automation.errors import (
    ConcurrencyConflict,
    JobNotFound,
    PersistenceFailed,
    SourceUnavailable,
)
from vaultbets.automation.pipeline import (
    DAILY_GENERATION,
    HEALTH_CHECK,
    ODDS_UPDATE,
    Pipeline,
    RunSummary,
)
from vaultbets.common.logging import get_logger, run_context
from vaultbets.common.time_utils import get_zone, parse_hhmm, utc_now
from vaultbets.storage.models import JobStateRecord, RunRecord, RunStatus

logger = get_logger(__name__)

# Upper bound on a single timer sleep so clock changes are picked up
MAX_SLEEP_SECONDS = 300.0

# Run-fatal errors the pipeline has already written a failed run record for
RECORDED_ERRORS = (SourceUnavailable, PersistenceFailed)

DEFAULT_SETTINGS = AutomationSettings()


class JobState(str, Enum):
    """Scheduler state of a job."""

    STOPPED = "stopped"
    SCHEDULED = "scheduled"
    RUNNING = "running"


def next_daily_fire(now: datetime, daily_time: str, zone: ZoneInfo) -> datetime:
    """Next strictly-future occurrence of a wall-clock time in a timezone.

    Args:
        now: Current time (timezone-aware).
        daily_time: "HH:MM" in 24h format.
        zone: Operating timezone.

    Returns:
        Fire time in UTC.
    """
    at = parse_hhmm(daily_time)
    local_now = now.astimezone(zone)
    candidate = datetime.combine(local_now.date(), at, tzinfo=zone)
    if candidate <= local_now:
        candidate = datetime.combine(local_now.date() + timedelta(days=1), at, tzinfo=zone)
    return candidate.astimezone(UTC)


def _isoformat(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def _collect_result(task: asyncio.Task) -> None:
    # Failures are logged in _execute; nobody may be awaiting a shielded run
    if not task.cancelled():
        task.exception()


@dataclass
class Job:
    """A named recurring job."""

    name: str
    run: Callable[[], Awaitable[RunSummary]]
    compute_next_fire: Callable[[datetime], datetime]
    # Used when the next fire time cannot be computed from settings
    fallback_interval: timedelta = timedelta(days=1)
    enabled: bool = False
    next_fire_at: datetime | None = None
    last_started_at: datetime | None = None
    last_status: str | None = None
    last_error: str | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    timer: asyncio.Task | None = None
    current_run: asyncio.Task | None = None

    @property
    def state(self) -> JobState:
        if self.lock.locked():
            return JobState.RUNNING
        if self.enabled:
            return JobState.SCHEDULED
        return JobState.STOPPED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "state": self.state.value,
            "next_fire_at": _isoformat(self.next_fire_at),
            "last_started_at": _isoformat(self.last_started_at),
            "last_status": self.last_status,
            "last_error": self.last_error,
        }

    def fallback_fire(self, now: datetime) -> datetime:
        """First fallback interval step after the current fire time that is in the future."""
        fire_at = self.next_fire_at or now
        while fire_at <= now:
            fire_at += self.fallback_interval
        return fire_at


class Scheduler:
    """Owns the pipeline jobs and their timers."""

    def __init__(
        self,
        pipeline: Pipeline,
        config_store: ConfigStore,
        timezone: str = "Europe/London",
        clock: Callable[[], datetime] = utc_now,
        run_lock_timeout: timedelta = timedelta(hours=2),
    ):
        self.pipeline = pipeline
        self.db = pipeline.db
        self.config_store = config_store
        self.zone = get_zone(timezone)
        self.clock = clock
        self.run_lock_timeout = run_lock_timeout
        self.owner = f"{os.getpid()}-{uuid.uuid4().hex[:8]}"
        self.jobs: dict[str, Job] = {
            DAILY_GENERATION: Job(
                name=DAILY_GENERATION,
                run=pipeline.run_daily_generation,
                compute_next_fire=self._next_generation_fire,
            ),
            ODDS_UPDATE: Job(
                name=ODDS_UPDATE,
                run=pipeline.run_odds_update,
                compute_next_fire=self._next_odds_update_fire,
                fallback_interval=timedelta(
                    minutes=DEFAULT_SETTINGS.odds_update_interval_minutes
                ),
            ),
            HEALTH_CHECK: Job(
                name=HEALTH_CHECK,
                run=pipeline.run_health_check,
                compute_next_fire=self._next_health_check_fire,
                fallback_interval=timedelta(
                    minutes=DEFAULT_SETTINGS.health_check_interval_minutes
                ),
            ),
        }
        self._initialized = False

    # --- Fire time computation ---

    def _next_generation_fire(self, now: datetime) -> datetime:
        settings = self.config_store.load_settings()
        return next_daily_fire(now, settings.daily_generation_time, self.zone)

    def _next_odds_update_fire(self, now: datetime) -> datetime:
        settings = self.config_store.load_settings()
        return now + timedelta(minutes=settings.odds_update_interval_minutes)

    def _next_health_check_fire(self, now: datetime) -> datetime:
        settings = self.config_store.load_settings()
        return now + timedelta(minutes=settings.health_check_interval_minutes)

    # --- Lifecycle ---

    def initialize(self) -> None:
        """Seed configuration defaults and schedule every job.

        Must be called from a running event loop.
        """
        self.config_store.seed_defaults()
        for name in self.jobs:
            self.start_job(name)
        self._initialized = True
        logger.info("scheduler_initialized", jobs=list(self.jobs), timezone=self.zone.key)

    @property
    def initialized(self) -> bool:
        return self._initialized

    def get_job(self, name: str) -> Job:
        """Get a job by name.

        Raises:
            JobNotFound: If no job has this name.
        """
        try:
            return self.jobs[name]
        except KeyError:
            raise JobNotFound(name) from None

    def start_job(self, name: str) -> Job:
        """Schedule a job. Starting a scheduled job is a no-op."""
        job = self.get_job(name)
        if job.enabled:
            return job

        job.next_fire_at = job.compute_next_fire(self.clock())
        job.enabled = True
        job.timer = asyncio.get_running_loop().create_task(
            self._timer_loop(job), name=f"timer:{name}"
        )
        self._save_schedule(job)
        logger.info("job_started", job=name, next_fire_at=job.next_fire_at.isoformat())
        return job

    def stop_job(self, name: str) -> Job:
        """Stop future firing of a job.

        A run in progress is left to finish.
        """
        job = self.get_job(name)
        if not job.enabled:
            return job

        job.enabled = False
        job.next_fire_at = None
        if job.timer is not None:
            job.timer.cancel()
            job.timer = None
        self._save_schedule(job)
        logger.info("job_stopped", job=name, run_in_progress=job.lock.locked())
        return job

    def stop_all_jobs(self) -> None:
        """Stop every job."""
        for name in self.jobs:
            self.stop_job(name)
        self._initialized = False
        logger.info("all_jobs_stopped")

    async def wait_idle(self) -> None:
        """Wait for runs in progress to finish."""
        runs = [job.current_run for job in self.jobs.values() if job.current_run]
        if runs:
            await asyncio.gather(*runs, return_exceptions=True)

    def get_job_status(self) -> dict[str, dict[str, Any]]:
        """Snapshot of every job's state and next fire time.

        Jobs this scheduler has not scheduled report the schedule stored by
        whichever scheduler last did. A run claimed by any scheduler reports
        ``running``.
        """
        try:
            stored = {record.job_name: record for record in self.db.list_job_states()}
        except sqlite3.Error as e:
            logger.warning("job_state_read_failed", error=str(e))
            stored = {}
        return {name: self._status(job, stored.get(name)) for name, job in self.jobs.items()}

    def _status(self, job: Job, record: JobStateRecord | None) -> dict[str, Any]:
        status = job.to_dict()
        if record is None:
            return status

        if not job.enabled and record.schedule_owner not in ("", self.owner):
            status["state"] = record.state
            status["next_fire_at"] = _isoformat(record.next_fire_at)
        if record.running:
            status["state"] = JobState.RUNNING.value
        if record.last_started_at is not None:
            status["last_started_at"] = _isoformat(record.last_started_at)
            status["last_status"] = record.last_status
            status["last_error"] = record.last_error
        return status

    # --- Manual triggers ---

    async def trigger_daily_generation(self) -> RunSummary:
        """Run daily generation now.

        Raises:
            ConcurrencyConflict: If the job is already running.
        """
        return await self._trigger(DAILY_GENERATION)

    async def trigger_odds_update(self) -> RunSummary:
        """Run an odds update now.

        Raises:
            ConcurrencyConflict: If the job is already running.
        """
        return await self._trigger(ODDS_UPDATE)

    async def trigger_health_check(self) -> RunSummary:
        """Run a health check now."""
        return await self._trigger(HEALTH_CHECK)

    async def _trigger(self, name: str) -> RunSummary:
        job = self.get_job(name)
        if job.lock.locked():
            logger.warning("job_trigger_rejected", job=name, reason="already_running")
            raise ConcurrencyConflict(name)
        return await asyncio.shield(self._spawn_run(job, "manual"))

    # --- Execution ---

    def _spawn_run(self, job: Job, trigger: str) -> asyncio.Task:
        run = asyncio.get_running_loop().create_task(
            self._execute(job, trigger), name=f"run:{job.name}"
        )
        run.add_done_callback(_collect_result)
        return run

    async def _timer_loop(self, job: Job) -> None:
        while job.enabled:
            assert job.next_fire_at is not None
            while (remaining := (job.next_fire_at - self.clock()).total_seconds()) > 0:
                await asyncio.sleep(min(remaining, MAX_SLEEP_SECONDS))

            if job.lock.locked():
                logger.warning("job_fire_skipped", job=job.name, reason="already_running")
            else:
                try:
                    await asyncio.shield(self._spawn_run(job, "timer"))
                except ConcurrencyConflict:
                    logger.warning("job_fire_skipped", job=job.name, reason="running_elsewhere")
                except Exception as e:
                    # Logged and alerted in _execute; the timer keeps going
                    logger.debug("job_timer_continuing", job=job.name, error=str(e))

            self._reschedule(job)

    def _reschedule(self, job: Job) -> None:
        now = self.clock()
        try:
            job.next_fire_at = job.compute_next_fire(now)
        except Exception as e:
            job.next_fire_at = job.fallback_fire(now)
            logger.error(
                "job_reschedule_failed",
                job=job.name,
                error=str(e),
                next_fire_at=job.next_fire_at.isoformat(),
            )
            self._alert("job_reschedule_failed", f"{job.name} reschedule failed: {e}")
        else:
            logger.info(
                "job_rescheduled", job=job.name, next_fire_at=job.next_fire_at.isoformat()
            )
        self._save_schedule(job)

    async def _execute(self, job: Job, trigger: str) -> RunSummary:
        if job.lock.locked():
            raise ConcurrencyConflict(job.name)
        async with job.lock:
            now = self.clock()
            if not self.db.claim_job_run(
                job.name, self.owner, now, stale_before=now - self.run_lock_timeout
            ):
                logger.warning(
                    "job_trigger_rejected", job=job.name, reason="running_elsewhere"
                )
                raise ConcurrencyConflict(job.name)

            job.current_run = asyncio.current_task()
            job.last_started_at = now
            logger.info("job_run_started", job=job.name, trigger=trigger)
            try:
                with run_context(job=job.name, trigger=trigger):
                    summary = await job.run()
            except Exception as e:
                job.last_status = "failed"
                job.last_error = str(e)
                logger.error("job_run_failed", job=job.name, trigger=trigger, error=str(e))
                if not isinstance(e, RECORDED_ERRORS):
                    self._record_unhandled(job, trigger, e)
                self._save_result(job)
                self._alert("job_failed", f"{job.name} ({trigger}) failed: {e}")
                raise
            finally:
                job.current_run = None
                self._release_claim(job)

            job.last_status = summary.status.value
            job.last_error = summary.error
            self._save_result(job)
            logger.info(
                "job_run_finished",
                job=job.name,
                trigger=trigger,
                status=summary.status.value,
                duration_ms=summary.duration_ms,
            )
            return summary

    # --- Shared state and records ---

    def _save_schedule(self, job: Job) -> None:
        state = JobState.SCHEDULED if job.enabled else JobState.STOPPED
        try:
            self.db.save_job_schedule(job.name, state.value, job.next_fire_at, self.owner)
        except sqlite3.Error as e:
            logger.error("job_state_save_failed", job=job.name, error=str(e))

    def _save_result(self, job: Job) -> None:
        try:
            self.db.save_job_result(
                job.name, job.last_started_at, job.last_status, job.last_error
            )
        except sqlite3.Error as e:
            logger.error("job_state_save_failed", job=job.name, error=str(e))

    def _release_claim(self, job: Job) -> None:
        try:
            self.db.release_job_run(job.name, self.owner)
        except sqlite3.Error as e:
            # The claim expires after run_lock_timeout
            logger.error("job_claim_release_failed", job=job.name, error=str(e))

    def _alert(self, alert_type: str, message: str) -> None:
        try:
            self.config_store.record_alert(alert_type, message, at=self.clock())
        except sqlite3.Error as e:
            logger.error("alert_record_failed", alert_type=alert_type, error=str(e))

    def _record_unhandled(self, job: Job, trigger: str, error: Exception) -> None:
        try:
            self.db.append_run_record(
                RunRecord(
                    run_type=job.name,
                    status=RunStatus.FAILED,
                    error_message=str(error),
                    details={"trigger": trigger, "error_type": type(error).__name__},
                    created_at=self.clock(),
                )
            )
        except Exception as e:
            logger.error("run_record_failed", job=job.name, error=str(e))
